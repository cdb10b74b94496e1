"""Body extraction and quote elision."""

from .body_extractor import BodyExtractor, trim_discourse_markers
from .html_extractors import HTML_EXTRACTORS, HtmlExtractor, find_html_extractor
from .markdown import PlainTextToMarkdown, html_to_markdown, plaintext_to_markdown
from .reply_trimmer import extract_embedded_email, trim, trim_reply

__all__ = [
    "BodyExtractor",
    "HTML_EXTRACTORS",
    "HtmlExtractor",
    "PlainTextToMarkdown",
    "extract_embedded_email",
    "find_html_extractor",
    "html_to_markdown",
    "plaintext_to_markdown",
    "trim",
    "trim_discourse_markers",
    "trim_reply",
]
