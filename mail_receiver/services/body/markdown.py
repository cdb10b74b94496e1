"""HTML and plain-text conversion to Markdown."""

import re
from typing import Optional

import html2text
from bs4 import BeautifulSoup

QUOTE_PREFIX = re.compile(r"^((?:>\s?)*)(.*)$")
URL = re.compile(r"(https?://\S+|mailto:\S+)", re.IGNORECASE)
MARKDOWN_SPECIAL = re.compile(r"([\\`*_\[\]])")
LINE_START_SPECIAL = re.compile(r"^(\s*)(#{1,6}\s|[+-]\s)")


def html_to_markdown(html: Optional[str], keep_img_tags: bool = False, keep_cid_imgs: bool = False) -> str:
    """
    Convert an HTML fragment to Markdown.

    Args:
        html: HTML source
        keep_img_tags: Keep images as Markdown images instead of dropping them
        keep_cid_imgs: Also keep images pointing at inline ``cid:`` parts

    Returns:
        Markdown text, stripped
    """
    if not html or not html.strip():
        return ""

    if keep_img_tags and not keep_cid_imgs:
        soup = BeautifulSoup(html, "html.parser")
        for img in soup.find_all("img", src=re.compile(r"^cid:", re.IGNORECASE)):
            img.decompose()
        html = str(soup)

    converter = html2text.HTML2Text()
    converter.body_width = 0
    converter.unicode_snob = True
    converter.ignore_images = not keep_img_tags
    converter.images_to_alt = False

    markdown = converter.handle(html)
    lines = [line.rstrip() for line in markdown.split("\n")]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


class PlainTextToMarkdown:
    """
    Convert plain text (optionally ``format=flowed``, RFC 3676) to Markdown.

    Flowed lines are joined into paragraphs, quote markers are normalized to
    ``> `` and characters with Markdown meaning are escaped outside URLs.
    """

    def __init__(self, text: str, format_flowed: bool = False, delete_flowed_space: bool = False):
        self.text = text or ""
        self.format_flowed = format_flowed
        self.delete_flowed_space = delete_flowed_space

    def to_markdown(self) -> str:
        lines = self._split_lines()
        if self.format_flowed:
            lines = self._unflow(lines)

        return "\n".join(self._convert_line(depth, content) for depth, content in lines).strip()

    def _split_lines(self) -> list[tuple[int, str]]:
        result = []
        for line in self.text.replace("\r\n", "\n").split("\n"):
            match = QUOTE_PREFIX.match(line)
            depth = match.group(1).count(">")
            content = match.group(2)
            if self.format_flowed and content.startswith(" "):
                # space-stuffed line
                content = content[1:]
            result.append((depth, content))
        return result

    def _unflow(self, lines: list[tuple[int, str]]) -> list[tuple[int, str]]:
        result: list[tuple[int, str]] = []
        flowing = False

        for depth, content in lines:
            if flowing and result and result[-1][0] == depth:
                previous = result[-1][1]
                if self.delete_flowed_space:
                    previous = previous[:-1]
                result[-1] = (depth, previous + content)
            else:
                result.append((depth, content))

            flowing = content.endswith(" ") and content != "-- "

        return result

    def _convert_line(self, depth: int, content: str) -> str:
        content = content.rstrip()
        prefix = "> " * depth
        if not content:
            return prefix.rstrip()
        return prefix + self._escape(content)

    def _escape(self, content: str) -> str:
        parts = URL.split(content)
        escaped = []
        for index, part in enumerate(parts):
            # odd indexes are URLs captured by the split
            escaped.append(part if index % 2 else MARKDOWN_SPECIAL.sub(r"\\\1", part))
        return LINE_START_SPECIAL.sub(lambda m: m.group(1) + "\\" + m.group(2), "".join(escaped))


def plaintext_to_markdown(text: str, format_flowed: bool = False, delete_flowed_space: bool = False) -> str:
    """Convert plain text to Markdown, see PlainTextToMarkdown."""
    return PlainTextToMarkdown(text, format_flowed, delete_flowed_space).to_markdown()
