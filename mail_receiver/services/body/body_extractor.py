"""Body selection: choose the text or HTML part and split off quoted content."""

import logging
import re
from email.message import Message
from typing import Optional

from mail_receiver.config.receiver_config import ReceiverConfig
from mail_receiver.models.extracted_body import BodyFormat, ExtractedBody
from mail_receiver.models.incoming_message import IncomingMessage
from mail_receiver.services.email_parser.charset import fix_charset
from mail_receiver.services.receiver.errors import NoBodyDetectedError
from .html_extractors import find_html_extractor
from .markdown import html_to_markdown, plaintext_to_markdown
from .reply_trimmer import trim, trim_reply

logger = logging.getLogger(__name__)


def trim_discourse_markers(text: Optional[str], marker: str = "Previous Replies") -> str:
    """
    Drop the previous-discussion block appended to outgoing notifications.

    Everything from a ``---``/``-- `` line followed by ``*<marker>*`` on the
    next line is removed.
    """
    if not text:
        return ""
    pattern = re.compile(r"^--[- ]\n\*" + re.escape(marker) + r"\*\n", re.IGNORECASE | re.MULTILINE)
    return pattern.split(text.replace("\r\n", "\n"), maxsplit=1)[0]


class BodyExtractor:
    """
    Extract the new content and elided content of a message.

    Text and HTML alternatives are both processed. The HTML result wins when
    there is no usable text, or when HTML is preferred and produced content.
    """

    def __init__(self, config: ReceiverConfig):
        self.config = config

    def extract(
        self,
        message: IncomingMessage,
        has_attachments: bool = False,
        mailinglist_mirror: bool = False,
    ) -> ExtractedBody:
        """
        Extract the body, failing when nothing usable is left.

        Args:
            message: Parsed message
            has_attachments: Whether attachments survived filtering
            mailinglist_mirror: Message is addressed to a mirror category

        Returns:
            ExtractedBody (possibly blank when attachments are present)

        Raises:
            NoBodyDetectedError: If there is neither content nor attachments
        """
        body = self.select_body(message, mailinglist_mirror)
        if body is None:
            body = ExtractedBody("", "", BodyFormat.PLAINTEXT)

        if body.is_blank() and not has_attachments:
            raise NoBodyDetectedError()

        return body

    def select_body(self, message: IncomingMessage, mailinglist_mirror: bool = False) -> Optional[ExtractedBody]:
        """
        Pick and convert the best body part.

        Returns:
            ExtractedBody, or None when the message has no text or HTML part
        """
        text, html, (flowed, delsp) = self._parts(message.mail)

        if not text and not html:
            return None

        elided_text = ""
        if text:
            text = trim_discourse_markers(text, self.config.previous_discussion_marker)
            text, elided_text = self._trim(text)

            if self.config.convert_plaintext or mailinglist_mirror:
                text = plaintext_to_markdown(text, flowed, delsp)
                elided_text = plaintext_to_markdown(elided_text, flowed, delsp)

        markdown = ""
        elided_markdown = ""
        if html:
            extractor = find_html_extractor(html)
            if extractor is not None:
                logger.debug(f"Using {extractor.name} HTML extractor")
                new_html, elided_html = extractor.extract(html)
                markdown, elided_markdown = self._to_markdown(new_html, elided_html)
            else:
                markdown = html_to_markdown(html, keep_img_tags=True, keep_cid_imgs=True)
                markdown = trim_discourse_markers(markdown, self.config.previous_discussion_marker)
                markdown, elided_markdown = self._trim(markdown)

        if not (text or "").strip() or (self.config.incoming_email_prefer_html and markdown.strip()):
            return ExtractedBody(markdown, elided_markdown, BodyFormat.MARKDOWN)

        return ExtractedBody(text, elided_text, BodyFormat.PLAINTEXT)

    def _parts(self, mail: Message) -> tuple[Optional[str], Optional[str], tuple[bool, bool]]:
        """Decoded text and HTML bodies plus the format=flowed / delsp=yes hints."""
        text_part = html_part = None

        if mail.is_multipart():
            text_part = mail.get_body(preferencelist=("plain",))
            html_part = mail.get_body(preferencelist=("html",))
        elif mail.get_content_type() == "text/html":
            html_part = mail
        elif mail.get_content_type() == "text/plain":
            text_part = mail

        flowed = delsp = False
        if text_part is not None:
            flowed = str(text_part.get_param("format", "")).lower() == "flowed"
            delsp = str(text_part.get_param("delsp", "")).lower() == "yes"

        return fix_charset(text_part), fix_charset(html_part), (flowed, delsp)

    def _trim(self, text: str) -> tuple[str, str]:
        if self.config.skip_trimming:
            return text.strip(), ""
        return trim_reply(text)

    def _to_markdown(self, new_html: str, elided_html: str) -> tuple[str, str]:
        markdown = trim(html_to_markdown(new_html, keep_img_tags=True, keep_cid_imgs=True))
        elided_markdown = html_to_markdown(elided_html)
        return markdown, elided_markdown
