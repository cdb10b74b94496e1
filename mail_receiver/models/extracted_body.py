"""Extracted body data model."""

from dataclasses import dataclass
from enum import Enum


class BodyFormat(Enum):
    """Format of the extracted content."""

    PLAINTEXT = 1
    MARKDOWN = 2


@dataclass(frozen=True)
class ExtractedBody:
    """
    New content and elided (quoted/signature) content of a message.

    Attributes:
        content: Text written by the sender
        elided: Quoted replies and signatures trimmed from the content
        format: Whether the content came from the text or the HTML part
    """

    content: str
    elided: str
    format: BodyFormat

    def is_blank(self) -> bool:
        return not self.content.strip()
