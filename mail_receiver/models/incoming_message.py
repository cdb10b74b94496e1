"""Parsed incoming message data model."""

from dataclasses import dataclass, field
from datetime import datetime
from email.message import EmailMessage
from typing import Optional


@dataclass(frozen=True)
class Attachment:
    """
    A file attached to an incoming message.

    Attributes:
        filename: Decoded filename
        content_type: Declared MIME type (lower-case)
        content: Decoded bytes
        content_id: Content-ID without angle brackets, if any
    """

    filename: str
    content_type: str
    content: bytes
    content_id: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")

    @property
    def url(self) -> Optional[str]:
        """Reference used by HTML bodies to point at this attachment."""
        if self.content_id:
            return f"cid:{self.content_id}"
        return None


@dataclass(frozen=True)
class IncomingMessage:
    """
    An incoming message, normalized once and never mutated afterwards.

    Attributes:
        message_id: Deduplication key (header value, else MD5 of the raw bytes)
        raw: Raw bytes as delivered by the transport
        raw_text: Raw message decoded with the first working common encoding
        mail: Parsed MIME structure
        subject: Decoded subject, None when blank
        from_header: Raw From header value
        to: Lower-cased To addresses
        cc: Lower-cased Cc addresses
        bcc: Lower-cased Bcc addresses
        x_forwarded_to: X-Forwarded-To header values
        delivered_to: Delivered-To header values
        in_reply_to: In-Reply-To message id without brackets
        references: References message ids without brackets
        precedence: Precedence header value
        date: Parsed Date header
        attachments: Attachments in MIME order
    """

    message_id: str
    raw: bytes
    raw_text: str
    mail: EmailMessage = field(repr=False, compare=False)
    subject: Optional[str] = None
    from_header: Optional[str] = None
    to: tuple[str, ...] = ()
    cc: tuple[str, ...] = ()
    bcc: tuple[str, ...] = ()
    x_forwarded_to: tuple[str, ...] = ()
    delivered_to: tuple[str, ...] = ()
    in_reply_to: Optional[str] = None
    references: tuple[str, ...] = ()
    precedence: Optional[str] = None
    date: Optional[datetime] = None
    attachments: tuple[Attachment, ...] = ()

    @property
    def header_block(self) -> str:
        """All headers rendered as 'Name: value' lines."""
        return "\n".join(f"{name}: {value}" for name, value in self.mail.items())
