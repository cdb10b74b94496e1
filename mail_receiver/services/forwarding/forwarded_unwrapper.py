"""Recovery of an original message forwarded inside another message."""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from mail_receiver.models.incoming_message import IncomingMessage
from mail_receiver.services.body.reply_trimmer import extract_embedded_email
from mail_receiver.services.email_parser.address_parser import parse_from_field
from mail_receiver.services.email_parser.charset import fix_charset
from mail_receiver.services.email_parser.message_parser import MessageParser

FORWARD_SUBJECT = re.compile(r"^[ \t]*(fwd?|tr)[ \t]?:", re.IGNORECASE)


@dataclass(frozen=True)
class ForwardedMessage:
    """
    The embedded original of a forwarded message.

    Attributes:
        message: Embedded message, parsed on its own
        from_email: Original sender address, if one was found
        from_display_name: Original sender name
        body: Content of the original message
        title: Original subject
        date: Original date
        before: Text the forwarder wrote above the forwarded message
    """

    message: IncomingMessage
    from_email: Optional[str]
    from_display_name: Optional[str]
    body: str
    title: Optional[str]
    date: Optional[datetime]
    before: str = ""


def is_forward_subject(subject: Optional[str]) -> bool:
    """
    True if ``subject`` carries a forward prefix.

    Examples:
        >>> is_forward_subject("Fwd: intro")
        True
        >>> is_forward_subject("TR : réunion")
        True
        >>> is_forward_subject("Re: Fwd: intro")
        False
    """
    return bool(subject and FORWARD_SUBJECT.search(subject))


class ForwardedMessageUnwrapper:
    """Detect a forwarded message and re-parse the message it embeds."""

    def __init__(self, parser: Optional[MessageParser] = None):
        self.parser = parser or MessageParser()

    def unwrap(self, message: IncomingMessage) -> Optional[ForwardedMessage]:
        """
        Extract the forwarded original from the text part of ``message``.

        Returns:
            ForwardedMessage, or None when the subject is not a forward or
            the body embeds no message
        """
        if not is_forward_subject(message.subject):
            return None

        mail = message.mail
        part = mail.get_body(preferencelist=("plain",)) if mail.is_multipart() else mail
        text = fix_charset(part)

        embedded_raw, before = extract_embedded_email(text)
        if not embedded_raw:
            return None

        embedded = self.parser.parse_text(embedded_raw)
        from_email, from_display_name = parse_from_field(embedded.from_header)

        payload = embedded.mail.get_payload()
        body = payload.strip() if isinstance(payload, str) else ""

        return ForwardedMessage(
            message=embedded,
            from_email=from_email,
            from_display_name=from_display_name,
            body=body or embedded_raw,
            title=embedded.subject,
            date=embedded.date,
            before=before or "",
        )
