"""Raw bytes to IncomingMessage parsing."""

from datetime import datetime
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser, Parser
from email.utils import getaddresses, parsedate_to_datetime
from pathlib import Path
from typing import Optional

from mail_receiver.models.incoming_message import Attachment, IncomingMessage
from mail_receiver.services.receiver.errors import EmptyEmailError
from mail_receiver.utils.message_id_utils import derive_message_id, extract_references, normalize_message_id
from mail_receiver.utils.unicode_utils import decode_email_header
from .charset import decode_raw


class MessageParser:
    """Parse raw RFC 5322 / MIME bytes into IncomingMessage values."""

    def parse(self, raw: bytes) -> IncomingMessage:
        """
        Parse raw message bytes.

        Args:
            raw: Bytes delivered by the mail transport

        Returns:
            IncomingMessage

        Raises:
            EmptyEmailError: If ``raw`` is empty or whitespace
        """
        if not raw or not raw.strip():
            raise EmptyEmailError()

        return self._build(raw, BytesParser(policy=policy.default).parsebytes(raw))

    def parse_text(self, text: str) -> IncomingMessage:
        """
        Parse a message held as decoded text, such as a forwarded message
        recovered from another message's body.

        Raises:
            EmptyEmailError: If ``text`` is empty or whitespace
        """
        if not text or not text.strip():
            raise EmptyEmailError()

        return self._build(text.encode("utf-8"), Parser(policy=policy.default).parsestr(text))

    def _build(self, raw: bytes, mail: EmailMessage) -> IncomingMessage:
        return IncomingMessage(
            message_id=derive_message_id(self._header(mail, "Message-ID"), raw),
            raw=raw,
            raw_text=decode_raw(raw),
            mail=mail,
            subject=self._header(mail, "Subject"),
            from_header=self._header(mail, "From"),
            to=self._addresses(mail, "To"),
            cc=self._addresses(mail, "Cc"),
            bcc=self._addresses(mail, "Bcc"),
            x_forwarded_to=self._values(mail, "X-Forwarded-To"),
            delivered_to=self._values(mail, "Delivered-To"),
            in_reply_to=self._in_reply_to(mail),
            references=tuple(extract_references(self._header(mail, "References"))),
            precedence=self._header(mail, "Precedence"),
            date=self._date(mail),
            attachments=tuple(self._attachments(mail)),
        )

    def parse_file(self, file_path: Path) -> IncomingMessage:
        """
        Parse a message stored on disk.

        Raises:
            FileNotFoundError: If file doesn't exist
        """
        if not file_path.exists():
            raise FileNotFoundError(f"Email file not found: {file_path}")

        return self.parse(file_path.read_bytes())

    def _header(self, mail: EmailMessage, name: str) -> Optional[str]:
        value = mail.get(name)
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def _values(self, mail: EmailMessage, name: str) -> tuple[str, ...]:
        return tuple(str(v).strip() for v in mail.get_all(name) or [] if str(v).strip())

    def _addresses(self, mail: EmailMessage, name: str) -> tuple[str, ...]:
        values = [str(v) for v in mail.get_all(name) or []]
        return tuple(addr.lower() for _, addr in getaddresses(values) if "@" in addr)

    def _in_reply_to(self, mail: EmailMessage) -> Optional[str]:
        value = self._header(mail, "In-Reply-To")
        if not value:
            return None
        try:
            return normalize_message_id(value.split()[0])
        except ValueError:
            return None

    def _date(self, mail: EmailMessage) -> Optional[datetime]:
        value = self._header(mail, "Date")
        if not value:
            return None
        try:
            return parsedate_to_datetime(value)
        except (TypeError, ValueError, IndexError):
            return None

    def _attachments(self, mail: EmailMessage):
        for part in mail.walk():
            if part.is_multipart():
                continue

            filename = part.get_filename()
            if not filename:
                continue

            content_id = part.get("Content-ID")
            yield Attachment(
                filename=decode_email_header(filename),
                content_type=part.get_content_type().lower(),
                content=part.get_payload(decode=True) or b"",
                content_id=str(content_id).strip().strip("<>") if content_id else None,
            )
