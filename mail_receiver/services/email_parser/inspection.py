"""Header inspection: auto-generated traffic and delivery-status reports."""

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from mail_receiver.models.incoming_message import IncomingMessage

AUTO_PRECEDENCE = re.compile(r"list|junk|bulk|auto_reply", re.IGNORECASE)
AUTO_SENDER = re.compile(r"(mailer[\-_]?daemon|post[\-_]?master|no[\-_]?reply)@", re.IGNORECASE)
AUTO_SUBJECT = re.compile(
    r"^\s*(Auto:|Automatic reply|Autosvar|Automatisk svar|Automatisch antwoord|Abwesenheitsnotiz|"
    r"Risposta Non al computer|Auto Response|Respuesta automática|Fuori sede|Out of Office|"
    r"Frånvaro|Réponse automatique)",
    re.IGNORECASE,
)
AUTO_HEADERS = re.compile(
    r"auto[\-_]?(response|submitted|replied|reply|generated|respond)|holidayreply|machinegenerated",
    re.IGNORECASE,
)

VERP_ADDRESS = re.compile(r"\+verp-([0-9a-fA-F]{32})@")


def is_auto_generated(message: IncomingMessage, from_email: Optional[str], whitelist: Iterable[str] = ()) -> bool:
    """
    True if the message looks machine generated.

    Checks the Precedence header, daemon/no-reply senders, localized
    auto-reply subjects and auto-submitted style headers. Whitelisted
    senders are never auto generated.
    """
    if from_email and from_email in set(whitelist):
        return False

    return bool(
        AUTO_PRECEDENCE.search(message.precedence or "")
        or AUTO_SENDER.search(message.from_header or "")
        or AUTO_SUBJECT.search(message.subject or "")
        or AUTO_HEADERS.search(message.header_block)
    )


@dataclass
class DeliveryStatus:
    """Fields read from a message/delivery-status report."""

    actions: list[str] = field(default_factory=list)
    statuses: list[str] = field(default_factory=list)

    @property
    def bounced(self) -> bool:
        return any(re.search(r"failed", action, re.IGNORECASE) for action in self.actions)

    @property
    def is_soft(self) -> bool:
        """True if any reported status is a transient (4.x.x) failure."""
        return any(status.startswith("4.") for status in self.statuses)


def delivery_status(message: IncomingMessage) -> Optional[DeliveryStatus]:
    """
    Read the delivery-status part of a bounce report.

    Returns:
        DeliveryStatus, or None if the message carries no such part
    """
    for part in message.mail.walk():
        if part.get_content_type() != "message/delivery-status":
            continue

        status = DeliveryStatus()
        blocks = part.get_payload()
        if not isinstance(blocks, list):
            blocks = [blocks]

        for block in blocks:
            if not hasattr(block, "get"):
                continue
            action = block.get("Action")
            if action:
                status.actions.append(str(action).strip())
            code = block.get("Status")
            if code:
                status.statuses.append(str(code).strip())

        return status

    return None


def find_verp_address(addresses: Iterable[str]) -> Optional[str]:
    """First recipient address carrying a bounce-tracking token."""
    for address in addresses:
        if VERP_ADDRESS.search(address):
            return address
    return None


def extract_bounce_key(address: Optional[str]) -> Optional[str]:
    """
    The 32-character bounce key of a VERP address.

    Examples:
        >>> extract_bounce_key("reply+verp-0123456789abcdef0123456789abcdef@example.com")
        '0123456789abcdef0123456789abcdef'
    """
    if not address:
        return None
    match = VERP_ADDRESS.search(address)
    return match.group(1) if match else None
