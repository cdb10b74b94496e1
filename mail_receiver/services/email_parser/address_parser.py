"""Sender address extraction from From-style header values."""

import re
from email import policy
from email.errors import HeaderParseError
from typing import Optional, Tuple

from mail_receiver.utils.unicode_utils import decode_email_header

ANGLE_ADDRESS = re.compile(r"<([^>]+)>")
ANGLE_DISPLAY_NAME = re.compile(r"^([^<]+)")
MAILTO_ADDRESS = re.compile(r"\[mailto:([^\]]+)\]")
MAILTO_DISPLAY_NAME = re.compile(r"^([^\[]+)")

# An addr-spec with nothing that belongs to the lenient textual forms
PLAIN_ADDR_SPEC = re.compile(r"^[^@\s<>\[\]()]+@[^@\s<>\[\]()]+$")

Address = Tuple[Optional[str], Optional[str]]


def parse_from_field(value: Optional[str]) -> Address:
    """
    Extract the sender address and display name from a header value.

    Structured address-list parsing is tried first. Malformed values and the
    legacy ``Name <addr>`` / ``Name [mailto:addr]`` forms fall back to regex
    extraction.

    Args:
        value: Raw From header value

    Returns:
        Tuple of (lower-cased address, stripped display name), or
        (None, None) when no address can be found

    Examples:
        >>> parse_from_field('"Jane Doe" <Jane@Example.com>')
        ('jane@example.com', 'Jane Doe')
        >>> parse_from_field("Jane Doe [mailto:jane@example.com]")
        ('jane@example.com', 'Jane Doe')
    """
    if not value or not str(value).strip():
        return None, None

    value = str(value)

    structured = _parse_structured(value)
    if structured[0]:
        return structured

    return extract_from_address_and_name(value)


def _parse_structured(value: str) -> Address:
    try:
        header = policy.default.header_factory("from", value)
        if header.defects:
            return None, None
        addresses = header.addresses
    except (HeaderParseError, IndexError, TypeError, ValueError):
        return None, None

    for address in addresses:
        addr_spec = address.addr_spec or ""
        if "@" in addr_spec and PLAIN_ADDR_SPEC.match(addr_spec):
            display_name = (address.display_name or "").strip()
            return addr_spec.lower(), display_name or None

    return None, None


def extract_from_address_and_name(value: str) -> Address:
    """
    Regex fallback for malformed or legacy sender values.

    Examples:
        >>> extract_from_address_and_name("Bob <BOB@example.com>")
        ('bob@example.com', 'Bob')
        >>> extract_from_address_and_name("nobody")
        (None, None)
    """
    from_address = None
    from_display_name = None

    if ANGLE_ADDRESS.search(value):
        from_address = ANGLE_ADDRESS.search(value).group(1)
        name_match = ANGLE_DISPLAY_NAME.search(value)
        from_display_name = name_match.group(1) if name_match else None

    if (not from_address or "@" not in from_address) and MAILTO_ADDRESS.search(value):
        from_address = MAILTO_ADDRESS.search(value).group(1)
        name_match = MAILTO_DISPLAY_NAME.search(value)
        from_display_name = name_match.group(1) if name_match else None

    if not from_address or "@" not in from_address:
        return None, None

    if from_display_name:
        from_display_name = decode_email_header(from_display_name).strip() or None

    return from_address.strip().lower(), from_display_name
