"""Message-ID normalization utilities."""

import hashlib
import re
from typing import Iterable, Optional, Union


def normalize_message_id(message_id: str) -> str:
    """
    Normalize Message-ID to its bare form without angle brackets.

    Args:
        message_id: Raw Message-ID (may or may not have brackets)

    Returns:
        Message-ID in format id@domain

    Raises:
        ValueError: If message_id is empty

    Examples:
        >>> normalize_message_id("<abc@domain.com>")
        'abc@domain.com'
        >>> normalize_message_id("  abc@domain.com ")
        'abc@domain.com'
    """
    if not message_id or not message_id.strip():
        raise ValueError("Message-ID is empty")

    clean_id = message_id.strip()

    if clean_id.startswith("<"):
        clean_id = clean_id[1:]
    if clean_id.endswith(">"):
        clean_id = clean_id[:-1]

    clean_id = clean_id.strip()
    if not clean_id:
        raise ValueError(f"Invalid Message-ID format: {message_id}")

    return clean_id


def derive_message_id(header_value: Optional[str], raw: bytes) -> str:
    """
    Deduplication key for a message.

    Uses the Message-ID header when present, otherwise the MD5 hex digest of
    the raw bytes.
    """
    if header_value:
        try:
            return normalize_message_id(str(header_value))
        except ValueError:
            pass
    return hashlib.md5(raw).hexdigest()


def extract_references(references: Union[str, Iterable[str], None]) -> list[str]:
    """
    Split a References header into bare message ids.

    Examples:
        >>> extract_references("<a@x> <b@y>")
        ['a@x', 'b@y']
    """
    if not references:
        return []
    if isinstance(references, str):
        parts = re.split(r"[\s,]", references)
    else:
        parts = list(references)
    return [p.replace("<", "").replace(">", "") for p in parts if p and p.strip("<> ")]
