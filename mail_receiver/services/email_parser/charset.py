"""Text encoding recovery for message parts."""

from email.message import Message
from typing import Iterable, Optional

COMMON_ENCODINGS = ("utf-8", "windows-1252", "iso-8859-1")


def try_to_decode(data: bytes, encoding: str) -> Optional[str]:
    """
    Decode ``data`` with ``encoding``.

    Returns:
        The decoded text, or None if the bytes are invalid in that encoding
        or the encoding is unknown
    """
    try:
        text = data.decode(encoding)
        # must survive a round trip to UTF-8
        text.encode("utf-8")
    except (UnicodeDecodeError, UnicodeEncodeError, LookupError):
        return None
    return text


def decode_with_candidates(data: bytes, encodings: Iterable[str]) -> Optional[str]:
    """First non-blank decoding among ``encodings``, tried in order."""
    seen = set()
    for encoding in encodings:
        key = encoding.lower()
        if key in seen:
            continue
        seen.add(key)

        text = try_to_decode(data, encoding)
        if text and text.strip():
            return text

    return None


def candidate_encodings(declared: Optional[str], transfer_encoding: Optional[str]) -> list[str]:
    """
    Ordered encodings to try for a part.

    The declared charset goes first, then the common encodings. An 8bit
    transfer encoding forces UTF-8 to the front.

    Examples:
        >>> candidate_encodings("koi8-r", None)
        ['koi8-r', 'utf-8', 'windows-1252', 'iso-8859-1']
        >>> candidate_encodings("iso-8859-1", "8bit")
        ['utf-8', 'iso-8859-1', 'windows-1252', 'iso-8859-1']
    """
    encodings = list(COMMON_ENCODINGS)
    if declared:
        encodings.insert(0, declared.lower())

    if (transfer_encoding or "").strip().lower() == "8bit":
        encodings = ["utf-8"] + [e for e in encodings if e != "utf-8"]

    return encodings


def fix_charset(part: Optional[Message]) -> Optional[str]:
    """
    Decode a MIME part's body into text.

    Args:
        part: Message part (or a non-multipart message)

    Returns:
        Decoded text, or None when the part is missing, empty, or
        undecodable with every candidate encoding
    """
    if part is None:
        return None

    payload = part.get_payload(decode=True)
    if not payload or not payload.strip():
        return None

    encodings = candidate_encodings(part.get_content_charset(), part.get("Content-Transfer-Encoding"))
    return decode_with_candidates(payload, encodings)


def decode_raw(raw: bytes) -> str:
    """Decode a whole raw message with the first working common encoding."""
    return decode_with_candidates(raw, COMMON_ENCODINGS) or ""
