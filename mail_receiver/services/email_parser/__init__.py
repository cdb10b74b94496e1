"""Email parsing services."""

from .address_parser import extract_from_address_and_name, parse_from_field
from .charset import COMMON_ENCODINGS, decode_raw, fix_charset, try_to_decode
from .inspection import delivery_status, extract_bounce_key, find_verp_address, is_auto_generated
from .message_parser import MessageParser

__all__ = [
    "COMMON_ENCODINGS",
    "MessageParser",
    "decode_raw",
    "delivery_status",
    "extract_bounce_key",
    "extract_from_address_and_name",
    "find_verp_address",
    "fix_charset",
    "is_auto_generated",
    "parse_from_field",
    "try_to_decode",
]
