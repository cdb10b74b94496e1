"""Utility functions"""

from .message_id_utils import derive_message_id, extract_references, normalize_message_id
from .unicode_utils import decode_email_header, human_size, truncate_subject

__all__ = [
    "normalize_message_id",
    "derive_message_id",
    "extract_references",
    "decode_email_header",
    "truncate_subject",
    "human_size",
]
