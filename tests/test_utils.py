"""Tests for utility functions."""

import hashlib

import pytest

from mail_receiver.utils.message_id_utils import derive_message_id, extract_references, normalize_message_id
from mail_receiver.utils.unicode_utils import decode_email_header, human_size, truncate_subject


class TestNormalizeMessageId:
    """Test Message-ID normalization."""

    def test_strips_angle_brackets(self):
        assert normalize_message_id("<test@example.com>") == "test@example.com"

    def test_strips_whitespace(self):
        assert normalize_message_id("  test@example.com  ") == "test@example.com"

    @pytest.mark.parametrize("value", ["", "   ", "<>"])
    def test_empty_raises_error(self, value):
        with pytest.raises(ValueError):
            normalize_message_id(value)


class TestDeriveMessageId:
    """Test deduplication key derivation."""

    def test_header_value(self):
        assert derive_message_id("<abc@x>", b"raw") == "abc@x"

    def test_hash_fallback(self):
        assert derive_message_id(None, b"raw") == hashlib.md5(b"raw").hexdigest()
        assert derive_message_id("<>", b"raw") == hashlib.md5(b"raw").hexdigest()


def test_extract_references():
    assert extract_references("<a@x> <b@y>,<c@z>") == ["a@x", "b@y", "c@z"]
    assert extract_references(["<a@x>"]) == ["a@x"]
    assert extract_references(None) == []


class TestDecodeEmailHeader:
    """Test email header decoding."""

    def test_decode_plain_text(self):
        assert decode_email_header("Plain Text") == "Plain Text"

    def test_decode_utf8_encoded(self):
        assert decode_email_header("=?utf-8?B?5Lit5paH?=") == "中文"

    def test_decode_iso8859_encoded(self):
        assert decode_email_header("=?iso-8859-1?Q?H=E9llo?=") == "Héllo"

    def test_decode_empty(self):
        assert decode_email_header("") == ""
        assert decode_email_header(None) == ""


class TestTruncateSubject:
    """Test subject truncation."""

    def test_short_subject_unchanged(self):
        assert truncate_subject("Short subject") == "Short subject"

    def test_long_subject_truncated(self):
        result = truncate_subject("This is a very long subject that exceeds the maximum length", 30)
        assert result == "This is a very long subject..."
        assert len(result) == 30


@pytest.mark.parametrize(
    "num_bytes,expected",
    [(1, "1 Byte"), (512, "512 Bytes"), (1536, "1.5 KB"), (2048, "2 KB"), (1048576, "1 MB")],
)
def test_human_size(num_bytes, expected):
    assert human_size(num_bytes) == expected
