"""Unicode, header decoding and display utilities."""

from email.header import decode_header


def decode_email_header(header_value: str) -> str:
    """
    Decode RFC 2047 encoded-word header to Unicode string.

    Args:
        header_value: Raw header value (may be encoded)

    Returns:
        Decoded Unicode string

    Examples:
        >>> decode_email_header("=?UTF-8?B?5Lit5paH?=")
        '中文'
    """
    if not header_value:
        return ""

    decoded_parts = []
    for content, encoding in decode_header(str(header_value)):
        if isinstance(content, bytes):
            if encoding:
                try:
                    decoded_parts.append(content.decode(encoding))
                except (UnicodeDecodeError, LookupError):
                    # Fallback to UTF-8 with error replacement
                    decoded_parts.append(content.decode("utf-8", errors="replace"))
            else:
                try:
                    decoded_parts.append(content.decode("ascii"))
                except UnicodeDecodeError:
                    decoded_parts.append(content.decode("utf-8", errors="replace"))
        else:
            decoded_parts.append(str(content))

    return "".join(decoded_parts)


def truncate_subject(subject: str | None, max_length: int = 50) -> str:
    """
    Truncate subject to max_length with '...' if needed.

    Examples:
        >>> truncate_subject("Short subject")
        'Short subject'
        >>> truncate_subject("This is a very long subject that exceeds the maximum length", 30)
        'This is a very long subject...'
    """
    if not subject:
        return ""

    if len(subject) <= max_length:
        return subject

    return subject[: max_length - 3] + "..."


def human_size(num_bytes: int) -> str:
    """
    Render a byte count the way attachment links display it.

    Examples:
        >>> human_size(512)
        '512 Bytes'
        >>> human_size(1536)
        '1.5 KB'
        >>> human_size(1048576)
        '1 MB'
    """
    if num_bytes < 1024:
        return "1 Byte" if num_bytes == 1 else f"{num_bytes} Bytes"

    size = float(num_bytes)
    for unit in ("KB", "MB", "GB", "TB"):
        size /= 1024
        if size < 1024 or unit == "TB":
            break

    text = f"{size:.1f}".rstrip("0").rstrip(".")
    return f"{text} {unit}"
