"""Split message text into new content and quoted/signature content."""

import re
from typing import Optional

SIGNATURE = re.compile(r"^\\?--\s*$")
MOBILE_SIGNATURE = re.compile(
    r"^\s*(Sent from my |Sent from (Mail|Outlook) for |Get Outlook for |Envoyé de mon |"
    r"Enviado desde mi |Von meinem .+ gesendet)",
    re.IGNORECASE,
)
DELIMITER = re.compile(r"^\s*\\?[-_=*]{3,}\s*$")
ORIGINAL_MESSAGE = re.compile(
    r"^\s*-{2,}\s*(Original Message|Forwarded message|Mensaje original|Message d'origine|"
    r"Ursprüngliche Nachricht|Messaggio originale|Oorspronkelijk bericht)\s*-{2,}\s*$",
    re.IGNORECASE,
)
EMBEDDED_HEADER = re.compile(
    r"^\s*(On\b.+\bwrote|Le\b.+\ba écrit|El\b.+\bescribió|Am\b.+\bschrieb\b.*|"
    r"Op\b.+\bschreef\b.*|Il\b.+\bha scritto)\s*:\s*$",
    re.IGNORECASE,
)
EMBEDDED_HEADER_START = re.compile(r"^\s*(On|Le|El|Am|Op|Il)\b", re.IGNORECASE)
EMAIL_HEADER = re.compile(r"^\s*\*{0,2}(From|De|Von|Van|Da)\s*:\*{0,2}\s*\S", re.IGNORECASE)
EMAIL_HEADER_FIELD = re.compile(
    r"^\s*\*{0,2}(Sent|Date|To|Subject|Cc|Envoyé|Objet|À|Gesendet|Betreff|An|Datum|Onderwerp|Aan)\s*:",
    re.IGNORECASE,
)
QUOTE = re.compile(r"^\s*>")

FORWARD_DELIMITER = re.compile(
    r"^\s*(-{2,}\s*(Forwarded message|Original Message|Message transféré|Mensaje reenviado|"
    r"Weitergeleitete Nachricht|Doorgestuurd bericht|Messaggio inoltrato)\s*-{2,}|"
    r"Begin forwarded message:|Début du message réexpédié\s*:)\s*$",
    re.IGNORECASE,
)
HEADER_LINE = re.compile(r"^\s*\*{0,2}([^\s:*][^:*]*?)\s*:\*{0,2}\s*(.*)$")

# Localized header names of forwarded blocks mapped to RFC 5322 names
EMBEDDED_HEADER_NAMES = {
    "from": "From",
    "de": "From",
    "von": "From",
    "van": "From",
    "da": "From",
    "sent": "Date",
    "date": "Date",
    "envoyé": "Date",
    "gesendet": "Date",
    "datum": "Date",
    "to": "To",
    "à": "To",
    "an": "To",
    "aan": "To",
    "cc": "Cc",
    "subject": "Subject",
    "objet": "Subject",
    "betreff": "Subject",
    "onderwerp": "Subject",
    "reply-to": "Reply-To",
}


def _lines(text: str) -> list[str]:
    return text.replace("\r\n", "\n").replace("\r", "\n").split("\n")


def _starts_header_block(lines: list[str], index: int) -> bool:
    if not EMAIL_HEADER.match(lines[index]):
        return False
    return any(EMAIL_HEADER_FIELD.match(line) for line in lines[index + 1 : index + 4])


def _find_cut(lines: list[str]) -> Optional[int]:
    for i, line in enumerate(lines):
        if SIGNATURE.match(line) or MOBILE_SIGNATURE.match(line):
            return i
        if ORIGINAL_MESSAGE.match(line) or DELIMITER.match(line):
            return i
        if EMBEDDED_HEADER.match(line):
            return i
        # "On <date>, <name>" wrapped onto a second "... wrote:" line
        if (
            i + 1 < len(lines)
            and EMBEDDED_HEADER_START.match(line)
            and EMBEDDED_HEADER.match(f"{line.rstrip()} {lines[i + 1].strip()}")
        ):
            return i
        if _starts_header_block(lines, i):
            return i

    return None


def _find_trailing_quote(lines: list[str]) -> Optional[int]:
    start = len(lines)
    while start > 0 and (QUOTE.match(lines[start - 1]) or not lines[start - 1].strip()):
        start -= 1

    if any(QUOTE.match(line) for line in lines[start:]):
        return start
    return None


def trim_reply(text: Optional[str]) -> tuple[str, str]:
    """
    Split text at the first recognized quote marker.

    Recognized markers are signature separators, delimiter lines,
    "On ... wrote:" style headers, forwarded-message header blocks and a
    trailing block of ``>`` quoted lines.

    Args:
        text: Message text

    Returns:
        Tuple of (new content, elided content). When nothing but quoted
        text would remain, the whole text is kept as new content.
    """
    if not text or not text.strip():
        return "", ""

    lines = _lines(text.strip())
    cuts = [c for c in (_find_cut(lines), _find_trailing_quote(lines)) if c is not None]
    if not cuts:
        return text.strip(), ""

    cut = min(cuts)
    trimmed = "\n".join(lines[:cut]).strip()
    elided = "\n".join(lines[cut:]).strip()

    if not trimmed:
        return text.strip(), ""

    return trimmed, elided


def trim(text: Optional[str]) -> str:
    """New content of ``text``, quotes and signatures removed."""
    return trim_reply(text)[0]


def extract_embedded_email(text: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """
    Locate a forwarded message embedded in a message body.

    The forwarded block must start with a header block containing a From
    line, either after a forward delimiter ("---------- Forwarded message
    ----------", "Begin forwarded message:", a line of underscores) or on its
    own.

    Args:
        text: Message text

    Returns:
        Tuple of (embedded RFC 822 message text, text before it), or
        (None, None) if no embedded message was found
    """
    if not text or not text.strip():
        return None, None

    lines = _lines(text)

    for i, line in enumerate(lines):
        if FORWARD_DELIMITER.match(line) or DELIMITER.match(line):
            start = i + 1
            while start < len(lines) and not lines[start].strip():
                start += 1
        elif EMAIL_HEADER.match(line):
            start = i
        else:
            continue

        embedded = _embedded_message(lines, start)
        if embedded is not None:
            before = "\n".join(lines[:i]).strip()
            return embedded, before

    return None, None


def _embedded_message(lines: list[str], start: int) -> Optional[str]:
    headers = []
    index = start

    while index < len(lines):
        line = lines[index]
        match = HEADER_LINE.match(line)
        if match and match.group(1).strip().lower() in EMBEDDED_HEADER_NAMES:
            name = EMBEDDED_HEADER_NAMES[match.group(1).strip().lower()]
            headers.append(f"{name}: {match.group(2).strip()}")
        elif headers and line[:1] in (" ", "\t") and line.strip():
            headers[-1] += " " + line.strip()
        else:
            break
        index += 1

    if not headers or not headers[0].startswith("From:"):
        return None

    body = "\n".join(lines[index:]).strip()
    return "\n".join(headers) + "\n\n" + body + "\n"
