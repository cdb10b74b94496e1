"""Reply-key address matching."""

import logging
import re
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

REPLY_KEY_PLACEHOLDER = "%{reply_key}"
REPLY_KEY_GROUP = "([0-9a-fA-F]{32})"


class ReplyKeyPattern:
    """
    Alternation of every configured reply address template.

    Each template is escaped literally and its ``%{reply_key}`` placeholder
    replaced by a group capturing exactly 32 hexadecimal characters. The
    whole address must match, so shorter or longer keys are rejected.

    Examples:
        >>> pattern = ReplyKeyPattern(["reply+%{reply_key}@example.com"])
        >>> pattern.extract_keys("reply+" + "a" * 32 + "@example.com") == ["a" * 32]
        True
        >>> pattern.extract_keys("reply+" + "a" * 31 + "@example.com")
        []
    """

    def __init__(self, templates: Iterable[str]):
        alternatives = []
        for template in templates:
            if template.count(REPLY_KEY_PLACEHOLDER) != 1:
                logger.warning(f"Ignoring reply address without a single reply key placeholder: {template}")
                continue
            escaped = re.escape(template).replace(re.escape(REPLY_KEY_PLACEHOLDER), REPLY_KEY_GROUP)
            alternatives.append(escaped)

        self.regex: Optional[re.Pattern] = None
        if alternatives:
            self.regex = re.compile("|".join(f"(?:{a})" for a in alternatives), re.IGNORECASE)

    def extract_keys(self, address: Optional[str]) -> list[str]:
        """
        Reply keys captured from ``address``, one per participating template.

        Returns:
            Lower-cased keys in template order; empty if nothing matched
        """
        if not self.regex or not address:
            return []

        match = self.regex.fullmatch(address.strip())
        if not match:
            return []

        return [key.lower() for key in match.groups() if key]
