"""Destination resolution."""

from .destination_resolver import DestinationResolver, RelatedPostFinder
from .reply_key_pattern import ReplyKeyPattern

__all__ = ["DestinationResolver", "RelatedPostFinder", "ReplyKeyPattern"]
