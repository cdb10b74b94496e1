"""Forwarded message handling."""

from .forwarded_unwrapper import ForwardedMessage, ForwardedMessageUnwrapper, is_forward_subject

__all__ = ["ForwardedMessage", "ForwardedMessageUnwrapper", "is_forward_subject"]
