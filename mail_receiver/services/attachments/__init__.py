"""Attachment handling."""

from .attachment_inliner import AttachmentInliner, attachment_markdown

__all__ = ["AttachmentInliner", "attachment_markdown"]
