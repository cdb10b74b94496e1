"""Interfaces of the external systems the receiver talks to."""

from .base import (
    CollaboratorError,
    Collaborators,
    ContentCreator,
    ConversationDirectory,
    IdentityConflictError,
    IdentityDirectory,
    OutboundMailer,
    ReactionAlreadyRecordedError,
    ReactionNotAllowedError,
    ReactionRecorder,
    UploadStore,
)

__all__ = [
    "CollaboratorError",
    "Collaborators",
    "ContentCreator",
    "ConversationDirectory",
    "IdentityConflictError",
    "IdentityDirectory",
    "OutboundMailer",
    "ReactionAlreadyRecordedError",
    "ReactionNotAllowedError",
    "ReactionRecorder",
    "UploadStore",
]
