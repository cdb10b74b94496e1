"""Data models for incoming mail processing"""

from .destination import Destination, DestinationKind
from .directory import Category, EmailLog, Group, Identity, Post, PostOptions, PostResult, Topic, Upload
from .bounce_record import BounceRecord
from .extracted_body import BodyFormat, ExtractedBody
from .incoming_email import IncomingEmailRecord
from .incoming_message import Attachment, IncomingMessage
from .processing_outcome import OutcomeKind, ProcessingOutcome, ProcessingState

__all__ = [
    "Attachment",
    "BodyFormat",
    "BounceRecord",
    "Category",
    "Destination",
    "DestinationKind",
    "EmailLog",
    "ExtractedBody",
    "Group",
    "Identity",
    "IncomingEmailRecord",
    "IncomingMessage",
    "OutcomeKind",
    "Post",
    "PostOptions",
    "PostResult",
    "ProcessingOutcome",
    "ProcessingState",
    "Topic",
    "Upload",
]
