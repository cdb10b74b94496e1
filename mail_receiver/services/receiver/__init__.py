"""Processing orchestration and its error taxonomy.

The orchestrator lives in ``mail_receiver.services.receiver.orchestrator``;
only the errors are re-exported here since every service raises them.
"""

from .errors import (
    AutoGeneratedEmailError,
    BadDestinationAddress,
    BouncedEmailError,
    EmailNotAllowed,
    EmptyEmailError,
    InactiveUserError,
    InsufficientTrustLevelError,
    InvalidPost,
    InvalidPostAction,
    NoBodyDetectedError,
    NoSenderDetectedError,
    ProcessingError,
    ReplyUserNotMatchingError,
    ScreenedEmailError,
    SilencedUserError,
    StrangersNotAllowedError,
    TopicClosedError,
    TopicNotFoundError,
    UnsubscribeNotAllowed,
    UserNotFoundError,
)

__all__ = [
    "AutoGeneratedEmailError",
    "BadDestinationAddress",
    "BouncedEmailError",
    "EmailNotAllowed",
    "EmptyEmailError",
    "InactiveUserError",
    "InsufficientTrustLevelError",
    "InvalidPost",
    "InvalidPostAction",
    "NoBodyDetectedError",
    "NoSenderDetectedError",
    "ProcessingError",
    "ReplyUserNotMatchingError",
    "ScreenedEmailError",
    "SilencedUserError",
    "StrangersNotAllowedError",
    "TopicClosedError",
    "TopicNotFoundError",
    "UnsubscribeNotAllowed",
    "UserNotFoundError",
]
