"""Processing error taxonomy.

Every error is local to one ingestion attempt. The ``kind`` of an error is
what gets stored on the audit record.
"""


class ProcessingError(Exception):
    """Base exception for message processing errors."""

    kind = "processing_error"

    def __str__(self) -> str:
        return super().__str__() or self.__class__.__name__


class EmptyEmailError(ProcessingError):
    """Raised when the raw message is empty."""

    kind = "empty_email"


class ScreenedEmailError(ProcessingError):
    """Raised when the sender address is screened."""

    kind = "screened_email"


class UserNotFoundError(ProcessingError):
    """Raised when the sender is unknown and staged users are disabled."""

    kind = "user_not_found"


class AutoGeneratedEmailError(ProcessingError):
    """Raised when auto-generated traffic is blocked."""

    kind = "auto_generated_email"


class BouncedEmailError(ProcessingError):
    """Raised when the message is a bounce."""

    kind = "bounced_email"


class NoBodyDetectedError(ProcessingError):
    """Raised when neither a body nor attachments could be extracted."""

    kind = "no_body_detected"


class NoSenderDetectedError(ProcessingError):
    """Raised when no sender address could be parsed."""

    kind = "no_sender_detected"


class InactiveUserError(ProcessingError):
    """Raised when the sender's identity is inactive."""

    kind = "inactive_user"


class SilencedUserError(ProcessingError):
    """Raised when the sender's identity is silenced."""

    kind = "silenced_user"


class BadDestinationAddress(ProcessingError):
    """Raised when no recipient address resolves to a usable destination."""

    kind = "bad_destination_address"


class StrangersNotAllowedError(ProcessingError):
    """Raised when a staged sender posts to a category closed to strangers."""

    kind = "strangers_not_allowed"


class InsufficientTrustLevelError(ProcessingError):
    """Raised when the sender lacks the trust level to post by email."""

    kind = "insufficient_trust_level"


class ReplyUserNotMatchingError(ProcessingError):
    """Raised when a reply key belongs to another identity."""

    kind = "reply_user_not_matching"


class TopicNotFoundError(ProcessingError):
    """Raised when the target conversation is missing or deleted."""

    kind = "topic_not_found"


class TopicClosedError(ProcessingError):
    """Raised when the target conversation is closed."""

    kind = "topic_closed"


class InvalidPost(ProcessingError):
    """Raised when the content creator rejects the post."""

    kind = "invalid_post"


class InvalidPostAction(ProcessingError):
    """Raised when a reaction is rejected."""

    kind = "invalid_post_action"


class UnsubscribeNotAllowed(ProcessingError):
    """Raised when an unknown sender asks to unsubscribe."""

    kind = "unsubscribe_not_allowed"


class EmailNotAllowed(ProcessingError):
    """Raised when an address may not be used to create an identity."""

    kind = "email_not_allowed"
