"""Error codes raised by the event lifecycle layer."""
from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    AUTHENTICATION_REQUIRED = 'AUTHENTICATION_REQUIRED'
    EMAIL_NOT_VERIFIED = 'EMAIL_NOT_VERIFIED'
    FORBIDDEN = 'FORBIDDEN'
    NOT_FOUND = 'NOT_FOUND'
    IMAGE_UPLOAD_FAILED = 'IMAGE_UPLOAD_FAILED'
    PERMISSION_DENIED = 'PERMISSION_DENIED'
    TRANSIENT_NETWORK_FAILURE = 'TRANSIENT_NETWORK_FAILURE'
    INVALID_EVENT_INPUT = 'INVALID_EVENT_INPUT'


class EventError(Exception):
    """Base error with a code and a message safe to show to the user."""

    code: ErrorCode = None

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class AuthenticationRequired(EventError):
    code = ErrorCode.AUTHENTICATION_REQUIRED

    def __init__(self, message: str = "Please sign in before publishing an event."):
        super().__init__(message)


class EmailNotVerified(EventError):
    code = ErrorCode.EMAIL_NOT_VERIFIED

    def __init__(self, message: str = "Please verify your email before publishing an event."):
        super().__init__(message)


class Forbidden(EventError):
    """Raised when the caller is not the creator of the event."""
    code = ErrorCode.FORBIDDEN

    def __init__(self, event_id: str):
        super().__init__("Only the organizer can change this event.")
        self.event_id = event_id


class NotFound(EventError):
    """Raised when the event record no longer exists."""
    code = ErrorCode.NOT_FOUND

    def __init__(self, event_id: str):
        super().__init__("Event not found. It may have been deleted.")
        self.event_id = event_id


class ImageUploadFailed(EventError):
    code = ErrorCode.IMAGE_UPLOAD_FAILED

    def __init__(self, message: str = "Failed to upload the cover image."):
        super().__init__(message)


class PermissionDenied(EventError):
    """Raised when the backend rejected a write the client considered valid."""
    code = ErrorCode.PERMISSION_DENIED

    def __init__(
        self,
        message: str = (
            "Publishing requires a verified account. "
            "Please verify your email and try again."
        ),
    ):
        super().__init__(message)


class TransientNetworkFailure(EventError):
    code = ErrorCode.TRANSIENT_NETWORK_FAILURE

    def __init__(self, message: str = "The network request failed."):
        super().__init__(message)


class InvalidEventInput(EventError):
    code = ErrorCode.INVALID_EVENT_INPUT

    def __init__(self, message: str):
        super().__init__(message)
