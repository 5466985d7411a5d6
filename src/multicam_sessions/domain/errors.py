"""Error taxonomy for session coordination."""


class SessionError(Exception):
    """Base class for failures classified by the session core."""

    code = "session_error"
    default_message = "Session operation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class SessionNotFoundError(SessionError):
    """The session code or id does not resolve to a session."""

    code = "not_found"
    default_message = "Invalid session code"


class DeviceNotFoundError(SessionError):
    """The device is not a member of the session."""

    code = "not_found"
    default_message = "Device is not part of this session"


class NotJoinableError(SessionError):
    """The session exists but no longer accepts devices."""

    code = "not_joinable"
    default_message = "Session is not accepting new devices"


class ForbiddenError(SessionError):
    """A master-only command was issued by another device."""

    code = "forbidden"
    default_message = "Only the master device may change the session status"


class InvalidTransitionError(SessionError):
    """The requested status cannot be reached from the current one."""

    code = "invalid_transition"
    default_message = "Invalid session status transition"


class StorageError(SessionError):
    """Persistence or network failure; retryable by the caller."""

    code = "storage_error"
    default_message = "Storage operation failed"


class DuplicateCodeError(StorageError):
    """A generated session code collided with an open session."""

    code = "duplicate_code"
    default_message = "Session code already in use"


class UnauthenticatedError(SessionError):
    """Caller identity is missing or invalid."""

    code = "unauthenticated"
    default_message = "Unauthorized"
