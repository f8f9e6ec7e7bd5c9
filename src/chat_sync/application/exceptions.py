from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class ForbiddenError(AppError):
    pass


class ConflictError(AppError):
    pass


class ValidationError(AppError):
    pass


class AuthFailure(AppError):
    """Credential invalid or expired. Retry with a fresh token."""


class Unauthenticated(AppError):
    """Action needs an identity but the connection has not authenticated yet."""


class MessageDeletedConflict(ConflictError):
    """Edit or reaction against a soft-deleted message."""

    def __init__(self, detail: str = "Message no longer available") -> None:
        super().__init__(detail)


class TransportDrop(AppError):
    """The connection went away without the client asking for it."""


class ReconnectExhausted(TransportDrop):
    """Reconnect attempts ran out; the caller must retry manually."""


class BroadcastPartialFailure(AppError):
    """The write succeeded but some subscribers could not be reached."""

    def __init__(self, event_type: str, failed: list[str]) -> None:
        self.event_type = event_type
        self.failed = failed
        super().__init__(f"{event_type}: {len(failed)} recipient(s) unreachable")
