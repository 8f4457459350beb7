"""Session-level failures reported back to the acting connection."""


class SessionError(Exception):
    """Base class for session operations that fail without changing state."""

    reason: str = "Session error"

    def __init__(self, reason: str | None = None) -> None:
        if reason is not None:
            self.reason = reason
        super().__init__(self.reason)


class SessionNotFoundError(SessionError):
    reason = "Room not found!"


class SessionUnjoinableError(SessionError):
    """Session is full, already started, or already contains the connection."""

    reason = "Room is full!"


class ServerFullError(SessionError):
    reason = "Server is full, try again later!"
