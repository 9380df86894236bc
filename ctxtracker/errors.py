from typing import Optional


class ContextTrackerError(Exception):
    """Base class for errors raised by ctxtracker"""


class InvalidInputError(ContextTrackerError, ValueError):
    """Caller passed a malformed context or collection"""


class ContextParseError(ContextTrackerError, ValueError):
    """Serialized contexts did not survive the read-back check"""


class ApiError(ContextTrackerError):
    """Session service answered with a non-2xx status or was unreachable"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
