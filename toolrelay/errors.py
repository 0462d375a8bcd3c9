"""Error types raised across module boundaries.

Only ``CompletionError`` is allowed to escape a conversation turn; everything
below the turn boundary is caught and turned into data (a failed ToolResult
or a backend marked unreachable).
"""
from typing import Optional


class RelayError(Exception):
    """Base class for toolrelay errors."""


class BackendError(RelayError):
    """A tool backend was unreachable or answered with a bad response.

    Attributes:
        backend_id: logical id of the backend that failed.
        status_code: HTTP status when the backend answered, else None.
    """

    def __init__(self, backend_id: str, message: str, status_code: Optional[int] = None):
        self.backend_id = backend_id
        self.status_code = status_code
        super().__init__(f"[{backend_id}] {message}")


class CompletionError(RelayError):
    """The language-model completion service failed."""
