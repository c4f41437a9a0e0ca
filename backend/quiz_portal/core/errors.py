# backend/quiz_portal/core/errors.py
"""
Error taxonomy shared by the gateway, the resilient layer and the routes.

Read failures are absorbed into fallback data, write failures surface to
the caller with a message specific to the operation.
"""

from typing import Any, Dict

# ------------------------------------------------------------
# Operation messages shown to the end user
# ------------------------------------------------------------
WRITE_FAILURE_MESSAGES: Dict[str, str] = {
    "login": "Login failed. Please try again.",
    "register": "Registration failed. Please try again.",
    "submit_document": "Failed to upload PDF and generate quiz",
    "submit_result": "Failed to save quiz result",
}


class QuizPortalError(Exception):
    """Base class for every error raised by the core."""


class BackendUnavailable(QuizPortalError):
    """Transport error, non-2xx status or malformed body from the backend."""

    def __init__(self, operation: str, reason: str, status_code: int | None = None):
        self.operation = operation
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"{operation}: {reason}")


class NotFound(BackendUnavailable):
    """The backend answered 404 for a quiz lookup."""


class WriteFailed(QuizPortalError):
    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.message = WRITE_FAILURE_MESSAGES.get(operation, f"{operation} failed")
        self.detail = detail
        super().__init__(self.message)

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.message, "success": False}


class ValidationFailed(QuizPortalError):
    """Input rejected before any network call."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidAnswer(QuizPortalError, ValueError):
    """An answer label outside a-d, or an answer for a question not in the quiz."""


class SessionStateError(QuizPortalError):
    """The requested transition is not defined for the session's state."""
