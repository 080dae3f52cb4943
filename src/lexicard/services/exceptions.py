"""Custom exceptions for lexicard services."""


class LexicardError(Exception):
    """Base class for all lexicard errors."""


class FatalEnrichmentError(LexicardError):
    """Raised when a condition invalidates the whole task, not just one batch.

    The task manager turns this into a ``failed`` task with the message
    stored in ``Task.error``.
    """


class ConfigurationError(FatalEnrichmentError):
    """Raised when credentials or the model identifier are missing or placeholders."""


class AuthenticationError(FatalEnrichmentError):
    """Raised when the backend rejects the bearer credential (HTTP 401/403).

    Attributes:
        status_code: HTTP status returned by the backend
    """

    def __init__(self, status_code: int, message: str | None = None):
        self.status_code = status_code
        super().__init__(
            message
            or f"Authentication failed (HTTP {status_code}). "
               f"Check that the API key is valid and has remaining credit."
        )


class BackendError(LexicardError):
    """Raised when the backend call fails after the retry policy gives up.

    Attributes:
        status_code: HTTP status if the backend answered, None for transport errors
        retriable: Whether the last failure was of a retriable class
        attempts: Number of attempts made
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retriable: bool = True,
        attempts: int = 1
    ):
        self.status_code = status_code
        self.retriable = retriable
        self.attempts = attempts
        super().__init__(message)


class MalformedResponseError(LexicardError):
    """Raised when a response body cannot be parsed or repaired into item records.

    Attributes:
        issues: Defects reported by the result validator
    """

    def __init__(self, message: str, issues: list[str] | None = None):
        self.issues = issues or []
        detail = f" Issues: {', '.join(self.issues)}" if self.issues else ""
        super().__init__(f"{message}{detail}")


class BatchEnrichmentError(LexicardError):
    """Raised when a whole batch fails; the task records it and moves on."""


class ItemValidationError(LexicardError):
    """Raised when a single response record lacks a mandatory field."""


class EnrichmentCancelled(Exception):
    """Raised at a suspension point once the task's cancel token has fired.

    Not a LexicardError, so error handlers never book it as a failure.
    """

    def __init__(self, message: str = "Task was cancelled"):
        super().__init__(message)
