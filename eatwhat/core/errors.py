"""Error taxonomy shared by the services and the route layer."""

from typing import Any


class EatWhatError(Exception):
    """Base class for every error raised by the cooking core."""

    retryable: bool = False


class ValidationError(EatWhatError):
    """Malformed or empty input. Never retried."""


class GenerationParseError(EatWhatError):
    """Model output could not be coerced into the expected shape."""

    def __init__(self, message: str, last_error: BaseException | None = None):
        super().__init__(message)
        self.last_error = last_error


class TransientServiceFailure(EatWhatError):
    """Model generation and every fallback failed; the caller may retry."""

    retryable = True

    def __init__(self, message: str, result: Any = None):
        super().__init__(message)
        self.result = result


class PersistenceError(EatWhatError):
    """History store read or write failed."""
