"""Custom exceptions for the distributed rate limiter."""


class RateLimiterError(Exception):
    """Base class for rate limiter exceptions.

    All custom exceptions inherit from this class so callers can catch
    every limiter failure with a single except clause.
    """

    def __init__(self, message: str = "Rate limiter error"):
        self.message = message
        super().__init__(message)


class ConfigurationError(RateLimiterError, ValueError):
    """Raised when a limiter is constructed with invalid arguments.

    Covers an empty key and non-positive rate or capacity. Not retryable.
    """


class ValidationError(RateLimiterError, ValueError):
    """Raised when a single call is made with an invalid permit count."""

    def __init__(self, permits: object, message: str | None = None):
        self.permits = permits
        super().__init__(message or f"permits should be more than 0, got {permits!r}")


class ExecutionError(RateLimiterError):
    """Raised when the shared store fails to run the bucket script.

    Wraps transport errors, an unavailable store and malformed results.
    The original exception is kept as ``__cause__``.
    """

    def __init__(self, key: str, message: str = "fail to execute script"):
        self.key = key
        super().__init__(f"{message} (key={key})")
