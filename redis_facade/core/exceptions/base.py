"""
Cache Layer Error Root

Every failure the access layer can produce is a CacheLayerError. The
command executor catches exactly this type: anything else is a bug in a
caller's closure and propagates untouched.

Each subclass declares whether retrying the same call later can succeed
(`retryable`), which the executor logs alongside the error.
"""

from typing import Any, ClassVar


class CacheLayerError(Exception):
    """
    Root of the cache access layer error kinds.

    Attributes:
        message: Human-readable description
        thread_id: Correlation id of the request that failed, if known
        details: Structured context (endpoint, indexdb, command, ...)
        retryable: Whether the same call may succeed later

    Example:
        raise PoolExhaustedError(
            details={"endpoint": "10.0.0.1:6379", "max_total": 8}
        )
    """

    retryable: ClassVar[bool] = False

    def __init__(
        self, message: str, thread_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.thread_id = thread_id
        self.details = dict(details) if details else {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Log-ready view of the error."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "retryable": self.retryable,
            "thread_id": self.thread_id,
            "details": self.details,
        }

    def with_context(self, **context) -> "CacheLayerError":
        """Merge `context` into details and return self, for `raise err.with_context(...)`."""
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        parts = [repr(self.message)]
        if self.thread_id:
            parts.append(f"thread_id={self.thread_id!r}")
        if self.details:
            parts.append(f"details={self.details!r}")
        return f"{type(self).__name__}({', '.join(parts)})"

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        message: str | None = None,
        thread_id: str | None = None,
        **details,
    ) -> "CacheLayerError":
        """
        Translate a wire-client exception into this error kind.

        The original exception's class and text are kept under
        `details["cause"]`; chain with `raise ... from exc` as well.

        Example:
            except redis.ConnectionError as e:
                raise ConnectionBrokenError.from_exception(e, endpoint="localhost:6379") from e
        """
        details["cause"] = {"type": type(exc).__name__, "message": str(exc)}
        return cls(message or str(exc), thread_id=thread_id, details=details)


class ConfigurationError(CacheLayerError):
    """Invalid or ambiguous configuration. Fatal at boot."""
