"""
Result type returned by queue operations.

Queue operations answer the operator or submitter with a message whether they
succeed or not, so a Result carries either a value (usually the reply text)
or an error message plus an error code from ``services.error_codes``.

Usage:
    return Result.ok(f"{submitter}, {entry} has been added to the queue.")
    return Result.fail("Sorry, the queue is full!", code=QUEUE_FULL)

    result = await queue_service.add(code, submitter)
    await reply(result.message)
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a queue operation.

    Attributes:
        success: Whether the operation succeeded
        value: The reply or payload if successful
        error: Error message if failed
        error_code: Error code for programmatic handling
    """

    success: bool
    value: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def ok(cls, value: T | None = None) -> "Result[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str, code: str | None = None) -> "Result[T]":
        return cls(success=False, error=error, error_code=code)

    def __bool__(self) -> bool:
        return self.success

    @property
    def message(self) -> str:
        """The text to show in chat: the value on success, the error otherwise."""
        if self.success:
            return "" if self.value is None else str(self.value)
        return self.error or ""

    def unwrap(self) -> T:
        """
        Get the value.

        Raises:
            ValueError: If the result is a failure
        """
        if not self.success:
            raise ValueError(f"Cannot unwrap failed result: {self.error}")
        return self.value  # type: ignore

    def unwrap_or(self, default: T) -> T:
        return self.value if self.success else default  # type: ignore
