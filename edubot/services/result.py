from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")
U = TypeVar("U")


@dataclass
class Result(Generic[T]):
    """Outcome of a platform call whose failure is an expected business answer."""

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown") -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)

    @staticmethod
    def from_envelope(payload: dict[str, Any], parse: Callable[[Any], T]) -> "Result[T]":
        """Build from the platform's ``{"success", "data", "error", "code"}`` envelope."""
        if payload.get("success"):
            return Result.success(parse(payload.get("data")))
        return Result.failure(payload.get("error") or "request failed", payload.get("code") or "unknown")

    def has_code(self, code: str) -> bool:
        return not self.ok and self.error_code == code

    def map(self, fn: Callable[[T], U]) -> "Result[U]":
        if not self.ok:
            return Result(ok=False, error=self.error, error_code=self.error_code)
        return Result.success(fn(self.value))

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default
