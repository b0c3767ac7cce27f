from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    """Outcome of one collaborator call."""

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    collaborator: Optional[str] = None

    @staticmethod
    def success(value: T, collaborator: Optional[str] = None) -> "Result[T]":
        return Result(ok=True, value=value, collaborator=collaborator)

    @staticmethod
    def failure(error: str, code: str = "unknown", collaborator: Optional[str] = None) -> "Result[T]":
        return Result(ok=False, error=error, error_code=code, collaborator=collaborator)

    @property
    def timed_out(self) -> bool:
        return not self.ok and self.error_code == "timeout"

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default
