from dataclasses import dataclass
from typing import Generic, TypeVar, Union


T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Value produced as requested"""
    value: T

    @property
    def is_fallback(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Fallback(Generic[T]):
    """Deterministic substitute used after a recoverable failure"""
    value: T
    reason: str = ""

    @property
    def is_fallback(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Fatal:
    """Unrecoverable failure; unwrap() raises the wrapped error"""
    error: Exception

    @property
    def is_fallback(self) -> bool:
        return False

    def unwrap(self):
        raise self.error


Result = Union[Ok[T], Fallback[T], Fatal]
