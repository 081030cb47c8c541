"""
Authentication results.

Tagged result returned by every repository and use-case operation.
Exactly one of Success, Error or Loading describes an outcome.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    """
    Operation completed.

    Attributes:
        data: Result payload (None for operations without one, e.g. logout)
    """
    data: T


@dataclass(frozen=True)
class Error:
    """
    Operation failed.

    Attributes:
        message: Human-readable failure description
    """
    message: str

    def __post_init__(self):
        if not self.message:
            raise ValueError("Error message must not be empty")


@dataclass(frozen=True)
class Loading:
    """Operation still in flight."""


AuthResult = Union[Success[T], Error, Loading]
