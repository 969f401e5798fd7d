"""
Result types for store operations that can fail without raising.

Session Store operations return one of these variants so that every
outcome, including reuse detection, is an explicit case at the call site:

    match await store.rotate(raw_token, metadata):
        case Success(value=pair):
            ...
        case Failure(error=AuthErrorKind.TOKEN_REUSE_DETECTED):
            ...
        case Failure(error=kind):
            ...
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    """Successful outcome carrying a value."""

    value: T


@dataclass(frozen=True, slots=True)
class Failure(Generic[E]):
    """Failed outcome carrying an error."""

    error: E


type Result[T, E] = Success[T] | Failure[E]
