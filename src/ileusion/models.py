"""Result and diagnostic models returned by service operations."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Where a failure came from."""
    CONFIGURATION = "configuration"
    TRANSPORT = "transport"
    REMOTE = "remote"
    MALFORMED = "malformed"
    CONVERSION = "conversion"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ServiceError:
    """A structured failure: kind plus human readable message."""
    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a service operation.

    A successful result carries ``value``; a failed one carries ``error``.
    Results are truthy on success, so ``if service.execute_command(...):``
    reads the same as the old boolean return.
    """
    ok: bool
    value: Optional[T] = None
    error: Optional[ServiceError] = None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "Result":
        return cls(ok=False, error=ServiceError(kind, message))

    def __bool__(self) -> bool:
        return self.ok

    @property
    def message(self) -> str:
        return self.error.message if self.error else ""

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None


@dataclass
class LastCall:
    """Diagnostics from the most recent public operation."""
    last_error: str = ""
    last_json_response: str = ""
    last_http_status: str = ""
    last_http_response_data: str = ""
    last_result: Optional[Result] = None

    def clear(self) -> None:
        self.last_error = ""
        self.last_json_response = ""
        self.last_http_status = ""
        self.last_http_response_data = ""
        self.last_result = None
