"""Error taxonomy and adapter result type.

Adapters never raise for expected failure modes. They return a FetchResult
that either carries a value or a FailureKind with a human-readable detail.
Exceptions are reserved for conditions the caller must handle explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

__all__ = [
    "CompanionProcessError",
    "EmbeddedArrayFormatError",
    "FailureKind",
    "FetchResult",
    "OwnershipUnavailableError",
    "SamPickerError",
]

T = TypeVar("T")


class FailureKind(Enum):
    """Why a single adapter call produced no usable data."""

    TRANSPORT = "transport"
    MALFORMED = "malformed"
    SIGN_IN_REQUIRED = "sign_in_required"
    FORMAT_CHANGED = "format_changed"
    UPSTREAM_ERROR = "upstream_error"
    PROCESS_FAULT = "process_fault"
    NOT_CONFIGURED = "not_configured"


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """Outcome of one adapter call.

    Attributes:
        value: Parsed payload on success, None on failure.
        failure: Failure classification, None on success.
        detail: Short description of the failure (already redacted).
    """

    value: T | None = None
    failure: FailureKind | None = None
    detail: str = ""

    @property
    def succeeded(self) -> bool:
        """Whether the call produced a value."""
        return self.failure is None

    @classmethod
    def ok(cls, value: Any) -> FetchResult:
        return cls(value=value)

    @classmethod
    def fail(cls, failure: FailureKind, detail: str = "") -> FetchResult:
        return cls(failure=failure, detail=detail)


class SamPickerError(Exception):
    """Base class for all SAM Picker errors."""


class OwnershipUnavailableError(SamPickerError):
    """Every ownership source failed; the caller needs an explicit fallback."""


class CompanionProcessError(SamPickerError):
    """The companion executable could not start, timed out or reported ERR."""


class EmbeddedArrayFormatError(SamPickerError):
    """A script-embedded JSON array could not be located or decoded."""
