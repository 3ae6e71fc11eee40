"""Summary: Error taxonomy and result wrapper for the data access layer.

Importance: Lets internal code carry typed failure causes up to the public boundary, where they are logged.
Alternatives: Catch broad exceptions everywhere and return None immediately.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class PulseError(Exception):
    """Base class for AccountPulse failures."""


class ResolutionError(PulseError):
    """Provider, function, or entity name could not be resolved."""


class UpstreamError(PulseError):
    """A provider or sentiment call failed or returned nothing usable."""


class StoreError(PulseError):
    """The document store rejected or failed an operation."""


@dataclass(frozen=True)
class Result:
    """Summary: Ok/error variant returned by internal cache operations.

    Importance: Preserves the failure cause until the boundary converts it into a None result.
    Alternatives: Raise and catch exceptions across every layer.
    """

    ok: bool
    value: Any = None
    error: PulseError | None = None

    @staticmethod
    def success(value: Any) -> "Result":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: PulseError) -> "Result":
        return Result(ok=False, error=error)
