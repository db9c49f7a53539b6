"""Errors raised by variable/term registration and assembly."""

from __future__ import annotations

__all__ = [
    "FunctionError",
    "DimensionMismatch",
    "UnknownVariable",
    "ArityMismatch",
]


class FunctionError(Exception):
    """Base class for all registration and assembly errors."""


class DimensionMismatch(FunctionError, ValueError):
    """A variable was (re-)registered or referenced with the wrong dimension."""


class UnknownVariable(FunctionError, LookupError):
    """A key does not refer to a registered variable."""

    def __str__(self) -> str:
        # LookupError would repr() the message otherwise
        return str(self.args[0]) if self.args else ""


class ArityMismatch(FunctionError, ValueError):
    """The number of arguments passed for a term differs from its arity."""
