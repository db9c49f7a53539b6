"""Objective assembly from block-structured terms."""

from .errors import ArityMismatch, DimensionMismatch, FunctionError, UnknownVariable
from .function import Function
from .term_registry import TermOwnership
from .variables import VariableHandle

__all__ = [
    "Function",
    "TermOwnership",
    "VariableHandle",
    "FunctionError",
    "DimensionMismatch",
    "UnknownVariable",
    "ArityMismatch",
]
