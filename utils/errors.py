"""
Error hierarchy for the arithma engine.

Every failure that reaches a caller is an ``ArithmaError`` subclass carrying
a short title and a human-readable message.  Division by zero is not an
error anywhere in the engine: it evaluates to NaN.
"""

from __future__ import annotations

from typing import Optional


class ArithmaError(Exception):
    """Base exception for all engine errors."""

    default_title = "Error"

    def __init__(self, message: str, *, position: Optional[int] = None):
        super().__init__(message)
        self.user_message = message
        self.position = position

    @property
    def title(self) -> str:
        return self.default_title

    def __str__(self) -> str:
        if self.position is not None:
            return f"{self.user_message} (at position {self.position})"
        return self.user_message


# === Front end ===


class LexError(ArithmaError):
    """Unrecognised character or malformed control sequence."""

    default_title = "Lex Error"


class ParseError(ArithmaError):
    """Unbalanced grouping, misplaced ``=``, trailing or missing tokens."""

    default_title = "Parse Error"


# === Engine ===


class EvaluationError(ArithmaError):
    """Unbound variable or a function applied outside its domain."""

    default_title = "Evaluation Error"


class DifferentiationError(ArithmaError):
    """The expression contains a node kind that cannot be differentiated."""

    default_title = "Differentiation Error"


class IntegrationError(ArithmaError):
    """No elementary form matched the integrand."""

    default_title = "Integration Error"


class SolveError(ArithmaError):
    """The equation is nonlinear in the target or indeterminate."""

    default_title = "Solve Error"


class MatrixError(ArithmaError):
    """Dimension mismatch, or a singular matrix where an inverse is needed."""

    default_title = "Matrix Error"


class CodegenError(ArithmaError):
    """The expression has no tensor translation."""

    default_title = "Codegen Error"
