from __future__ import annotations

import math
import sys
from typing import Any

import numpy as np
import torch

from utils.ast_utils import ASTNode
from utils.constants import DISPLAY_PRECISION, GREEK_LETTERS

# Precedence of each node kind when rendered.  A child whose precedence is
# too low for its position is wrapped in \left( \right).
_PREC_EQ = 0
_PREC_ADD = 1
_PREC_MUL = 2
_PREC_NEG = 3
_PREC_POW = 4
_PREC_ATOM = 5


def print_errors(errors: list[str]) -> None:
    """Print error messages and exit with status 1.

    If *errors* is non-empty, prints each message prefixed with a cross
    mark, shows a summary count, and terminates the process with
    ``sys.exit(1)``.  If no errors are present, prints a success message.

    Parameters
    ----------
    errors : list[str]
        Human-readable messages, e.g. from ``TypeChecker.run()`` or a
        caught ``ArithmaError``.

    Examples
    --------
    >>> from utils.print_utils import print_errors
    >>> print_errors([])
      ✓ No errors found
    """
    if errors:
        for error in errors:
            print(f"  ✗ {error}")
        print(f"{len(errors)} error(s) found.")

        sys.exit(1)
    else:
        print("  ✓ No errors found")


def _pformat(value: Any, indent: int = 0) -> str:
    """Pretty-format an AST value with indentation.

    Recursively formats tuples and scalars into a readable, indented
    string.  Short tuples that fit within 80 columns are kept on a single
    line and longer ones are expanded vertically.

    Parameters
    ----------
    value : Any
        The AST value to format: a tuple, ``float``, ``str`` or ``None``.
    indent : int, default 0
        Current indentation level (each level = 2 spaces).

    Returns
    -------
    str
        A formatted, possibly multi-line string.

    Examples
    --------
    >>> from utils.print_utils import _pformat
    >>> _pformat(("num", 3.0))
    "('num', 3.0)"
    >>> print(_pformat(("add", ("var", "x"), ("num", 1.0))))
    ('add', ('var', 'x'), ('num', 1.0))
    """
    prefix = "  " * indent

    if value is None:
        return f"{prefix}None"

    if isinstance(value, (int, float)):
        return f"{prefix}{value}"

    if isinstance(value, str):
        return f"{prefix}{repr(value)}"

    if isinstance(value, tuple):
        if not value:
            return f"{prefix}()"
        oneline = f"{prefix}{value!r}"
        if len(oneline) <= 80:
            return oneline
        lines = [f"{prefix}("]
        for item in value:
            lines.append(f"{_pformat(item, indent + 1)},")
        lines.append(f"{prefix})")
        return "\n".join(lines)

    return f"{prefix}{repr(value)}"


def _from_torch(v: Any) -> Any:
    """Convert a torch value to a plain Python value for display.

    Scalars are unwrapped via ``.item()`` and tensors are converted to
    (nested) Python lists via ``.tolist()``.

    Examples
    --------
    >>> from utils.print_utils import _from_torch
    >>> _from_torch(torch.tensor(3.0))
    3.0
    >>> _from_torch(torch.tensor([1.0, 2.0]))
    [1.0, 2.0]
    """
    if not isinstance(v, torch.Tensor):
        return v
    if v.numel() == 1 and v.dim() == 0:
        return v.item()
    return v.detach().tolist()


def format_number(value: Any) -> str:
    """Format a numeric result for the string boundary.

    Results are rounded to ``DISPLAY_PRECISION`` significant digits so
    that floating point noise (``0.1 + 0.2``) does not leak out; integral
    values print without a decimal point and NaN prints as ``"NaN"``.

    Examples
    --------
    >>> format_number(5.0)
    '5'
    >>> format_number(0.1 + 0.2)
    '0.3'
    >>> format_number(float("nan"))
    'NaN'
    >>> format_number(complex(1.0, -2.0))
    '1 - 2i'
    """
    if isinstance(value, complex):
        real = format_number(value.real)
        imag = format_number(abs(value.imag))
        sign = "-" if value.imag < 0 else "+"
        return f"{real} {sign} {imag}i"
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    rounded = float(f"{value:.{DISPLAY_PRECISION}g}")
    if rounded == 0:
        return "0"
    if rounded == int(rounded) and abs(rounded) < 1e16:
        return str(int(rounded))
    return repr(rounded)


def _latex_number(value: float) -> str:
    if math.isnan(value):
        return r"\mathrm{NaN}"
    if math.isinf(value):
        return r"\infty" if value > 0 else r"-\infty"
    if value == int(value) and abs(value) < 1e16:
        return str(int(value))
    # Positional notation: "1e-05" would not lex back as a single number.
    return np.format_float_positional(value, unique=True, trim="-")


def _latex_var(name: str) -> str:
    base, _, subscript = name.partition("_")
    if base in GREEK_LETTERS:
        text = "\\" + base
    elif len(base) == 1:
        text = base
    else:
        text = r"\mathrm{" + base + "}"
    if subscript:
        text += "_{" + subscript + "}"
    return text


def _precedence(node: ASTNode) -> int:
    op = node[0]
    if op == "eq":
        return _PREC_EQ
    if op in ("add", "sub"):
        return _PREC_ADD
    if op in ("mul", "sum"):
        return _PREC_MUL
    if op == "neg":
        return _PREC_NEG
    if op == "num" and (node[1] < 0 or math.copysign(1.0, node[1]) < 0):
        return _PREC_NEG
    if op == "pow":
        return _PREC_POW
    return _PREC_ATOM


def _wrap(text: str) -> str:
    return r"\left(" + text + r"\right)"


def _starts_with_letter(node: ASTNode) -> bool:
    """True when *node* renders starting with a letter or command, so a
    numeric coefficient can be written in front of it without ``\\cdot``."""
    op = node[0]
    if op in ("var", "const", "call"):
        return True
    if op == "pow":
        return node[1][0] in ("var", "const")
    return False


def to_latex(node: ASTNode) -> str:
    """Render an expression tree as LaTeX.

    The output always parses back to a structurally equal tree: children
    are parenthesised wherever precedence or associativity requires it,
    numbers are written positionally, and NaN is written as
    ``\\mathrm{NaN}``.

    Parameters
    ----------
    node : ASTNode
        Any expression or equation tree.

    Returns
    -------
    str
        LaTeX source.

    Examples
    --------
    >>> to_latex(("add", ("mul", ("num", 3.0), ("pow", ("var", "x"), ("num", 2.0))), ("num", 1.0)))
    '3x^{2} + 1'
    >>> to_latex(("div", ("num", 1.0), ("var", "x")))
    '\\\\frac{1}{x}'
    >>> to_latex(("neg", ("add", ("var", "a"), ("var", "b"))))
    '-\\\\left(a + b\\\\right)'
    """
    op = node[0]

    if op == "num":
        return _latex_number(node[1])

    if op == "var":
        return _latex_var(node[1])

    if op == "const":
        return r"\pi" if node[1] == "pi" else "e"

    if op in ("add", "sub"):
        left, right = node[1], node[2]
        left_str = to_latex(left)
        right_str = to_latex(right)
        if _precedence(right) <= _PREC_NEG and right[0] != "mul":
            right_str = _wrap(right_str)
        elif right[0] == "mul" and _precedence(right[1]) == _PREC_NEG:
            right_str = _wrap(right_str)
        symbol = "+" if op == "add" else "-"
        return f"{left_str} {symbol} {right_str}"

    if op == "mul":
        left, right = node[1], node[2]
        left_str = to_latex(left)
        right_str = to_latex(right)
        if _precedence(left) < _PREC_MUL or left[0] == "sum":
            left_str = _wrap(left_str)
        # products parse left-associatively and a summation body runs on
        if _precedence(right) <= _PREC_NEG or right[0] in ("mul", "sum"):
            right_str = _wrap(right_str)
            return f"{left_str} \\cdot {right_str}"
        if left[0] == "num" and _starts_with_letter(right):
            return f"{left_str}{right_str}"
        return f"{left_str} \\cdot {right_str}"

    if op == "div":
        return r"\frac{" + to_latex(node[1]) + "}{" + to_latex(node[2]) + "}"

    if op == "pow":
        base, exponent = node[1], node[2]
        base_str = to_latex(base)
        if _precedence(base) < _PREC_ATOM or base[0] == "div":
            base_str = _wrap(base_str)
        return base_str + "^{" + to_latex(exponent) + "}"

    if op == "neg":
        operand = node[1]
        operand_str = to_latex(operand)
        if _precedence(operand) <= _PREC_NEG or operand[0] == "num":
            operand_str = _wrap(operand_str)
        return "-" + operand_str

    if op == "call":
        name, arg = node[1], node[2]
        arg_str = to_latex(arg)
        if name == "sqrt":
            return r"\sqrt{" + arg_str + "}"
        if name == "abs":
            return r"\left|" + arg_str + r"\right|"
        return "\\" + name + _wrap(arg_str)

    if op == "sum":
        index, lower, upper, body = node[1], node[2], node[3], node[4]
        body_str = to_latex(body)
        if _precedence(body) < _PREC_MUL:
            body_str = _wrap(body_str)
        return (r"\sum_{" + _latex_var(index) + "=" + to_latex(lower) + "}^{"
                + to_latex(upper) + "} " + body_str)

    if op == "matrix":
        rows = [" & ".join(to_latex(cell) for cell in row) for row in node[1]]
        return r"\begin{pmatrix}" + r" \\ ".join(rows) + r"\end{pmatrix}"

    if op == "eq":
        return f"{to_latex(node[1])} = {to_latex(node[2])}"

    raise TypeError(f"Cannot render node {node!r}")
