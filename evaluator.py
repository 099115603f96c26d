from __future__ import annotations

import math
from typing import Union

from environment import EMPTY, Environment
from matrix import Matrix
from utils.ast_utils import ASTNode, node_kind
from utils.constants import BINARY_LOG_BASE, CONSTANTS, INTEGER_TOLERANCE, LOG_BASE, MAX_SUM_TERMS
from utils.errors import EvaluationError

NAN = float("nan")
INF = float("inf")

Value = Union[float, Matrix]


def as_integer(value: float) -> int | None:
    """Return *value* as an ``int`` if it is (within tolerance) integral."""
    if not math.isfinite(value):
        return None
    nearest = round(value)
    if abs(value - nearest) <= INTEGER_TOLERANCE * max(1.0, abs(value)):
        return int(nearest)
    return None


def safe_divide(numerator: float, denominator: float) -> float:
    """``numerator / denominator``, or NaN when the denominator is zero."""
    if denominator == 0:
        return NAN
    return numerator / denominator


def power(base: float, exponent: float) -> float:
    if math.isnan(base) or math.isnan(exponent):
        return NAN
    if base == 0 and exponent < 0:
        return NAN
    if base < 0 and as_integer(exponent) is None and math.isfinite(exponent):
        raise EvaluationError(
            f"Negative base {base:g} raised to non-integer exponent {exponent:g}")
    try:
        return math.pow(base, exponent)
    except OverflowError:
        odd = as_integer(exponent) is not None and as_integer(exponent) % 2 == 1
        return -INF if base < 0 and odd else INF
    except ValueError as exc:
        raise EvaluationError(f"{base:g}^{exponent:g} is undefined") from exc


def _overflow_to_inf(fn, x: float) -> float:
    try:
        return fn(x)
    except OverflowError:
        return math.copysign(INF, x) if fn is math.sinh else INF


def apply_function(name: str, x: float) -> float:
    """Apply the named unary function to a float, enforcing its domain.

    Raises
    ------
    EvaluationError
        For an argument outside the function's real domain: ``ln``, ``log``
        or ``lg`` of a non-positive number, ``sqrt`` of a negative number, or
        ``arcsin``/``arccos`` outside ``[-1, 1]``.

    Examples
    --------
    >>> apply_function("log", 1000.0)
    3.0
    >>> apply_function("sqrt", 16.0)
    4.0
    """
    if math.isnan(x):
        return NAN

    if name in ("ln", "log", "lg"):
        if x <= 0:
            raise EvaluationError(f"{name} is only defined for positive numbers, got {x:g}")
        if name == "ln":
            return math.log(x)
        if name == "lg":
            return math.log2(x) if BINARY_LOG_BASE == 2.0 else math.log(x, BINARY_LOG_BASE)
        return math.log10(x) if LOG_BASE == 10.0 else math.log(x, LOG_BASE)

    if name == "sqrt":
        if x < 0:
            raise EvaluationError(f"sqrt of negative number {x:g}")
        return math.sqrt(x)

    if name in ("arcsin", "arccos"):
        if not -1.0 <= x <= 1.0:
            raise EvaluationError(f"{name} is only defined on [-1, 1], got {x:g}")
        return math.asin(x) if name == "arcsin" else math.acos(x)

    if name == "arctan":
        return math.atan(x)
    if name == "abs":
        return abs(x)
    if name == "exp":
        return _overflow_to_inf(math.exp, x)
    if name == "sinh":
        return _overflow_to_inf(math.sinh, x)
    if name == "cosh":
        return _overflow_to_inf(math.cosh, x)
    if name == "tanh":
        return math.tanh(x)
    if name == "coth":
        return safe_divide(1.0, math.tanh(x))

    if name in ("sin", "cos", "tan", "sec", "csc", "cot"):
        if math.isinf(x):
            raise EvaluationError(f"{name} is undefined at {x:g}")
        if name == "sin":
            return math.sin(x)
        if name == "cos":
            return math.cos(x)
        if name == "tan":
            return math.tan(x)
        if name == "sec":
            return safe_divide(1.0, math.cos(x))
        if name == "csc":
            return safe_divide(1.0, math.sin(x))
        return safe_divide(math.cos(x), math.sin(x))

    raise EvaluationError(f"Unknown function '{name}'")


def evaluate(node: ASTNode, env: Environment = EMPTY) -> float:
    """Reduce a scalar expression to a float.

    Division by zero (including ``0`` to a negative power) evaluates to NaN
    rather than raising, and overflow evaluates to infinity.

    Parameters
    ----------
    node : ASTNode
        Expression tree.  Matrix literals are only accepted inside ``det``.
    env : Environment
        Variable bindings.

    Returns
    -------
    float

    Raises
    ------
    EvaluationError
        On an unbound variable, a domain error, non-integer summation
        bounds, or a matrix or equation where a number is required.

    Examples
    --------
    >>> from parser import parse
    >>> evaluate(parse("x + 2"), Environment({"x": 3}))
    5.0
    >>> evaluate(parse("\\\\frac{1}{0}"))
    nan
    """
    op = node[0]

    if op == "num":
        return node[1]

    if op == "var":
        try:
            return env[node[1]]
        except KeyError:
            raise EvaluationError(f"Unbound variable '{node[1]}'") from None

    if op == "const":
        return CONSTANTS[node[1]]

    if op == "add":
        return evaluate(node[1], env) + evaluate(node[2], env)

    if op == "sub":
        return evaluate(node[1], env) - evaluate(node[2], env)

    if op == "mul":
        return evaluate(node[1], env) * evaluate(node[2], env)

    if op == "div":
        return safe_divide(evaluate(node[1], env), evaluate(node[2], env))

    if op == "pow":
        return power(evaluate(node[1], env), evaluate(node[2], env))

    if op == "neg":
        return -evaluate(node[1], env)

    if op == "call":
        if node[1] == "det":
            value = evaluate_value(node[2], env)
            if isinstance(value, Matrix):
                return value.determinant()
            return value
        return apply_function(node[1], evaluate(node[2], env))

    if op == "sum":
        return _summation(node, env)

    if op in ("matrix", "eq"):
        raise EvaluationError(f"{node_kind(node)} has no numeric value")

    raise EvaluationError(f"Cannot evaluate node {node!r}")


def _summation(node: ASTNode, env: Environment) -> float:
    _, index, lower, upper, body = node
    lo = as_integer(evaluate(lower, env))
    hi = as_integer(evaluate(upper, env))
    if lo is None or hi is None:
        raise EvaluationError("Summation bounds must evaluate to integers")
    if hi - lo + 1 > MAX_SUM_TERMS:
        raise EvaluationError(f"Summation has more than {MAX_SUM_TERMS} terms")
    total = 0.0
    for i in range(lo, hi + 1):
        total += evaluate(body, env.extend({index: float(i)}))
    return total


# MATRIX-VALUED EXPRESSIONS


def is_matrix_valued(node: ASTNode) -> bool:
    """True when *node* contains a matrix literal outside a ``det`` call."""
    op = node[0]
    if op == "matrix":
        return True
    if op == "call":
        return node[1] != "det" and is_matrix_valued(node[2])
    if op in ("add", "sub", "mul", "div"):
        return is_matrix_valued(node[1]) or is_matrix_valued(node[2])
    if op == "pow":
        return is_matrix_valued(node[1])
    if op == "neg":
        return is_matrix_valued(node[1])
    return False


def evaluate_value(node: ASTNode, env: Environment = EMPTY) -> Value:
    """Evaluate an expression that may produce a matrix.

    Supports matrix literals, ``+``/``-``/``\\cdot`` between matrices,
    scalar multiples and quotients, ``M^{T}`` (transpose, when ``T`` is not
    bound), ``M^{-1}`` and integer powers.  Scalar expressions fall through
    to ``evaluate``.
    """
    if not is_matrix_valued(node):
        return evaluate(node, env)

    op = node[0]

    if op == "matrix":
        return Matrix.from_node(node, lambda cell: evaluate(cell, env))

    if op == "neg":
        return -evaluate_value(node[1], env)

    if op in ("add", "sub"):
        left = evaluate_value(node[1], env)
        right = evaluate_value(node[2], env)
        if not (isinstance(left, Matrix) and isinstance(right, Matrix)):
            verb = "add" if op == "add" else "subtract"
            raise EvaluationError(f"Cannot {verb} a matrix and a scalar")
        return left + right if op == "add" else left - right

    if op == "mul":
        left = evaluate_value(node[1], env)
        right = evaluate_value(node[2], env)
        if isinstance(left, Matrix) and isinstance(right, Matrix):
            return left @ right
        if isinstance(left, Matrix):
            return left.scale(right)
        return right.scale(left)

    if op == "div":
        left = evaluate_value(node[1], env)
        right = evaluate_value(node[2], env)
        if isinstance(right, Matrix):
            raise EvaluationError("Cannot divide by a matrix; multiply by its inverse instead")
        return left.scale(safe_divide(1.0, right))

    if op == "pow":
        base = evaluate_value(node[1], env)
        exponent = node[2]
        if exponent == ("var", "T") and "T" not in env:
            return base.transpose()
        n = as_integer(evaluate(exponent, env))
        if n is None:
            raise EvaluationError("Matrix powers must be integers")
        return base.power(n)

    if op == "call":
        raise EvaluationError(f"Function '{node[1]}' cannot be applied to a matrix")

    raise EvaluationError(f"Cannot evaluate {node_kind(node)} as a matrix")
