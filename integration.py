from __future__ import annotations

import logging
import math
from typing import Callable, Optional, Union

from derivative import derivative
from environment import EMPTY, Environment
from evaluator import evaluate
from simplify import polynomial_coefficients, simplify
from utils.ast_utils import (ASTNode, contains_var, is_number, iter_children, map_children, node_kind,
                             num, structurally_equal)
from utils.constants import BINARY_LOG_BASE, LOG_BASE
from utils.errors import DifferentiationError, IntegrationError
from utils.print_utils import to_latex

logger = logging.getLogger(__name__)

ONE = num(1.0)
TWO = num(2.0)

Bound = Union[ASTNode, float, int]


def _ln_abs(u: ASTNode) -> ASTNode:
    return ("call", "ln", ("call", "abs", u))


def _half_square(u: ASTNode) -> ASTNode:
    return ("div", ("pow", u, TWO), TWO)


# Antiderivative F(u) of f(u) with respect to u.
ANTIDERIVATIVES: dict[str, Callable[[ASTNode], ASTNode]] = {
    "sin": lambda u: ("neg", ("call", "cos", u)),
    "cos": lambda u: ("call", "sin", u),
    "tan": lambda u: ("neg", _ln_abs(("call", "cos", u))),
    "sec": lambda u: _ln_abs(("add", ("call", "sec", u), ("call", "tan", u))),
    "csc": lambda u: ("neg", _ln_abs(("add", ("call", "csc", u), ("call", "cot", u)))),
    "cot": lambda u: _ln_abs(("call", "sin", u)),
    "sinh": lambda u: ("call", "cosh", u),
    "cosh": lambda u: ("call", "sinh", u),
    "tanh": lambda u: ("call", "ln", ("call", "cosh", u)),
    "coth": lambda u: _ln_abs(("call", "sinh", u)),
    "exp": lambda u: ("call", "exp", u),
    "ln": lambda u: ("sub", ("mul", u, ("call", "ln", u)), u),
    "log": lambda u: ("div", ("sub", ("mul", u, ("call", "ln", u)), u),
                      ("call", "ln", num(LOG_BASE))),
    "lg": lambda u: ("div", ("sub", ("mul", u, ("call", "ln", u)), u),
                     ("call", "ln", num(BINARY_LOG_BASE))),
    "sqrt": lambda u: ("mul", ("div", TWO, num(3.0)), ("pow", u, ("div", num(3.0), TWO))),
    "arctan": lambda u: ("sub", ("mul", u, ("call", "arctan", u)),
                         ("div", ("call", "ln", ("add", ONE, ("pow", u, TWO))), TWO)),
    "arcsin": lambda u: ("add", ("mul", u, ("call", "arcsin", u)),
                         ("call", "sqrt", ("sub", ONE, ("pow", u, TWO)))),
    "arccos": lambda u: ("sub", ("mul", u, ("call", "arccos", u)),
                         ("call", "sqrt", ("sub", ONE, ("pow", u, TWO)))),
    "abs": lambda u: ("div", ("mul", u, ("call", "abs", u)), TWO),
}

# Antiderivatives of f(u)^2 for the squared functions with a closed form.
SQUARED_ANTIDERIVATIVES: dict[str, Callable[[ASTNode], ASTNode]] = {
    "sec": lambda u: ("call", "tan", u),
    "csc": lambda u: ("neg", ("call", "cot", u)),
    "sin": lambda u: ("sub", ("div", u, TWO),
                      ("div", ("call", "sin", ("mul", TWO, u)), num(4.0))),
    "cos": lambda u: ("add", ("div", u, TWO),
                      ("div", ("call", "sin", ("mul", TWO, u)), num(4.0))),
}


def _linear_coefficient(node: ASTNode, var: str) -> Optional[ASTNode]:
    """Constant ``a`` when *node* is ``a x + b`` in *var*, else None."""
    try:
        slope = simplify(derivative(node, var))
    except DifferentiationError:
        return None
    if contains_var(slope, var) or is_number(slope, 0.0):
        return None
    if is_number(slope) and math.isnan(slope[1]):
        return None
    return slope


def _over(node: ASTNode, coefficient: ASTNode) -> ASTNode:
    if is_number(coefficient, 1.0):
        return node
    return ("div", node, coefficient)


def _power_rule(base: ASTNode, exponent: ASTNode) -> ASTNode:
    """Antiderivative of ``u^n`` with respect to ``u`` (``ln|u|`` for ``n = -1``)."""
    if not is_number(exponent):
        exponent = simplify(exponent)
    if is_number(exponent, -1.0):
        return _ln_abs(base)
    if is_number(exponent):
        raised = num(exponent[1] + 1.0)
    else:
        raised = simplify(("add", exponent, ONE))
    return ("div", ("pow", base, raised), raised)


def _negated(exponent: ASTNode) -> ASTNode:
    if is_number(exponent):
        return num(-exponent[1])
    return ("neg", exponent)


def _integrate_power(node: ASTNode, var: str) -> Optional[ASTNode]:
    base, exponent = node[1], node[2]

    if not contains_var(exponent, var):
        slope = _linear_coefficient(base, var)
        if slope is not None:
            return _over(_power_rule(base, exponent), slope)
        if is_number(exponent, 2.0) and base[0] == "call" and base[1] in SQUARED_ANTIDERIVATIVES:
            slope = _linear_coefficient(base[2], var)
            if slope is not None:
                return _over(SQUARED_ANTIDERIVATIVES[base[1]](base[2]), slope)
        return None

    if not contains_var(base, var):
        base = simplify(base)
        if is_number(base, 1.0):
            # 1^g = 1
            return ("var", var)
        slope = _linear_coefficient(exponent, var)
        if slope is None:
            return None
        if base == ("const", "e"):
            return _over(node, slope)
        return _over(("pow", base, exponent), ("mul", slope, ("call", "ln", base)))

    return None


def _reciprocal(den: ASTNode, var: str) -> Optional[ASTNode]:
    """Antiderivative of ``1 / den``."""
    slope = _linear_coefficient(den, var)
    if slope is not None:
        return _over(_ln_abs(den), slope)

    if den[0] == "pow" and not contains_var(den[2], var):
        return _integrate_power(("pow", den[1], _negated(den[2])), var)

    coeffs = polynomial_coefficients(den, var)
    if coeffs is not None and len(coeffs) == 3 and coeffs[1] == 0 and coeffs[0] > 0 and coeffs[2] > 0:
        # 1 / (a x^2 + c)
        a, c = float(coeffs[0]), float(coeffs[2])
        scale = ("call", "sqrt", num(a * c))
        inner = ("mul", ("call", "sqrt", ("div", num(a), num(c))), ("var", var))
        if a == c == 1.0:
            return ("call", "arctan", ("var", var))
        return ("div", ("call", "arctan", inner), scale)

    if den[0] == "call" and den[1] == "sqrt":
        coeffs = polynomial_coefficients(den[2], var)
        if coeffs is not None and len(coeffs) == 3 and coeffs[1] == 0 and coeffs[0] < 0 < coeffs[2]:
            # 1 / sqrt(c - a x^2)
            a, c = -float(coeffs[0]), float(coeffs[2])
            if a == c == 1.0:
                return ("call", "arcsin", ("var", var))
            inner = ("mul", ("call", "sqrt", ("div", num(a), num(c))), ("var", var))
            return ("div", ("call", "arcsin", inner), ("call", "sqrt", num(a)))
        # 1 / sqrt(u) = u^{-1/2}
        return _integrate_power(("pow", den[2], num(-0.5)), var)

    return None


def _substitution_candidates(outer: ASTNode, var: str):
    """Yield ``(g, F)`` pairs such that ``outer = f(g)`` and ``F`` integrates f at g."""
    op = outer[0]
    if op == "call" and outer[1] in ANTIDERIVATIVES:
        yield outer[2], ANTIDERIVATIVES[outer[1]](outer[2])
    elif op == "pow" and not contains_var(outer[2], var):
        yield outer[1], _power_rule(outer[1], outer[2])
    elif op == "pow" and not contains_var(outer[1], var):
        if outer[1] == ("const", "e"):
            yield outer[2], outer
        else:
            yield outer[2], ("div", outer, ("call", "ln", outer[1]))
    # g * g'
    yield outer, _half_square(outer)


def _substitute(outer: ASTNode, rest: ASTNode, var: str) -> Optional[ASTNode]:
    """Integrate ``outer * rest`` when *rest* is a constant multiple of g'."""
    for inner, antiderivative in _substitution_candidates(outer, var):
        try:
            ratio = simplify(("div", rest, derivative(inner, var)))
        except DifferentiationError:
            continue
        if contains_var(ratio, var) or (is_number(ratio) and not math.isfinite(ratio[1])):
            continue
        return ("mul", ratio, antiderivative)
    return None


def _integrate(node: ASTNode, var: str) -> Optional[ASTNode]:
    if not contains_var(node, var):
        return ("mul", node, ("var", var))

    op = node[0]

    if op == "var":
        return _half_square(node)

    if op in ("add", "sub"):
        left = _integrate(node[1], var)
        right = _integrate(node[2], var)
        if left is None or right is None:
            return None
        return (op, left, right)

    if op == "neg":
        inner = _integrate(node[1], var)
        return None if inner is None else ("neg", inner)

    if op == "mul":
        left, right = node[1], node[2]
        if not contains_var(left, var):
            inner = _integrate(right, var)
            return None if inner is None else ("mul", left, inner)
        if not contains_var(right, var):
            inner = _integrate(left, var)
            return None if inner is None else ("mul", inner, right)
        return _substitute(left, right, var) or _substitute(right, left, var)

    if op == "div":
        top, bottom = node[1], node[2]
        if not contains_var(bottom, var):
            inner = _integrate(top, var)
            return None if inner is None else ("div", inner, bottom)
        if not contains_var(top, var):
            inner = _reciprocal(bottom, var)
            return None if inner is None else ("mul", top, inner)
        if bottom[0] == "pow" and not contains_var(bottom[2], var):
            outer = ("pow", bottom[1], _negated(bottom[2]))
        else:
            outer = ("pow", bottom, num(-1.0))
        return _substitute(outer, top, var)

    if op == "pow":
        return _integrate_power(node, var)

    if op == "call":
        name, arg = node[1], node[2]
        if name not in ANTIDERIVATIVES:
            return None
        slope = _linear_coefficient(arg, var)
        if slope is None:
            return None
        return _over(ANTIDERIVATIVES[name](arg), slope)

    if op == "sum":
        _, index, lower, upper, body = node
        if index == var or contains_var(lower, var) or contains_var(upper, var):
            return None
        inner = _integrate(body, var)
        return None if inner is None else ("sum", index, lower, upper, inner)

    return None


def _has_nan(node: ASTNode) -> bool:
    if node[0] == "num":
        return math.isnan(node[1])
    return any(_has_nan(child) for child in iter_children(node))


def _sqrt_as_power(node: ASTNode) -> ASTNode:
    """Rewrite every ``\\sqrt{u}`` as ``u^{1/2}``."""
    node = map_children(node, _sqrt_as_power)
    if node[0] == "call" and node[1] == "sqrt":
        return ("pow", node[2], ("div", ONE, TWO))
    return node


def _attempt(node: ASTNode, var: str) -> Optional[ASTNode]:
    """Simplified antiderivative, or None when no rule applies or the result is undefined."""
    result = _integrate(node, var)
    if result is None:
        return None
    result = simplify(result)
    if _has_nan(result) and not _has_nan(node):
        logger.debug("integrate: discarding %s, it contains NaN", to_latex(result))
        return None
    return result


def integrate(node: ASTNode, var: str) -> ASTNode:
    """Indefinite integral of *node* with respect to *var* (no ``+ C``).

    Tries, in order, the table of elementary forms, linearity and constant
    factors, and substitution ``f(g(x)) g'(x)``.  If none matches, the
    integrand is simplified once and the attempt is repeated, then once
    more with square roots written as powers (``x \\sqrt{x} = x^{3/2}``).
    An antiderivative that folds to NaN counts as no match.

    Parameters
    ----------
    node : ASTNode
        Scalar integrand.
    var : str
        Integration variable.

    Returns
    -------
    ASTNode
        A simplified antiderivative.

    Raises
    ------
    IntegrationError
        If no rule applies, or the integrand is a matrix or an equation.

    Examples
    --------
    >>> from parser import parse
    >>> to_latex(integrate(parse("3x^2"), "x"))
    'x^{3}'
    """
    if node[0] in ("matrix", "eq"):
        raise IntegrationError(f"Cannot integrate {node_kind(node)}")

    result = _attempt(node, var)
    if result is None:
        simplified = simplify(node)
        if not structurally_equal(simplified, node):
            logger.debug("integrate: retrying on simplified form %s", to_latex(simplified))
            result = _attempt(simplified, var)
    if result is None:
        powers = simplify(_sqrt_as_power(node))
        if not structurally_equal(powers, node):
            logger.debug("integrate: retrying with roots as powers %s", to_latex(powers))
            result = _attempt(powers, var)
    if result is None:
        raise IntegrationError(f"No elementary antiderivative found for {to_latex(node)}")
    return result


def _bound_value(bound: Bound, env: Environment) -> float:
    if isinstance(bound, tuple):
        return evaluate(bound, env)
    return float(bound)


def definite_integral(node: ASTNode, var: str, lower: Bound, upper: Bound,
                      env: Environment = EMPTY) -> float:
    """Evaluate the antiderivative at both bounds and take the difference.

    Bounds may be numbers or expression trees; expression bounds are
    evaluated in *env*.

    Examples
    --------
    >>> from parser import parse
    >>> round(definite_integral(parse("x^2"), "x", 0, 1), 4)
    0.3333
    """
    antiderivative = integrate(node, var)
    lo = _bound_value(lower, env)
    hi = _bound_value(upper, env)
    logger.debug("definite_integral: F = %s on [%g, %g]", to_latex(antiderivative), lo, hi)
    return evaluate(antiderivative, env.extend({var: hi})) - evaluate(antiderivative, env.extend({var: lo}))
