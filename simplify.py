from __future__ import annotations

import logging
import math
from fractions import Fraction
from typing import Callable, Optional, Union

import numpy as np

from evaluator import apply_function, evaluate, is_matrix_valued, power
from matrix import Matrix, symbolic_determinant
from utils.ast_utils import (ASTNode, free_variables, is_number, iter_children,
                             map_children, num, structurally_equal)
from utils.constants import (MAX_EXPAND_POWER, MAX_POLY_DEGREE, MAX_SIMPLIFY_ITERATIONS,
                             SYMBOLIC_DET_MAX_SIZE)
from utils.errors import EvaluationError
from utils.print_utils import to_latex

logger = logging.getLogger(__name__)

Rule = Callable[[ASTNode], Optional[ASTNode]]
Coefficient = Union[Fraction, float]

NAN = float("nan")


# NUMBERS


def _clean(value: float) -> float:
    value = float(f"{value:.15g}")
    return 0.0 if value == 0.0 else value


def _coefficient(value: float) -> Coefficient:
    """Exact ``Fraction`` for integral floats, the float itself otherwise."""
    if math.isfinite(value) and value == int(value) and abs(value) < 2 ** 53:
        return Fraction(int(value))
    return value


def _rational_value(node: ASTNode) -> Optional[Fraction]:
    """Value of an integer ``num`` or a ``div`` of two integer ``num`` nodes."""
    if is_number(node):
        value = _coefficient(node[1])
        return value if isinstance(value, Fraction) else None
    if node[0] == "div" and is_number(node[1]) and is_number(node[2]):
        top, bottom = _coefficient(node[1][1]), _coefficient(node[2][1])
        if isinstance(top, Fraction) and isinstance(bottom, Fraction) and bottom != 0:
            return top / bottom
    return None


def _is_rational(node: ASTNode) -> bool:
    return node[0] == "div" and _rational_value(node) is not None


def _constant_node(value: Coefficient) -> ASTNode:
    """A number, or a reduced ``div`` of integers with the sign on top."""
    if isinstance(value, Fraction):
        if value.denominator == 1:
            return num(value.numerator)
        return ("div", num(value.numerator), num(value.denominator))
    return num(_clean(value))


def _is_nan(node: ASTNode) -> bool:
    return is_number(node) and math.isnan(node[1])


# PRODUCTS


def _exponent_value(node: ASTNode) -> Optional[Coefficient]:
    if is_number(node):
        return _coefficient(node[1])
    return _rational_value(node)


def _split_factors(node: ASTNode) -> Optional[tuple[Coefficient, dict]]:
    """Flatten a product into a numeric coefficient and ``{base: exponent}``.

    ``mul``, ``div`` and ``neg`` are walked through; a ``pow`` with a numeric
    exponent contributes its base.  Returns ``None`` when a literal zero ends
    up in a denominator.
    """
    coef: Coefficient = Fraction(1)
    exps: dict = {}
    stack = [(node, 1)]
    while stack:
        current, sign = stack.pop()
        op = current[0]
        if op == "mul":
            stack.append((current[2], sign))
            stack.append((current[1], sign))
        elif op == "div":
            stack.append((current[2], -sign))
            stack.append((current[1], sign))
        elif op == "neg":
            coef = -coef
            stack.append((current[1], sign))
        elif op == "num":
            value = _coefficient(current[1])
            if sign > 0:
                coef = coef * value
            elif value == 0:
                return None
            else:
                coef = coef / value
        else:
            base, exponent = current, 1
            if op == "pow":
                value = _exponent_value(current[2])
                if value is not None:
                    base, exponent = current[1], value
            exps[base] = exps.get(base, 0) + sign * exponent
    return coef, exps


def _factor_key(item):
    base = item[0]
    rank = {"const": 0, "var": 1, "call": 3}.get(base[0], 2)
    return (rank, to_latex(base))


def _power_node(base: ASTNode, exponent: Coefficient) -> ASTNode:
    if exponent == 1:
        return base
    return ("pow", base, _constant_node(exponent))


def _chain(nodes: list) -> ASTNode:
    result = nodes[0]
    for node in nodes[1:]:
        result = ("mul", result, node)
    return result


def _build_product(coef: Coefficient, exps: dict) -> ASTNode:
    """Rebuild a canonical product: coefficient first, factors sorted.

    Negative exponents go to a denominator; a coefficient of ``-1`` becomes
    a ``neg`` around the whole product.
    """
    if coef == 0:
        return num(0.0)
    numer, denom = [], []
    for base, exponent in sorted(exps.items(), key=_factor_key):
        if exponent == 0:
            continue
        if exponent > 0:
            numer.append(_power_node(base, exponent))
        else:
            denom.append(_power_node(base, -exponent))
    if not numer and not denom:
        return _constant_node(coef)

    negative = coef < 0
    magnitude = abs(coef)
    if isinstance(magnitude, Fraction):
        top, bottom = magnitude.numerator, magnitude.denominator
    else:
        top, bottom = _clean(magnitude), 1
    if bottom != 1:
        denom.insert(0, num(bottom))
    if top != 1:
        numer.insert(0, num(-top if negative else top))
        negative = False

    result = _chain(numer) if numer else num(1.0)
    if denom:
        result = ("div", result, _chain(denom))
    return ("neg", result) if negative else result


def _combine_sin_cos(exps: dict) -> None:
    """Rewrite ``sin(u)^n cos(u)^-n`` as ``tan(u)^n`` in place."""
    for base in list(exps):
        if base not in exps or base[0] != "call" or base[1] != "sin":
            continue
        cosine = ("call", "cos", base[2])
        exponent = exps[base]
        if exponent > 0 and exps.get(cosine) == -exponent:
            del exps[base]
            del exps[cosine]
            tangent = ("call", "tan", base[2])
            exps[tangent] = exps.get(tangent, 0) + exponent


# SUMS


def _split_terms(node: ASTNode, sign: int, out: list) -> None:
    op = node[0]
    if op == "add":
        _split_terms(node[1], sign, out)
        _split_terms(node[2], sign, out)
    elif op == "sub":
        _split_terms(node[1], sign, out)
        _split_terms(node[2], -sign, out)
    elif op == "neg" and node[1][0] in ("add", "sub"):
        _split_terms(node[1], -sign, out)
    else:
        out.append((sign, node))


def _term_parts(term: ASTNode) -> tuple[Coefficient, Optional[dict]]:
    """Split a term into ``(coefficient, factors)``; ``None`` factors is a constant."""
    if is_matrix_valued(term):
        return Fraction(1), {term: 1}
    split = _split_factors(term)
    if split is None:
        return Fraction(1), {term: 1}
    coef, exps = split
    exps = {base: e for base, e in exps.items() if e != 0}
    return coef, (exps or None)


def _monomial_key(exps: dict) -> tuple:
    return tuple(sorted(((to_latex(b), e) for b, e in exps.items()), key=lambda item: item[0]))


def _build_sum(parts: list) -> ASTNode:
    """Join ``(coefficient, factors)`` terms, subtracting negative ones."""
    parts = [(c, e) for c, e in parts if c != 0]
    if not parts:
        return num(0.0)

    def term(coef, exps):
        return _constant_node(coef) if exps is None else _build_product(coef, exps)

    coef, exps = parts[0]
    result = term(coef, exps)
    for coef, exps in parts[1:]:
        if coef < 0:
            result = ("sub", result, term(-coef, exps))
        else:
            result = ("add", result, term(coef, exps))
    return result


def _signed_chain(terms: list) -> ASTNode:
    sign, first = terms[0]
    result = first if sign > 0 else ("neg", first)
    for sign, node in terms[1:]:
        result = ("add" if sign > 0 else "sub", result, node)
    return result


# POLYNOMIALS


def polynomial_coefficients(node: ASTNode, var: str) -> Optional[np.ndarray]:
    """Coefficients (highest degree first) of a polynomial in *var*, or None."""
    op = node[0]
    if op == "num":
        return np.array([node[1]]) if math.isfinite(node[1]) else None
    if op == "var":
        return np.array([1.0, 0.0]) if node[1] == var else None
    if op in ("add", "sub"):
        left, right = polynomial_coefficients(node[1], var), polynomial_coefficients(node[2], var)
        if left is None or right is None:
            return None
        return np.polyadd(left, right) if op == "add" else np.polysub(left, right)
    if op == "mul":
        left, right = polynomial_coefficients(node[1], var), polynomial_coefficients(node[2], var)
        if left is None or right is None:
            return None
        return np.polymul(left, right)
    if op == "neg":
        inner = polynomial_coefficients(node[1], var)
        return None if inner is None else -inner
    if op == "div" and is_number(node[2]) and node[2][1] != 0:
        inner = polynomial_coefficients(node[1], var)
        return None if inner is None else inner / node[2][1]
    if op == "pow" and is_number(node[2]):
        n = node[2][1]
        if n != int(n) or not 0 <= n <= MAX_POLY_DEGREE:
            return None
        base = polynomial_coefficients(node[1], var)
        if base is None:
            return None
        result = np.array([1.0])
        for _ in range(int(n)):
            result = np.polymul(result, base)
        return result
    return None


def _trim(coeffs: np.ndarray) -> np.ndarray:
    coeffs = np.trim_zeros(np.where(np.abs(coeffs) < 1e-12, 0.0, coeffs), "f")
    return coeffs if coeffs.size else np.array([0.0])


def _poly_node(coeffs: np.ndarray, var: str) -> ASTNode:
    parts = []
    degree = len(coeffs) - 1
    for i, c in enumerate(coeffs):
        nearest = round(float(c))
        value = Fraction(nearest) if abs(c - nearest) < 1e-9 else float(c)
        power_ = degree - i
        parts.append((value, {("var", var): power_} if power_ else None))
    return _build_sum(parts)


# RULES
#
# Each rule takes a node whose children are already simplified and returns a
# replacement, or None when it does not apply.  A rule never returns a tree
# structurally equal to its input.


def fold_constants(node: ASTNode) -> Optional[ASTNode]:
    """Evaluate operations whose operands are all numbers.

    Integer division is kept exact as a reduced fraction; function calls are
    only folded when the result is an exact integer (``\\sqrt{16}``, not
    ``\\sqrt{2}``).
    """
    op = node[0]
    if op in ("num", "var", "const", "matrix", "eq"):
        return None
    if any(_is_nan(child) for child in iter_children(node)):
        return num(NAN)

    if op == "neg" and is_number(node[1]):
        return num(-node[1][1])

    if op in ("add", "sub", "mul") and is_number(node[1]) and is_number(node[2]):
        a, b = node[1][1], node[2][1]
        value = a + b if op == "add" else a - b if op == "sub" else a * b
        return num(_clean(value))

    if op == "div" and is_number(node[1]) and is_number(node[2]):
        a, b = node[1][1], node[2][1]
        if b == 0:
            return num(NAN)
        top, bottom = _coefficient(a), _coefficient(b)
        if isinstance(top, Fraction) and isinstance(bottom, Fraction):
            result = _constant_node(top / bottom)
        else:
            result = num(_clean(a / b))
        return None if structurally_equal(result, node) else result

    if op == "pow":
        return _fold_power(node)

    if op == "call":
        arg = node[2]
        if node[1] == "det" and arg[0] == "matrix":
            square = all(len(row) == len(arg[1]) for row in arg[1])
            if square and _numeric_matrix(arg):
                matrix = Matrix([[cell[1] for cell in row] for row in arg[1]])
                return num(_clean(matrix.determinant()))
            return None
        if is_number(arg):
            try:
                value = apply_function(node[1], arg[1])
            except EvaluationError:
                return None
            if math.isfinite(value) and value == int(value):
                return num(value)
        return None

    if op == "sum" and not free_variables(node):
        try:
            value = evaluate(node)
        except EvaluationError:
            return None
        if math.isfinite(value) and value == int(value):
            return num(value)
        return None

    if op in ("add", "sub", "mul") and _numeric_matrix(node[1]) and _numeric_matrix(node[2]):
        left = Matrix([[cell[1] for cell in row] for row in node[1][1]])
        right = Matrix([[cell[1] for cell in row] for row in node[2][1]])
        result = left + right if op == "add" else left - right if op == "sub" else left @ right
        return result.to_node()

    return None


def _numeric_matrix(node: ASTNode) -> bool:
    return node[0] == "matrix" and all(is_number(cell) for row in node[1] for cell in row)


def _fold_power(node: ASTNode) -> Optional[ASTNode]:
    base = _rational_value(node[1])
    exponent = _exponent_value(node[2])
    if exponent is None:
        return None

    if base is not None and isinstance(exponent, Fraction):
        if base == 0 and exponent < 0:
            return num(NAN)
        if exponent.denominator == 1 and abs(exponent) <= 64:
            return _constant_node(base ** int(exponent))
        if base >= 0 and base.denominator == 1 and exponent.denominator <= 64:
            root = round(float(base) ** (1.0 / exponent.denominator))
            if root ** exponent.denominator == base and (root != 0 or exponent > 0):
                return _constant_node(Fraction(root) ** exponent.numerator)
        return None

    if is_number(node[1]) and is_number(node[2]):
        try:
            value = power(node[1][1], node[2][1])
        except EvaluationError:
            return None
        if isinstance(exponent, Fraction) and exponent.denominator == 1:
            return num(_clean(value))
        if math.isfinite(value) and value == int(value):
            return num(value)
    return None


def apply_identities(node: ASTNode) -> Optional[ASTNode]:
    op = node[0]

    if op == "add":
        if is_number(node[2], 0.0):
            return node[1]
        if is_number(node[1], 0.0):
            return node[2]

    if op == "sub":
        if is_number(node[2], 0.0):
            return node[1]
        if is_number(node[1], 0.0):
            return ("neg", node[2])
        if structurally_equal(node[1], node[2]):
            return num(0.0)

    if op == "mul":
        if is_number(node[1], 1.0):
            return node[2]
        if is_number(node[2], 1.0):
            return node[1]
        if is_number(node[1], 0.0) or is_number(node[2], 0.0):
            if not (is_matrix_valued(node[1]) or is_matrix_valued(node[2])):
                return num(0.0)

    if op == "div":
        if is_number(node[2], 0.0):
            return num(NAN)
        if is_number(node[2], 1.0):
            return node[1]
        if is_number(node[1], 0.0):
            return num(0.0)
        if structurally_equal(node[1], node[2]):
            return num(1.0)

    if op == "pow":
        base, exponent = node[1], node[2]
        if is_number(exponent, 0.0):
            return num(1.0)
        if is_number(exponent, 1.0):
            return base
        if is_number(base, 1.0):
            return num(1.0)
        if is_number(base, 0.0) and is_number(exponent) and exponent[1] > 0:
            return num(0.0)
        if base[0] == "pow" and is_number(base[2]) and is_number(exponent):
            if exponent[1] == int(exponent[1]):
                return ("pow", base[1], num(base[2][1] * exponent[1]))

    if op == "neg" and node[1][0] == "neg":
        return node[1][1]

    return None


_ODD = ("sin", "tan", "csc", "cot", "arcsin", "arctan", "sinh", "tanh", "coth")
_EVEN = ("cos", "sec", "cosh", "abs")

_SQRT2_2 = ("div", ("call", "sqrt", num(2.0)), num(2.0))
_SQRT3_2 = ("div", ("call", "sqrt", num(3.0)), num(2.0))
_HALF = ("div", num(1.0), num(2.0))

# sin(k * pi / 12) for k in 0..12
_SIN_TWELFTHS = {
    0: num(0.0), 2: _HALF, 3: _SQRT2_2, 4: _SQRT3_2, 6: num(1.0),
    8: _SQRT3_2, 9: _SQRT2_2, 10: _HALF, 12: num(0.0),
}
_TAN_TWELFTHS = {0: num(0.0), 3: num(1.0), 9: num(-1.0)}


def _sin_special(k: int) -> Optional[ASTNode]:
    k %= 24
    if k <= 12:
        return _SIN_TWELFTHS.get(k)
    value = _SIN_TWELFTHS.get(k - 12)
    if value is None:
        return None
    return num(-value[1]) if is_number(value) else ("neg", value)


def trig_rules(node: ASTNode) -> Optional[ASTNode]:
    """Parity, values at multiples of pi/12, and ``sin/cos = tan``."""
    op = node[0]

    if op == "div" and node[1][0] == "call" and node[1][1] == "sin":
        if node[2] == ("call", "cos", node[1][2]):
            return ("call", "tan", node[1][2])
        return None

    if op != "call":
        return None
    name, arg = node[1], node[2]

    if name in _ODD + _EVEN:
        inner = None
        if arg[0] == "neg":
            inner = arg[1]
        elif is_number(arg) and arg[1] < 0:
            inner = num(-arg[1])
        if inner is not None:
            if name in _EVEN:
                return ("call", name, inner)
            return ("neg", ("call", name, inner))

    if name in ("sin", "cos", "tan") and _mentions_pi(arg) and not free_variables(arg):
        try:
            ratio = evaluate(arg) / math.pi
        except EvaluationError:
            return None
        k = round(ratio * 12)
        if not math.isfinite(ratio) or abs(ratio * 12 - k) > 1e-9:
            return None
        if name == "sin":
            return _sin_special(k)
        if name == "cos":
            return _sin_special(k + 6)
        return _TAN_TWELFTHS.get(k % 12)

    return None


def _mentions_pi(node: ASTNode) -> bool:
    if node == ("const", "pi"):
        return True
    return any(_mentions_pi(child) for child in iter_children(node))


def log_rules(node: ASTNode) -> Optional[ASTNode]:
    """``ln e``, ``ln e^x``, ``e^{ln x}``, ``ln a^n`` and ``ln a +- ln b``."""
    op = node[0]

    if op == "call" and node[1] == "ln":
        arg = node[2]
        if arg == ("const", "e"):
            return num(1.0)
        if arg[0] == "call" and arg[1] == "exp":
            return arg[2]
        if arg[0] == "pow":
            if arg[1] == ("const", "e"):
                return arg[2]
            return ("mul", arg[2], ("call", "ln", arg[1]))
        return None

    if op == "call" and node[1] == "exp" and node[2][0] == "call" and node[2][1] == "ln":
        return node[2][2]

    if op == "pow" and node[1] == ("const", "e"):
        exponent = node[2]
        if exponent[0] == "call" and exponent[1] == "ln":
            return exponent[2]
        return None

    if op in ("add", "sub"):
        left, right = node[1], node[2]
        if left[0] == "call" and left[1] == "ln" and right[0] == "call" and right[1] == "ln":
            combined = "mul" if op == "add" else "div"
            return ("call", "ln", (combined, left[2], right[2]))

    return None


def expand(node: ASTNode) -> Optional[ASTNode]:
    """Distribute products over sums and multiply out ``(a+b)^n`` for small n."""
    op = node[0]

    if op == "mul":
        if is_matrix_valued(node):
            return None
        left, right = node[1], node[2]
        if left[0] in ("add", "sub"):
            return (left[0], ("mul", left[1], right), ("mul", left[2], right))
        if right[0] in ("add", "sub"):
            return (right[0], ("mul", left, right[1]), ("mul", left, right[2]))
        return None

    if op == "pow" and node[1][0] in ("add", "sub") and is_number(node[2]):
        n = node[2][1]
        if n != int(n) or not 2 <= n <= MAX_EXPAND_POWER or is_matrix_valued(node[1]):
            return None
        terms = []
        _split_terms(node[1], 1, terms)
        product = terms
        for _ in range(int(n) - 1):
            product = [(s1 * s2, ("mul", t1, t2)) for s1, t1 in product for s2, t2 in terms]
        return _signed_chain(product)

    return None


def collect_factors(node: ASTNode) -> Optional[ASTNode]:
    """Merge equal bases in a product and order the factors canonically.

    ``x \\cdot 3 \\cdot x`` becomes ``3x^{2}``, ``\\frac{2x}{4}`` becomes
    ``\\frac{x}{2}`` and ``\\frac{\\sin x}{\\cos x}`` becomes ``\\tan x``.
    """
    op = node[0]
    if op == "pow":
        exponent = _exponent_value(node[2])
        if exponent is None or exponent >= 0:
            return None
    elif op not in ("mul", "div", "neg"):
        return None
    if _is_rational(node) or is_matrix_valued(node):
        return None
    split = _split_factors(node)
    if split is None:
        return None
    coef, exps = split
    _combine_sin_cos(exps)
    result = _build_product(coef, exps)
    return None if structurally_equal(result, node) else result


def collect_terms(node: ASTNode) -> Optional[ASTNode]:
    """Combine like terms of a sum, keeping first-occurrence order.

    Constants are gathered into a single trailing term and
    ``c\\sin^{2}u + c\\cos^{2}u`` collapses to ``c``.
    """
    op = node[0]
    if op not in ("add", "sub") and not (op == "neg" and node[1][0] in ("add", "sub")):
        return None

    terms = []
    _split_terms(node, 1, terms)
    grouped: dict = {}
    constant: Coefficient = Fraction(0)
    for sign, term in terms:
        coef, exps = _term_parts(term)
        coef = coef * sign
        if exps is None:
            constant = constant + coef
            continue
        key = _monomial_key(exps)
        if key in grouped:
            grouped[key][0] = grouped[key][0] + coef
        else:
            grouped[key] = [coef, exps]

    for key, (coef, exps) in list(grouped.items()):
        if len(exps) != 1 or key not in grouped:
            continue
        (base, exponent), = exps.items()
        if exponent != 2 or base[0] != "call" or base[1] != "sin":
            continue
        partner = _monomial_key({("call", "cos", base[2]): 2})
        if partner in grouped and grouped[partner][0] == coef:
            del grouped[key]
            del grouped[partner]
            constant = constant + coef

    parts = [(coef, exps) for coef, exps in grouped.values()]
    if constant != 0:
        parts.append((constant, None))
    result = _build_sum(parts)
    return None if structurally_equal(result, node) else result


def cancel_polynomial(node: ASTNode) -> Optional[ASTNode]:
    """Exact division of univariate polynomials: ``\\frac{x^2-1}{x-1} = x+1``."""
    if node[0] != "div":
        return None
    names = free_variables(node)
    if len(names) != 1:
        return None
    (var,) = names
    top, bottom = polynomial_coefficients(node[1], var), polynomial_coefficients(node[2], var)
    if top is None or bottom is None:
        return None
    top, bottom = _trim(top), _trim(bottom)
    if len(bottom) < 2 or len(top) < len(bottom) or len(top) - 1 > MAX_POLY_DEGREE:
        return None
    quotient, remainder = np.polydiv(top, bottom)
    if np.any(np.abs(remainder) > 1e-9):
        return None
    result = _poly_node(_trim(quotient), var)
    return None if structurally_equal(result, node) else result


def expand_determinant(node: ASTNode) -> Optional[ASTNode]:
    if node[0] != "call" or node[1] != "det" or node[2][0] != "matrix":
        return None
    rows = node[2][1]
    if len(rows) > SYMBOLIC_DET_MAX_SIZE or any(len(row) != len(rows) for row in rows):
        return None
    return symbolic_determinant(rows)


RULES: tuple[Rule, ...] = (
    fold_constants,
    apply_identities,
    trig_rules,
    log_rules,
    expand,
    collect_factors,
    collect_terms,
    cancel_polynomial,
    expand_determinant,
)


# DRIVER


def simplify_once(node: ASTNode) -> ASTNode:
    """One bottom-up pass: simplify the children, then apply the first
    matching rule to the node itself."""
    if node[0] in ("num", "var", "const"):
        return node
    node = map_children(node, simplify_once)
    for rule in RULES:
        result = rule(node)
        if result is not None:
            return result
    return node


def simplify(node: ASTNode) -> ASTNode:
    """Rewrite *node* to a simpler equivalent expression.

    Passes of ``simplify_once`` are repeated until one causes no structural
    change, so the result is a fixed point and simplifying it again returns
    it unchanged.  If ``MAX_SIMPLIFY_ITERATIONS`` passes are not enough, a
    warning is logged and the latest tree is returned.

    Parameters
    ----------
    node : ASTNode
        Expression or equation tree.

    Returns
    -------
    ASTNode

    Examples
    --------
    >>> from parser import parse
    >>> to_latex(simplify(parse("x + x + 3 - 1")))
    '2x + 2'
    >>> to_latex(simplify(parse("\\\\frac{x^2 - 1}{x - 1}")))
    'x + 1'
    """
    current = node
    for iteration in range(1, MAX_SIMPLIFY_ITERATIONS + 1):
        nxt = simplify_once(current)
        if structurally_equal(nxt, current):
            logger.debug("simplify: fixed point after %d pass(es)", iteration)
            return current
        current = nxt
    logger.warning("simplify: no fixed point after %d passes, returning last result",
                   MAX_SIMPLIFY_ITERATIONS)
    return current
