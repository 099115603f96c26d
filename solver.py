from __future__ import annotations

import math
from typing import Optional, Sequence

from derivative import derivative
from environment import Environment
from evaluator import as_integer, evaluate, is_matrix_valued
from matrix import Matrix
from simplify import simplify
from utils.ast_utils import (ASTNode, contains_var, count_occurrences, free_variables,
                             is_number, node_kind, num, substitute)
from utils.constants import BINARY_LOG_BASE, COMPARE_TOLERANCE, LOG_BASE
from utils.errors import EvaluationError, SolveError
from utils.print_utils import format_number

ONE = num(1.0)

# Inverse of each invertible function: f(u) = y  =>  u = INVERSES[f](y)
INVERSES = {
    "sin": lambda y: ("call", "arcsin", y),
    "cos": lambda y: ("call", "arccos", y),
    "tan": lambda y: ("call", "arctan", y),
    "arcsin": lambda y: ("call", "sin", y),
    "arccos": lambda y: ("call", "cos", y),
    "arctan": lambda y: ("call", "tan", y),
    "exp": lambda y: ("call", "ln", y),
    "ln": lambda y: ("call", "exp", y),
    "log": lambda y: ("pow", num(LOG_BASE), y),
    "lg": lambda y: ("pow", num(BINARY_LOG_BASE), y),
    "sqrt": lambda y: ("pow", y, num(2.0)),
}

# Range of each invertible function, as (test, description) on the value f(u) = y
RANGES = {
    "sin": (lambda y: -1.0 <= y <= 1.0, "[-1, 1]"),
    "cos": (lambda y: -1.0 <= y <= 1.0, "[-1, 1]"),
    "arcsin": (lambda y: -math.pi / 2 <= y <= math.pi / 2, "[-π/2, π/2]"),
    "arccos": (lambda y: 0.0 <= y <= math.pi, "[0, π]"),
    "arctan": (lambda y: -math.pi / 2 < y < math.pi / 2, "(-π/2, π/2)"),
    "exp": (lambda y: y > 0.0, "(0, ∞)"),
    "sqrt": (lambda y: y >= 0.0, "[0, ∞)"),
}


def _is_zero(node: ASTNode) -> bool:
    return is_number(simplify(node), 0.0)


def _constant_value(node: ASTNode) -> Optional[float]:
    """Numeric value of a variable-free *node*, or None if it is symbolic."""
    if free_variables(node):
        return None
    try:
        value = evaluate(node)
    except EvaluationError as exc:
        raise SolveError(f"No real solution: {exc.user_message}") from exc
    if math.isnan(value):
        raise SolveError("No real solution: the equation involves an undefined value")
    return value


def _invert_power(base: ASTNode, exponent: ASTNode, other: ASTNode, var: str) -> ASTNode:
    """Right-hand side after undoing ``base^exponent = other``.

    Even integer powers return the principal (non-negative) root.
    """
    if _is_zero(exponent):
        raise SolveError(f"'{var}' is raised to the power zero")
    root = ("pow", other, ("div", ONE, exponent))
    n, y = _constant_value(exponent), _constant_value(other)
    if n is None or y is None:
        return root
    if y == 0 and n < 0:
        raise SolveError(f"No real solution: a negative power of '{var}' is never zero")
    if y < 0:
        k = as_integer(n)
        if k is None or k % 2 == 0:
            raise SolveError(
                f"No real solution: {format_number(y)} is not a power {format_number(n)} of a real number")
        return ("neg", ("pow", ("neg", other), ("div", ONE, exponent)))
    return root


def _invert_exponential(base: ASTNode, exponent: ASTNode, other: ASTNode, var: str) -> ASTNode:
    b, y = _constant_value(base), _constant_value(other)
    if b is not None and (b <= 0 or b == 1):
        raise SolveError(f"Cannot isolate '{var}' from an exponential with base {format_number(b)}")
    if y is not None and y <= 0:
        raise SolveError(f"No real solution: an exponential never equals {format_number(y)}")
    if base == ("const", "e"):
        return ("call", "ln", other)
    return ("div", ("call", "ln", other), ("call", "ln", base))


def _invert_call(name: str, other: ASTNode, var: str) -> ASTNode:
    if name not in INVERSES:
        raise SolveError(f"Cannot invert function '{name}' to isolate '{var}'")
    if name in RANGES:
        y = _constant_value(other)
        in_range, description = RANGES[name]
        if y is not None and not in_range(y):
            raise SolveError(
                f"No real solution: {name} only takes values in {description}, not {format_number(y)}")
    return INVERSES[name](other)


def _isolate(expr: ASTNode, other: ASTNode, var: str) -> ASTNode:
    """Peel invertible operations off *expr* (the side holding *var*) until
    *var* stands alone, applying the inverse to *other* at each step."""
    target = ("var", var)
    while expr != target:
        op = expr[0]

        if op in ("add", "sub", "mul", "div"):
            a, b = expr[1], expr[2]
            var_left = contains_var(a, var)
            if op == "add":
                expr, other = (a, ("sub", other, b)) if var_left else (b, ("sub", other, a))
            elif op == "sub":
                expr, other = (a, ("add", other, b)) if var_left else (b, ("sub", a, other))
            elif op == "mul":
                coefficient = b if var_left else a
                if _is_zero(coefficient):
                    raise SolveError(f"'{var}' is multiplied by zero; the equation does not determine it")
                expr, other = (a if var_left else b), ("div", other, coefficient)
            elif var_left:
                if _is_zero(b):
                    raise SolveError("Division by zero while isolating the variable")
                expr, other = a, ("mul", other, b)
            else:
                if _is_zero(a):
                    raise SolveError(f"'{var}' is in the denominator of a zero numerator; "
                                     f"the equation does not determine it")
                if _is_zero(other):
                    raise SolveError(f"No solution: a quotient with '{var}' in the denominator is never zero")
                expr, other = b, ("div", a, other)

        elif op == "neg":
            expr, other = expr[1], ("neg", other)

        elif op == "pow":
            base, exponent = expr[1], expr[2]
            if not contains_var(exponent, var):
                expr, other = base, _invert_power(base, exponent, other, var)
            elif not contains_var(base, var):
                expr, other = exponent, _invert_exponential(base, exponent, other, var)
            else:
                raise SolveError(f"Cannot isolate '{var}' appearing in both base and exponent")

        elif op == "call":
            expr, other = expr[2], _invert_call(expr[1], other, var)

        else:
            raise SolveError(f"Cannot isolate '{var}' inside a {node_kind(expr)}")

    return other


def _check_solution(lhs: ASTNode, rhs: ASTNode, var: str, solution: ASTNode) -> None:
    """Substitute a numeric *solution* back into ``lhs = rhs``.

    Only equations whose sole unknown is *var* are checked.
    """
    if free_variables(solution) or (free_variables(lhs) | free_variables(rhs)) != {var}:
        return
    try:
        value = evaluate(solution)
        env = Environment({var: value})
        left, right = evaluate(lhs, env), evaluate(rhs, env)
    except EvaluationError as exc:
        raise SolveError(f"No real solution: {exc.user_message}") from exc
    if not math.isclose(left, right, rel_tol=1e-9, abs_tol=COMPARE_TOLERANCE):
        raise SolveError(f"No real solution: {var} = {format_number(value)} gives "
                         f"{format_number(left)} ≠ {format_number(right)}")


def solve_equation(equation: ASTNode, var: str) -> ASTNode:
    """Solve *equation* for *var* by isolating it with inverse operations.

    Parameters
    ----------
    equation : ASTNode
        An ``("eq", lhs, rhs)`` node.  A bare expression is solved as
        ``expression = 0``.
    var : str
        The variable to solve for.

    Returns
    -------
    ASTNode
        The simplified value of *var*.  Even powers give the principal
        (non-negative) root.

    Raises
    ------
    SolveError
        If *var* does not occur, still occurs more than once after
        collecting ``lhs - rhs``, is multiplied by zero, or sits inside a
        non-invertible function, a summation or a matrix.  Also raised
        when an inverse is applied outside its range (``\\sqrt{x} = -2``)
        or a numeric solution does not satisfy the equation.

    Examples
    --------
    >>> from parser import parse
    >>> solve_equation(parse("x + 2 = 10"), "x")
    ('num', 8.0)
    """
    if equation[0] == "eq":
        lhs, rhs = equation[1], equation[2]
    else:
        lhs, rhs = equation, num(0.0)

    if is_matrix_valued(lhs) or is_matrix_valued(rhs):
        raise SolveError("Cannot solve an equation between matrices; use solve_matrix_system")

    occurrences = count_occurrences(lhs, var) + count_occurrences(rhs, var)
    if occurrences == 0:
        raise SolveError(f"'{var}' does not appear in the equation")

    original = (lhs, rhs)
    if occurrences > 1:
        combined = simplify(("sub", lhs, rhs))
        occurrences = count_occurrences(combined, var)
        if occurrences == 0:
            raise SolveError(f"'{var}' cancels out of the equation")
        if occurrences > 1:
            raise SolveError(f"'{var}' occurs {occurrences} times and cannot be isolated")
        lhs, rhs = combined, num(0.0)
    elif not contains_var(lhs, var):
        lhs, rhs = rhs, lhs

    solution = simplify(_isolate(lhs, rhs, var))
    _check_solution(*original, var, solution)
    return solution


def _difference(equation: ASTNode) -> ASTNode:
    if equation[0] == "eq":
        return ("sub", equation[1], equation[2])
    return equation


def linear_system(equations: Sequence[ASTNode],
                  variables: Optional[Sequence[str]] = None) -> tuple[list[str], Matrix, Matrix]:
    """Coefficient matrix ``A`` and right-hand side ``b`` of a linear system.

    Each row holds the partial derivatives of ``lhs - rhs``; a derivative
    that still depends on a variable means the system is not linear.
    """
    if variables is None:
        names: set[str] = set()
        for equation in equations:
            names |= free_variables(equation)
        variables = sorted(names)
    variables = list(variables)
    if not equations:
        raise SolveError("No equations given")
    if len(equations) != len(variables):
        raise SolveError(f"{len(equations)} equation(s) for {len(variables)} unknown(s); "
                         f"a unique solution needs as many equations as unknowns")

    zeros = {v: num(0.0) for v in variables}
    rows, rhs = [], []
    for equation in equations:
        expr = _difference(equation)
        row = []
        for v in variables:
            coefficient = simplify(derivative(expr, v))
            if free_variables(coefficient):
                raise SolveError(f"System is not linear in '{v}'")
            row.append(evaluate(coefficient))
        rows.append(row)
        rhs.append(-evaluate(substitute(expr, zeros)))
    return variables, Matrix(rows), Matrix(rhs)


def solve_linear_system(equations: Sequence[ASTNode],
                        variables: Optional[Sequence[str]] = None) -> dict[str, float]:
    """Solve a square linear system by Gaussian elimination.

    Raises
    ------
    SolveError
        If the system is not linear or not square.
    MatrixError
        If the coefficient matrix is singular.

    Examples
    --------
    >>> from parser import parse
    >>> solve_linear_system([parse("x + y = 3"), parse("x - y = 1")])
    {'x': 2.0, 'y': 1.0}
    """
    variables, coefficients, rhs = linear_system(equations, variables)
    solution = coefficients.solve(rhs)
    return {v: float(solution.data[i, 0]) for i, v in enumerate(variables)}
