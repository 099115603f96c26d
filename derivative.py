from __future__ import annotations

from typing import Sequence

from matrix import symbolic_determinant
from utils.ast_utils import ASTNode, contains_var, free_variables, is_number, node_kind, num
from utils.constants import BINARY_LOG_BASE, LOG_BASE
from utils.errors import DifferentiationError, MatrixError

ZERO = num(0.0)
ONE = num(1.0)
TWO = num(2.0)


def _square(u: ASTNode) -> ASTNode:
    return ("pow", u, TWO)


# f'(u) for each supported function f; the chain rule multiplies by u'.
OUTER_DERIVATIVES = {
    "sin": lambda u: ("call", "cos", u),
    "cos": lambda u: ("neg", ("call", "sin", u)),
    "tan": lambda u: _square(("call", "sec", u)),
    "sec": lambda u: ("mul", ("call", "sec", u), ("call", "tan", u)),
    "csc": lambda u: ("neg", ("mul", ("call", "csc", u), ("call", "cot", u))),
    "cot": lambda u: ("neg", _square(("call", "csc", u))),
    "sinh": lambda u: ("call", "cosh", u),
    "cosh": lambda u: ("call", "sinh", u),
    "tanh": lambda u: ("div", ONE, _square(("call", "cosh", u))),
    "coth": lambda u: ("neg", ("div", ONE, _square(("call", "sinh", u)))),
    "arcsin": lambda u: ("div", ONE, ("call", "sqrt", ("sub", ONE, _square(u)))),
    "arccos": lambda u: ("neg", ("div", ONE, ("call", "sqrt", ("sub", ONE, _square(u))))),
    "arctan": lambda u: ("div", ONE, ("add", ONE, _square(u))),
    "exp": lambda u: ("call", "exp", u),
    "ln": lambda u: ("div", ONE, u),
    "log": lambda u: ("div", ONE, ("mul", u, ("call", "ln", num(LOG_BASE)))),
    "lg": lambda u: ("div", ONE, ("mul", u, ("call", "ln", num(BINARY_LOG_BASE)))),
    "sqrt": lambda u: ("div", ONE, ("mul", TWO, ("call", "sqrt", u))),
    "abs": lambda u: ("div", u, ("call", "abs", u)),
}


def derivative(node: ASTNode, var: str) -> ASTNode:
    """First derivative of *node* with respect to *var*.

    The result is built structurally from the differentiation rules and is
    not simplified: ``d/dx (3x)`` comes back as ``0 \\cdot x + 3 \\cdot 1``.

    Parameters
    ----------
    node : ASTNode
        Scalar expression tree.
    var : str
        Name of the variable to differentiate by.

    Returns
    -------
    ASTNode
        The derivative expression tree.

    Raises
    ------
    DifferentiationError
        For a matrix literal, an equation, a summation whose bounds depend
        on *var*, or an unknown function.
    """
    op = node[0]

    if op in ("num", "const"):
        return ZERO

    if op == "var":
        return ONE if node[1] == var else ZERO

    if op in ("add", "sub"):
        return (op, derivative(node[1], var), derivative(node[2], var))

    if op == "neg":
        return ("neg", derivative(node[1], var))

    if op == "mul":
        u, v = node[1], node[2]
        return ("add",
                ("mul", derivative(u, var), v),
                ("mul", u, derivative(v, var)))

    if op == "div":
        u, v = node[1], node[2]
        return ("div",
                ("sub", ("mul", derivative(u, var), v), ("mul", u, derivative(v, var))),
                _square(v))

    if op == "pow":
        return _derivative_pow(node, var)

    if op == "call":
        name, arg = node[1], node[2]
        if name == "det":
            return derivative(_expand_determinant(arg), var)
        if name not in OUTER_DERIVATIVES:
            raise DifferentiationError(f"No derivative rule for function '{name}'")
        return ("mul", OUTER_DERIVATIVES[name](arg), derivative(arg, var))

    if op == "sum":
        _, index, lower, upper, body = node
        if contains_var(lower, var) or contains_var(upper, var):
            raise DifferentiationError(
                f"Cannot differentiate a Summation whose bounds depend on '{var}'")
        if index == var:
            return ZERO
        return ("sum", index, lower, upper, derivative(body, var))

    raise DifferentiationError(f"Cannot differentiate {node_kind(node)}")


def _derivative_pow(node: ASTNode, var: str) -> ASTNode:
    base, exponent = node[1], node[2]

    if not contains_var(exponent, var):
        # n * u^(n-1) * u'
        if is_number(exponent):
            reduced = num(exponent[1] - 1.0)
        else:
            reduced = ("sub", exponent, ONE)
        return ("mul", ("mul", exponent, ("pow", base, reduced)), derivative(base, var))

    if not contains_var(base, var):
        # a^g * ln(a) * g'
        return ("mul", ("mul", node, ("call", "ln", base)), derivative(exponent, var))

    # f^g * (g' ln f + g f' / f)
    return ("mul", node,
            ("add",
             ("mul", derivative(exponent, var), ("call", "ln", base)),
             ("div", ("mul", exponent, derivative(base, var)), base)))


def _expand_determinant(arg: ASTNode) -> ASTNode:
    if arg[0] != "matrix":
        raise DifferentiationError(f"Cannot differentiate det of {node_kind(arg)}")
    try:
        return symbolic_determinant(arg[1])
    except MatrixError as exc:
        raise DifferentiationError(str(exc)) from exc


def differentiate(node: ASTNode, var: str, order: int = 1) -> ASTNode:
    """Derivative of order *order* (repeated application of ``derivative``)."""
    if order < 0:
        raise DifferentiationError(f"Derivative order must be non-negative, got {order}")
    if node[0] in ("matrix", "eq"):
        raise DifferentiationError(f"Cannot differentiate {node_kind(node)}")
    for _ in range(order):
        node = derivative(node, var)
    return node


def gradient(node: ASTNode, variables: Sequence[str] | None = None) -> list[tuple[str, ASTNode]]:
    """Partial derivatives of *node*, one per variable.

    When *variables* is omitted the free variables are used in sorted order.
    """
    if variables is None:
        variables = sorted(free_variables(node))
    return [(var, derivative(node, var)) for var in variables]
