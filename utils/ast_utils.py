from __future__ import annotations

import math
from typing import Callable, Literal, Mapping, Sequence, Union

# AST TYPE DEFINITIONS
# The parser produces a tree of tagged tuples.  Every non-leaf node is a
# tuple whose first element is a string (tag) and whose remaining elements are
# other nodes, tuples of nodes, or scalar leaves.  Tuples are immutable, so a
# transformation always builds new nodes and subtrees can be shared freely.

ExprTag = Literal[
    "add", "sub", "mul", "div", "pow",    # binary arithmetic
    "neg",                                # unary minus
    "num", "var", "const",                # literals / references
    "call",                               # ("call", fname, arg)
    "sum",                                # ("sum", index, lower, upper, body)
    "matrix",                             # ("matrix", ((cell, ...), ...))
]

StmtTag = Literal[
    "eq",         # lhs = rhs  -> (tag, lhs, rhs), only ever at the root
]

ASTTag = Union[ExprTag, StmtTag]

ASTNode = Union[
        tuple,               # tagged nodes: ("add", left, right), ("num", 1.0), ...
        str,                 # identifiers, function names
        float,               # numeric literal values
    ]

BINARY_TAGS = ("add", "sub", "mul", "div", "pow")

NODE_KINDS = {
    "num": "Number",
    "var": "Variable",
    "const": "Constant",
    "add": "Add",
    "sub": "Subtract",
    "mul": "Multiply",
    "div": "Divide",
    "pow": "Power",
    "neg": "Negate",
    "call": "FunctionCall",
    "sum": "Summation",
    "matrix": "Matrix",
    "eq": "Equation",
}


def num(value: float) -> tuple:
    """Build a ``("num", value)`` node, normalising ``-0.0`` to ``0.0``."""
    value = float(value)
    if value == 0.0:
        value = 0.0
    return ("num", value)


def is_number(node: ASTNode, value: float | None = None) -> bool:
    """Check whether *node* is a numeric literal, optionally equal to *value*.

    Examples
    --------
    >>> is_number(("num", 2.0))
    True
    >>> is_number(("num", 2.0), 3.0)
    False
    >>> is_number(("var", "x"))
    False
    """
    if not (isinstance(node, tuple) and node[0] == "num"):
        return False
    return value is None or node[1] == value


def is_integer_number(node: ASTNode) -> bool:
    return is_number(node) and math.isfinite(node[1]) and node[1] == int(node[1])


def node_kind(node: ASTNode) -> str:
    """Return the human-readable kind of *node*, used in error messages.

    Examples
    --------
    >>> node_kind(("matrix", ((("num", 1.0),),)))
    'Matrix'
    """
    if isinstance(node, tuple) and node and node[0] in NODE_KINDS:
        return NODE_KINDS[node[0]]
    return type(node).__name__


def structurally_equal(a: ASTNode, b: ASTNode) -> bool:
    """Recursively compare two expression trees.

    Identical to ``a == b`` except that two NaN literals compare equal, so
    that a tree holding the division-by-zero sentinel still reaches a fixed
    point in the simplifier.

    Parameters
    ----------
    a, b : ASTNode
        Expression trees (or leaves) to compare.

    Returns
    -------
    bool
        ``True`` when both trees have the same shape, tags and leaves.

    Examples
    --------
    >>> structurally_equal(("num", float("nan")), ("num", float("nan")))
    True
    >>> structurally_equal(("add", ("var", "x"), ("num", 1.0)),
    ...                    ("add", ("var", "x"), ("num", 2.0)))
    False
    """
    if isinstance(a, tuple) and isinstance(b, tuple):
        if len(a) != len(b):
            return False
        return all(structurally_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, float) and isinstance(b, float):
        if math.isnan(a) and math.isnan(b):
            return True
    return a == b


def map_children(node: ASTNode, fn: Callable[[ASTNode], ASTNode]) -> ASTNode:
    """Rebuild *node* with *fn* applied to each direct sub-expression.

    Leaves (``num``, ``var``, ``const``) are returned unchanged.  The sum
    index name and function names are not sub-expressions and are kept.
    """
    op = node[0]
    if op in BINARY_TAGS or op == "eq":
        return (op, fn(node[1]), fn(node[2]))
    if op == "neg":
        return (op, fn(node[1]))
    if op == "call":
        return (op, node[1], fn(node[2]))
    if op == "sum":
        return (op, node[1], fn(node[2]), fn(node[3]), fn(node[4]))
    if op == "matrix":
        return (op, tuple(tuple(fn(cell) for cell in row) for row in node[1]))
    return node


def iter_children(node: ASTNode) -> list:
    """Return the direct sub-expressions of *node* in source order."""
    op = node[0]
    if op in BINARY_TAGS or op == "eq":
        return [node[1], node[2]]
    if op == "neg":
        return [node[1]]
    if op == "call":
        return [node[2]]
    if op == "sum":
        return [node[2], node[3], node[4]]
    if op == "matrix":
        return [cell for row in node[1] for cell in row]
    return []


def free_variables(node: ASTNode) -> set[str]:
    """Collect the names of variables that are free in *node*.

    The index of a summation is bound inside its body, so it is only free if
    it also appears in the bounds or elsewhere.

    Examples
    --------
    >>> sorted(free_variables(("add", ("var", "x"), ("mul", ("num", 2.0), ("var", "y")))))
    ['x', 'y']
    >>> free_variables(("sum", "i", ("num", 1.0), ("var", "n"), ("var", "i")))
    {'n'}
    """
    op = node[0]
    if op == "var":
        return {node[1]}
    if op == "sum":
        inner = free_variables(node[4]) - {node[1]}
        return free_variables(node[2]) | free_variables(node[3]) | inner
    names: set[str] = set()
    for child in iter_children(node):
        names |= free_variables(child)
    return names


def contains_var(node: ASTNode, name: str) -> bool:
    """Return ``True`` if variable *name* occurs free in *node*."""
    op = node[0]
    if op == "var":
        return node[1] == name
    if op == "sum":
        if contains_var(node[2], name) or contains_var(node[3], name):
            return True
        return node[1] != name and contains_var(node[4], name)
    return any(contains_var(child, name) for child in iter_children(node))


def count_occurrences(node: ASTNode, name: str) -> int:
    """Count the free occurrences of variable *name* in *node*."""
    op = node[0]
    if op == "var":
        return 1 if node[1] == name else 0
    if op == "sum":
        total = count_occurrences(node[2], name) + count_occurrences(node[3], name)
        if node[1] != name:
            total += count_occurrences(node[4], name)
        return total
    return sum(count_occurrences(child, name) for child in iter_children(node))


def substitute(node: ASTNode, bindings: Mapping[str, ASTNode]) -> ASTNode:
    """Replace free variables by expressions.

    Parameters
    ----------
    node : ASTNode
        The expression to rewrite.
    bindings : Mapping[str, ASTNode]
        Variable name to replacement expression.

    Returns
    -------
    ASTNode
        A new tree; *node* is left untouched.

    Examples
    --------
    >>> substitute(("add", ("var", "x"), ("num", 1.0)), {"x": ("var", "t")})
    ('add', ('var', 't'), ('num', 1.0))
    >>> substitute(("sum", "i", ("num", 1.0), ("num", 3.0), ("var", "i")), {"i": ("num", 9.0)})
    ('sum', 'i', ('num', 1.0), ('num', 3.0), ('var', 'i'))
    """
    op = node[0]
    if op == "var":
        return bindings.get(node[1], node)
    if op == "sum":
        index = node[1]
        inner = {k: v for k, v in bindings.items() if k != index}
        return ("sum", index,
                substitute(node[2], bindings),
                substitute(node[3], bindings),
                substitute(node[4], inner) if inner else node[4])
    return map_children(node, lambda child: substitute(child, bindings))


def compose(outer: ASTNode, var_name: str, inner: ASTNode) -> ASTNode:
    """Compose two functions: replace *var_name* in *outer* by *inner*.

    Examples
    --------
    >>> compose(("call", "sin", ("var", "x")), "x", ("mul", ("num", 2.0), ("var", "x")))
    ('call', 'sin', ('mul', ('num', 2.0), ('var', 'x')))
    """
    return substitute(outer, {var_name: inner})


def compose_multiple(functions: Sequence[tuple[ASTNode, str]]) -> ASTNode:
    """Compose a chain of functions, innermost first.

    Each entry is ``(expression, variable)``; every function after the
    first has its variable replaced by the composition built so far, so
    ``[(g, "x"), (f, "u")]`` gives ``f(g(x))``.

    Examples
    --------
    >>> compose_multiple([(("var", "x"), "x"), (("call", "sin", ("var", "u")), "u")])
    ('call', 'sin', ('var', 'x'))
    """
    if not functions:
        raise ValueError("Cannot compose an empty list of functions")
    result = functions[0][0]
    for outer, var_name in functions[1:]:
        result = compose(outer, var_name, result)
    return result
