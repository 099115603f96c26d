from __future__ import annotations

from typing import Any, Callable, Optional, Tuple

from utils.constants import FUNCTIONS


# Type aliases used throughout this module.
TypeSpec = Any       # "ℝ", ("matrix", rows, cols), None
ASTExpr = Any        # tagged tuple
ErrorFn = Callable[[str], None]
InferFn = Callable[..., TypeSpec]

SCALAR = "ℝ"


def type_to_str(t: TypeSpec) -> str:
    """Convert a shape type to a readable string.

    Parameters
    ----------
    t : TypeSpec
        ``"ℝ"``, ``("matrix", rows, cols)`` or ``None``.

    Returns
    -------
    str
        ``"ℝ"``, ``"ℝ[2,3]"`` or ``"unknown"`` for ``None``.

    Examples
    --------
    >>> from utils.type_checker_utils import type_to_str
    >>> type_to_str("ℝ")
    'ℝ'
    >>> type_to_str(("matrix", 2, 3))
    'ℝ[2,3]'
    >>> type_to_str(None)
    'unknown'
    """
    if t is None:
        return "unknown"
    if isinstance(t, str):
        return t
    if isinstance(t, tuple) and t[0] == "matrix":
        return f"ℝ[{t[1]},{t[2]}]"
    return str(t)


def make_matrix_type(rows: int, cols: int) -> TypeSpec:
    return ("matrix", rows, cols)


def get_shape(t: TypeSpec) -> Optional[Tuple[int, int]]:
    """Return ``(rows, cols)`` for a matrix type, ``None`` otherwise.

    Examples
    --------
    >>> from utils.type_checker_utils import get_shape
    >>> get_shape(("matrix", 2, 3))
    (2, 3)
    >>> get_shape("ℝ") is None
    True
    """
    if isinstance(t, tuple) and t[0] == "matrix":
        return (t[1], t[2])
    return None


def types_compatible(a: TypeSpec, b: TypeSpec) -> bool:
    """Unknown (``None``) is compatible with everything."""
    if a is None or b is None:
        return True
    return a == b


def type_infer(op: str, expr: ASTExpr, local_env: dict[str, TypeSpec],
               add_error: ErrorFn, infer_fn: InferFn) -> TypeSpec:
    """Infer the shape of a single tagged-tuple node.

    Sub-expressions are inferred through *infer_fn* (normally
    ``TypeChecker.infer_type``) and problems are reported through
    *add_error*; the walk continues after an error and returns ``None``
    for the offending node.

    Parameters
    ----------
    op : str
        The node tag, ``expr[0]``.
    expr : ASTExpr
        The node.
    local_env : dict[str, TypeSpec]
        Bound summation indices.
    add_error : ErrorFn
        Callback recording an error message.
    infer_fn : InferFn
        Recursive inference entry point.

    Returns
    -------
    TypeSpec
    """
    if op in ("num", "const"):
        return SCALAR

    if op == "var":
        return local_env.get(expr[1], SCALAR)

    if op in ("add", "sub"):
        left = infer_fn(expr[1], local_env)
        right = infer_fn(expr[2], local_env)
        if left is None or right is None:
            return None
        if left != right:
            verb = "add" if op == "add" else "subtract"
            add_error(f"Cannot {verb} {type_to_str(left)} and {type_to_str(right)}")
            return None
        return left

    if op == "mul":
        left = infer_fn(expr[1], local_env)
        right = infer_fn(expr[2], local_env)
        if left is None or right is None:
            return None
        if left == SCALAR:
            return right
        if right == SCALAR:
            return left
        (r1, c1), (r2, c2) = get_shape(left), get_shape(right)
        if c1 != r2:
            add_error(f"Cannot multiply {type_to_str(left)} by {type_to_str(right)}: "
                      f"inner dimensions {c1} and {r2} differ")
            return None
        return make_matrix_type(r1, c2)

    if op == "div":
        left = infer_fn(expr[1], local_env)
        right = infer_fn(expr[2], local_env)
        if right is not None and right != SCALAR:
            add_error(f"Cannot divide by {type_to_str(right)}")
            return None
        return left

    if op == "pow":
        base = infer_fn(expr[1], local_env)
        if base is None:
            return None
        if base == SCALAR:
            exponent = infer_fn(expr[2], local_env)
            if exponent is not None and exponent != SCALAR:
                add_error(f"Exponent must be a scalar, got {type_to_str(exponent)}")
                return None
            return SCALAR
        rows, cols = get_shape(base)
        if expr[2] == ("var", "T") and "T" not in local_env:
            return make_matrix_type(cols, rows)
        exponent = infer_fn(expr[2], local_env)
        if exponent is not None and exponent != SCALAR:
            add_error(f"Exponent must be a scalar, got {type_to_str(exponent)}")
            return None
        if rows != cols:
            add_error(f"Only square matrices can be raised to a power, got {type_to_str(base)}")
            return None
        return base

    if op == "neg":
        return infer_fn(expr[1], local_env)

    if op == "call":
        name = expr[1]
        arg = infer_fn(expr[2], local_env)
        if name not in FUNCTIONS:
            add_error(f"Unknown function '{name}'")
            return None
        if name == "det":
            shape = get_shape(arg)
            if shape is not None and shape[0] != shape[1]:
                add_error(f"Determinant requires a square matrix, got {type_to_str(arg)}")
                return None
            return SCALAR
        if arg is not None and arg != SCALAR:
            add_error(f"Function '{name}' expects a scalar, got {type_to_str(arg)}")
            return None
        return SCALAR

    if op == "sum":
        _, index, lower, upper, body = expr
        for bound in (lower, upper):
            bound_type = infer_fn(bound, local_env)
            if bound_type is not None and bound_type != SCALAR:
                add_error(f"Summation bounds must be scalars, got {type_to_str(bound_type)}")
        body_env = dict(local_env)
        body_env[index] = SCALAR
        body_type = infer_fn(body, body_env)
        if body_type is not None and body_type != SCALAR:
            add_error(f"Summation body must be a scalar, got {type_to_str(body_type)}")
            return None
        return SCALAR

    if op == "matrix":
        rows = expr[1]
        if not rows or not rows[0]:
            add_error("A matrix must have at least one cell")
            return None
        width = len(rows[0])
        if any(len(row) != width for row in rows):
            add_error("Matrix rows must all have the same length")
            return None
        for row in rows:
            for cell in row:
                cell_type = infer_fn(cell, local_env)
                if cell_type is not None and cell_type != SCALAR:
                    add_error(f"Matrix cells must be scalars, got {type_to_str(cell_type)}")
                    return None
        return make_matrix_type(len(rows), width)

    if op == "eq":
        add_error("An equation can only appear at the top level")
        return None

    add_error(f"Unknown expression node '{op}'")
    return None
