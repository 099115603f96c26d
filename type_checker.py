from __future__ import annotations

from typing import Any, Optional

from utils.type_checker_utils import (
    type_to_str,
    types_compatible,
    type_infer,
)

# Type aliases used in annotations throughout this module.
ASTExpr = Any       # tagged tuple
TypeSpec = Any      # "ℝ", ("matrix", rows, cols), None


class TypeChecker:
    """Shape checker for arithma expression trees.

    Walks a parsed expression or equation and infers, for every node,
    whether it is a scalar (``"ℝ"``) or an ``r x c`` matrix.  Dimension
    mismatches, unknown functions, ragged matrices and nested equations
    are accumulated in ``self.errors`` and returned by :meth:`run`.

    Parameters
    ----------
    tree : ASTExpr
        A tree produced by ``parser.parse``.

    Examples
    --------
    >>> from type_checker import TypeChecker
    >>> TypeChecker(("add", ("var", "x"), ("num", 1.0))).run()
    []
    >>> checker = TypeChecker(("matrix", ((("num", 1.0), ("num", 2.0)),)))
    >>> checker.run()
    []
    >>> checker.root_type
    ('matrix', 1, 2)
    """

    def __init__(self, tree: ASTExpr) -> None:
        self.tree = tree
        self.errors: list[str] = []
        self.root_type: TypeSpec = None

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def infer_type(self, expr: ASTExpr, local_env: Optional[dict[str, TypeSpec]] = None) -> TypeSpec:
        """Infer the shape of *expr*.

        Parameters
        ----------
        expr : ASTExpr
            Any expression node.
        local_env : dict[str, TypeSpec] or None
            Summation indices bound around *expr*.  Defaults to ``{}``.

        Returns
        -------
        TypeSpec
            ``"ℝ"``, ``("matrix", rows, cols)``, or ``None`` when an error
            was recorded below this node.

        Examples
        --------
        >>> from type_checker import TypeChecker
        >>> checker = TypeChecker(("num", 0.0))
        >>> checker.infer_type(("num", 3.0))
        'ℝ'
        >>> m = ("matrix", ((("num", 1.0), ("num", 2.0)), (("num", 3.0), ("num", 4.0))))
        >>> checker.infer_type(("pow", m, ("var", "T")))
        ('matrix', 2, 2)
        """
        if local_env is None:
            local_env = {}

        if not isinstance(expr, tuple) or not expr:
            self.add_error(f"Malformed expression {expr!r}")
            return None

        op = expr[0]
        return type_infer(op, expr, local_env, self.add_error, self.infer_type)

    def check_equation(self, eq: ASTExpr) -> None:
        left = self.infer_type(eq[1])
        right = self.infer_type(eq[2])
        if not types_compatible(left, right):
            self.add_error(
                f"Equation sides have different shapes: {type_to_str(left)} = {type_to_str(right)}"
            )
        self.root_type = left if left is not None else right

    # Main entry point
    def run(self) -> list[str]:
        """Check the whole tree.

        Returns
        -------
        list[str]
            Human-readable error messages; empty if the tree is well shaped.
        """
        if isinstance(self.tree, tuple) and self.tree and self.tree[0] == "eq":
            self.check_equation(self.tree)
        else:
            self.root_type = self.infer_type(self.tree)
        return self.errors


def type_check(tree: ASTExpr) -> list[str]:
    """Run the shape checker on a parsed tree.

    Convenience wrapper that creates a :class:`TypeChecker` and calls
    :meth:`~TypeChecker.run`.

    Examples
    --------
    >>> from type_checker import type_check
    >>> from parser import parse
    >>> type_check(parse("\\\\sin(x) + 1"))
    []
    >>> type_check(parse("\\\\begin{pmatrix}1 & 2\\\\end{pmatrix} + 1"))
    ['Cannot add ℝ[1,2] and ℝ']
    """
    checker = TypeChecker(tree)
    return checker.run()
