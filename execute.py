import argparse
import logging
import sys

import runtime
from codegen import from_ast_to_torch
from parser import parse
from type_checker import TypeChecker
from utils.errors import ArithmaError
from utils.print_utils import _pformat, print_errors
from utils.type_checker_utils import type_to_str


# ======================================================
# COMMANDS
# ======================================================

def cmd_evaluate(args):
    return runtime.evaluate(args.latex, args.env)


def cmd_simplify(args):
    return runtime.simplify(args.latex)


def cmd_differentiate(args):
    result = runtime.differentiate(args.latex, args.var, args.order)
    if args.simplify:
        result = runtime.simplify(result)
    return result


def cmd_integrate(args):
    return runtime.integrate(args.latex, args.var)


def cmd_definite(args):
    return runtime.definite_integral(args.latex, args.var, args.lower, args.upper, args.env)


def cmd_compose(args):
    return runtime.compose(args.outer, args.var, args.inner)


def cmd_solve(args):
    return runtime.solve(args.latex, args.var)


def cmd_system(args):
    return runtime.solve_system(args.equations, args.vars)


def cmd_det(args):
    return runtime.determinant(args.latex, args.env)


def cmd_inverse(args):
    return runtime.inverse(args.latex, args.env)


def cmd_rank(args):
    return runtime.rank(args.latex, args.env)


def cmd_rref(args):
    return runtime.rref(args.latex, args.env)


def cmd_eigenvalues(args):
    return runtime.eigenvalues(args.latex, args.env)


def cmd_multiply(args):
    return runtime.matrix_multiply(args.left, args.right, args.env)


def cmd_solve_matrix(args):
    return runtime.solve_matrix_system(args.a, args.b, args.env)


def cmd_check(args):
    tree = parse(args.latex)
    print(_pformat(tree))
    checker = TypeChecker(tree)
    errors = checker.run()
    print_errors(errors)
    return type_to_str(checker.root_type)


def cmd_codegen(args):
    code, _ = from_ast_to_torch(parse(args.latex))
    return code


# ======================================================
# CLI
# ======================================================

def build_parser():
    parser = argparse.ArgumentParser(prog="arithma",
                                     description="Symbolic math on LaTeX expressions")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log rewrite passes to stderr")
    commands = parser.add_subparsers(dest="command", required=True)

    def command(name, handler, help_text, *, env=False):
        sub = commands.add_parser(name, help=help_text)
        sub.set_defaults(handler=handler)
        if env:
            sub.add_argument("--env", default="{}", help='Variables as JSON, e.g. \'{"vars": {"x": 3}}\'')
        return sub

    sub = command("evaluate", cmd_evaluate, "Evaluate an expression or equation", env=True)
    sub.add_argument("latex")

    sub = command("simplify", cmd_simplify, "Simplify an expression")
    sub.add_argument("latex")

    sub = command("diff", cmd_differentiate, "Differentiate with respect to a variable")
    sub.add_argument("latex")
    sub.add_argument("var")
    sub.add_argument("--order", type=int, default=1)
    sub.add_argument("--simplify", action="store_true", help="Simplify the derivative")

    sub = command("integrate", cmd_integrate, "Indefinite integral")
    sub.add_argument("latex")
    sub.add_argument("var")

    sub = command("definite", cmd_definite, "Definite integral between two bounds", env=True)
    sub.add_argument("latex")
    sub.add_argument("var")
    sub.add_argument("lower")
    sub.add_argument("upper")

    sub = command("compose", cmd_compose, "Substitute INNER for VAR in OUTER")
    sub.add_argument("outer")
    sub.add_argument("var")
    sub.add_argument("inner")

    sub = command("solve", cmd_solve, "Solve an equation for a variable")
    sub.add_argument("latex")
    sub.add_argument("var")

    sub = command("system", cmd_system, "Solve a square linear system")
    sub.add_argument("equations", nargs="+")
    sub.add_argument("--vars", nargs="+", default=None, help="Unknowns, in order")

    for name, handler, help_text in (
        ("det", cmd_det, "Determinant of a matrix"),
        ("inverse", cmd_inverse, "Inverse of a matrix"),
        ("rank", cmd_rank, "Rank of a matrix"),
        ("rref", cmd_rref, "Reduced row echelon form"),
        ("eigenvalues", cmd_eigenvalues, "Eigenvalues of a matrix"),
    ):
        sub = command(name, handler, help_text, env=True)
        sub.add_argument("latex")

    sub = command("multiply", cmd_multiply, "Matrix product LEFT RIGHT", env=True)
    sub.add_argument("left")
    sub.add_argument("right")

    sub = command("solve-matrix", cmd_solve_matrix, "Solve A x = b", env=True)
    sub.add_argument("a")
    sub.add_argument("b")

    sub = command("check", cmd_check, "Print the AST and check matrix shapes")
    sub.add_argument("latex")

    sub = command("codegen", cmd_codegen, "Print the generated PyTorch function")
    sub.add_argument("latex")

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")
    try:
        result = args.handler(args)
    except ArithmaError as exc:
        # print_errors exits with status 1
        print_errors([f"{exc.title}: {exc}"])
    else:
        print(result)
    return 0


if __name__ == "__main__":
    # cd to arithma and run: python -m execute evaluate "x + 2" --env '{"vars": {"x": 3}}'
    sys.exit(main())
