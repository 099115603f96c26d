import logging
import math
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

import torch

import derivative as _derivative
import integration as _integration
import simplify as _simplify
from codegen import compile_expression
from environment import Environment
from evaluator import evaluate as _evaluate, evaluate_value, is_matrix_valued
from matrix import Matrix, symbolic_determinant
from parser import parse
from solver import solve_equation, solve_linear_system
from type_checker import type_check
from utils.ast_utils import (ASTNode, compose as _compose, compose_multiple as _compose_multiple,
                             free_variables, num, substitute)
from utils.constants import COMPARE_TOLERANCE, MAX_SUM_TERMS
from utils.errors import EvaluationError, MatrixError, ParseError
from utils.print_utils import format_number, to_latex

logger = logging.getLogger(__name__)

Bound = Union[str, float, int]


# HELPERS


def _variable(name: str) -> str:
    """Parse a variable name given as LaTeX (``"x"``, ``"x_1"``, ``"\\theta"``)."""
    node = parse(name)
    if node[0] != "var":
        raise ParseError(f"'{name}' is not a variable name")
    return node[1]


def _checked(latex: str) -> ASTNode:
    """Parse *latex* and reject trees whose shapes do not fit together."""
    tree = parse(latex)
    errors = type_check(tree)
    if errors:
        raise MatrixError("; ".join(errors))
    return tree


def _bind(tree: ASTNode, env: Environment) -> ASTNode:
    """Replace every variable bound in *env* by its value."""
    bindings = {name: num(env[name]) for name in free_variables(tree) if name in env}
    return substitute(tree, bindings) if bindings else tree


def _render(value: Any) -> str:
    if isinstance(value, Matrix):
        return to_latex(value.to_node())
    return format_number(value)


def _render_solution(node: ASTNode) -> str:
    if free_variables(node):
        return to_latex(node)
    return format_number(_evaluate(node))


def _matrix_tree(latex: str) -> ASTNode:
    tree = _checked(latex)
    if tree[0] == "call" and tree[1] == "det":
        # a vmatrix names the matrix itself here
        tree = tree[2]
    return tree


def _as_matrix(tree: ASTNode, env: Environment) -> Matrix:
    value = evaluate_value(tree, env)
    if not isinstance(value, Matrix):
        raise MatrixError(f"Expected a matrix, got the number {format_number(value)}")
    return value


def _matrix(latex: str, environment_json: str = "{}") -> Matrix:
    return _as_matrix(_matrix_tree(latex), Environment.from_json(environment_json))


def _same(left: Any, right: Any) -> bool:
    if isinstance(left, Matrix) or isinstance(right, Matrix):
        if not (isinstance(left, Matrix) and isinstance(right, Matrix)):
            return False
        return left.shape == right.shape and left.isclose(right, COMPARE_TOLERANCE)
    if math.isnan(left) or math.isnan(right):
        return False
    if math.isinf(left) or math.isinf(right):
        return left == right
    return abs(left - right) <= COMPARE_TOLERANCE * max(1.0, abs(left), abs(right))


def _evaluate_equation(tree: ASTNode, env: Environment) -> str:
    lhs, rhs = tree[1], tree[2]
    unbound = sorted(free_variables(tree) - set(env))

    if not unbound or is_matrix_valued(lhs) or is_matrix_valued(rhs):
        left = evaluate_value(lhs, env)
        right = evaluate_value(rhs, env)
        if _same(left, right):
            return f"Equation is true: {_render(left)} = {_render(right)}"
        return f"Equation is false: {_render(left)} ≠ {_render(right)}"

    if len(unbound) > 1:
        raise EvaluationError(f"Cannot evaluate an equation with several unbound variables: "
                              f"{', '.join(unbound)}")

    var = unbound[0]
    solution = solve_equation(_bind(tree, env), var)
    logger.debug("evaluate: solved for %s", var)
    return f"{to_latex(('var', var))} = {_render_solution(solution)}"


# STRING BOUNDARY


def evaluate(latex: str, environment_json: str = "{}") -> str:
    """Evaluate a LaTeX expression or equation.

    Parameters
    ----------
    latex : str
        Expression, matrix expression or equation.
    environment_json : str
        ``{"vars": {"x": 3}}``; other fields are ignored.

    Returns
    -------
    str
        The value to 15 significant digits (``"NaN"`` for NaN), matrix
        LaTeX for matrix-valued input, and for an equation either
        ``"Equation is true: a = b"`` / ``"Equation is false: a ≠ b"`` or,
        when exactly one variable is unbound, its solution ``"x = 8"``.

    Examples
    --------
    >>> from runtime import evaluate
    >>> evaluate("x + 2", '{"vars": {"x": 3}}')
    '5'
    >>> evaluate("1/0")
    'NaN'
    >>> evaluate("2x = 16")
    'x = 8'
    """
    tree = _checked(latex)
    env = Environment.from_json(environment_json)
    logger.debug("evaluate: %s", to_latex(tree))
    if tree[0] == "eq":
        return _evaluate_equation(tree, env)
    return _render(evaluate_value(tree, env))


def compose(outer_latex: str, outer_var: str, inner_latex: str) -> str:
    """Substitute *inner_latex* for *outer_var* in *outer_latex*.

    Examples
    --------
    >>> from runtime import compose
    >>> compose("\\\\sin(x)", "x", "2x")
    '\\\\sin\\\\left(2x\\\\right)'
    """
    result = _compose(parse(outer_latex), _variable(outer_var), parse(inner_latex))
    return to_latex(result)


def compose_multiple(functions: Sequence[Tuple[str, str]]) -> str:
    """Compose a chain of ``(latex, variable)`` pairs, innermost first.

    Examples
    --------
    >>> from runtime import compose_multiple
    >>> compose_multiple([("x + 1", "x"), ("u^2", "u"), ("\\\\sin v", "v")])
    '\\\\sin\\\\left(\\\\left(x + 1\\\\right)^{2}\\\\right)'
    """
    if not functions:
        raise ParseError("No functions to compose")
    chain = [(parse(latex), _variable(var_name)) for latex, var_name in functions]
    return to_latex(_compose_multiple(chain))


def differentiate(latex: str, var_name: str, order: int = 1) -> str:
    """Derivative of *latex* with respect to *var_name*, unsimplified."""
    tree = parse(latex)
    return to_latex(_derivative.differentiate(tree, _variable(var_name), order))


def integrate(latex: str, var_name: str) -> str:
    """Simplified antiderivative (no constant of integration)."""
    return to_latex(_integration.integrate(parse(latex), _variable(var_name)))


def _bound(value: Bound) -> Union[ASTNode, float]:
    if isinstance(value, str):
        return parse(value)
    return float(value)


def definite_integral(latex: str, var_name: str, lower: Bound, upper: Bound,
                      environment_json: str = "{}") -> str:
    """Evaluate the antiderivative between *lower* and *upper*.

    Bounds may be numbers or LaTeX strings evaluated in the environment.

    Examples
    --------
    >>> from runtime import definite_integral
    >>> definite_integral("x^2", "x", 0, 3)
    '9'
    """
    value = _integration.definite_integral(parse(latex), _variable(var_name), _bound(lower),
                                           _bound(upper), Environment.from_json(environment_json))
    return format_number(value)


def simplify(latex: str) -> str:
    """Simplified form of an expression or of both sides of an equation.

    Examples
    --------
    >>> from runtime import simplify
    >>> simplify("x + x")
    '2x'
    """
    return to_latex(_simplify.simplify(parse(latex)))


def solve(latex: str, var_name: str) -> str:
    """Solve an equation (or ``expression = 0``) for *var_name*.

    Examples
    --------
    >>> from runtime import solve
    >>> solve("x + 2 = 10", "x")
    '8'
    """
    return _render_solution(solve_equation(parse(latex), _variable(var_name)))


def solve_system(equations: Sequence[str], variables: Optional[Sequence[str]] = None) -> str:
    """Solve a square linear system.

    Examples
    --------
    >>> from runtime import solve_system
    >>> solve_system(["x + y = 3", "x - y = 1"])
    'x = 2, y = 1'
    """
    trees = [parse(eq) for eq in equations]
    names = None if variables is None else [_variable(v) for v in variables]
    solution = solve_linear_system(trees, names)
    return ", ".join(f"{to_latex(('var', v))} = {format_number(x)}" for v, x in solution.items())


def determinant(latex: str, environment_json: str = "{}") -> str:
    """Determinant of a matrix.

    A matrix with unbound symbolic cells gets the simplified cofactor
    expansion instead of a number.
    """
    tree = _matrix_tree(latex)
    env = Environment.from_json(environment_json)
    if tree[0] == "matrix" and free_variables(tree) - set(env):
        return to_latex(_simplify.simplify(symbolic_determinant(_bind(tree, env)[1])))
    return format_number(_as_matrix(tree, env).determinant())


def inverse(latex: str, environment_json: str = "{}") -> str:
    return _render(_matrix(latex, environment_json).inverse())


def rank(latex: str, environment_json: str = "{}") -> str:
    return str(_matrix(latex, environment_json).rank())


def rref(latex: str, environment_json: str = "{}") -> str:
    return _render(_matrix(latex, environment_json).rref())


def eigenvalues(latex: str, environment_json: str = "{}") -> str:
    """Comma-separated eigenvalues, real ones first in ascending order.

    Examples
    --------
    >>> from runtime import eigenvalues
    >>> eigenvalues("\\\\begin{pmatrix}2 & 0 \\\\\\\\ 0 & 3\\\\end{pmatrix}")
    '2, 3'
    """
    return ", ".join(format_number(v) for v in _matrix(latex, environment_json).eigenvalues())


def matrix_multiply(left_latex: str, right_latex: str, environment_json: str = "{}") -> str:
    left = _matrix(left_latex, environment_json)
    right = _matrix(right_latex, environment_json)
    return _render(left @ right)


def solve_matrix_system(a_latex: str, b_latex: str, environment_json: str = "{}") -> str:
    """Solution ``x`` of ``A x = b`` as a column matrix."""
    a = _matrix(a_latex, environment_json)
    b = _matrix(b_latex, environment_json)
    return _render(a.solve(b))


# TENSOR RUNTIME


def safe_div(
    numerator: Union[torch.Tensor, float],
    denominator: Union[torch.Tensor, float]
) -> torch.Tensor:
    """Element-wise division where a zero denominator gives NaN.

    Generated code routes every ``\\frac`` through this helper so that
    sampled values agree with the scalar evaluator.

    Examples
    --------
    >>> from runtime import safe_div
    >>> safe_div(torch.tensor([1.0, 1.0]), torch.tensor([2.0, 0.0]))
    tensor([0.5000,    nan])
    """
    numerator = torch.as_tensor(numerator, dtype=torch.float64)
    denominator = torch.as_tensor(denominator, dtype=torch.float64)
    quotient = numerator / denominator
    return torch.where(denominator == 0, torch.full_like(quotient, float("nan")), quotient)


def summation(body: Any, lower: int, upper: int) -> torch.Tensor:
    """Sum ``body(i)`` for integer ``i`` from *lower* to *upper* inclusive."""
    if upper - lower + 1 > MAX_SUM_TERMS:
        raise EvaluationError(f"Summation has more than {MAX_SUM_TERMS} terms")
    total = torch.zeros((), dtype=torch.float64)
    for i in range(lower, upper + 1):
        total = total + body(torch.tensor(float(i), dtype=torch.float64))
    return total


def _as_input(values: Any) -> torch.Tensor:
    if isinstance(values, torch.Tensor):
        return values.to(torch.float64)
    return torch.as_tensor(values, dtype=torch.float64)


def sample(latex: str, points: Mapping[str, Any], environment_json: str = "{}") -> torch.Tensor:
    """Evaluate an expression at many points at once through generated torch code.

    Parameters
    ----------
    latex : str
        Scalar expression.
    points : Mapping[str, Any]
        Sample values per variable; sequences of equal length broadcast
        together.
    environment_json : str
        Values for the remaining variables.

    Returns
    -------
    torch.Tensor
        ``float64`` values shaped like the broadcast inputs.  Unlike the
        scalar evaluator, domain errors give NaN element-wise instead of
        raising.

    Examples
    --------
    >>> from runtime import sample
    >>> sample("x^2 + 1", {"x": [0.0, 1.0, 2.0]})
    tensor([1., 2., 5.], dtype=torch.float64)
    """
    tree = _bind(_checked(latex), Environment.from_json(environment_json))
    fn, params = compile_expression(tree, sorted(points))
    inputs = [_as_input(points[name]) for name in params]
    result = torch.as_tensor(fn(*inputs), dtype=torch.float64)
    if inputs:
        shape = torch.broadcast_shapes(*(t.shape for t in inputs))
        result = result.expand(shape) if result.shape != shape else result
    return result


def compute_grad(
    output: Union[torch.Tensor, float],
    input: Union[torch.Tensor, float]
) -> torch.Tensor:
    """Compute the gradient of ``output`` with respect to ``input``.

    Wraps ``torch.autograd.grad`` with automatic tensor conversion and
    ``requires_grad`` handling.  Both ``create_graph`` and
    ``retain_graph`` are set to ``True`` so that higher-order
    derivatives remain available.  A non-scalar output (a batch of
    sampled values) is differentiated element-wise.

    Parameters
    ----------
    output : torch.Tensor or float
        The output whose gradient is computed.
    input : torch.Tensor or float
        The variable to differentiate with respect to.  If a plain
        ``float`` is given it is wrapped in a ``torch.tensor`` with
        ``requires_grad=True``.

    Returns
    -------
    torch.Tensor
        The gradient ``∂output/∂input``.

    Examples
    --------
    >>> from runtime import compute_grad
    >>> x = torch.tensor(2.0, requires_grad=True)
    >>> y = x ** 2
    >>> compute_grad(y, x)
    tensor(4., grad_fn=<MulBackward0>)
    """
    if not isinstance(input, torch.Tensor):
        input = torch.tensor(float(input), requires_grad=True)
    if not input.requires_grad:
        input = input.clone().requires_grad_(True)
    if not isinstance(output, torch.Tensor):
        output = torch.tensor(output, dtype=torch.float64)
    grad_outputs = None if output.dim() == 0 else torch.ones_like(output)
    grads = torch.autograd.grad(output, input, grad_outputs=grad_outputs,
                                create_graph=True, retain_graph=True, allow_unused=True)
    if grads[0] is None:
        return torch.zeros_like(input)
    return grads[0]


def autograd_derivative(latex: str, var_name: str, points: Sequence[float],
                        environment_json: str = "{}") -> torch.Tensor:
    """Derivative of *latex* at *points* computed by autograd through the generated code."""
    var = _variable(var_name)
    tree = _bind(_checked(latex), Environment.from_json(environment_json))
    others = sorted(free_variables(tree) - {var})
    if others:
        raise EvaluationError(f"Unbound variable(s): {', '.join(others)}")
    fn, _ = compile_expression(tree, [var])
    x = torch.tensor(list(points), dtype=torch.float64, requires_grad=True)
    return compute_grad(fn(x), x)
