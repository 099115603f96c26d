import math

import pytest
import torch

import runtime
from utils.errors import (CodegenError, EvaluationError, IntegrationError, MatrixError,
                          ParseError, SolveError)

M = r"\begin{pmatrix}1 & 2 \\ 3 & 4\end{pmatrix}"
SYMBOLIC = r"\begin{pmatrix}a & b \\ c & d\end{pmatrix}"


def env(**values):
    return '{"vars": {%s}}' % ", ".join(f'"{k}": {v}' for k, v in values.items())


@pytest.mark.parametrize("latex, environment, expected", [
    ("x + 2", env(x=3), "5"),
    ("1/0", "{}", "NaN"),
    (r"\frac{1}{3}", "{}", "0.333333333333333"),
    ("0.1 + 0.2", "{}", "0.3"),
    ("e^{1000}", "{}", "inf"),
    (r"\sum_{i=1}^{n} i", env(n=100), "5050"),
    (M + "^{T}", "{}", r"\begin{pmatrix}1 & 3 \\ 2 & 4\end{pmatrix}"),
    (r"\det " + M, "{}", "-2"),
    ("2x = 16", "{}", "x = 8"),
    ("x + 1 = 3", env(x=2), "Equation is true: 3 = 3"),
    ("x + 1 = 4", env(x=2), "Equation is false: 3 ≠ 4"),
    ("0.1 + 0.2 = 0.3", "{}", "Equation is true: 0.3 = 0.3"),
    ("a x = 12", env(a=4), "x = 3"),
    (r"\theta + 1 = 3", "{}", r"\theta = 2"),
])
def test_evaluate(latex, environment, expected):
    assert runtime.evaluate(latex, environment) == expected


def test_evaluate_matrix_equation():
    assert runtime.evaluate(M + " = " + M).startswith("Equation is true")
    assert runtime.evaluate(M + "^{T} = " + M).startswith("Equation is false")


@pytest.mark.parametrize("latex, environment, error, message", [
    ("y", "{}", EvaluationError, "Unbound variable 'y'"),
    (r"\sqrt{-1}", "{}", EvaluationError, "sqrt of negative"),
    (M + " + 1", "{}", MatrixError, "Cannot add ℝ\\[2,2\\] and ℝ"),
    ("x + y = 3", "{}", EvaluationError, "several unbound variables: x, y"),
    ("x + 1", '{"vars": ', EvaluationError, "Malformed environment JSON"),
    ("x + 1)", "{}", ParseError, "Unbalanced"),
])
def test_evaluate_errors(latex, environment, error, message):
    with pytest.raises(error, match=message):
        runtime.evaluate(latex, environment)


@pytest.mark.parametrize("latex", [
    M + " + 1",
    M + r" \cdot \begin{pmatrix}1 & 2 & 3\end{pmatrix}",
    M + " - " + r"\begin{pmatrix}1 & 2\end{pmatrix}",
    r"\det \begin{pmatrix}1 & 2\end{pmatrix}",
])
def test_shape_mismatch_is_a_matrix_error(latex):
    with pytest.raises(MatrixError):
        runtime.evaluate(latex)


def test_compose():
    assert runtime.compose(r"\sin(x)", "x", "2x") == r"\sin\left(2x\right)"
    assert runtime.compose("x^2 + x", "x", "y + 1") == r"\left(y + 1\right)^{2} + \left(y + 1\right)"
    assert runtime.compose(r"\sum_{x=1}^{3} x", "x", "y") == r"\sum_{x=1}^{3} x"
    with pytest.raises(ParseError, match="not a variable name"):
        runtime.compose("x", "2x", "y")


def test_compose_multiple():
    assert runtime.compose_multiple([("x + 1", "x"), ("u^2", "u"), (r"\sin v", "v")]) == \
        r"\sin\left(\left(x + 1\right)^{2}\right)"
    assert runtime.compose_multiple([("2x", "x")]) == "2x"
    with pytest.raises(ParseError, match="No functions"):
        runtime.compose_multiple([])
    with pytest.raises(ParseError, match="not a variable name"):
        runtime.compose_multiple([("x", "x"), ("u", "2u")])


def test_differentiate():
    assert runtime.differentiate("x^2", "x") == r"2x^{1} \cdot 1"
    assert runtime.simplify(runtime.differentiate("x^2", "x")) == "2x"
    assert runtime.simplify(runtime.differentiate("x^3", "x", 2)) == "6x"
    assert runtime.differentiate("y", "x") == "0"


def test_integrate():
    assert runtime.integrate("3x^2", "x") == "x^{3}"
    with pytest.raises(IntegrationError):
        runtime.integrate(r"e^{x^2}", "x")


@pytest.mark.parametrize("latex, lower, upper, environment, expected", [
    ("x^2", 0, 3, "{}", "9"),
    (r"\sin x", "0", r"\pi", "{}", "2"),
    ("x", "0", "b", env(b=2), "2"),
    ("k", 1, 4, env(k=2), "6"),
])
def test_definite_integral(latex, lower, upper, environment, expected):
    assert runtime.definite_integral(latex, "x", lower, upper, environment) == expected


@pytest.mark.parametrize("latex, expected", [
    ("x + x", "2x"),
    ("(x + 1)^2", "x^{2} + 2x + 1"),
    (r"\frac{x^2 - 1}{x - 1}", "x + 1"),
    ("x + x = 4", "2x = 4"),
])
def test_simplify(latex, expected):
    assert runtime.simplify(latex) == expected


def test_solve():
    assert runtime.solve("x + 2 = 10", "x") == "8"
    assert runtime.solve("a x = b", "x") == r"\frac{b}{a}"
    assert runtime.solve(r"\frac{1}{2} = \frac{\theta}{4}", r"\theta") == "2"
    with pytest.raises(SolveError):
        runtime.solve("y = 1", "x")


def test_solve_system():
    assert runtime.solve_system(["x + y = 3", "x - y = 1"]) == "x = 2, y = 1"
    assert runtime.solve_system(["x + y = 3", "x - y = 1"], ["y", "x"]) == "y = 1, x = 2"
    with pytest.raises(MatrixError):
        runtime.solve_system(["x + y = 1", "2x + 2y = 2"])


def test_determinant():
    assert runtime.determinant(M) == "-2"
    assert runtime.determinant(r"\begin{vmatrix}1 & 2 \\ 3 & 4\end{vmatrix}") == "-2"
    assert runtime.determinant(SYMBOLIC) == r"a \cdot d - b \cdot c"
    assert runtime.determinant(SYMBOLIC, env(a=1)) == r"d - b \cdot c"
    assert runtime.determinant(SYMBOLIC, env(a=1, b=2, c=3, d=4)) == "-2"
    with pytest.raises(MatrixError, match="square"):
        runtime.determinant(r"\begin{pmatrix}1 & 2\end{pmatrix}")


def test_matrix_operations():
    assert runtime.inverse(r"\begin{pmatrix}2 & 0 \\ 0 & 4\end{pmatrix}") == \
        r"\begin{pmatrix}0.5 & 0 \\ 0 & 0.25\end{pmatrix}"
    assert runtime.rank(r"\begin{pmatrix}1 & 2 \\ 2 & 4\end{pmatrix}") == "1"
    assert runtime.rref(M) == r"\begin{pmatrix}1 & 0 \\ 0 & 1\end{pmatrix}"
    assert runtime.eigenvalues(r"\begin{pmatrix}2 & 0 \\ 0 & 3\end{pmatrix}") == "2, 3"
    assert runtime.eigenvalues(r"\begin{pmatrix}0 & -1 \\ 1 & 0\end{pmatrix}") == "0 - 1i, 0 + 1i"
    assert runtime.matrix_multiply(M, r"\begin{pmatrix}1 \\ 1\end{pmatrix}") == \
        r"\begin{pmatrix}3 \\ 7\end{pmatrix}"
    assert runtime.solve_matrix_system(r"\begin{pmatrix}2 & 0 \\ 0 & 4\end{pmatrix}",
                                       r"\begin{pmatrix}2 \\ 8\end{pmatrix}") == \
        r"\begin{pmatrix}1 \\ 2\end{pmatrix}"


def test_matrix_cells_use_environment():
    assert runtime.rank(r"\begin{pmatrix}1 & k \\ 2 & 4\end{pmatrix}", env(k=2)) == "1"
    assert runtime.inverse(r"\begin{pmatrix}k\end{pmatrix}", env(k=4)) == r"\begin{pmatrix}0.25\end{pmatrix}"


@pytest.mark.parametrize("operation, message", [
    (lambda: runtime.inverse(r"\begin{pmatrix}1 & 2 \\ 2 & 4\end{pmatrix}"), "singular"),
    (lambda: runtime.rank("5"), "Expected a matrix, got the number 5"),
    (lambda: runtime.matrix_multiply(M, r"\begin{pmatrix}1 & 1\end{pmatrix}"), "Cannot multiply"),
    (lambda: runtime.eigenvalues(r"\begin{pmatrix}1 & 2\end{pmatrix}"), "square"),
])
def test_matrix_errors(operation, message):
    with pytest.raises(MatrixError, match=message):
        operation()


def test_safe_div():
    result = runtime.safe_div(torch.tensor([1.0, 1.0, 0.0]), torch.tensor([2.0, 0.0, 0.0]))
    assert result.dtype == torch.float64
    assert result[0].item() == 0.5
    assert torch.isnan(result[1:]).all()
    assert math.isnan(runtime.safe_div(1.0, 0.0).item())


def test_summation():
    total = runtime.summation(lambda i: i, 1, 4)
    assert total.item() == 10.0
    assert runtime.summation(lambda i: i, 3, 2).item() == 0.0
    with pytest.raises(EvaluationError, match="more than"):
        runtime.summation(lambda i: i, 0, 10 ** 7)


def test_sample():
    assert torch.equal(runtime.sample("x^2 + 1", {"x": [0.0, 1.0, 2.0]}),
                       torch.tensor([1.0, 2.0, 5.0], dtype=torch.float64))
    values = runtime.sample(r"\frac{1}{x}", {"x": [0.0, 2.0]})
    assert math.isnan(values[0].item()) and values[1].item() == 0.5
    shifted = runtime.sample("x + y", {"x": [1.0, 2.0]}, env(y=10))
    assert shifted.tolist() == [11.0, 12.0]
    assert runtime.sample("3", {"x": [1.0, 2.0, 3.0]}).tolist() == [3.0, 3.0, 3.0]
    assert runtime.sample(r"\sum_{i=1}^{3} i x", {"x": [1.0, 2.0]}).tolist() == [6.0, 12.0]


def test_sample_matches_scalar_evaluation():
    latex = r"\sin(x) + \frac{x^2}{2} - e^{-x}"
    points = [0.25, 0.5, 1.5]
    values = runtime.sample(latex, {"x": points})
    for value, at in zip(values.tolist(), points):
        assert value == pytest.approx(float(runtime.evaluate(latex, env(x=at))))


def test_sample_errors():
    with pytest.raises(CodegenError, match="Missing parameter"):
        runtime.sample("x + z", {"x": [1.0]})
    with pytest.raises(MatrixError, match="Cannot add"):
        runtime.sample(M + " + 1", {"x": [1.0]})


def test_compute_grad():
    x = torch.tensor(2.0, requires_grad=True)
    assert runtime.compute_grad(x ** 2, x).item() == 4.0
    xs = torch.tensor([1.0, 3.0], requires_grad=True)
    assert runtime.compute_grad(xs ** 2, xs).tolist() == [2.0, 6.0]
    a = torch.tensor(1.0, requires_grad=True)
    b = torch.tensor(2.0, requires_grad=True)
    assert runtime.compute_grad(a * 2, b).item() == 0.0


def test_autograd_derivative():
    grads = runtime.autograd_derivative(r"\sin x", "x", [0.0, 1.0])
    assert grads.tolist() == pytest.approx([1.0, math.cos(1.0)])
    assert runtime.autograd_derivative("x^3", "x", [2.0]).tolist() == pytest.approx([12.0])
    assert runtime.autograd_derivative("x y", "x", [1.0], env(y=3)).tolist() == pytest.approx([3.0])
    with pytest.raises(EvaluationError, match="Unbound variable"):
        runtime.autograd_derivative("x y", "x", [1.0])
