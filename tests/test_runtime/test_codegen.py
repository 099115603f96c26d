import math

import pytest
import torch

from codegen import ast_to_torch_expr, compile_expression, from_ast_to_torch, generate_function, mangle
from environment import Environment
from evaluator import evaluate
from parser import parse
from utils.errors import CodegenError


def test_mangle():
    assert mangle("x") == "v_x"
    assert mangle("theta_1") == "v_theta_1"


@pytest.mark.parametrize("node, expected", [
    (("add", ("num", 1.0), ("var", "x")), "(1.0 + v_x)"),
    (("neg", ("var", "x")), "(-v_x)"),
    (("num", float("nan")), "float('nan')"),
    (("num", float("-inf")), "float('-inf')"),
    (("div", ("var", "a"), ("var", "b")), "safe_div(v_a, v_b)"),
    (("const", "pi"), repr(math.pi)),
    (("call", "ln", ("var", "x")), "torch.log(torch.as_tensor(v_x, dtype=torch.float64))"),
    (("call", "log", ("var", "x")), "torch.log10(torch.as_tensor(v_x, dtype=torch.float64))"),
    (("call", "sec", ("var", "x")),
     "safe_div(1.0, torch.cos(torch.as_tensor(v_x, dtype=torch.float64)))"),
    (("pow", ("var", "x"), ("num", 2.0)),
     "torch.pow(torch.as_tensor(v_x, dtype=torch.float64), 2.0)"),
    (("sum", "i", ("num", 1.0), ("num", 3.0), ("var", "i")), "summation(lambda v_i: v_i, 1, 3)"),
])
def test_ast_to_torch_expr(node, expected):
    assert ast_to_torch_expr(node) == expected


def test_generate_function():
    source = generate_function("g", parse("x + y"), ["y", "x"])
    assert source == "def g(v_y, v_x):\n    return (v_x + v_y)"


def test_from_ast_to_torch():
    code, params = from_ast_to_torch(parse("2x"))
    assert params == ["x"]
    assert code == ("import torch\n\nfrom runtime import safe_div, summation\n\n"
                    "def f(v_x):\n    return (2.0 * v_x)")


def test_from_ast_to_torch_prints_code(capsys):
    from_ast_to_torch(parse("x"), print_code=True)
    out = capsys.readouterr().out
    assert "=== arithma generated Pytorch code ===" in out
    assert "def f(v_x):" in out


def test_extra_parameters_are_allowed():
    _, params = from_ast_to_torch(parse("x"), ["x", "unused"])
    assert params == ["x", "unused"]


@pytest.mark.parametrize("latex, params, message", [
    (r"\begin{pmatrix}1 & 2\end{pmatrix}", None, "Matrix has no tensor translation"),
    (r"\det \begin{pmatrix}1\end{pmatrix}", None, "Matrix has no tensor translation"),
    ("x = 1", None, "An equation has no tensor translation"),
    (r"\sum_{i=1}^{n} i", ["n"], "bounds must be constant"),
    (r"\sum_{i=1}^{2.5} i", None, "bounds must be integers"),
    ("x + y", ["x"], r"Missing parameter\(s\) for free variable\(s\): y"),
])
def test_codegen_errors(latex, params, message):
    with pytest.raises(CodegenError, match=message):
        from_ast_to_torch(parse(latex), params)


@pytest.mark.parametrize("latex", [
    r"x^3 - 2x + 1",
    r"\frac{x + 1}{x^2 + 2}",
    r"\sin x + \cos x + \tan x",
    r"\sec x + \csc x + \cot x",
    r"\sinh x - \cosh x + \tanh x",
    r"\coth x + \lg x",
    r"\arcsin x + \arccos x + \arctan x",
    r"e^{-x} + \exp(x)",
    r"\ln x + \log x",
    r"\sqrt{x} + |x - 1|",
    r"2^{x} \pi",
    r"\sum_{i=1}^{4} \frac{x^i}{i}",
    "-x^2",
])
def test_generated_code_matches_evaluator(latex):
    tree = parse(latex)
    fn, _ = compile_expression(tree)
    points = [0.2, 0.5, 0.9]
    values = fn(torch.tensor(points, dtype=torch.float64))
    for value, at in zip(values.tolist(), points):
        assert value == pytest.approx(evaluate(tree, Environment({"x": at})))


def test_division_by_zero_gives_nan_elementwise():
    fn, params = compile_expression(parse(r"\frac{x}{y}"))
    assert params == ["x", "y"]
    result = fn(torch.tensor([1.0, 2.0], dtype=torch.float64), torch.tensor([0.0, 4.0], dtype=torch.float64))
    assert math.isnan(result[0].item())
    assert result[1].item() == 0.5


def test_generated_code_is_differentiable():
    fn, _ = compile_expression(parse(r"x^2 \sin x"))
    x = torch.tensor([0.5, 1.0], dtype=torch.float64, requires_grad=True)
    (grad,) = torch.autograd.grad(fn(x).sum(), x)
    expected = [2 * v * math.sin(v) + v ** 2 * math.cos(v) for v in (0.5, 1.0)]
    assert grad.tolist() == pytest.approx(expected)
