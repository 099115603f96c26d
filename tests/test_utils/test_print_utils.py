import pytest
import torch

from parser import parse
from utils.ast_utils import structurally_equal
from utils.print_utils import _from_torch, _pformat, format_number, print_errors, to_latex


ROUND_TRIP = [
    "x^2 + 3x - 1",
    "2^{3^{2}}",
    "-x^2",
    "(-2)^2",
    "-3x",
    "x - (-3)",
    "a - (b - c)",
    "a + -b",
    "--x",
    "-(a + b)",
    "a / b / c",
    r"a \cdot (b \cdot c)",
    r"2 \cdot 3",
    r"\frac{1}{x + 1}",
    r"\sin(x)\cos(x)",
    r"2\sin x",
    r"\sin x^2",
    r"\sin(x)^2",
    r"\sqrt{x + 1}",
    r"\sqrt[3]{x}",
    r"\log_{2} x",
    r"\log x + \ln x",
    r"\alpha + \theta_1",
    r"x_{ab} y",
    r"\mathrm{rate} \cdot t",
    r"\sum_{i=1}^{n} i^2 + 1",
    r"x \sum_{i=1}^{3} i",
    r"\sum_{i=1}^{3} i \cdot \sum_{j=1}^{2} j",
    r"\begin{pmatrix}1 & x \\ 2 & 3\end{pmatrix}",
    r"\begin{vmatrix}a & b \\ c & d\end{vmatrix}",
    "x + 2 = 10",
    "e^{-x}",
    r"\pi r^2",
    r"|x - 1| + \left|y\right|",
    r"\mathrm{NaN}",
    "1.5x",
    "0.00001",
    r"\arcsin x + \cosh(2x)",
]


@pytest.mark.parametrize("latex", ROUND_TRIP)
def test_render_parse_round_trip(latex):
    """Rendering a parsed tree and parsing it again gives an equal tree."""
    tree = parse(latex)
    assert structurally_equal(parse(to_latex(tree)), tree)


@pytest.mark.parametrize("latex, expected", [
    ("3x^2 + 1", "3x^{2} + 1"),
    (r"\frac{1}{x}", r"\frac{1}{x}"),
    ("-(a + b)", r"-\left(a + b\right)"),
    ("x - (y + 1)", r"x - \left(y + 1\right)"),
    (r"\sin x", r"\sin\left(x\right)"),
    (r"\sqrt{2}", r"\sqrt{2}"),
    ("|x|", r"\left|x\right|"),
    (r"\theta_1", r"\theta_{1}"),
    ("x + 2 = 10", "x + 2 = 10"),
    (r"\begin{bmatrix}1 & 2 \\ 3 & 4\end{bmatrix}", r"\begin{pmatrix}1 & 2 \\ 3 & 4\end{pmatrix}"),
])
def test_to_latex(latex, expected):
    assert to_latex(parse(latex)) == expected


@pytest.mark.parametrize("value, expected", [
    (5.0, "5"),
    (-2.0, "-2"),
    (0.1 + 0.2, "0.3"),
    (1 / 3, "0.333333333333333"),
    (float("nan"), "NaN"),
    (float("inf"), "inf"),
    (float("-inf"), "-inf"),
    (-0.0, "0"),
    (complex(1.0, -2.0), "1 - 2i"),
    (complex(0.0, 1.0), "0 + 1i"),
])
def test_format_number(value, expected):
    assert format_number(value) == expected


def test_pformat_wraps_long_trees():
    tree = parse(r"\sin(x) + \cos(y) + \tan(z) + \sqrt{w} + \ln(v) + \exp(u)")
    text = _pformat(tree)
    assert "\n" in text
    assert text.startswith("(")
    assert _pformat(("num", 3.0)) == "('num', 3.0)"


def test_from_torch():
    assert _from_torch(torch.tensor(3.0)) == 3.0
    assert _from_torch(torch.tensor([1.0, 2.0])) == [1.0, 2.0]
    assert _from_torch(7) == 7


def test_print_errors_without_errors(capsys):
    print_errors([])
    assert "No errors found" in capsys.readouterr().out


def test_print_errors_exits_with_status_one(capsys):
    with pytest.raises(SystemExit) as excinfo:
        print_errors(["Parse Error: Unbalanced ')'"])
    assert excinfo.value.code == 1
    out = capsys.readouterr().out
    assert "✗ Parse Error: Unbalanced ')'" in out
    assert "1 error(s) found." in out
