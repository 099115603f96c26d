import math

import pytest

from lexer import tokenize
from utils.errors import LexError


def kinds(text):
    return [tok.type for tok in tokenize(text)]


def values(text):
    return [tok.value for tok in tokenize(text)]


@pytest.mark.parametrize("text, expected", [
    ("2xy", ["NUMBER", "ID", "ID"]),
    ("x + 1", ["ID", "PLUS", "NUMBER"]),
    (r"a \cdot b \times c \div d", ["ID", "TIMES", "ID", "TIMES", "ID", "DIVIDE", "ID"]),
    (r"\left( x \right)", ["LPAREN", "ID", "RPAREN"]),
    (r"\left[ x \right]", ["LBRACKET", "ID", "RBRACKET"]),
    (r"\left| x \right|", ["LPIPE", "ID", "RPIPE"]),
    ("|x|", ["PIPE", "ID", "PIPE"]),
    (r"1 & 2 \\ 3", ["NUMBER", "CELLSEP", "NUMBER", "ROWSEP", "NUMBER"]),
    (r"\frac{a}{b}", ["FRAC", "LBRACE", "ID", "RBRACE", "LBRACE", "ID", "RBRACE"]),
    (r"\sqrt[3]{x}", ["SQRT", "LBRACKET", "NUMBER", "RBRACKET", "LBRACE", "ID", "RBRACE"]),
    (r"\sum_{i=1}^{n}", ["SUM", "UNDERSCORE", "LBRACE", "ID", "EQUALS", "NUMBER", "RBRACE",
                         "POWER", "LBRACE", "ID", "RBRACE"]),
    (r"x \, + \; y \quad \qquad \! z", ["ID", "PLUS", "ID", "ID"]),
])
def test_token_types(text, expected):
    assert kinds(text) == expected


def test_letters_split_into_function_names_first():
    assert values("sinx") == ["sin", "x"]
    assert kinds("sinx") == ["FUNC", "ID"]
    assert values("arcsinx") == ["arcsin", "x"]
    assert values("coshx") == ["cosh", "x"]
    assert values("lnx") == ["ln", "x"]


def test_bare_e_is_eulers_number():
    assert kinds("e") == ["CONST"]
    assert kinds("2e") == ["NUMBER", "CONST"]
    assert kinds(r"\mathrm{e}") == ["CONST"]


def test_commands():
    assert tokenize(r"\pi")[0].type == "CONST"
    assert tokenize(r"\alpha")[0].value == "alpha"
    assert tokenize(r"\sin")[0].type == "FUNC"
    assert tokenize(r"\det")[0].type == "FUNC"
    assert tokenize(r"\dfrac")[0].type == "FRAC"
    assert math.isinf(tokenize(r"\infty")[0].value)
    assert math.isnan(tokenize(r"\mathrm{NaN}")[0].value)
    assert tokenize(r"\mathrm{rate}")[0].value == "rate"


def test_short_fraction():
    tok = tokenize(r"\frac34")[0]
    assert tok.type == "FRAC_SHORT"
    assert tok.value == (3.0, 4.0)


def test_numbers():
    assert values("3.5 .5 10") == [3.5, 0.5, 10.0]


def test_matrix_environment():
    toks = tokenize(r"\begin{pmatrix}1\end{pmatrix}")
    assert [t.type for t in toks] == ["BEGIN", "NUMBER", "END"]
    assert toks[0].value == "pmatrix"


def test_unsupported_environment():
    with pytest.raises(LexError, match="Unsupported environment 'align'"):
        tokenize(r"\begin{align}x\end{align}")


def test_unknown_command_reports_position():
    with pytest.raises(LexError) as excinfo:
        tokenize(r"x + \foo")
    assert excinfo.value.position == 4
    assert "\\foo" in str(excinfo.value)


def test_illegal_character():
    with pytest.raises(LexError) as excinfo:
        tokenize("x $ 1")
    assert excinfo.value.position == 2


def test_token_positions():
    toks = tokenize("ab + 12")
    assert [t.lexpos for t in toks] == [0, 1, 3, 5]


def test_each_call_is_independent():
    first = tokenize("x + 1")
    tokenize(r"\sin y")
    assert [t.type for t in first] == ["ID", "PLUS", "NUMBER"]
    assert kinds("") == []
