import ply.lex as lex

from utils.constants import FUNCTIONS, GREEK_LETTERS, MATRIX_ENVIRONMENTS
from utils.errors import LexError

tokens = (
    "NUMBER", "ID", "CONST", "FUNC",
    "PLUS", "MINUS", "TIMES", "DIVIDE", "POWER", "UNDERSCORE", "EQUALS",
    "LPAREN", "RPAREN", "LBRACE", "RBRACE", "LBRACKET", "RBRACKET",
    "PIPE", "LPIPE", "RPIPE",
    "FRAC", "FRAC_SHORT", "SQRT", "SUM",
    "BEGIN", "END", "ROWSEP", "CELLSEP",
    "LETTERS",
)

# Multi-letter words are resolved by LatexLexer, longest function name first.
_FUNCTIONS_BY_LENGTH = sorted(FUNCTIONS, key=len, reverse=True)

t_PLUS       = r"\+"
t_MINUS      = r"-"
t_TIMES      = r"\*"
t_DIVIDE     = r"/"
t_POWER      = r"\^"
t_UNDERSCORE = r"_"
t_EQUALS     = r"="
t_LBRACE     = r"\{"
t_RBRACE     = r"\}"
t_CELLSEP    = r"&"

t_ignore = " \t\r\n"


def t_ROWSEP(t):
    r"\\\\"
    return t

def t_SPACING(t):
    r"\\(,|;|:|!|\ |quad\b|qquad\b)"
    pass  # LaTeX spacing commands carry no meaning

def t_BEGIN(t):
    r"\\begin\s*\{\s*[a-zA-Z*]+\s*\}"
    t.value = t.value[t.value.index("{") + 1:-1].strip()
    if t.value not in MATRIX_ENVIRONMENTS:
        raise LexError(f"Unsupported environment '{t.value}'", position=t.lexpos)
    return t

def t_END(t):
    r"\\end\s*\{\s*[a-zA-Z*]+\s*\}"
    t.value = t.value[t.value.index("{") + 1:-1].strip()
    return t

def t_LPAREN(t):
    r"\\left\s*\(|\("
    return t

def t_RPAREN(t):
    r"\\right\s*\)|\)"
    return t

def t_LBRACKET(t):
    r"\\left\s*\[|\["
    return t

def t_RBRACKET(t):
    r"\\right\s*\]|\]"
    return t

def t_LPIPE(t):
    r"\\left\s*\|"
    return t

def t_RPIPE(t):
    r"\\right\s*\|"
    return t

def t_PIPE(t):
    r"\|"
    return t

def t_MATHRM(t):
    r"\\(mathrm|operatorname)\s*\{\s*[a-zA-Z]+\s*\}"
    word = t.value[t.value.index("{") + 1:-1].strip()
    if word == "e":
        t.type, t.value = "CONST", "e"
    elif word == "NaN":
        t.type, t.value = "NUMBER", float("nan")
    elif word in FUNCTIONS:
        t.type, t.value = "FUNC", word
    else:
        t.type, t.value = "ID", word
    return t

def t_FRAC_SHORT(t):
    r"\\[dt]?frac\s*[0-9][0-9]"
    digits = t.value[-2:]
    t.value = (float(digits[0]), float(digits[1]))
    return t

def t_COMMAND(t):
    r"\\[a-zA-Z]+"
    name = t.value[1:]
    if name in ("frac", "dfrac", "tfrac"):
        t.type = "FRAC"
    elif name == "sqrt":
        t.type = "SQRT"
    elif name == "sum":
        t.type = "SUM"
    elif name in ("cdot", "times"):
        t.type = "TIMES"
    elif name == "div":
        t.type = "DIVIDE"
    elif name == "pi":
        t.type, t.value = "CONST", "pi"
    elif name == "infty":
        t.type, t.value = "NUMBER", float("inf")
    elif name in FUNCTIONS:
        t.type, t.value = "FUNC", name
    elif name in GREEK_LETTERS:
        t.type, t.value = "ID", name
    else:
        raise LexError(f"Unknown control sequence '{t.value}'", position=t.lexpos)
    return t

def t_NUMBER(t):
    r"\d+(\.\d*)?|\.\d+"
    t.value = float(t.value)
    return t

def t_LETTERS(t):
    r"[a-zA-Z]+"
    return t

def t_error(t):
    raise LexError(f"Illegal character '{t.value[0]}'", position=t.lexpos)

_raw_lexer = lex.lex()


def _make_token(type_, value, lexpos):
    tok = lex.LexToken()
    tok.type = type_
    tok.value = value
    tok.lineno = 1
    tok.lexpos = lexpos
    return tok


class LatexLexer:
    """Wrapper lexer that splits runs of letters into single-letter
    variables and function names.

    ``2xy`` becomes ``NUMBER ID ID`` and ``sinx`` becomes ``FUNC ID``.  A
    bare ``e`` is Euler's number and is emitted as ``CONST``.
    """

    def __init__(self, lexer):
        self.lexer = lexer
        self.token_queue = []

    def input(self, data):
        self.lexer.input(data)
        self.token_queue = []

    def token(self):
        if self.token_queue:
            return self.token_queue.pop(0)

        tok = self.lexer.token()
        if tok is None or tok.type != "LETTERS":
            return tok

        self.token_queue.extend(self._split_letters(tok.value, tok.lexpos))
        return self.token_queue.pop(0)

    def __iter__(self):
        while True:
            tok = self.token()
            if tok is None:
                return
            yield tok

    @staticmethod
    def _split_letters(word, lexpos):
        result = []
        i = 0
        while i < len(word):
            for name in _FUNCTIONS_BY_LENGTH:
                if word.startswith(name, i):
                    result.append(_make_token("FUNC", name, lexpos + i))
                    i += len(name)
                    break
            else:
                letter = word[i]
                if letter == "e":
                    result.append(_make_token("CONST", "e", lexpos + i))
                else:
                    result.append(_make_token("ID", letter, lexpos + i))
                i += 1
        return result


def tokenize(text):
    """Tokenize a LaTeX string into a list of ``ply`` tokens.

    Each call works on its own clone of the lexer, so concurrent callers
    never share scanner state.

    Raises
    ------
    LexError
        On an unrecognised character or control sequence.
    """
    lexer = LatexLexer(_raw_lexer.clone())
    lexer.input(text)
    return list(lexer)

