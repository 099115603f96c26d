from lexer import tokenize
from utils.ast_utils import num
from utils.errors import ParseError


# PARSER
# Left binding powers, low -> high.  EQUALS has no binding power: it is only
# accepted by ``Parser.parse`` at the top level.
ADDITIVE = 10
MULTIPLICATIVE = 20
UNARY = 30
POWER = 40
ATOM = 50

binding_power = {
    "PLUS": ADDITIVE,
    "MINUS": ADDITIVE,
    "TIMES": MULTIPLICATIVE,
    "DIVIDE": MULTIPLICATIVE,
    "POWER": POWER,
}

# Tokens that can begin an operand; one of these directly after an operand
# is an implicit multiplication ("2x", "x(y+1)", "3\sin x").
ATOM_START = (
    "NUMBER", "ID", "CONST", "FUNC",
    "LPAREN", "LBRACE", "LBRACKET", "LPIPE", "PIPE",
    "FRAC", "FRAC_SHORT", "SQRT", "SUM", "BEGIN",
)

CLOSING = {"LPAREN": "RPAREN", "LBRACE": "RBRACE", "LBRACKET": "RBRACKET", "LPIPE": "RPIPE"}
SYMBOLS = {"RPAREN": "')'", "RBRACE": "'}'", "RBRACKET": "']'", "RPIPE": "'\\right|'", "PIPE": "'|'"}

INVERSE_TRIG = {"sin": "arcsin", "cos": "arccos", "tan": "arctan"}


class Parser:
    """Precedence-climbing parser over the token list produced by ``lexer.tokenize``.

    Each instance parses one input; ``parse`` is the entry point and returns
    either an expression or an ``("eq", lhs, rhs)`` node.
    """

    def __init__(self, tokens, text=""):
        self.tokens = tokens
        self.text = text
        self.pos = 0
        self.abs_depth = 0

    # Token stream helpers

    def peek(self, offset=0):
        index = self.pos + offset
        if index < len(self.tokens):
            return self.tokens[index]
        return None

    def peek_type(self, offset=0):
        tok = self.peek(offset)
        return tok.type if tok is not None else None

    def advance(self):
        tok = self.peek()
        if tok is None:
            raise ParseError("Unexpected end of input", position=len(self.text))
        self.pos += 1
        return tok

    def error(self, message, tok=None):
        position = tok.lexpos if tok is not None else len(self.text)
        return ParseError(message, position=position)

    def expect(self, type_):
        tok = self.peek()
        if tok is None:
            raise self.error(f"Missing {SYMBOLS.get(type_, type_)}")
        if tok.type == "EQUALS":
            raise self.error("'=' is only allowed at the top level of an equation", tok)
        if tok.type != type_:
            raise self.error(f"Expected {SYMBOLS.get(type_, type_)} but found {describe(tok)}", tok)
        self.pos += 1
        return tok

    def left_binding_power(self, tok):
        if tok is None:
            return 0
        if tok.type in binding_power:
            return binding_power[tok.type]
        if tok.type == "PIPE" and self.abs_depth > 0:
            # closes the innermost |...|
            return 0
        if tok.type in ATOM_START:
            return MULTIPLICATIVE
        return 0

    # Grammar

    def parse(self):
        if not self.tokens:
            raise ParseError("Empty expression", position=0)
        left = self.expression(0)
        if self.peek_type() == "EQUALS":
            self.advance()
            if self.peek() is None:
                raise self.error("Equation is missing its right-hand side")
            right = self.expression(0)
            if self.peek_type() == "EQUALS":
                raise self.error("Only one '=' is allowed in an equation", self.peek())
            left = ("eq", left, right)
        tok = self.peek()
        if tok is not None:
            if tok.type in SYMBOLS:
                raise self.error(f"Unbalanced {SYMBOLS[tok.type]}", tok)
            raise self.error(f"Unexpected trailing {describe(tok)}", tok)
        return left

    def expression(self, rbp):
        tok = self.advance()
        left = self.nud(tok)
        while self.left_binding_power(self.peek()) > rbp:
            tok = self.peek()
            if tok.type in binding_power:
                self.advance()
                left = self.led(tok, left)
            else:
                left = ("mul", left, self.expression(MULTIPLICATIVE))
        return left

    def led(self, tok, left):
        if tok.type == "PLUS":
            return ("add", left, self.expression(ADDITIVE))
        if tok.type == "MINUS":
            return ("sub", left, self.expression(ADDITIVE))
        if tok.type == "TIMES":
            return ("mul", left, self.expression(MULTIPLICATIVE))
        if tok.type == "DIVIDE":
            return ("div", left, self.expression(MULTIPLICATIVE))
        # right-associative
        return ("pow", left, self.expression(POWER - 1))

    def nud(self, tok):
        kind = tok.type

        if kind == "NUMBER":
            return num(tok.value)

        if kind == "ID":
            return ("var", self.variable_name(tok.value))

        if kind == "CONST":
            return ("const", tok.value)

        if kind == "MINUS":
            if self.peek_type() == "NUMBER" and self.peek_type(1) != "POWER":
                return num(-self.advance().value)
            return ("neg", self.expression(UNARY))

        if kind == "PLUS":
            return self.expression(UNARY)

        if kind == "LPIPE":
            return ("call", "abs", self.group("RPIPE"))

        if kind in CLOSING:
            return self.group(CLOSING[kind])

        if kind == "PIPE":
            self.abs_depth += 1
            inner = self.expression(0)
            self.expect("PIPE")
            self.abs_depth -= 1
            return ("call", "abs", inner)

        if kind == "FUNC":
            return self.function_call(tok)

        if kind == "FRAC":
            numerator = self.argument()
            denominator = self.argument()
            return ("div", numerator, denominator)

        if kind == "FRAC_SHORT":
            return ("div", num(tok.value[0]), num(tok.value[1]))

        if kind == "SQRT":
            if self.peek_type() == "LBRACKET":
                self.advance()
                index = self.expression(0)
                self.expect("RBRACKET")
                return ("pow", self.argument(), ("div", num(1.0), index))
            return ("call", "sqrt", self.argument())

        if kind == "SUM":
            return self.summation(tok)

        if kind == "BEGIN":
            return self.matrix(tok)

        if kind in SYMBOLS:
            raise self.error(f"Unbalanced {SYMBOLS[kind]}", tok)
        raise self.error(f"Unexpected {describe(tok)}", tok)

    # Constructs

    def group(self, closing):
        saved_depth = self.abs_depth
        self.abs_depth = 0
        inner = self.expression(0)
        self.expect(closing)
        self.abs_depth = saved_depth
        return inner

    def argument(self):
        """A braced group or, failing that, a single atom (``\\frac12``-style)."""
        if self.peek() is None:
            raise self.error("Missing argument")
        if self.peek_type() == "LBRACE":
            self.advance()
            return self.group("RBRACE")
        return self.expression(ATOM)

    def variable_name(self, name):
        if self.peek_type() != "UNDERSCORE":
            return name
        self.advance()
        if self.peek_type() == "LBRACE":
            self.advance()
            parts = []
            while self.peek_type() in ("ID", "NUMBER", "CONST"):
                parts.append(subscript_text(self.advance()))
            self.expect("RBRACE")
        elif self.peek_type() in ("ID", "NUMBER", "CONST"):
            parts = [subscript_text(self.advance())]
        else:
            raise self.error("Expected a subscript after '_'", self.peek())
        if not parts:
            raise self.error("Empty subscript", self.peek())
        return f"{name}_{''.join(parts)}"

    def function_call(self, tok):
        name = tok.value
        power = None
        if self.peek_type() == "POWER":
            self.advance()
            power = self.argument()

        base = None
        if name == "log" and self.peek_type() == "UNDERSCORE":
            self.advance()
            base = self.argument()

        if self.peek() is None:
            raise self.error(f"Function '{name}' is missing its argument")
        if self.peek_type() in CLOSING:
            arg = self.nud(self.advance())
        else:
            arg = self.expression(UNARY)

        if power == num(-1.0) and name in INVERSE_TRIG:
            return ("call", INVERSE_TRIG[name], arg)
        if base is not None:
            call = ("div", ("call", "ln", arg), ("call", "ln", base))
        else:
            call = ("call", name, arg)
        if power is not None:
            return ("pow", call, power)
        return call

    def summation(self, tok):
        self.expect("UNDERSCORE")
        self.expect("LBRACE")
        index_tok = self.expect("ID")
        index = self.variable_name(index_tok.value)
        if self.peek_type() != "EQUALS":
            raise self.error("Summation subscript must look like 'i=<lower>'", self.peek())
        self.advance()
        lower = self.expression(0)
        self.expect("RBRACE")
        self.expect("POWER")
        upper = self.argument()
        if self.peek() is None:
            raise self.error("Summation is missing its body")
        body = self.expression(MULTIPLICATIVE - 1)
        return ("sum", index, lower, upper, body)

    def matrix(self, tok):
        env = tok.value
        rows = [[]]
        while True:
            rows[-1].append(self.expression(0))
            nxt = self.peek()
            if nxt is None:
                raise self.error(f"Missing \\end{{{env}}}")
            if nxt.type == "CELLSEP":
                self.advance()
            elif nxt.type == "ROWSEP":
                self.advance()
                if self.peek_type() == "END":
                    # trailing \\ before \end
                    self.close_matrix(env)
                    break
                rows.append([])
            elif nxt.type == "END":
                self.close_matrix(env)
                break
            elif nxt.type == "EQUALS":
                raise self.error("'=' is only allowed at the top level of an equation", nxt)
            else:
                raise self.error(f"Unexpected {describe(nxt)} in matrix", nxt)

        width = len(rows[0])
        if any(len(row) != width for row in rows):
            raise self.error("Matrix rows must all have the same length", tok)
        node = ("matrix", tuple(tuple(row) for row in rows))
        if env == "vmatrix":
            return ("call", "det", node)
        return node

    def close_matrix(self, env):
        end = self.advance()
        if end.value != env:
            raise self.error(f"\\begin{{{env}}} closed by \\end{{{end.value}}}", end)


def describe(tok):
    if tok.type == "NUMBER":
        return f"number {tok.value:g}"
    if tok.type in ("ID", "FUNC", "CONST"):
        return f"'{tok.value}'"
    if tok.type in ("BEGIN", "END"):
        return f"\\{tok.type.lower()}{{{tok.value}}}"
    return f"'{tok.value}'"


def subscript_text(tok):
    if tok.type == "NUMBER":
        value = tok.value
        return str(int(value)) if value == int(value) else str(value)
    return tok.value


def parse(text):
    """Parse a LaTeX string into an expression tree.

    Raises
    ------
    LexError
        If the text contains an unrecognised character or command.
    ParseError
        On unbalanced grouping, misplaced or repeated ``=``, trailing
        tokens, or empty input.

    Examples
    --------
    >>> parse("2x + 1")
    ('add', ('mul', ('num', 2.0), ('var', 'x')), ('num', 1.0))
    >>> parse("x + 2 = 10")
    ('eq', ('add', ('var', 'x'), ('num', 2.0)), ('num', 10.0))
    """
    return Parser(tokenize(text), text).parse()
