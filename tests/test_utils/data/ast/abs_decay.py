EXPECTED = (
    "add",
    ("call", "abs", ("sub", ("var", "x"), ("num", 1.0))),
    ("pow", ("const", "e"), ("neg", ("var", "x"))),
)
