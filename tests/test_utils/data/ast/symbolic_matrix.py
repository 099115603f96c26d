EXPECTED = (
    "matrix",
    (
        (("var", "a"), ("num", 2.0)),
        (("num", 3.0), ("var", "b")),
    ),
)
