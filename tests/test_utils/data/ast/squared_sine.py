EXPECTED = ("pow", ("call", "sin", ("mul", ("num", 2.0), ("var", "x"))), ("num", 2.0))
