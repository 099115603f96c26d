"""
Engine-wide settings and lookup tables.
"""

import math

# Numerical tolerances
PIVOT_TOLERANCE = 1e-10      # |pivot| below this is treated as zero during elimination
EIGEN_TOLERANCE = 1e-6       # imaginary parts and singular values below this are zero
COMPARE_TOLERANCE = 1e-9     # equation sides closer than this are "equal"
INTEGER_TOLERANCE = 1e-12    # how close a float must be to an int to count as one

# Simplifier
MAX_SIMPLIFY_ITERATIONS = 64
MAX_EXPAND_POWER = 3         # (a + b)^n is expanded for 2 <= n <= this
MAX_POLY_DEGREE = 6          # polynomial cancellation only below this degree

# Evaluator
MAX_SUM_TERMS = 1_000_000    # summations longer than this are rejected

# Matrices
EIGEN_MAX_SIZE = 4           # characteristic polynomial used up to 4x4
SYMBOLIC_DET_MAX_SIZE = 3    # cofactor expansion for symbolic cells up to 3x3

# Output
DISPLAY_PRECISION = 15       # significant digits in numeric results

# `log` is the common (base 10) logarithm; `ln` is natural.
LOG_BASE = 10.0
BINARY_LOG_BASE = 2.0    # `lg`

CONSTANTS = {
    "pi": math.pi,
    "e": math.e,
}

# Functions the parser accepts, all unary.
FUNCTIONS = (
    "sin", "cos", "tan", "sec", "csc", "cot",
    "sinh", "cosh", "tanh", "coth",
    "arcsin", "arccos", "arctan",
    "exp", "ln", "log", "lg", "sqrt", "abs", "det",
)

# Greek letters accepted as variable names (\alpha -> "alpha").
GREEK_LETTERS = (
    "alpha", "beta", "gamma", "delta", "epsilon", "zeta", "eta", "theta",
    "iota", "kappa", "lambda", "mu", "nu", "xi", "rho", "sigma", "tau",
    "upsilon", "phi", "chi", "psi", "omega",
)

MATRIX_ENVIRONMENTS = ("pmatrix", "bmatrix", "matrix", "vmatrix")
