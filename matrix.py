from __future__ import annotations

from typing import Callable, Sequence

import numpy as np

from utils.ast_utils import ASTNode, num
from utils.constants import (DISPLAY_PRECISION, EIGEN_MAX_SIZE, EIGEN_TOLERANCE,
                             PIVOT_TOLERANCE, SYMBOLIC_DET_MAX_SIZE)
from utils.errors import MatrixError


def _clean(value: float) -> float:
    """Round away floating point noise, keeping ``DISPLAY_PRECISION`` digits."""
    value = float(f"{value:.{DISPLAY_PRECISION}g}")
    return 0.0 if value == 0.0 else value


def _snap(value: float) -> float:
    # repeated roots come back from np.roots perturbed by ~sqrt(eps)
    nearest = round(value)
    if abs(value - nearest) <= EIGEN_TOLERANCE:
        return float(nearest)
    return _clean(value)


def _eliminate(a: np.ndarray, reduced: bool) -> tuple[np.ndarray, int, list[int]]:
    """Gaussian elimination with partial pivoting.

    The largest-magnitude entry of each column (at or below the current
    row) becomes the pivot; one with magnitude below ``PIVOT_TOLERANCE``
    counts as zero and the column is skipped.

    Returns
    -------
    tuple
        ``(echelon form, number of row swaps, pivot column indices)``.
        With ``reduced=True`` the pivots are scaled to 1 and cleared above
        as well as below (Gauss-Jordan).
    """
    a = np.array(a, dtype=float)
    rows, cols = a.shape
    pivot_row = 0
    swaps = 0
    pivots = []
    for col in range(cols):
        if pivot_row >= rows:
            break
        best = pivot_row + int(np.argmax(np.abs(a[pivot_row:, col])))
        if abs(a[best, col]) < PIVOT_TOLERANCE:
            a[pivot_row:, col] = 0.0
            continue
        if best != pivot_row:
            a[[pivot_row, best]] = a[[best, pivot_row]]
            swaps += 1
        if reduced:
            a[pivot_row] = a[pivot_row] / a[pivot_row, col]
            for r in range(rows):
                if r != pivot_row:
                    a[r] = a[r] - a[r, col] * a[pivot_row]
        else:
            for r in range(pivot_row + 1, rows):
                factor = a[r, col] / a[pivot_row, col]
                a[r] = a[r] - factor * a[pivot_row]
                a[r, col] = 0.0
        pivots.append(col)
        pivot_row += 1
    return a, swaps, pivots


class Matrix:
    """Dense rectangular matrix of floats backed by a ``numpy`` array.

    Instances are treated as values: every operation returns a new matrix.

    Parameters
    ----------
    data : array-like
        Nested rows of numbers.  Must be two-dimensional and non-empty.

    Examples
    --------
    >>> m = Matrix([[1, 2], [3, 4]])
    >>> m.determinant()
    -2.0
    >>> m.transpose().tolist()
    [[1.0, 3.0], [2.0, 4.0]]
    """

    def __init__(self, data):
        array = np.array(data, dtype=float)
        if array.ndim == 1:
            array = array.reshape(-1, 1)
        if array.ndim != 2 or array.size == 0:
            raise MatrixError("A matrix must be a non-empty rectangular grid of numbers")
        self.data = array

    # Construction

    @classmethod
    def identity(cls, n: int) -> "Matrix":
        return cls(np.eye(n))

    @classmethod
    def from_node(cls, node: ASTNode, evaluate_cell: Callable[[ASTNode], float]) -> "Matrix":
        """Build a numeric matrix from a ``matrix`` node by evaluating each cell."""
        if node[0] != "matrix":
            raise MatrixError(f"Expected a matrix, got {node[0]!r}")
        return cls([[evaluate_cell(cell) for cell in row] for row in node[1]])

    def to_node(self) -> tuple:
        return ("matrix", tuple(tuple(num(_clean(v)) for v in row) for row in self.data))

    # Inspection

    @property
    def rows(self) -> int:
        return self.data.shape[0]

    @property
    def cols(self) -> int:
        return self.data.shape[1]

    @property
    def shape(self) -> tuple[int, int]:
        return self.data.shape

    @property
    def is_square(self) -> bool:
        return self.rows == self.cols

    def tolist(self) -> list[list[float]]:
        return self.data.tolist()

    def __repr__(self) -> str:
        return f"Matrix({self.tolist()!r})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.shape == other.shape and bool(np.array_equal(self.data, other.data))

    def isclose(self, other: "Matrix", tol: float = 1e-9) -> bool:
        return self.shape == other.shape and bool(np.allclose(self.data, other.data, atol=tol))

    def _require_square(self, operation: str) -> None:
        if not self.is_square:
            raise MatrixError(f"{operation} requires a square matrix, got {self.rows}x{self.cols}")

    # Arithmetic

    def __add__(self, other: "Matrix") -> "Matrix":
        if not isinstance(other, Matrix):
            return NotImplemented
        if self.shape != other.shape:
            raise MatrixError(f"Cannot add a {self.rows}x{self.cols} matrix "
                              f"and a {other.rows}x{other.cols} matrix")
        return Matrix(self.data + other.data)

    def __sub__(self, other: "Matrix") -> "Matrix":
        if not isinstance(other, Matrix):
            return NotImplemented
        if self.shape != other.shape:
            raise MatrixError(f"Cannot subtract a {other.rows}x{other.cols} matrix "
                              f"from a {self.rows}x{self.cols} matrix")
        return Matrix(self.data - other.data)

    def __matmul__(self, other: "Matrix") -> "Matrix":
        if not isinstance(other, Matrix):
            return NotImplemented
        if self.cols != other.rows:
            raise MatrixError(f"Cannot multiply a {self.rows}x{self.cols} matrix "
                              f"by a {other.rows}x{other.cols} matrix")
        return Matrix(self.data @ other.data)

    def scale(self, factor: float) -> "Matrix":
        return Matrix(self.data * float(factor))

    def __mul__(self, other):
        if isinstance(other, Matrix):
            return self @ other
        return self.scale(other)

    def __rmul__(self, other):
        return self.scale(other)

    def __neg__(self) -> "Matrix":
        return Matrix(-self.data)

    def transpose(self) -> "Matrix":
        return Matrix(self.data.T)

    def power(self, n: int) -> "Matrix":
        """Integer power; ``n = 0`` is the identity and ``n < 0`` powers the inverse."""
        self._require_square("Matrix power")
        if n < 0:
            return self.inverse().power(-n)
        result = Matrix.identity(self.rows)
        base = self
        while n:
            if n & 1:
                result = result @ base
            base = base @ base
            n >>= 1
        return result

    # Elimination

    def row_echelon(self) -> tuple["Matrix", int]:
        """Row echelon form and the number of row swaps performed."""
        reduced, swaps, _ = _eliminate(self.data, reduced=False)
        reduced[np.abs(reduced) < PIVOT_TOLERANCE] = 0.0
        return Matrix(reduced), swaps

    def rref(self) -> "Matrix":
        reduced, _, _ = _eliminate(self.data, reduced=True)
        reduced[np.abs(reduced) < PIVOT_TOLERANCE] = 0.0
        return Matrix(reduced)

    def rank(self) -> int:
        _, _, pivots = _eliminate(self.data, reduced=False)
        return len(pivots)

    def determinant(self) -> float:
        """Product of the pivots, negated once per row swap."""
        self._require_square("Determinant")
        reduced, swaps, pivots = _eliminate(self.data, reduced=False)
        if len(pivots) < self.rows:
            return 0.0
        det = _clean(float(np.prod(np.diag(reduced))))
        return -det if swaps % 2 else det

    def inverse(self) -> "Matrix":
        """Gauss-Jordan elimination on ``[A | I]``."""
        self._require_square("Inverse")
        n = self.rows
        augmented = np.hstack([self.data, np.eye(n)])
        reduced, _, pivots = _eliminate(augmented, reduced=True)
        if sum(1 for p in pivots if p < n) < n:
            raise MatrixError("Matrix is singular and has no inverse")
        return Matrix(reduced[:, n:])

    def solve(self, rhs) -> "Matrix":
        """Solve ``A x = b`` by elimination and back-substitution.

        Parameters
        ----------
        rhs : Matrix or array-like
            Right-hand side with one row per row of ``A``; several columns
            solve several systems at once.

        Returns
        -------
        Matrix
            The solution, shaped like *rhs* (a column for a vector).
        """
        self._require_square("Solving a linear system")
        n = self.rows
        b = rhs.data if isinstance(rhs, Matrix) else np.array(rhs, dtype=float)
        b = b.reshape(n, -1) if b.size % n == 0 else b
        if b.ndim != 2 or b.shape[0] != n:
            raise MatrixError(f"Right-hand side must have {n} rows")
        reduced, _, pivots = _eliminate(np.hstack([self.data, b]), reduced=False)
        if sum(1 for p in pivots if p < n) < n:
            raise MatrixError("System is singular: no unique solution")
        x = np.zeros((n, b.shape[1]))
        for i in reversed(range(n)):
            x[i] = (reduced[i, n:] - reduced[i, i + 1:n] @ x[i + 1:]) / reduced[i, i]
        return Matrix(x)

    # Spectrum

    def characteristic_polynomial(self) -> np.ndarray:
        """Coefficients of ``det(lambda I - A)``, highest degree first.

        Computed with the Faddeev-LeVerrier recurrence, so no determinant
        of a symbolic matrix is ever needed.

        Examples
        --------
        >>> Matrix([[2, 0], [0, 3]]).characteristic_polynomial().tolist()
        [1.0, -5.0, 6.0]
        """
        self._require_square("Characteristic polynomial")
        n = self.rows
        identity = np.eye(n)
        coeffs = [1.0]
        m = np.zeros((n, n))
        for k in range(1, n + 1):
            m = self.data @ m + coeffs[-1] * identity
            coeffs.append(-float(np.trace(self.data @ m)) / k)
        return np.array(coeffs)

    def eigenvalues(self) -> list:
        """Roots of the characteristic polynomial.

        Real eigenvalues come first in ascending order, followed by complex
        ones.  Matrices larger than ``EIGEN_MAX_SIZE`` are rejected.
        """
        self._require_square("Eigenvalues")
        if self.rows > EIGEN_MAX_SIZE:
            raise MatrixError(f"Eigenvalues are only supported up to "
                              f"{EIGEN_MAX_SIZE}x{EIGEN_MAX_SIZE} matrices")
        roots = np.roots(self.characteristic_polynomial())
        real, complex_ = [], []
        for root in roots:
            if abs(root.imag) <= EIGEN_TOLERANCE * max(1.0, abs(root)):
                real.append(_snap(root.real))
            else:
                complex_.append(complex(_snap(root.real), _snap(root.imag)))
        real.sort()
        complex_.sort(key=lambda z: (z.real, z.imag))
        return real + complex_

    def eigenvectors(self) -> list[tuple[float, list[list[float]]]]:
        """Basis of each real eigenspace, as ``(eigenvalue, vectors)`` pairs.

        Each basis spans the null space of ``A - lambda I``; vectors are
        scaled so their largest-magnitude component is 1.
        """
        result = []
        seen: list[float] = []
        for value in self.eigenvalues():
            if isinstance(value, complex):
                continue
            if any(abs(value - other) <= EIGEN_TOLERANCE * max(1.0, abs(value)) for other in seen):
                continue
            seen.append(value)
            shifted = self.data - value * np.eye(self.rows)
            _, singular, vh = np.linalg.svd(shifted)
            tol = EIGEN_TOLERANCE * max(1.0, float(singular[0]) if singular.size else 1.0)
            null_rank = int(np.sum(singular > tol))
            vectors = []
            for vec in vh[null_rank:]:
                vec = vec / vec[int(np.argmax(np.abs(vec)))]
                vectors.append([_clean(v) for v in vec])
            if not vectors:
                # numerically repeated roots can leave every singular value above tol
                vec = vh[-1] / vh[-1][int(np.argmax(np.abs(vh[-1])))]
                vectors.append([_clean(v) for v in vec])
            result.append((value, vectors))
        return result


def symbolic_determinant(rows: Sequence[Sequence[ASTNode]]) -> ASTNode:
    """Determinant of a matrix of expression cells by cofactor expansion.

    Only used up to ``SYMBOLIC_DET_MAX_SIZE``; the result is an unsimplified
    expression tree.

    Examples
    --------
    >>> a, b, c, d = (("var", n) for n in "abcd")
    >>> symbolic_determinant(((a, b), (c, d)))
    ('sub', ('mul', ('var', 'a'), ('var', 'd')), ('mul', ('var', 'b'), ('var', 'c')))
    """
    n = len(rows)
    if any(len(row) != n for row in rows):
        raise MatrixError(f"Determinant requires a square matrix, got {n}x{len(rows[0])}")
    if n > SYMBOLIC_DET_MAX_SIZE:
        raise MatrixError(f"Symbolic determinants are only supported up to "
                          f"{SYMBOLIC_DET_MAX_SIZE}x{SYMBOLIC_DET_MAX_SIZE} matrices")
    if n == 1:
        return rows[0][0]
    if n == 2:
        return ("sub", ("mul", rows[0][0], rows[1][1]), ("mul", rows[0][1], rows[1][0]))

    result = None
    for col in range(n):
        minor = tuple(tuple(cell for j, cell in enumerate(row) if j != col) for row in rows[1:])
        term = ("mul", rows[0][col], symbolic_determinant(minor))
        if result is None:
            result = term
        elif col % 2:
            result = ("sub", result, term)
        else:
            result = ("add", result, term)
    return result
