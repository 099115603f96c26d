import pytest

from environment import Environment
from evaluator import evaluate
from matrix import Matrix, symbolic_determinant
from parser import parse
from utils.errors import MatrixError

A = Matrix([[1, 2], [3, 4]])


def test_construction():
    assert A.shape == (2, 2)
    assert A.is_square
    assert Matrix([1, 2, 3]).shape == (3, 1)
    assert Matrix.identity(2).tolist() == [[1.0, 0.0], [0.0, 1.0]]
    with pytest.raises(MatrixError, match="non-empty"):
        Matrix([])


def test_from_node_and_to_node():
    node = parse(r"\begin{pmatrix}x & 2 \\ 3 & x^2\end{pmatrix}")
    m = Matrix.from_node(node, lambda cell: evaluate(cell, Environment({"x": 3})))
    assert m.tolist() == [[3.0, 2.0], [3.0, 9.0]]
    assert Matrix([[0.5, -1.0]]).to_node() == ("matrix", ((("num", 0.5), ("num", -1.0)),))
    with pytest.raises(MatrixError, match="Expected a matrix"):
        Matrix.from_node(("num", 1.0), float)


def test_arithmetic():
    assert (A + A).tolist() == [[2.0, 4.0], [6.0, 8.0]]
    assert (A - A).tolist() == [[0.0, 0.0], [0.0, 0.0]]
    assert (A @ A).tolist() == [[7.0, 10.0], [15.0, 22.0]]
    assert (2 * A) == A.scale(2)
    assert (A * A) == A @ A
    assert (-A).tolist() == [[-1.0, -2.0], [-3.0, -4.0]]
    assert A.transpose().tolist() == [[1.0, 3.0], [2.0, 4.0]]


@pytest.mark.parametrize("operation, message", [
    (lambda: A + Matrix([[1, 2]]), "Cannot add"),
    (lambda: A - Matrix([[1, 2]]), "Cannot subtract"),
    (lambda: A @ Matrix([[1, 2]]), "Cannot multiply a 2x2 matrix by a 1x2 matrix"),
    (lambda: Matrix([[1, 2]]).determinant(), "requires a square matrix, got 1x2"),
    (lambda: Matrix([[1, 2]]).inverse(), "requires a square matrix"),
    (lambda: Matrix([[1, 2], [2, 4]]).inverse(), "singular"),
])
def test_shape_errors(operation, message):
    with pytest.raises(MatrixError, match=message):
        operation()


def test_power():
    assert A.power(0) == Matrix.identity(2)
    assert A.power(3).tolist() == [[37.0, 54.0], [81.0, 118.0]]
    assert A.power(-1).isclose(Matrix([[-2.0, 1.0], [1.5, -0.5]]))
    assert A.power(-2).isclose(A.inverse() @ A.inverse())


@pytest.mark.parametrize("rows, expected", [
    ([[1, 2], [3, 4]], -2.0),
    ([[2, 0, 0], [0, 3, 0], [0, 0, 4]], 24.0),
    ([[0, 1], [1, 0]], -1.0),
    ([[1, 2, 3], [4, 5, 6], [7, 8, 10]], -3.0),
    ([[1, 2], [2, 4]], 0.0),
    ([[7]], 7.0),
])
def test_determinant(rows, expected):
    assert Matrix(rows).determinant() == pytest.approx(expected)


def test_partial_pivoting():
    m = Matrix([[1e-20, 1], [1, 1]])
    assert m.determinant() == pytest.approx(-1.0)
    solution = m.solve([1.0, 2.0])
    assert solution.isclose(Matrix([[1.0], [1.0]]))


def test_inverse():
    inverse = Matrix([[2, 0], [0, 4]]).inverse()
    assert inverse.tolist() == [[0.5, 0.0], [0.0, 0.25]]
    assert (A @ A.inverse()).isclose(Matrix.identity(2))


def test_rank_and_rref():
    assert A.rank() == 2
    assert Matrix([[1, 2], [2, 4]]).rank() == 1
    assert Matrix([[0, 0], [0, 0]]).rank() == 0
    assert Matrix([[1, 2, 3], [4, 5, 6]]).rank() == 2
    assert A.rref().isclose(Matrix.identity(2))
    assert Matrix([[1, 2, 3], [2, 4, 6]]).rref().tolist() == [[1.0, 2.0, 3.0], [0.0, 0.0, 0.0]]


def test_row_echelon_counts_swaps():
    echelon, swaps = Matrix([[0, 1], [1, 0]]).row_echelon()
    assert swaps == 1
    assert echelon.tolist() == [[1.0, 0.0], [0.0, 1.0]]


def test_solve():
    solution = Matrix([[2, 1], [1, 3]]).solve(Matrix([[3], [5]]))
    assert solution.isclose(Matrix([[0.8], [1.4]]))
    both = Matrix([[2, 0], [0, 4]]).solve([[2, 4], [4, 8]])
    assert both.isclose(Matrix([[1.0, 2.0], [1.0, 2.0]]))
    with pytest.raises(MatrixError, match="singular"):
        Matrix([[1, 2], [2, 4]]).solve([1.0, 2.0])
    with pytest.raises(MatrixError, match="Right-hand side must have 2 rows"):
        A.solve([1.0, 2.0, 3.0])


def test_characteristic_polynomial():
    assert Matrix([[2, 0], [0, 3]]).characteristic_polynomial().tolist() == [1.0, -5.0, 6.0]
    assert A.characteristic_polynomial().tolist() == pytest.approx([1.0, -5.0, -2.0])


@pytest.mark.parametrize("rows, expected", [
    ([[2, 0], [0, 3]], [2.0, 3.0]),
    ([[3, 0], [0, 2]], [2.0, 3.0]),
    ([[2, 1], [0, 2]], [2.0, 2.0]),
    ([[4, 1], [2, 3]], [2.0, 5.0]),
    ([[0, -1], [1, 0]], [complex(0, -1), complex(0, 1)]),
    ([[1, 0, 0], [0, 2, 0], [0, 0, 3]], [1.0, 2.0, 3.0]),
])
def test_eigenvalues(rows, expected):
    assert Matrix(rows).eigenvalues() == expected


def test_eigenvalues_size_limit():
    with pytest.raises(MatrixError, match="up to 4x4"):
        Matrix.identity(5).eigenvalues()


def test_eigenvectors():
    pairs = Matrix([[2, 0], [0, 3]]).eigenvectors()
    assert pairs == [(2.0, [[1.0, 0.0]]), (3.0, [[0.0, 1.0]])]
    (value, vectors), = Matrix([[5, 0], [0, 5]]).eigenvectors()
    assert value == 5.0
    assert len(vectors) == 2


def test_symbolic_determinant():
    a, b, c, d = (("var", name) for name in "abcd")
    assert symbolic_determinant(((a, b), (c, d))) == ("sub", ("mul", a, d), ("mul", b, c))
    assert symbolic_determinant(((a,),)) == a


def test_symbolic_determinant_matches_numeric():
    node = parse(r"\begin{pmatrix}1 & 2 & 3 \\ 4 & 5 & 6 \\ 7 & 8 & 10\end{pmatrix}")
    expanded = symbolic_determinant(node[1])
    assert evaluate(expanded) == pytest.approx(-3.0)


def test_symbolic_determinant_limits():
    x = ("var", "x")
    with pytest.raises(MatrixError, match="square"):
        symbolic_determinant(((x, x),))
    with pytest.raises(MatrixError, match="up to 3x3"):
        symbolic_determinant(tuple((x,) * 4 for _ in range(4)))
