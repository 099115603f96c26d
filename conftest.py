import pytest

from parser import parse
from utils.print_utils import to_latex


@pytest.fixture()
def roundtrip():
    """Parse, render and parse again."""
    def _roundtrip(latex):
        return parse(to_latex(parse(latex)))
    return _roundtrip
