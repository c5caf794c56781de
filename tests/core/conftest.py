import pytest

from exalt.core import symbolic


@pytest.fixture
def x() -> symbolic.Variable:
    """The variable named 'x'."""
    return symbolic.Variable('x')


@pytest.fixture
def y() -> symbolic.Variable:
    """The variable named 'y'."""
    return symbolic.Variable('y')
