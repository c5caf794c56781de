import abc
import operator as standard
import typing


class Ordered(abc.ABC):
    """Abstract base class for all objects that support relative ordering.

    Concrete implementations of this class must define `__lt__` and `__eq__`.
    The remaining rich comparison operators have default implementations here:

    - `__ne__`: defined as not equal.
    - `__le__`: defined as less than or equal.
    - `__gt__`: defined as not less than and not equal.
    - `__ge__`: defined as not less than.

    Any of them may return `NotImplemented` when the comparison is undefined.
    """

    __slots__ = ()

    @abc.abstractmethod
    def __lt__(self, other) -> bool:
        """True if self < other."""
        pass

    @abc.abstractmethod
    def __eq__(self, other) -> bool:
        """True if self == other."""
        pass

    def __le__(self, other) -> bool:
        """True if self <= other."""
        lt = self.__lt__(other)
        if lt is NotImplemented:
            return NotImplemented
        return lt or self.__eq__(other)

    def __gt__(self, other) -> bool:
        """True if self > other."""
        le = self.__le__(other)
        if le is NotImplemented:
            return NotImplemented
        return not le

    def __ge__(self, other) -> bool:
        """True if self >= other."""
        lt = self.__lt__(other)
        if lt is NotImplemented:
            return NotImplemented
        return not lt

    def __ne__(self, other) -> bool:
        """True if self != other."""
        eq = self.__eq__(other)
        if eq is NotImplemented:
            return NotImplemented
        return not eq


class Quantity(abc.ABC):
    """ABC for algebraic quantities.

    Concrete subclasses must define an `implement` method that computes the
    result of a given operation on specific operands. This class defines the
    unary and binary arithmetic operators in terms of that method, passing the
    standard operator and one of the following modes:

    - ``'arithmetic'``: a unary operation on `self`;
    - ``'forward'``: `self` is the left operand;
    - ``'reverse'``: `self` is the right operand.

    Concrete subclasses may return `NotImplemented` from `implement` to let
    Python try the reflected operation.
    """

    __slots__ = ()

    def __pos__(self):
        """Called for +self."""
        return self.implement(standard.pos, 'arithmetic')

    def __neg__(self):
        """Called for -self."""
        return self.implement(standard.neg, 'arithmetic')

    def __add__(self, other):
        """Called for self + other."""
        return self.implement(standard.add, 'forward', other)

    def __radd__(self, other):
        """Called for other + self."""
        return self.implement(standard.add, 'reverse', other)

    def __sub__(self, other):
        """Called for self - other."""
        return self.implement(standard.sub, 'forward', other)

    def __rsub__(self, other):
        """Called for other - self."""
        return self.implement(standard.sub, 'reverse', other)

    def __mul__(self, other):
        """Called for self * other."""
        return self.implement(standard.mul, 'forward', other)

    def __rmul__(self, other):
        """Called for other * self."""
        return self.implement(standard.mul, 'reverse', other)

    def __truediv__(self, other):
        """Called for self / other."""
        return self.implement(standard.truediv, 'forward', other)

    def __rtruediv__(self, other):
        """Called for other / self."""
        return self.implement(standard.truediv, 'reverse', other)

    def __pow__(self, other):
        """Called for self ** other."""
        return self.implement(standard.pow, 'forward', other)

    def __rpow__(self, other):
        """Called for other ** self."""
        return self.implement(standard.pow, 'reverse', other)

    @abc.abstractmethod
    def implement(self, func: typing.Callable, mode: str, *others):
        """Implement a standard operator."""
        pass

