import abc
import fractions
import functools
import itertools
import math
import numbers
import operator as standard
import typing

from exalt.core import algebraic
from exalt.core import iterables


_SERIAL = itertools.count()
"""Source of first-seen construction order for all nodes."""


class ParsingError(Exception):
    """Base class for exceptions encountered during symbolic parsing."""

    def __init__(self, arg: typing.Any) -> None:
        super().__init__(arg)
        self.arg = arg

    def __str__(self) -> str:
        return f"Can't parse {self.arg!r}"


class MalformedNumber(ParsingError, ValueError):
    """The string does not represent a valid number."""

    def __str__(self) -> str:
        return f"The number {self.arg!r} is malformed"


class DivisionByZero(ZeroDivisionError):
    """An operation requested a zero denominator."""

    def __init__(self, numerator: typing.Any=None) -> None:
        super().__init__(numerator)
        self.numerator = numerator

    def __str__(self) -> str:
        if self.numerator is None:
            return "Division by zero"
        return f"Can't divide {self.numerator} by zero"


class UndefinedPower(ArithmeticError):
    """Zero raised to a zero or negative power."""

    def __init__(self, base: typing.Any, exponent: typing.Any) -> None:
        super().__init__(base, exponent)
        self.base = base
        self.exponent = exponent

    def __str__(self) -> str:
        return f"{self.base} raised to the power {self.exponent} is undefined"


class UnboundVariable(LookupError):
    """No value was given for a variable during evaluation."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"No value for variable {self.name!r}"


STYLES = {
    None: 'text',
    'text': 'text',
    'tex': 'tex',
    'latex': 'tex',
    'function': 'function',
}
"""Accepted names of formatting styles, mapped to the canonical name."""


def _normalize_style(style: typing.Optional[str]) -> str:
    """Convert a user-provided style name to its canonical name."""
    key = style.lower() if isinstance(style, str) else style
    if key in STYLES:
        return STYLES[key]
    raise ValueError(f"Unknown formatting style {style!r}") from None


Bindings = typing.Union[
    typing.Mapping[str, typing.Any],
    typing.Iterable[typing.Tuple[str, typing.Any]],
]


class Expression(algebraic.Quantity, iterables.ReprStrMixin):
    """Base class for immutable symbolic expressions.

    The concrete variants are `Rational`, `Variable`, `Power`, `Product`, and
    `Sum`. Instances support the standard arithmetic operators, each of which
    builds its result with the smart constructors (`make_sum`, `make_product`,
    `make_power`) and is therefore in canonical form. Two expressions are equal
    if and only if their canonical trees are structurally equal.
    """

    def __init__(self) -> None:
        self._serial = next(_SERIAL)
        self._height = 0

    @property
    def serial(self) -> int:
        """The first-seen construction order of this node."""
        return self._serial

    @property
    def height(self) -> int:
        """The number of levels below this node (zero for a leaf)."""
        return self._height

    @abc.abstractmethod
    def __eq__(self, other) -> bool:
        """True if two expressions have the same canonical structure."""
        pass

    @abc.abstractmethod
    def __hash__(self) -> int:
        pass

    def implement(self, func: typing.Callable, mode: str, *others):
        """Build the result of a standard operator in canonical form."""
        if mode == 'arithmetic':
            if func is standard.pos:
                return self
            if func is standard.neg:
                return negate(self)
            return NotImplemented
        try:
            other = expressify(others[0])
        except TypeError:
            return NotImplemented
        if mode == 'forward':
            return _combine(func, self, other)
        if mode == 'reverse':
            return _combine(func, other, self)
        return NotImplemented

    def reciprocal(self) -> 'Expression':
        """Return ``1 / self``."""
        return make_product([ONE], [self])

    def evaluate(self, bindings: Bindings=(), **values) -> 'Expression':
        """Substitute values for variables and recombine the result.

        Parameters
        ----------
        bindings : mapping or iterable of pairs, optional
            The values to substitute, by variable name. If a name appears more
            than once, the first value wins.

        **values
            Additional values to substitute, by variable name. These come after
            `bindings` in order of precedence.

        Returns
        -------
        `~symbolic.Expression`
            The canonical result of substitution. It is an instance of
            `~symbolic.Rational` when every variable has a rational value.

        Raises
        ------
        `~symbolic.UnboundVariable`
            At the first variable without a value.
        """
        return self._substitute(resolve(bindings, values))

    @abc.abstractmethod
    def _substitute(
        self,
        values: typing.Mapping[str, 'Expression'],
    ) -> 'Expression':
        """Internal implementation of `evaluate`."""
        pass

    @abc.abstractmethod
    def simplify(self) -> 'Expression':
        """Reduce the complexity of this expression by applying exponent laws."""
        pass

    def format(self, style: str=None) -> str:
        """Format this expression for printing.

        Parameters
        ----------
        style : {None, 'text', 'tex', 'latex', 'function'}
            The output format. The default (equivalent to ``'text'``) produces
            the form that `str` returns. The ``'tex'`` (or ``'latex'``) style
            produces LaTeX markup, and the ``'function'`` style produces a
            nested form that shows the canonical structure.
        """
        name = _normalize_style(style)
        if name == 'function':
            return self._function()
        return self._format(name)

    @abc.abstractmethod
    def _format(self, style: str) -> str:
        """Format this expression as plain text or LaTeX."""
        pass

    @abc.abstractmethod
    def _function(self) -> str:
        """Format this expression in function form."""
        pass

    def __str__(self) -> str:
        """A simplified representation of this object."""
        return self.format()


class Rational(Expression, algebraic.Ordered):
    """An exact rational number.

    After construction and after every operation, the fraction is in lowest
    terms with a strictly positive denominator. Zero is always ``0/1``.

    Parameters
    ----------
    numerator : integral, default=0
        The value of the numerator.

    denominator : integral, default=1
        The value of the denominator.

    Raises
    ------
    `~symbolic.DivisionByZero`
        If `denominator` is zero.
    """

    def __init__(self, numerator: int=0, denominator: int=1) -> None:
        numerator = standard.index(numerator)
        denominator = standard.index(denominator)
        if denominator == 0:
            raise DivisionByZero(numerator)
        super().__init__()
        if denominator < 0:
            numerator, denominator = -numerator, -denominator
        gcd = math.gcd(numerator, denominator)
        self._numerator = numerator // gcd
        self._denominator = denominator // gcd

    @classmethod
    def parse_number(cls, string: str) -> 'Rational':
        """Create an instance from a numerical string.

        The string has the form ``'I.F/I.F'``, where ``I`` and ``F`` are the
        integral and fractional digits of the numerator and denominator. The
        denominator is optional, either side may omit its decimal point, and the
        numerator may carry a leading sign. Both sides are scaled by the same
        power of ten before division.

        Raises
        ------
        `~symbolic.MalformedNumber`
            If the string contains more than one ``'/'``, more than one ``'.'``
            on either side, an empty side, or any other character.

        `~symbolic.DivisionByZero`
            If the denominator is zero.
        """
        text = string.strip()
        sign = 1
        if text[:1] in {'+', '-'}:
            sign = -1 if text[0] == '-' else 1
            text = text[1:]
        parts = text.split('/')
        if len(parts) > 2:
            raise MalformedNumber(string)
        places = []
        for part in parts:
            if part.count('.') > 1:
                raise MalformedNumber(string)
            digits = part.replace('.', '')
            if not digits or not all(c in '0123456789' for c in digits):
                raise MalformedNumber(string)
            places.append(len(part) - part.index('.') - 1 if '.' in part else 0)
        shift = max(places)
        scaled = [
            int(part.replace('.', '')) * 10 ** (shift - n)
            for part, n in zip(parts, places)
        ]
        if len(scaled) == 1:
            return cls(sign * scaled[0], 10 ** shift)
        return cls(sign * scaled[0], scaled[1])

    @property
    def numerator(self) -> int:
        """The numerator, in lowest terms."""
        return self._numerator

    @property
    def denominator(self) -> int:
        """The (strictly positive) denominator, in lowest terms."""
        return self._denominator

    def is_integer(self) -> bool:
        """True if this rational number is an integer."""
        return self._denominator == 1

    def signum(self) -> int:
        """The sign of this number: 1, 0, or -1."""
        return (self._numerator > 0) - (self._numerator < 0)

    def add(self, other: 'Rational') -> 'Rational':
        """Return ``self + other``."""
        return Rational(
            self._numerator * other.denominator
            + self._denominator * other.numerator,
            self._denominator * other.denominator,
        )

    def subtract(self, other: 'Rational') -> 'Rational':
        """Return ``self - other``."""
        return Rational(
            self._numerator * other.denominator
            - self._denominator * other.numerator,
            self._denominator * other.denominator,
        )

    def multiply(self, other: 'Rational') -> 'Rational':
        """Return ``self * other``."""
        return Rational(
            self._numerator * other.numerator,
            self._denominator * other.denominator,
        )

    def divide(self, other: 'Rational') -> 'Rational':
        """Return ``self / other``."""
        if other.numerator == 0:
            raise DivisionByZero(self)
        return Rational(
            self._numerator * other.denominator,
            self._denominator * other.numerator,
        )

    def negate(self) -> 'Rational':
        """Return ``-self``."""
        return Rational(-self._numerator, self._denominator)

    def reciprocal(self) -> 'Rational':
        """Return ``1 / self``."""
        if self._numerator == 0:
            raise DivisionByZero(ONE)
        return Rational(self._denominator, self._numerator)

    def __abs__(self) -> 'Rational':
        """Called for abs(self)."""
        if self._numerator < 0:
            return self.negate()
        return self

    def pow(self, exponent: 'Rational') -> Expression:
        """Raise this number to a rational power.

        The result is rational for integral exponents and a symbolic
        `~symbolic.Power` otherwise (e.g., ``2^(1/2)``).

        Raises
        ------
        `~symbolic.UndefinedPower`
            If this number is zero and `exponent` is zero or negative.
        """
        if not isinstance(exponent, Rational):
            return make_power(self, exponent)
        if self == ONE:
            return ONE
        if self._numerator == 0:
            if exponent.signum() > 0:
                return ZERO
            raise UndefinedPower(self, exponent)
        if exponent.is_integer():
            k = exponent.numerator
            if k < 0:
                return self.reciprocal().pow(exponent.negate())
            return Rational(self._numerator ** k, self._denominator ** k)
        return Power(self, exponent)

    _arithmetic = {
        standard.add: 'add',
        standard.sub: 'subtract',
        standard.mul: 'multiply',
        standard.truediv: 'divide',
        standard.pow: 'pow',
    }

    def implement(self, func: typing.Callable, mode: str, *others):
        """Compute rational results directly; defer to `Expression` otherwise."""
        if mode == 'arithmetic':
            if func is standard.neg:
                return self.negate()
            return super().implement(func, mode)
        other = others[0]
        if not isinstance(other, Rational) and _is_exact(other):
            other = expressify(other)
        if isinstance(other, Rational) and func in self._arithmetic:
            a, b = (self, other) if mode == 'forward' else (other, self)
            return getattr(a, self._arithmetic[func])(b)
        return super().implement(func, mode, other)

    def __lt__(self, other) -> bool:
        """True if self < other."""
        if isinstance(other, Rational) or _is_exact(other):
            return (
                self._numerator * other.denominator
                < other.numerator * self._denominator
            )
        return NotImplemented

    def __eq__(self, other) -> bool:
        """True if two numbers have the same value."""
        if isinstance(other, Rational) or _is_exact(other):
            return (
                self._numerator == other.numerator
                and self._denominator == other.denominator
            )
        if isinstance(other, Expression):
            return False
        return NotImplemented

    def __hash__(self) -> int:
        # NOTE: This agrees with `hash` of an equal `int` or `Fraction`.
        return hash(fractions.Fraction(self._numerator, self._denominator))

    def __bool__(self) -> bool:
        """True unless this number is zero."""
        return self._numerator != 0

    def __int__(self) -> int:
        """Called for int(self); truncates toward zero."""
        return int(fractions.Fraction(self._numerator, self._denominator))

    def __float__(self) -> float:
        """Called for float(self)."""
        return self._numerator / self._denominator

    def _substitute(self, values):
        return self

    def simplify(self) -> 'Rational':
        return self

    def _format(self, style: str) -> str:
        if self.is_integer():
            return str(self._numerator)
        if style == 'tex':
            sign = '-' if self._numerator < 0 else ''
            return (
                f"{sign}\\dfrac{{{abs(self._numerator)}}}"
                f"{{{self._denominator}}}"
            )
        return f"{self._numerator}/{self._denominator}"

    def _function(self) -> str:
        return self._format('text')


numbers.Rational.register(Rational)


ZERO = Rational(0)
ONE = Rational(1)
TWO = Rational(2)
TEN = Rational(10)
NEGATIVE_ONE = Rational(-1)


def _is_exact(this) -> bool:
    """True if `this` is a built-in exact number."""
    return (
        isinstance(this, numbers.Rational)
        and not isinstance(this, Expression)
    )


class Variable(Expression, algebraic.Ordered):
    """A named leaf in an expression, ordered by name."""

    def __init__(self, name: str) -> None:
        if not isinstance(name, str) or not name:
            raise ValueError(
                f"A variable name must be a non-empty string, not {name!r}"
            ) from None
        super().__init__()
        self._name = name

    @property
    def name(self) -> str:
        """The name of this variable."""
        return self._name

    def __lt__(self, other) -> bool:
        """True if this variable's name precedes that of `other`."""
        if isinstance(other, Variable):
            return self._name < other.name
        return NotImplemented

    def __eq__(self, other) -> bool:
        """True if two variables have the same name."""
        if isinstance(other, Variable):
            return self._name == other.name
        if isinstance(other, Expression):
            return False
        return NotImplemented

    def __hash__(self) -> int:
        return hash((Variable, self._name))

    def _substitute(self, values):
        if self._name in values:
            return values[self._name]
        raise UnboundVariable(self._name)

    def simplify(self) -> 'Variable':
        return self

    def _format(self, style: str) -> str:
        return self._name

    def _function(self) -> str:
        return self._name


class Power(Expression):
    """An expression of the form ``base^exponent``.

    Build instances with `make_power`, which returns a simpler expression for
    trivial cases. This class does no checking of its own.
    """

    def __init__(self, base: Expression, exponent: Expression) -> None:
        super().__init__()
        self._base = base
        self._exponent = exponent
        self._height = 1 + max(base.height, exponent.height)

    @property
    def base(self) -> Expression:
        """The base of this power."""
        return self._base

    @property
    def exponent(self) -> Expression:
        """The exponent of this power."""
        return self._exponent

    def __eq__(self, other) -> bool:
        """True if two powers have equal bases and equal exponents."""
        if isinstance(other, Power):
            return (
                self._base == other.base
                and self._exponent == other.exponent
            )
        if isinstance(other, Expression):
            return False
        return NotImplemented

    def __hash__(self) -> int:
        return hash((Power, self._base, self._exponent))

    def _substitute(self, values):
        return make_power(
            self._base._substitute(values),
            self._exponent._substitute(values),
        )

    def simplify(self) -> Expression:
        return _raise(self._base.simplify(), self._exponent.simplify())

    def _format(self, style: str) -> str:
        return _format_power(self._base, self._exponent, style)

    def _function(self) -> str:
        return f"Power({self._base._function()}, {self._exponent._function()})"


Entry = typing.Tuple[Expression, Expression]


class Product(Expression):
    """A rational coefficient times a canonical collection of powers.

    Build instances with `make_product`. Internally, each factor is stored as
    a ``(base, exponent)`` pair, and a factor with a negative exponent
    represents division. Rational factors are part of the coefficient, which
    appears first in `terms` with an exponent of one (unless it is one).
    """

    def __init__(
        self,
        coefficient: Rational,
        factors: typing.Iterable[Entry],
    ) -> None:
        super().__init__()
        self._coefficient = coefficient
        self._factors = tuple(factors)
        self._exponents = dict(self._factors)
        self._height = 1 + max(
            (max(b.height, e.height) for b, e in self._factors),
            default=0,
        )
        self._hash = None

    @property
    def coefficient(self) -> Rational:
        """The rational coefficient of this product."""
        return self._coefficient

    @property
    def factors(self) -> typing.Tuple[Entry, ...]:
        """The ordered ``(base, exponent)`` pairs, excluding the coefficient."""
        return self._factors

    @property
    def terms(self) -> typing.Tuple[Entry, ...]:
        """The ordered ``(base, exponent)`` pairs, including the coefficient."""
        if self._coefficient == ONE:
            return self._factors
        return ((self._coefficient, ONE),) + self._factors

    def split(self) -> typing.Tuple[Rational, Expression]:
        """Separate this product into its coefficient and the remainder."""
        if len(self._factors) == 1:
            base, exponent = self._factors[0]
            return self._coefficient, make_power(base, exponent)
        if self._coefficient == ONE:
            return ONE, self
        return self._coefficient, Product(ONE, self._factors)

    def __eq__(self, other) -> bool:
        """True if two products have equal coefficients and factors."""
        if isinstance(other, Product):
            return (
                self._coefficient == other.coefficient
                and self._exponents == other._exponents
            )
        if isinstance(other, Expression):
            return False
        return NotImplemented

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(
                (Product, self._coefficient, frozenset(self._factors))
            )
        return self._hash

    def _substitute(self, values):
        factors = [
            make_power(base._substitute(values), exponent._substitute(values))
            for base, exponent in self._factors
        ]
        return make_product([self._coefficient, *factors])

    def simplify(self) -> Expression:
        factors = [
            _raise(base.simplify(), exponent.simplify())
            for base, exponent in self._factors
        ]
        return make_product([self._coefficient, *factors])

    def _format(self, style: str) -> str:
        string = _format_coefficient(self._coefficient, style)
        for base, exponent in self._factors:
            factor = _format_power(base, exponent, style)
            if isinstance(base, (Sum, Product)) and exponent == ONE:
                factor = _group(factor, style)
            string = _join(string, factor, style)
        return string

    def _function(self) -> str:
        entries = ', '.join(
            f"{{{base._function()}: {exponent._function()}}}"
            for base, exponent in self._factors
        )
        return f"Product({self._coefficient._function()}, {entries})"


Summand = typing.Tuple[Expression, Rational]


class Sum(Expression):
    """A canonical collection of terms with rational coefficients.

    Build instances with `make_sum`. Each term maps to its (non-zero) rational
    coefficient. Rational addends are part of the constant, which appears last
    in `terms` under the key `ONE` (unless it is zero).
    """

    def __init__(
        self,
        constant: Rational,
        summands: typing.Iterable[Summand],
    ) -> None:
        super().__init__()
        self._constant = constant
        self._summands = tuple(summands)
        self._coefficients = dict(self._summands)
        self._height = 1 + max(
            (term.height for term, _ in self._summands),
            default=0,
        )
        self._hash = None

    @property
    def constant(self) -> Rational:
        """The rational constant of this sum."""
        return self._constant

    @property
    def summands(self) -> typing.Tuple[Summand, ...]:
        """The ordered ``(term, coefficient)`` pairs, excluding the constant."""
        return self._summands

    @property
    def terms(self) -> typing.Tuple[Summand, ...]:
        """The ordered ``(term, coefficient)`` pairs, including the constant."""
        if self._constant == ZERO:
            return self._summands
        return self._summands + ((ONE, self._constant),)

    def __eq__(self, other) -> bool:
        """True if two sums have equal constants and terms."""
        if isinstance(other, Sum):
            return (
                self._constant == other.constant
                and self._coefficients == other._coefficients
            )
        if isinstance(other, Expression):
            return False
        return NotImplemented

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(
                (Sum, self._constant, frozenset(self._summands))
            )
        return self._hash

    def _substitute(self, values):
        terms = [
            make_product([term._substitute(values), coefficient])
            for term, coefficient in self._summands
        ]
        return make_sum([*terms, self._constant])

    def simplify(self) -> Expression:
        terms = [
            make_product([term.simplify(), coefficient])
            for term, coefficient in self._summands
        ]
        return make_sum([*terms, self._constant])

    def _format(self, style: str) -> str:
        string = ''
        for term, coefficient in self._summands:
            if string and coefficient.signum() >= 0:
                string += '+'
            string += _format_coefficient(coefficient, style)
            text = term._format(style)
            if isinstance(term, Sum):
                text = _group(text, style)
            string = _join(string, text, style)
        if self._constant != ZERO:
            if string and self._constant.signum() >= 0:
                string += '+'
            string += self._constant._format(style)
        return string

    def _function(self) -> str:
        entries = ', '.join(
            f"{{{term._function()}: {coefficient._function()}}}"
            for term, coefficient in self.terms
        )
        return f"Sum({entries})"


def expressify(this: typing.Any) -> Expression:
    """Convert `this` to an expression, if possible.

    Expressions pass through unchanged. Integers (including any other
    `numbers.Integral`) and exact rationals (e.g., `fractions.Fraction`) become
    instances of `~symbolic.Rational`. Anything else, including ``float``,
    raises `TypeError`.
    """
    if isinstance(this, Expression):
        return this
    if isinstance(this, numbers.Integral):
        return Rational(int(this))
    if isinstance(this, numbers.Rational):
        return Rational(this.numerator, this.denominator)
    raise TypeError(
        f"Can't convert {this!r} of type {type(this)} to an exact expression"
    ) from None


def resolve(
    bindings: Bindings,
    values: typing.Mapping[str, typing.Any]=None,
) -> typing.Dict[str, Expression]:
    """Build a lookup table of variable values.

    The first value for each name wins. String values are parsed as
    expressions; other values must be convertible by `expressify`.
    """
    if isinstance(bindings, typing.Mapping):
        pairs = list(bindings.items())
    else:
        pairs = list(bindings)
    if values:
        pairs.extend(values.items())
    table = {}
    for name, value in pairs:
        if name not in table:
            table[name] = _binding_value(value)
    return table


def _binding_value(value: typing.Any) -> Expression:
    """Convert a single binding value to an expression."""
    if isinstance(value, str):
        from exalt.core import parsing
        return parsing.parse(value)
    return expressify(value)


def _combine(func: typing.Callable, a: Expression, b: Expression):
    """Apply a standard binary operator via the smart constructors."""
    if func is standard.add:
        return make_sum([a, b])
    if func is standard.sub:
        return make_sum([(a, 1), (b, -1)])
    if func is standard.mul:
        return make_product([a, b])
    if func is standard.truediv:
        return make_product([a], [b])
    if func is standard.pow:
        return make_power(a, b)
    return NotImplemented


def negate(expression: Expression) -> Expression:
    """Return the canonical negation of `expression`."""
    if isinstance(expression, Rational):
        return expression.negate()
    return make_sum([(expression, -1)])


def make_power(base: typing.Any, exponent: typing.Any) -> Expression:
    """Create ``base^exponent``, or a simpler equivalent expression.

    Returns
    -------
    `~symbolic.Expression`
        A `~symbolic.Rational` if `base` is rational and `exponent` is an
        integer, if `base` is one, if `exponent` is zero, or if `base` is zero
        and `exponent` is a positive rational; `base` itself if `exponent` is
        one; otherwise, a new `~symbolic.Power`.

    Raises
    ------
    `~symbolic.UndefinedPower`
        If `base` is zero and `exponent` is zero or negative.
    """
    base = expressify(base)
    exponent = expressify(exponent)
    if isinstance(base, Rational):
        if base == ONE:
            return ONE
        if isinstance(exponent, Rational):
            if exponent.is_integer() or base == ZERO:
                return base.pow(exponent)
    if isinstance(exponent, Rational):
        if exponent == ZERO:
            return ONE
        if exponent == ONE:
            return base
    return Power(base, exponent)


class _ProductBuilder:
    """Private accumulator for `make_product`."""

    def __init__(self) -> None:
        self.coefficient = ONE
        self.exponents = iterables.Tally(
            combine=_add_exponents,
            start=ZERO,
            vanishes=_is_zero,
        )

    def include(self, factor: Expression, sign: int) -> None:
        """Multiply (`sign` > 0) or divide (`sign` < 0) by `factor`."""
        if isinstance(factor, Rational):
            if sign > 0:
                self.coefficient = self.coefficient.multiply(factor)
            else:
                self.coefficient = self.coefficient.divide(factor)
        elif isinstance(factor, Product):
            self.include(factor.coefficient, sign)
            for base, exponent in factor.factors:
                self.exponents.add(base, _signed(exponent, sign))
        elif isinstance(factor, Power) and not isinstance(factor.base, Rational):
            self.exponents.add(factor.base, _signed(factor.exponent, sign))
        else:
            self.exponents.add(factor, ONE if sign > 0 else NEGATIVE_ONE)

    def build(self) -> Expression:
        """Freeze the current state into the simplest expression."""
        while nested := [
            base for base, exponent in self.exponents.items()
            if isinstance(base, Product) and exponent == ONE
        ]:
            for base in nested:
                del self.exponents[base]
                self.include(base, 1)
        if self.coefficient == ZERO:
            return ZERO
        if not self.exponents:
            return self.coefficient
        if len(self.exponents) == 1 and self.coefficient == ONE:
            (base, exponent), = self.exponents.items()
            return make_power(base, exponent)
        return Product(
            self.coefficient,
            self.exponents.freeze(key=functools.cmp_to_key(product_order)),
        )


def make_product(
    factors: typing.Iterable[typing.Any]=(),
    divisors: typing.Iterable[typing.Any]=(),
) -> Expression:
    """Multiply `factors` and divide by `divisors` in canonical form.

    Rational factors and divisors combine into the coefficient. A power
    contributes its exponent to the entry for its base (unless the base is
    rational, in which case the whole power is an entry). A product
    contributes its coefficient and each of its entries. Any other expression
    contributes an exponent of one to its own entry. Entries with a zero
    exponent disappear.

    Returns
    -------
    `~symbolic.Expression`
        Zero if the coefficient is zero; the coefficient if there are no
        entries; ``make_power(base, exponent)`` if there is exactly one entry
        and the coefficient is one; otherwise, a new `~symbolic.Product`.

    Raises
    ------
    `~symbolic.DivisionByZero`
        If any divisor is rational zero.
    """
    builder = _ProductBuilder()
    for factor in factors:
        builder.include(expressify(factor), 1)
    for divisor in divisors:
        builder.include(expressify(divisor), -1)
    return builder.build()


class _SumBuilder:
    """Private accumulator for `make_sum`."""

    def __init__(self) -> None:
        self.constant = ZERO
        self.coefficients = iterables.Tally(
            combine=Rational.add,
            start=ZERO,
            vanishes=_is_zero,
        )

    def include(self, addend: Expression, sign: Rational) -> None:
        """Add `addend`, scaled by `sign`."""
        if isinstance(addend, Rational):
            self.constant = self.constant.add(addend.multiply(sign))
        elif isinstance(addend, Sum):
            self.include(addend.constant, sign)
            for term, coefficient in addend.summands:
                self.coefficients.add(term, coefficient.multiply(sign))
        elif isinstance(addend, Product):
            coefficient, remainder = addend.split()
            self.coefficients.add(remainder, coefficient.multiply(sign))
        else:
            self.coefficients.add(addend, sign)

    def build(self) -> Expression:
        """Freeze the current state into the simplest expression."""
        while nested := [
            term for term, coefficient in self.coefficients.items()
            if isinstance(term, Sum) and coefficient == ONE
        ]:
            for term in nested:
                del self.coefficients[term]
                self.include(term, ONE)
        if not self.coefficients:
            return self.constant
        if len(self.coefficients) == 1 and self.constant == ZERO:
            (term, coefficient), = self.coefficients.items()
            return make_product([term, coefficient])
        return Sum(
            self.constant,
            self.coefficients.freeze(key=functools.cmp_to_key(sum_order)),
        )


Addend = typing.Union[typing.Any, typing.Tuple[typing.Any, int]]


def make_sum(addends: typing.Iterable[Addend]=()) -> Expression:
    """Add the given terms in canonical form.

    Parameters
    ----------
    addends : iterable
        Each member is either an expression (or exact number) to add, or a pair
        ``(expression, sign)``, in which case a negative `sign` means
        subtraction.

    Returns
    -------
    `~symbolic.Expression`
        Zero if there are no terms; the constant if there are no non-constant
        terms; ``term * coefficient`` if there is exactly one non-constant term
        and no constant; otherwise, a new `~symbolic.Sum`.
    """
    builder = _SumBuilder()
    for addend in addends:
        if isinstance(addend, tuple):
            expression, sign = addend
        else:
            expression, sign = addend, 1
        builder.include(
            expressify(expression),
            ONE if sign >= 0 else NEGATIVE_ONE,
        )
    return builder.build()


def _add_exponents(a: Expression, b: Expression) -> Expression:
    """Combine two exponents of a common base."""
    if isinstance(a, Rational) and isinstance(b, Rational):
        return a.add(b)
    return make_sum([a, b])


def _signed(exponent: Expression, sign: int) -> Expression:
    """Negate `exponent` when dividing."""
    if sign > 0:
        return exponent
    return negate(exponent)


def _is_zero(this: Expression) -> bool:
    return isinstance(this, Rational) and this.signum() == 0


def _raise(base: Expression, exponent: Expression) -> Expression:
    """Apply exponent laws to ``base^exponent``.

    Both arguments must already be simplified.
    """
    if isinstance(base, Rational) and isinstance(exponent, Rational):
        return base.pow(exponent)
    if isinstance(base, Product):
        # (ab)^x = a^x b^x
        return make_product(
            [
                _raise(factor, make_product([power, exponent]))
                for factor, power in base.terms
            ]
        )
    if isinstance(base, Power):
        # (b^x)^y = b^(xy)
        return _raise(base.base, make_product([base.exponent, exponent]))
    return make_power(base, exponent)


def _product_tier(expression: Expression) -> int:
    if isinstance(expression, Rational):
        return 0
    if isinstance(expression, Variable):
        return 1
    if isinstance(expression, Product):
        return 2
    if isinstance(expression, Power):
        return 3
    if isinstance(expression, Sum):
        return 4
    raise TypeError(f"Unknown expression type {type(expression)}")


def _sum_tier(expression: Expression) -> int:
    if isinstance(expression, Power):
        return 1
    if isinstance(expression, Product):
        return 2
    if isinstance(expression, Variable):
        return 3
    if isinstance(expression, Sum):
        return 4
    if isinstance(expression, Rational):
        return 5
    raise TypeError(f"Unknown expression type {type(expression)}")


def _compare(
    a: Expression,
    b: Expression,
    tier: typing.Callable[[Expression], int],
) -> int:
    """Compare two expressions by tier, then by name or construction order."""
    ta, tb = tier(a), tier(b)
    if ta != tb:
        return -1 if ta < tb else 1
    if a == b:
        return 0
    if isinstance(a, Variable):
        return -1 if a < b else 1
    return -1 if a.serial < b.serial else 1


def product_order(a: Expression, b: Expression) -> int:
    """Compare the bases of two entries in a product.

    Tiers are, in order: rational, variable, product, power, sum.
    """
    return _compare(a, b, _product_tier)


def sum_order(a: Expression, b: Expression) -> int:
    """Compare the terms of two entries in a sum.

    Tiers are, in order: power, product, variable, sum, rational.
    """
    return _compare(a, b, _sum_tier)


def _group(text: str, style: str) -> str:
    """Surround `text` with round brackets."""
    if style == 'tex':
        return f"\\left({text}\\right)"
    return f"({text})"


def _join(left: str, right: str, style: str) -> str:
    """Concatenate two parts of a product, separating adjacent digits."""
    if left[-1:].isdigit() and right[:1].isdigit():
        separator = '\\cdot ' if style == 'tex' else '*'
        return f"{left}{separator}{right}"
    return f"{left}{right}"


def _format_coefficient(coefficient: Rational, style: str) -> str:
    """Format a coefficient that precedes a non-constant term."""
    if coefficient == ONE:
        return ''
    if coefficient == NEGATIVE_ONE:
        return '-'
    sign = '-' if coefficient.signum() < 0 else ''
    magnitude = abs(coefficient)
    if magnitude.is_integer() or style == 'tex':
        return f"{sign}{magnitude._format(style)}"
    return f"{sign}({magnitude._format(style)})"


def _format_power(base: Expression, exponent: Expression, style: str) -> str:
    """Format ``base^exponent``, adding brackets only where necessary."""
    if exponent == ONE:
        return base._format(style)
    string = base._format(style)
    bare = isinstance(base, Variable) or (
        isinstance(base, Rational)
        and base.signum() >= 0
        and base.is_integer()
    )
    if not bare:
        string = _group(string, style)
    power = exponent._format(style)
    if style == 'tex':
        return f"{string}^{{{power}}}"
    simple = isinstance(exponent, Variable) or (
        isinstance(exponent, Rational) and exponent.is_integer()
    )
    if not simple:
        power = _group(power, style)
    return f"{string}^{power}"
