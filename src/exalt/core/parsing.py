import enum
import functools
import logging
import typing

import exalt
from exalt.core import iterables
from exalt.core import symbolic


logger = logging.getLogger(__name__)


DEFAULT_MAX_DEPTH = 200
"""Maximum nesting when the configuration does not provide one."""


class IllegalCharacter(symbolic.ParsingError):
    """The string contains a character that is not part of the grammar."""

    def __init__(self, arg: str, index: int=None) -> None:
        super().__init__(arg)
        self.index = index

    def __str__(self) -> str:
        where = '' if self.index is None else f" at position {self.index}"
        return f"Illegal character {self.arg!r}{where}"


class MismatchedBrackets(symbolic.ParsingError):
    """The string closes a bracket that is not open, or ends with one open."""

    def __str__(self) -> str:
        return f"The expression {self.arg!r} has mismatched brackets"


class EmptyBrackets(symbolic.ParsingError):
    """The string contains ``()``."""

    def __str__(self) -> str:
        return f"The expression {self.arg!r} contains empty brackets"


class DanglingOperator(symbolic.ParsingError):
    """The string contains an operator without an operand."""

    def __str__(self) -> str:
        return f"The expression {self.arg!r} has an operator without an operand"


class NestingError(symbolic.ParsingError):
    """The string nests brackets or powers more deeply than the parser allows."""

    def __init__(self, arg: str, limit: int) -> None:
        super().__init__(arg)
        self.limit = limit

    def __str__(self) -> str:
        return (
            f"The expression {self.arg!r} nests"
            f" more than {self.limit} levels deep"
        )


class Kind(enum.Enum):
    """The types of token in an expression."""

    NUMBER = 'number'
    OPEN = 'open'
    CLOSE = 'close'
    PLUS = 'plus'
    MINUS = 'minus'
    MULTIPLY = 'multiply'
    DIVIDE = 'divide'
    CARET = 'caret'
    VARIABLE = 'variable'


SYMBOLS = {
    '(': Kind.OPEN,
    ')': Kind.CLOSE,
    '+': Kind.PLUS,
    '-': Kind.MINUS,
    '*': Kind.MULTIPLY,
    '/': Kind.DIVIDE,
    '^': Kind.CARET,
}
"""Single-character operators and separators."""

DIGITS = '0123456789'

VALUES = {Kind.NUMBER, Kind.CLOSE, Kind.VARIABLE}
"""Kinds of token that may end an operand."""


class Token(iterables.ReprStrMixin):
    """A single lexical unit of an expression."""

    __slots__ = ('kind', 'text')

    def __init__(self, kind: Kind, text: str) -> None:
        self.kind = kind
        self.text = text

    def __eq__(self, other) -> bool:
        """True if two tokens have the same kind and text."""
        if isinstance(other, Token):
            return self.kind is other.kind and self.text == other.text
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.kind, self.text))

    def __str__(self) -> str:
        return self.text


def _token(kind: Kind) -> Token:
    """Create the canonical token for an operator kind."""
    for text, this in SYMBOLS.items():
        if this is kind:
            return Token(kind, text)
    raise ValueError(f"No canonical token for {kind}")


def tokenize(string: str) -> typing.List[Token]:
    """Convert a string into a validated list of tokens.

    This function removes whitespace, inserts implied multiplication, folds
    redundant signs, and closes any brackets left open at the end.

    Raises
    ------
    `~symbolic.MalformedNumber`
        If a number has no digits or more than one decimal point.

    `~parsing.IllegalCharacter`
        If the string contains a character outside the grammar.

    `~parsing.MismatchedBrackets`
        If a closing bracket has no partner, or if the string ends with an
        opening bracket.

    `~parsing.EmptyBrackets`
        If the string contains ``()``.

    `~parsing.DanglingOperator`
        If an operator is missing an operand, or if the string is empty.
    """
    text = ''.join(string.split())
    tokens = _validate(list(_scan(text)), string)
    logger.debug("Tokenized %r into %d tokens", string, len(tokens))
    return tokens


def _scan(text: str) -> typing.Iterator[Token]:
    """Split whitespace-free text into raw tokens."""
    i = 0
    n = len(text)
    while i < n:
        c = text[i]
        if c in DIGITS or c == '.':
            j = i
            while j < n and text[j] in DIGITS:
                j += 1
            if j < n and text[j] == '.':
                j += 1
                while j < n and text[j] in DIGITS:
                    j += 1
            number = text[i:j]
            if number == '.':
                raise symbolic.MalformedNumber(number)
            yield Token(Kind.NUMBER, number)
            i = j
        elif c in SYMBOLS:
            yield Token(SYMBOLS[c], c)
            i += 1
        elif c.isalpha():
            yield Token(Kind.VARIABLE, c)
            i += 1
        else:
            raise IllegalCharacter(c, i)


def _validate(tokens: typing.List[Token], source: str) -> typing.List[Token]:
    """Check operator adjacency and normalize implied operators and signs."""
    result = []
    depth = 0
    raw = None
    for token in tokens:
        previous = result[-1] if result else None
        after_value = previous is not None and previous.kind in VALUES
        if token.kind is Kind.NUMBER:
            if previous is not None and previous.kind is Kind.NUMBER:
                # e.g., '1.2.3' scans as '1.2' followed by '.3'
                raise symbolic.MalformedNumber(previous.text + token.text)
            if after_value:
                result.append(_token(Kind.MULTIPLY))
            result.append(token)
        elif token.kind in {Kind.OPEN, Kind.VARIABLE}:
            if after_value:
                result.append(_token(Kind.MULTIPLY))
            if token.kind is Kind.OPEN:
                depth += 1
            result.append(token)
        elif token.kind is Kind.CLOSE:
            if depth == 0:
                raise MismatchedBrackets(source)
            if raw.kind is Kind.OPEN:
                raise EmptyBrackets(source)
            if not after_value:
                raise DanglingOperator(source)
            depth -= 1
            result.append(token)
        elif token.kind is Kind.PLUS:
            if after_value:
                result.append(token)
        elif token.kind is Kind.MINUS:
            if previous is not None and previous.kind is Kind.PLUS:
                result[-1] = token
            elif previous is not None and previous.kind is Kind.MINUS:
                result.pop()
                if result and result[-1].kind in VALUES:
                    result.append(_token(Kind.PLUS))
            else:
                result.append(token)
        else:
            if not after_value:
                raise DanglingOperator(source)
            result.append(token)
        raw = token
    if not result:
        raise DanglingOperator(source)
    if result[-1].kind is Kind.OPEN:
        raise MismatchedBrackets(source)
    if result[-1].kind not in VALUES:
        raise DanglingOperator(source)
    result.extend(_token(Kind.CLOSE) for _ in range(depth))
    return result


@functools.lru_cache(maxsize=None)
def configured_depth() -> int:
    """The maximum nesting depth from the configuration file, if any."""
    try:
        return int(exalt.Environment('parsing')['max_depth'])
    except KeyError:
        return DEFAULT_MAX_DEPTH


Item = typing.Union[Token, symbolic.Expression]


def _is(item: Item, *kinds: Kind) -> bool:
    """True if `item` is a token of one of the given kinds."""
    return isinstance(item, Token) and item.kind in kinds


class Parser:
    """A tool for parsing arithmetic expressions into canonical form."""

    def __init__(self, max_depth: int=None) -> None:
        """
        Initialize a parser.

        Parameters
        ----------
        max_depth : int, optional
            The maximum number of nested bracket levels, and the maximum
            height of the resulting tree (e.g., of a tower of powers), to
            accept. The default comes from the ``max_depth`` key of the
            ``[parsing]`` section of the configuration file, or is
            `DEFAULT_MAX_DEPTH` if there is none.
        """
        self.max_depth = configured_depth() if max_depth is None else max_depth

    def parse(self, string: str) -> symbolic.Expression:
        """Resolve the given string into a canonical expression."""
        items = [self._leaf(token) for token in tokenize(string)]
        return self._resolve(items, 0, 0, string)

    def _leaf(self, token: Token) -> Item:
        """Convert numerical and variable tokens into expressions."""
        if token.kind is Kind.NUMBER:
            return symbolic.Rational.parse_number(token.text)
        if token.kind is Kind.VARIABLE:
            return symbolic.Variable(token.text)
        return token

    def _resolve(
        self,
        items: typing.List[Item],
        start: int,
        depth: int,
        source: str,
    ) -> symbolic.Expression:
        """Resolve the bracket group that begins at `start`."""
        if depth > self.max_depth:
            raise NestingError(source, self.max_depth)
        end = self._find_end(items, start)
        if end - start == 1:
            return items[start]
        reduced = []
        level = 0
        for i in range(start, end):
            item = items[i]
            if _is(item, Kind.OPEN):
                if level == 0:
                    reduced.append(self._resolve(items, i+1, depth+1, source))
                level += 1
            elif _is(item, Kind.CLOSE):
                level -= 1
            elif level == 0:
                reduced.append(item)
        logger.debug(
            "Resolving %d items at depth %d of %r", len(reduced), depth, source
        )
        if len(reduced) > 1:
            reduced = self._resolve_powers(reduced, source)
        if len(reduced) > 1:
            reduced = self._resolve_products(reduced)
        if len(reduced) > 1:
            reduced = [self._resolve_sums(reduced)]
        return self._check_height(reduced[0], source)

    def _check_height(
        self,
        expression: symbolic.Expression,
        source: str,
    ) -> symbolic.Expression:
        """Make sure the tree below `expression` is not too deep."""
        if expression.height > self.max_depth:
            raise NestingError(source, self.max_depth)
        return expression

    def _find_end(self, items: typing.List[Item], start: int) -> int:
        """Find the index of the bracket that closes the current group."""
        level = 0
        for i in range(start, len(items)):
            if _is(items[i], Kind.OPEN):
                level += 1
            elif _is(items[i], Kind.CLOSE):
                level -= 1
                if level < 0:
                    return i
        return len(items)

    def _resolve_powers(
        self,
        items: typing.List[Item],
        source: str,
    ) -> typing.List[Item]:
        """Resolve exponentiation from right to left."""
        result = []
        i = len(items) - 1
        while i >= 0:
            item = items[i]
            if _is(item, Kind.CARET):
                base = items[i-1]
                # `result` is in reverse order, so the operand right of the
                # caret is at the end.
                if _is(result[-1], Kind.MINUS):
                    result.pop()
                    exponent = symbolic.negate(result.pop())
                else:
                    exponent = result.pop()
                power = symbolic.make_power(base, exponent)
                result.append(self._check_height(power, source))
                i -= 2
            else:
                result.append(item)
                i -= 1
        result.reverse()
        return result

    def _resolve_products(self, items: typing.List[Item]) -> typing.List[Item]:
        """Resolve runs of multiplication and division from left to right."""
        result = []
        i = 0
        while i < len(items):
            if not _is(items[i], Kind.MULTIPLY, Kind.DIVIDE):
                result.append(items[i])
                i += 1
                continue
            factors = [result.pop()]
            divisors = []
            while i < len(items) and _is(items[i], Kind.MULTIPLY, Kind.DIVIDE):
                operator = items[i]
                operand, i = self._operand(items, i+1)
                if operator.kind is Kind.MULTIPLY:
                    factors.append(operand)
                else:
                    divisors.append(operand)
            result.append(symbolic.make_product(factors, divisors))
        return result

    def _operand(
        self,
        items: typing.List[Item],
        index: int,
    ) -> typing.Tuple[symbolic.Expression, int]:
        """Get the operand at `index`, with an optional leading minus."""
        if _is(items[index], Kind.MINUS):
            return symbolic.negate(items[index+1]), index + 2
        return items[index], index + 1

    def _resolve_sums(self, items: typing.List[Item]) -> symbolic.Expression:
        """Resolve addition and subtraction into a single sum."""
        addends = []
        sign = 1
        for item in items:
            if _is(item, Kind.MINUS):
                sign = -1
            elif _is(item, Kind.PLUS):
                sign = 1
            else:
                addends.append((item, sign))
                sign = 1
        return symbolic.make_sum(addends)


def parse(string: str) -> symbolic.Expression:
    """Parse a string into a canonical expression.

    Examples
    --------
    >>> parsing.parse('x + x') == parsing.parse('2x')
    True
    >>> parsing.parse('2^3^2')
    core.symbolic.Rational(512)
    """
    return Parser().parse(string)
