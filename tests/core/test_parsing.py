import pytest

from exalt.core import parsing
from exalt.core import symbolic
from exalt.core.symbolic import Rational, Variable


def texts(string: str):
    """The text of each token in `string`."""
    return [token.text for token in parsing.tokenize(string)]


@pytest.mark.lexer
def test_tokenize_kinds():
    """Each token should have the appropriate kind."""
    K = parsing.Kind
    tokens = parsing.tokenize('2.5x^(y-1)/3+z')
    assert [token.kind for token in tokens] == [
        K.NUMBER, K.MULTIPLY, K.VARIABLE, K.CARET, K.OPEN, K.VARIABLE,
        K.MINUS, K.NUMBER, K.CLOSE, K.DIVIDE, K.NUMBER, K.PLUS, K.VARIABLE,
    ]
    assert tokens[0] == parsing.Token(K.NUMBER, '2.5')
    assert str(tokens[0]) == '2.5'


@pytest.mark.lexer
def test_tokenize_implicit_multiplication():
    """The lexer should insert multiplication between adjacent values."""
    cases = {
        '2x': ['2', '*', 'x'],
        'xy': ['x', '*', 'y'],
        '2(3)': ['2', '*', '(', '3', ')'],
        '(x)(y)': ['(', 'x', ')', '*', '(', 'y', ')'],
        '(x)2': ['(', 'x', ')', '*', '2'],
        'x 2': ['x', '*', '2'],
    }
    for string, expected in cases.items():
        assert texts(string) == expected


@pytest.mark.lexer
def test_tokenize_signs():
    """The lexer should fold redundant signs."""
    cases = {
        ' 1.5 + y ': ['1.5', '+', 'y'],
        '5--3': ['5', '+', '3'],
        '5+-3': ['5', '-', '3'],
        '3---3': ['3', '-', '3'],
        '-x': ['-', 'x'],
        '+x': ['x'],
        '--3': ['3'],
        '2*-3': ['2', '*', '-', '3'],
        '2*+3': ['2', '*', '3'],
        '(-x)': ['(', '-', 'x', ')'],
    }
    for string, expected in cases.items():
        assert texts(string) == expected


@pytest.mark.lexer
def test_tokenize_auto_close():
    """The lexer should close brackets left open at the end."""
    assert texts('(1+2') == ['(', '1', '+', '2', ')']
    assert texts('((x') == ['(', '(', 'x', ')', ')']


@pytest.mark.lexer
def test_tokenize_errors():
    """The lexer should reject malformed input."""
    cases = {
        parsing.IllegalCharacter: ['2 & 3', 'x = 1', '2%', 'x_1'],
        symbolic.MalformedNumber: ['1.2.3', '.', '1..2', 'x.'],
        parsing.MismatchedBrackets: [')', '1+2)', 'x(', '(x))'],
        parsing.EmptyBrackets: ['()', '2()', '(())'],
        parsing.DanglingOperator: [
            '', '   ', '*2', '2*', '2^', '(*2)', '1+', '-', '(-)', '(--)',
            '(+)', '2*/3',
        ],
    }
    for error, strings in cases.items():
        for string in strings:
            with pytest.raises(error):
                parsing.tokenize(string)
    with pytest.raises(parsing.IllegalCharacter) as err:
        parsing.tokenize('2 & 3')
    assert err.value.arg == '&'
    for error in cases:
        assert issubclass(error, symbolic.ParsingError)


@pytest.mark.parser
def test_parse_leaves():
    """Single numbers and letters should become leaves."""
    assert parsing.parse('x') == Variable('x')
    assert isinstance(parsing.parse('x'), Variable)
    assert parsing.parse('42') == 42
    assert parsing.parse('1.5') == Rational(3, 2)
    assert parsing.parse('(((7)))') == 7


@pytest.mark.parser
def test_parse_equivalent_forms():
    """Equivalent strings should produce equal canonical trees."""
    cases = [
        ['x+x', '2x', '2*x', 'x*2', '(x)2'],
        ['x-x', '0', '0x'],
        ['x/x', '1'],
        ['(x+1)+y', 'x+(1+y)', 'y+1+x'],
        ['(2x)y', '2xy', 'y*x*2'],
        ['x^2*x^3', 'x^5', 'xxxxx'],
        ['x^a x^b', 'x^(a+b)'],
        ['0.25x', 'x/4', '(1/4)x'],
        ['3(x+1)-2(x+1)+y', 'x+1+y'],
    ]
    for strings in cases:
        first = parsing.parse(strings[0])
        for string in strings[1:]:
            assert parsing.parse(string) == first


@pytest.mark.parser
def test_parse_arithmetic():
    """Test numerical results of parsing."""
    cases = {
        '2(3+4)': 14,
        '2(3+4': 14,
        '5--3': 8,
        '5+-3': 2,
        '2^3^2': 512,
        '2^-1': Rational(1, 2),
        '-2^2': -4,
        '2^-3^2': Rational(1, 512),
        '1/2/2': Rational(1, 4),
        '6/2*3': 9,
        '2*-3': -6,
        '1 + 2 * 3': 7,
        '(1 + 2) * 3': 9,
    }
    for string, expected in cases.items():
        assert parsing.parse(string) == expected


@pytest.mark.parser
def test_parse_errors():
    """Parsing should raise exceptions rather than return a partial tree."""
    cases = {
        symbolic.DivisionByZero: ['1/0', 'x/(2-2)'],
        symbolic.UndefinedPower: ['0^0', '0^-1', '(1-1)^(2-2)'],
        parsing.DanglingOperator: ['', '2+*3'],
        parsing.IllegalCharacter: ['2 & 3'],
    }
    for error, strings in cases.items():
        for string in strings:
            with pytest.raises(error):
                parsing.parse(string)


@pytest.mark.parser
def test_parse_exponent_laws():
    """Simplification should apply the laws of exponents."""
    assert (
        parsing.parse('(x*y)^2').simplify()
        == parsing.parse('x^2 y^2')
    )
    assert parsing.parse('(x^2)^3').simplify() == parsing.parse('x^6')
    assert parsing.parse('(2x)^2').simplify() == parsing.parse('4x^2')
    assert parsing.parse('(2^(1/2))^2').simplify() == 2


@pytest.mark.parser
def test_parse_evaluate():
    """Parsed expressions should evaluate with bindings."""
    assert parsing.parse('2x').evaluate(x=3) == 6
    assert parsing.parse('x^2 + y').evaluate({'x': 3, 'y': '1/2'}) == Rational(
        19, 2
    )
    with pytest.raises(symbolic.UnboundVariable):
        parsing.parse('x+y').evaluate(x=1)


@pytest.mark.parser
def test_parse_agrees_with_operators():
    """Python operators and the parser should build the same trees."""
    x = Variable('x')
    y = Variable('y')
    assert x * 2 == parsing.parse('2x')
    assert x ** 2 + 3 == parsing.parse('x^2 + 3')
    assert (x + y) / 2 == parsing.parse('(x+y)/2')
    assert 1 / x == parsing.parse('x^-1')
    assert -(x - y) == parsing.parse('y - x')


@pytest.mark.parser
def test_parse_print_round_trip():
    """Parsing the printed form of an expression should recover it."""
    strings = [
        '2x^2+3',
        'x-y',
        '(x+1)^2',
        '2(x+1)',
        'x^-1',
        '(1/2)x',
        '3^(1/2)',
        'x^(y+1)',
        '-x',
        '2*3^(1/2)',
        'x^2+xy+x+5',
    ]
    for string in strings:
        expression = parsing.parse(string)
        assert str(expression) == string
        assert parsing.parse(str(expression)) == expression
    # Not already in canonical form.
    for string in ['3(x+1)-2(x+1)+y', 'y+(x+1)', '5(x+1)-4(x+1)']:
        expression = parsing.parse(string)
        assert parsing.parse(str(expression)) == expression
    assert str(parsing.parse('3(x+1)-2(x+1)+y')) == 'x+y+1'


@pytest.mark.parser
def test_combined_sums_flatten():
    """A sum whose coefficient becomes one should merge into its parent."""
    expression = parsing.parse('3(x+1)-2(x+1)+y')
    assert isinstance(expression, symbolic.Sum)
    assert not any(
        isinstance(term, symbolic.Sum) for term, _ in expression.summands
    )
    assert expression == parsing.parse('x+y+1')
    assert parsing.parse('5(x+1)-4(x+1)') == parsing.parse('x+1')


@pytest.mark.parser
def test_nesting_depth():
    """The parser should limit the depth of nested brackets and powers."""
    string = '((((x))))'
    with pytest.raises(parsing.NestingError) as err:
        parsing.Parser(max_depth=3).parse(string)
    assert err.value.limit == 3
    assert parsing.Parser(max_depth=4).parse(string) == Variable('x')
    deep = '(' * 1000 + 'x' + ')' * 1000
    with pytest.raises(parsing.NestingError):
        parsing.parse(deep)
    tower = 'x' + '^x' * 1000
    with pytest.raises(parsing.NestingError):
        parsing.parse(tower)
    parser = parsing.Parser(max_depth=2)
    assert parser.parse('x^x^x').height == 2
    with pytest.raises(parsing.NestingError):
        parser.parse('x^x^x^x')
    with pytest.raises(parsing.NestingError):
        parser.parse('x^(x^(x^x))')
