"""Parse, simplify, and evaluate arithmetic expressions.

Each positional argument is one expression. Without positional arguments,
this program reads one expression per line from standard input. It prints
the canonical form of each expression, or a line beginning with 'error:'
when an expression fails, and exits with status 1 if any expression failed.
"""

import argparse
import logging
import sys
import typing

import exalt
from exalt.core import parsing
from exalt.core import symbolic


logger = logging.getLogger(__name__)


ERRORS = (
    symbolic.ParsingError,
    symbolic.DivisionByZero,
    symbolic.UndefinedPower,
    symbolic.UnboundVariable,
)
"""Exceptions that cause a single expression to fail."""


def default_style() -> str:
    """The output style from the configuration file, if any."""
    try:
        return exalt.Environment('console')['style']
    except KeyError:
        return 'text'


def binding(text: str) -> typing.Tuple[str, str]:
    """Split a ``NAME=VALUE`` argument into a pair."""
    name, sep, value = text.partition('=')
    if not sep or not name.strip() or not value.strip():
        raise argparse.ArgumentTypeError(
            f"Expected NAME=VALUE, not {text!r}"
        ) from None
    return name.strip(), value.strip()


def process(
    line: str,
    bindings: typing.Iterable[typing.Tuple[str, str]]=(),
    evaluate: bool=False,
    simplify: bool=False,
    style: str=None,
    parser: parsing.Parser=None,
) -> str:
    """Convert a single expression into the requested output."""
    expression = (parser or parsing.Parser()).parse(line)
    if simplify:
        expression = expression.simplify()
    if evaluate:
        expression = expression.evaluate(bindings)
    return expression.format(style)


def run(
    lines: typing.Iterable[str],
    stream: typing.TextIO=None,
    **options
) -> int:
    """Process each non-blank line and return the number of failures.

    Parameters
    ----------
    lines : iterable of str
        The expressions to process.

    stream : file-like, optional
        The destination of output. The default is standard output.

    **options
        Keyword arguments to pass to `process`.
    """
    failures = 0
    for line in lines:
        text = line.strip()
        if not text:
            continue
        try:
            result = process(text, **options)
        except ERRORS as err:
            logger.warning("Failed to process %r", text)
            print(f"error: {err}", file=stream or sys.stdout)
            failures += 1
        else:
            print(result, file=stream or sys.stdout)
    return failures


def main(argv: typing.Sequence[str]=None) -> int:
    """Run the console program."""
    parser = argparse.ArgumentParser(
        prog='exalt',
        description=__doc__,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        'expressions',
        help="expressions to process (default: read standard input)",
        nargs='*',
    )
    parser.add_argument(
        '-e',
        '--evaluate',
        help="substitute values for variables",
        action='store_true',
    )
    parser.add_argument(
        '-l',
        '--let',
        help="the value of a variable (may be repeated)",
        dest='bindings',
        metavar='NAME=VALUE',
        type=binding,
        action='append',
        default=[],
    )
    parser.add_argument(
        '-s',
        '--simplify',
        help="apply exponent laws before printing",
        action='store_true',
    )
    parser.add_argument(
        '--style',
        help="the output format (default: from exalt.ini, or 'text')",
        choices=sorted(key for key in symbolic.STYLES if key),
    )
    parser.add_argument(
        '-v',
        '--verbose',
        help="print progress messages (repeat for more detail)",
        action='count',
        default=0,
    )
    args = parser.parse_args(argv)
    levels = {0: logging.WARNING, 1: logging.INFO}
    logging.basicConfig(
        level=levels.get(args.verbose, logging.DEBUG),
        format='%(levelname)s:%(name)s: %(message)s',
    )
    lines = args.expressions or sys.stdin
    failures = run(
        lines,
        bindings=args.bindings,
        evaluate=args.evaluate,
        simplify=args.simplify,
        style=args.style or default_style(),
    )
    if failures:
        logger.info("%d expression(s) failed", failures)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
