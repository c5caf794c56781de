import argparse
import io

import pytest

from exalt.core import console


def test_process():
    """Convert single expressions into the requested output."""
    assert console.process('x+x') == '2x'
    assert console.process('(x^2)^3', simplify=True) == 'x^6'
    assert console.process('x/2', style='tex') == '\\dfrac{1}{2}x'
    assert console.process('2x', style='function') == 'Product(2, {x: 1})'
    bindings = [('x', '1'), ('y', '2')]
    assert console.process('x+y', bindings=bindings, evaluate=True) == '3'


def test_run():
    """Process many lines and count the failures."""
    stream = io.StringIO()
    lines = ['2x+x\n', '\n', '1/0\n', 'x^2\n']
    assert console.run(lines, stream=stream) == 1
    output = stream.getvalue().splitlines()
    assert output[0] == '3x'
    assert output[1].startswith('error: ')
    assert output[2] == 'x^2'
    assert len(output) == 3


def test_run_deep_tower():
    """Report an overly deep power and continue with later lines."""
    stream = io.StringIO()
    lines = ['x' + '^x' * 1000, 'x+x']
    assert console.run(lines, stream=stream) == 1
    output = stream.getvalue().splitlines()
    assert output[0].startswith('error: ')
    assert output[1] == '2x'


def test_binding():
    """Split NAME=VALUE arguments."""
    assert console.binding('x=2') == ('x', '2')
    assert console.binding(' y = 1/2 ') == ('y', '1/2')
    for text in ('x', 'x=', '=2'):
        with pytest.raises(argparse.ArgumentTypeError):
            console.binding(text)


def test_main_arguments(capsys):
    """Process expressions given on the command line."""
    assert console.main(['--style', 'text', 'x+x', '2^3']) == 0
    captured = capsys.readouterr()
    assert captured.out == '2x\n8\n'


def test_main_evaluate(capsys):
    """Substitute values for variables on the command line."""
    argv = ['--evaluate', '--let', 'x=2', '-l', 'y=1/2', 'x^2 + y']
    assert console.main(argv) == 0
    assert capsys.readouterr().out == '9/2\n'


def test_main_failure(capsys):
    """Report errors per line and exit with non-zero status."""
    assert console.main(['1/0', 'x', '()', 'y']) == 1
    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith('error: ')
    assert lines[1] == 'x'
    assert lines[2] == "error: The expression '()' contains empty brackets"
    assert lines[3] == 'y'


def test_main_unbound(capsys):
    """An unbound variable should fail only its own line."""
    assert console.main(['--evaluate', '--let', 'x=1', 'x+1', 'x+y']) == 1
    lines = capsys.readouterr().out.splitlines()
    assert lines == ['2', "error: No value for variable 'y'"]


def test_main_stdin(capsys, monkeypatch):
    """Read expressions from standard input by default."""
    monkeypatch.setattr('sys.stdin', io.StringIO('x+x\n\n2^3\n'))
    assert console.main([]) == 0
    assert capsys.readouterr().out == '2x\n8\n'


def test_main_bad_arguments():
    """Reject malformed options."""
    with pytest.raises(SystemExit):
        console.main(['--let', 'x', 'x'])
    with pytest.raises(SystemExit):
        console.main(['--style', 'html', 'x'])
