import configparser
import json
import os
import pathlib

from exalt.core import iotools
from exalt.core import iterables


# read version from installed package
from importlib.metadata import version
__version__ = version("exalt")


class Environment(iterables.MappingBase):
    """A collection of environmental settings."""

    def __init__(self, name: str) -> None:
        self.name = name
        """The name of the configuration section to select."""
        self._section = f"{__package__}.{self.name}"
        home = pathlib.Path('~').expanduser()
        paths = [
            pathlib.Path.cwd(), # The current working directory
            home, # The user's home directory
            home / '.config', # Linux standard (local)
            '/etc/exalt', # Linux standard (global)
            os.environ.get('EXALT_INI'), # A known environment variable
            pathlib.Path(__file__).parent, # The package top
        ]
        config = configparser.ConfigParser()
        path = iotools.search(paths, 'exalt.ini')
        if path is not None:
            config.read(path)
        self._config = (
            dict(config[self.name]) if config.has_section(self.name)
            else {}
        )
        self.path = path
        super().__init__(self._config)

    def __getitem__(self, key: str):
        """Access parameter values by mapping key."""
        if key in self._config:
            return self._config[key]
        raise KeyError(
            f"{self._section} has no value for {key!r}"
        ) from None

    def __str__(self) -> str:
        return json.dumps(
            self._config,
            indent=4,
            sort_keys=True,
        )

    def __repr__(self) -> str:
        return f"{self._section}({self.path}):\n{self}"


from exalt.core.symbolic import (
    Expression,
    Rational,
    Variable,
    ParsingError,
    MalformedNumber,
    DivisionByZero,
    UndefinedPower,
    UnboundVariable,
    make_sum,
    make_product,
    make_power,
)
from exalt.core.parsing import (
    IllegalCharacter,
    MismatchedBrackets,
    EmptyBrackets,
    DanglingOperator,
    NestingError,
    Parser,
    parse,
    tokenize,
)
