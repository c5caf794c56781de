import operator
import typing

import pytest

from exalt.core import iterables


def test_repr_str_mixin():
    """The representation should wrap the string in the class name."""
    class Named(iterables.ReprStrMixin):
        def __str__(self) -> str:
            return 'this'

    class Unnamed(iterables.ReprStrMixin):
        pass

    assert str(Named()) == 'this'
    assert repr(Named()).endswith('Named(this)')
    assert repr(Unnamed()).endswith('Unnamed()')


def test_mapping_base():
    """Test the object that serves as a basis for concrete mappings."""
    class Incomplete(iterables.MappingBase):
        def __init__(self, mapping: typing.Mapping) -> None:
            __mapping = mapping or {}
            super().__init__(__mapping.keys())

    class Implemented(iterables.MappingBase):
        def __init__(self, mapping: typing.Mapping) -> None:
            __mapping = mapping or {}
            super().__init__(__mapping.keys())
            self.__mapping = __mapping
        def __getitem__(self, k: typing.Any):
            if k in self.__mapping:
                return self.__mapping[k]
            raise KeyError(k)

    with pytest.raises(TypeError):
        Incomplete({})
    in_dict = {'a': 1, 'b': 2}
    mapping = Implemented(in_dict)
    assert len(mapping) == len(in_dict)
    for key in in_dict.keys():
        assert key in mapping
    assert sorted(mapping) == sorted(in_dict)


@pytest.fixture
def tally():
    """An integer tally that drops zero values."""
    return iterables.Tally(
        combine=operator.add,
        start=0,
        vanishes=lambda v: v == 0,
    )


def test_tally_add(tally: iterables.Tally):
    """Adding to a key should accumulate its value."""
    tally.add('a', 2)
    tally.add('b', 1)
    tally.add('a', 3)
    assert tally['a'] == 5
    assert tally['b'] == 1
    assert len(tally) == 2


def test_tally_vanishes(tally: iterables.Tally):
    """A key whose value vanishes should disappear."""
    tally.add('a', 2)
    tally.add('a', -2)
    assert 'a' not in tally
    assert len(tally) == 0
    tally['b'] = 0
    assert 'b' not in tally
    tally['b'] = 4
    del tally['b']
    assert not tally
    with pytest.raises(KeyError):
        tally['b']


def test_tally_freeze(tally: iterables.Tally):
    """Freezing should sort items by the given key."""
    tally.add('c', 1)
    tally.add('a', 2)
    tally.add('b', 3)
    assert tally.freeze(key=str) == (('a', 2), ('b', 3), ('c', 1))
    reverse = tally.freeze(key=lambda k: -ord(k))
    assert [k for k, _ in reverse] == ['c', 'b', 'a']
