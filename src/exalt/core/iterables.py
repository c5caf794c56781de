import collections.abc
import typing


class ReprStrMixin:
    """A mixin class that provides support for `__repr__` and `__str__`.

    Concrete classes may override `__str__` to control both representations.
    The default `__repr__` wraps the result of `__str__` in the name of the
    concrete class, prefixed by its (shortened) module path.
    """

    def __str__(self) -> str:
        """A simplified representation of this object."""
        return ''

    def __repr__(self) -> str:
        """An unambiguous representation of this object."""
        module = f"{self.__module__.replace('exalt.', '')}."
        name = self.__class__.__qualname__
        return f"{module}{name}({self})"


class MappingBase(collections.abc.Mapping):
    """A partial implementation of `collections.abc.Mapping`.

    This abstract base class is designed to serve as a basis for easily creating
    concrete implementations of `collections.abc.Mapping`. It defines simple
    implementations, based on a user-provided collection, for the abstract
    methods `__len__` and `__iter__` but leaves `__getitem__` abstract.
    """

    def __init__(self, __collection: typing.Collection) -> None:
        """Initialize this instance with the base collection.

        Parameters
        ----------
        __collection
            Any concrete implementation of `collections.abc.Collection`. This
            attribute's implementations of the required collection methods will
            support the equivalent implementations for this mapping.
        """
        self._collection = __collection

    def __len__(self) -> int:
        """The number of members in this collection."""
        return len(self._collection)

    def __iter__(self) -> typing.Iterator:
        """Iterate over members of this collection."""
        return iter(self._collection)


KT = typing.TypeVar('KT', bound=typing.Hashable)
VT = typing.TypeVar('VT')


class Tally(collections.abc.MutableMapping, typing.Generic[KT, VT]):
    """A growable mapping that accumulates values by key.

    Each call to `add` combines the new amount with the current value stored
    at the given key (or with `start`, for a new key) via the `combine`
    callable. Any key whose accumulated value satisfies `vanishes` disappears
    from the tally. Smart constructors use instances of this class as private
    builders before freezing the result into an immutable node.
    """

    def __init__(
        self,
        combine: typing.Callable[[VT, VT], VT],
        start: VT,
        vanishes: typing.Callable[[VT], bool],
    ) -> None:
        self._combine = combine
        self._start = start
        self._vanishes = vanishes
        self._data: typing.Dict[KT, VT] = {}

    def add(self, key: KT, amount: VT) -> None:
        """Combine `amount` with the value at `key`."""
        current = self._data.get(key, self._start)
        updated = self._combine(current, amount)
        if self._vanishes(updated):
            self._data.pop(key, None)
        else:
            self._data[key] = updated

    def __getitem__(self, __k: KT) -> VT:
        return self._data[__k]

    def __setitem__(self, __k: KT, __v: VT) -> None:
        if self._vanishes(__v):
            self._data.pop(__k, None)
        else:
            self._data[__k] = __v

    def __delitem__(self, __k: KT) -> None:
        del self._data[__k]

    def __iter__(self) -> typing.Iterator[KT]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def freeze(
        self,
        key: typing.Callable[[KT], typing.Any],
    ) -> typing.Tuple[typing.Tuple[KT, VT], ...]:
        """Return the current items, sorted by `key` applied to each key."""
        return tuple(sorted(self._data.items(), key=lambda item: key(item[0])))
