"""
Memoization Helpers

A cached value is recomputed only when the fingerprint of its dependencies
changes. Mutable schedule objects carry a version stamp that moves forward
on every public attribute assignment, which makes fingerprints cheap to build.
"""

import itertools
from typing import Any, Callable, Generic, TypeVar

T = TypeVar('T')

_version_counter = itertools.count(1)


def next_version() -> int:
    return next(_version_counter)


class Versioned:
    """Mixin that stamps the instance with a fresh version on each public assignment"""

    _version = 0

    def __setattr__(self, name: str, value: Any) -> None:
        object.__setattr__(self, name, value)
        if not name.startswith('_'):
            object.__setattr__(self, '_version', next_version())

    def touch(self) -> None:
        """Mark the instance changed after an in-place mutation"""
        object.__setattr__(self, '_version', next_version())

    @property
    def version(self) -> int:
        return self._version


class Memo(Generic[T]):
    """
    Cached value plus the dependency fingerprint it was computed from.

    Args:
        compute: Produces the value from current state
        dependencies: Produces a comparable fingerprint of the inputs
    """

    __slots__ = ('_compute', '_dependencies', '_fingerprint', '_value', '_has_value')

    def __init__(self, compute: Callable[[], T], dependencies: Callable[[], Any]):
        self._compute = compute
        self._dependencies = dependencies
        self._fingerprint = None
        self._value = None
        self._has_value = False

    def get(self) -> T:
        fingerprint = self._dependencies()
        if not self._has_value or fingerprint != self._fingerprint:
            self._value = self._compute()
            self._fingerprint = fingerprint
            self._has_value = True
        return self._value
