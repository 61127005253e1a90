"""
Open lists: sets that can also say "everything except these items".

An OpenList is a pair of (items, inclusive):

- inclusive=True: the set is exactly ``items``
- inclusive=False: the set is every possible value except ``items``

This lets the compiler combine positive and negated filters (``from:alice``,
``-from:bob``, ``in:cats -in:dogs``) with ordinary set algebra without ever
enumerating the universe. All operations are closed over OpenList and keep De
Morgan duality: ``inverse(intersection(a, b)) == union(inverse(a), inverse(b))``.

Example:
    >>> a = OpenList(['alice', 'bob'])
    >>> b = OpenList.inverse(['bob'])
    >>> OpenList.intersection(a, b)
    OpenList(['alice'])
"""

from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, Optional, Tuple, TypeVar, Union

T = TypeVar("T")
U = TypeVar("U")

ListLike = Union["OpenList[T]", Iterable[T]]


def _unique(items: Iterable[Any]) -> tuple:
    return tuple(dict.fromkeys(items))


@dataclass(frozen=True, eq=False)
class OpenList(Generic[T]):
    """An immutable set of T that may be complemented."""
    items: Tuple[T, ...] = ()
    inclusive: bool = True

    def __post_init__(self):
        object.__setattr__(self, "items", _unique(self.items))

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def everything(cls) -> "OpenList[T]":
        return cls((), False)

    @classmethod
    def empty(cls) -> "OpenList[T]":
        return cls((), True)

    @classmethod
    def from_(cls, value: ListLike) -> "OpenList[T]":
        """Accept an OpenList as is, or treat any iterable as an inclusive list."""
        if isinstance(value, OpenList):
            return value
        return cls(tuple(value), True)

    # -------------------------------------------------------------------------
    # Predicates
    # -------------------------------------------------------------------------

    def is_empty(self) -> bool:
        return self.inclusive and not self.items

    def is_everything(self) -> bool:
        return not self.inclusive and not self.items

    def __contains__(self, item: Any) -> bool:
        return (item in self.items) == self.inclusive

    # -------------------------------------------------------------------------
    # Algebra
    # -------------------------------------------------------------------------

    @classmethod
    def inverse(cls, value: ListLike) -> "OpenList[T]":
        lst = cls.from_(value)
        return cls(lst.items, not lst.inclusive)

    @classmethod
    def union(cls, a: ListLike, b: ListLike) -> "OpenList[T]":
        a, b = cls.from_(a), cls.from_(b)

        if a.inclusive and b.inclusive:
            return cls(a.items + b.items, True)

        if not a.inclusive and not b.inclusive:
            # not A' or not B' == not (A' and B')
            return cls(tuple(x for x in a.items if x in b.items), False)

        incl, excl = (a, b) if a.inclusive else (b, a)
        return cls(tuple(x for x in excl.items if x not in incl.items), False)

    @classmethod
    def intersection(cls, a: ListLike, b: ListLike) -> "OpenList[T]":
        a, b = cls.from_(a), cls.from_(b)

        if a.inclusive and b.inclusive:
            return cls(tuple(x for x in a.items if x in b.items), True)

        if not a.inclusive and not b.inclusive:
            # not A' and not B' == not (A' or B')
            return cls(a.items + b.items, False)

        incl, excl = (a, b) if a.inclusive else (b, a)
        return cls(tuple(x for x in incl.items if x not in excl.items), True)

    @classmethod
    def difference(cls, a: ListLike, b: ListLike) -> "OpenList[T]":
        return cls.intersection(a, cls.inverse(b))

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def map(self, fn: Callable[[T], Optional[U]]) -> "OpenList[U]":
        """
        Apply fn to every item, dropping items for which fn returns None.

        Used to turn account names into ids: unknown names disappear, so an
        inclusive list of unknown names becomes empty (matches nothing) and an
        exclusive one becomes everything (excludes nothing).
        """
        mapped = (fn(x) for x in self.items)
        return OpenList(tuple(x for x in mapped if x is not None), self.inclusive)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, OpenList):
            return NotImplemented
        return self.inclusive == other.inclusive and set(self.items) == set(other.items)

    def __hash__(self) -> int:
        return hash((frozenset(self.items), self.inclusive))

    def __repr__(self):
        if self.inclusive:
            return f"OpenList({list(self.items)!r})"
        return f"OpenList.inverse({list(self.items)!r})"
