"""
SQL fragment builders.

Fragments are plain strings with named bind parameters (``:p_0``) in the
SQLAlchemy ``text()`` style. Values never go into the SQL text: every
user-derived value is registered in a SQLParams object and bound at execution
time. Identifiers (table aliases, column names) only come from fixed tables
in the compiler.

The literal fragments 'true' and 'false' are used as identity/absorbing values
so that empty filters disappear from the final statement.
"""

from typing import Any, Dict, Iterable, Optional, Union

from feedsearch.open_list import OpenList, ListLike

TRUE = 'true'
FALSE = 'false'

Fragment = Optional[Union[str, bool]]


class SQLParams:
    """Collects bind parameter values for one statement."""

    def __init__(self, prefix: str = "p"):
        self.prefix = prefix
        self.values: Dict[str, Any] = {}

    def bind(self, value: Any) -> str:
        """Register a value and return its placeholder."""
        name = f"{self.prefix}_{len(self.values)}"
        self.values[name] = value
        return f":{name}"

    def __len__(self):
        return len(self.values)

    def __repr__(self):
        return f"SQLParams({self.values!r})"


# =============================================================================
# Boolean joins
# =============================================================================

def _join(parts: Iterable[Fragment], joiner: str) -> str:
    absorbing = FALSE if joiner == 'and' else TRUE
    identity = TRUE if joiner == 'and' else FALSE

    parts = [p for p in parts if p]
    if absorbing in parts:
        return absorbing

    parts = [p for p in parts if p != identity]
    if not parts:
        return identity
    if len(parts) == 1:
        return parts[0]
    return f"({f' {joiner} '.join(parts)})"


def and_join(parts: Iterable[Fragment]) -> str:
    """AND the non-empty fragments; 'false' absorbs, 'true' disappears."""
    return _join(parts, 'and')


def or_join(parts: Iterable[Fragment]) -> str:
    """OR the non-empty fragments; 'true' absorbs, 'false' disappears."""
    return _join(parts, 'or')


def sql_not(fragment: str) -> str:
    if fragment == TRUE:
        return FALSE
    if fragment == FALSE:
        return TRUE
    return f"not ({fragment})" if ' ' in fragment else f"not {fragment}"


def is_nontrivial(fragment: Fragment) -> bool:
    return bool(fragment) and fragment not in (TRUE, FALSE)


# =============================================================================
# Set membership
# =============================================================================

def sql_in(field: str, items: ListLike, params: SQLParams, sql_type: str = 'uuid') -> str:
    """
    Membership of a scalar column in an OpenList.

    An empty list gives 'false' and "everything" gives 'true', so callers never
    emit ``IN ()``.
    """
    lst = OpenList.from_(items)

    if lst.is_empty():
        return FALSE
    if lst.is_everything():
        return TRUE

    placeholder = params.bind(list(lst.items))
    if lst.inclusive:
        return f"{field} = any(cast({placeholder} as {sql_type}[]))"
    return f"{field} <> all(cast({placeholder} as {sql_type}[]))"


def sql_intarray_in(field: str, items: ListLike, params: SQLParams) -> str:
    """Overlap of an int[] column with an OpenList of ints (``&&``)."""
    lst = OpenList.from_(items)

    if lst.is_empty():
        return FALSE
    if lst.is_everything():
        return TRUE

    placeholder = params.bind([int(x) for x in lst.items])
    if lst.inclusive:
        return f"({field} && cast({placeholder} as int[]))"
    return f"(not {field} && cast({placeholder} as int[]))"
