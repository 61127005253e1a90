"""
Collaborator interface of the query compiler.

The compiler does not know how users, feeds or visibility rules are stored. It
asks a SearchBackend for the few things it needs and gets everything else from
the query itself. ``feedsearch.db.Database`` is the SQLAlchemy implementation;
tests use in-memory fakes.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from feedsearch.query.sql import SQLParams


@dataclass(frozen=True)
class Account:
    """A user or group as seen by the search compiler."""
    id: str
    int_id: int
    username: str
    kind: str = "user"  # 'user' or 'group'
    is_active: bool = True

    def is_user(self) -> bool:
        return self.kind == "user"

    def is_group(self) -> bool:
        return self.kind == "group"


class SearchBackend(Protocol):
    """Everything the compiler needs from the outside world."""

    async def get_account_by_id(self, account_id: str) -> Optional[Account]:
        """Account of the viewer (used to resolve 'me')."""
        ...

    async def resolve_accounts_by_name(self, names: Sequence[str]) -> Dict[str, Optional[Account]]:
        """Map every name to its account, or to None if there is no such account."""
        ...

    async def resolve_feed_ids(self, owner_ids: Sequence[str], feed_names: Sequence[str]) -> List[int]:
        """Int ids of the named feeds ('Posts', 'Comments', 'Likes', 'Directs', 'Saves') of the owners."""
        ...

    async def resolve_subscription_feed_ids(self, viewer_id: str) -> List[int]:
        """Int ids of the feeds the viewer is subscribed to."""
        ...

    async def posts_visibility_sql(self, viewer_id: Optional[str], params: "SQLParams") -> str:
        """Predicate over posts ``p`` and authors ``u`` restricting what the viewer may see."""
        ...

    async def comments_visibility_sql(self, viewer_id: Optional[str], params: "SQLParams", alias: str) -> str:
        """Predicate over comments ``<alias>`` restricting what the viewer may see."""
        ...

    async def execute_query(self, sql: str, params: Dict[str, Any]) -> List[str]:
        """Run the statement and return the first column of every row."""
        ...
