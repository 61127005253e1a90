import os
import uuid
import pytest

import feedsearch.config
from feedsearch.backend import Account
from feedsearch.config import SearchConfig


def account_id(n: int) -> str:
    return str(uuid.UUID(int=n))


ALICE = Account(id=account_id(1), int_id=1, username="alice")
BOB = Account(id=account_id(2), int_id=2, username="bob")
CATS = Account(id=account_id(3), int_id=3, username="cats", kind="group")
GHOST = Account(id=account_id(4), int_id=4, username="ghost", is_active=False)

# (owner id, feed name) -> feed ids
FEEDS = {
    (ALICE.id, "Posts"): [11],
    (ALICE.id, "Comments"): [12],
    (ALICE.id, "Likes"): [13],
    (ALICE.id, "Directs"): [14],
    (ALICE.id, "Saves"): [15],
    (BOB.id, "Posts"): [21],
    (BOB.id, "Comments"): [22],
    (BOB.id, "Likes"): [23],
    (BOB.id, "Directs"): [24],
    (CATS.id, "Posts"): [31],
    (GHOST.id, "Posts"): [41],
    (GHOST.id, "Comments"): [42],
}

SUBSCRIPTIONS = {
    ALICE.id: [21, 31],
}


class FakeBackend:
    """In-memory SearchBackend that records every call."""

    def __init__(self, accounts=(ALICE, BOB, CATS, GHOST), feeds=None, subscriptions=None, results=()):
        self.accounts = {a.username: a for a in accounts}
        self.feeds = FEEDS if feeds is None else feeds
        self.subscriptions = SUBSCRIPTIONS if subscriptions is None else subscriptions
        self.results = list(results)
        self.calls = []
        self.executed = []

    async def get_account_by_id(self, account_id):
        self.calls.append(("get_account_by_id", account_id))
        return next((a for a in self.accounts.values() if a.id == account_id), None)

    async def resolve_accounts_by_name(self, names):
        self.calls.append(("resolve_accounts_by_name", tuple(names)))
        return {name: self.accounts.get(name) for name in names}

    async def resolve_feed_ids(self, owner_ids, feed_names):
        self.calls.append(("resolve_feed_ids", tuple(owner_ids), tuple(feed_names)))
        return [i for o in owner_ids for n in feed_names for i in self.feeds.get((o, n), [])]

    async def resolve_subscription_feed_ids(self, viewer_id):
        self.calls.append(("resolve_subscription_feed_ids", viewer_id))
        return list(self.subscriptions.get(viewer_id, []))

    async def posts_visibility_sql(self, viewer_id, params):
        self.calls.append(("posts_visibility_sql", viewer_id))
        if viewer_id is None:
            return "not p.is_protected"
        return f"(not p.is_private or p.user_id = cast({params.bind(viewer_id)} as uuid))"

    async def comments_visibility_sql(self, viewer_id, params, alias):
        self.calls.append(("comments_visibility_sql", viewer_id))
        return f"{alias}.hide_type = 0"

    async def execute_query(self, sql, params):
        self.executed.append((sql, params))
        return list(self.results)


@pytest.fixture(autouse=True)
def default_config(monkeypatch):
    """Use built-in defaults instead of the user's config files and FEEDSEARCH_* variables."""
    for key in list(os.environ.keys()):
        if key.startswith("FEEDSEARCH_") and key != "FEEDSEARCH_TEST_DATABASE_URL":
            monkeypatch.delenv(key, raising=False)
    config = SearchConfig()
    monkeypatch.setattr(feedsearch.config, "_config", config)
    return config


@pytest.fixture
def backend():
    """Fake backend with alice, bob, the cats group and the deleted user ghost."""
    return FakeBackend()


@pytest.fixture
def alice():
    return ALICE


@pytest.fixture
def bob():
    return BOB
