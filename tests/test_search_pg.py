"""
End-to-end search tests against PostgreSQL.

Set FEEDSEARCH_TEST_DATABASE_URL to a scratch database to run them; the
schema is dropped and recreated for every test.
"""
import asyncio
import os
from datetime import datetime, timezone

import pytest

from feedsearch.config import SearchConfig
from feedsearch.db import Database
from feedsearch.errors import AuthRequired
from feedsearch.models import (
    Attachment, Ban, Comment, CommentLike, Feed, Post, PostCounters, Subscription, User,
)
from feedsearch.query import search

DATABASE_URL = os.environ.get("FEEDSEARCH_TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(not DATABASE_URL, reason="FEEDSEARCH_TEST_DATABASE_URL is not set")


def day(n: int) -> datetime:
    return datetime(2020, 1, n, 12, 0, tzinfo=timezone.utc)


def run_search(db, query, viewer_id=None, **kwargs):
    return asyncio.run(search(db, query, viewer_id=viewer_id, config=SearchConfig(), **kwargs))


@pytest.fixture
def db():
    database = Database(DATABASE_URL)
    database.drop_schema()
    database.create_schema()
    yield database
    database.drop_schema()
    database.engine.dispose()


def add_user(session, username, **kwargs):
    user = User(username=username, **kwargs)
    session.add(user)
    session.flush()
    for name in ("Posts", "Comments", "Likes", "Directs", "Saves"):
        session.add(Feed(user_id=user.uid, name=name))
    session.flush()
    return user


def feed(session, user, name):
    return session.query(Feed).filter_by(user_id=user.uid, name=name).one()


def add_post(session, author, created_at, body="", comments=0, likes=0, **kwargs):
    posts_feed = feed(session, author, "Posts")
    post = Post(
        user_id=author.uid,
        body=body,
        created_at=created_at,
        updated_at=created_at,
        bumped_at=created_at,
        feed_ids=kwargs.pop("feed_ids", [posts_feed.id]),
        destination_feed_ids=kwargs.pop("destination_feed_ids", [posts_feed.id]),
        **kwargs
    )
    session.add(post)
    session.flush()
    session.add(PostCounters(post_id=post.uid, comments_count=comments, likes_count=likes))
    return post


class TestCounters:
    """Posts with 0, 2, 4 and 6 comments, newest has the most."""

    @pytest.fixture
    def posts(self, db):
        with db.session(expire_on_commit=False) as session:
            alice = add_user(session, "alice")
            posts = {n: add_post(session, alice, day(n // 2 + 1), comments=n) for n in (0, 2, 4, 6)}
        return {n: str(p.uid) for n, p in posts.items()}

    def test_exact(self, db, posts):
        assert run_search(db, "comments:0") == [posts[0]]

    def test_at_most(self, db, posts):
        assert run_search(db, "comments:<=2") == [posts[2], posts[0]]

    def test_range(self, db, posts):
        assert run_search(db, "comments:3..5") == [posts[4]]

    def test_combined_bounds(self, db, posts):
        assert run_search(db, "comments:>=3 comments:<=5") == [posts[4]]

    def test_excluded(self, db, posts):
        assert run_search(db, "-comments:2..4") == [posts[6], posts[0]]

    def test_paging(self, db, posts):
        assert run_search(db, "comments:>=0", limit=2, offset=1) == [posts[4], posts[2]]


class TestDates:
    """Posts dated Jan 1, 2 and 3."""

    @pytest.fixture
    def posts(self, db):
        with db.session(expire_on_commit=False) as session:
            alice = add_user(session, "alice")
            posts = {n: add_post(session, alice, day(n)) for n in (1, 2, 3)}
        return posts

    def test_single_day(self, db, posts):
        assert run_search(db, "date:2020-01-02") == [str(posts[2].uid)]

    def test_comment_date_matches_its_post(self, db, posts):
        with db.session() as session:
            session.add(Comment(post_id=posts[1].uid, user_id=posts[1].user_id, body="late", created_at=day(2)))

        assert run_search(db, "date:2020-01-02") == [str(posts[2].uid), str(posts[1].uid)]
        assert run_search(db, "post-date:2020-01-02") == [str(posts[2].uid)]

    def test_open_range(self, db, posts):
        assert run_search(db, "date:>=2020-01-02") == [str(posts[3].uid), str(posts[2].uid)]


class TestText:
    """Full-text search in posts and comments."""

    @pytest.fixture
    def posts(self, db):
        with db.session(expire_on_commit=False) as session:
            alice = add_user(session, "alice")
            bob = add_user(session, "bob")
            zebra = add_post(session, alice, day(1), body="The quick zebra jumps")
            lion = add_post(session, bob, day(2), body="Nothing here")
            session.add(Comment(post_id=lion.uid, user_id=alice.uid, body="A lion roars", created_at=day(2)))
            session.add(Attachment(post_id=zebra.uid, media_type="image", file_name="zebra.JPG"))
        return {"zebra": str(zebra.uid), "lion": str(lion.uid)}

    def test_word_in_post(self, db, posts):
        assert run_search(db, "zebra") == [posts["zebra"]]

    def test_word_in_comment(self, db, posts):
        assert run_search(db, "lion") == [posts["lion"]]

    def test_scopes(self, db, posts):
        assert run_search(db, "in-body: lion") == []
        assert run_search(db, "in-comments: lion") == [posts["lion"]]

    def test_phrase_and_prefix(self, db, posts):
        assert run_search(db, '"quick zebra"') == [posts["zebra"]]
        assert run_search(db, '"zebra quick"') == []
        assert run_search(db, "zeb*") == [posts["zebra"]]

    def test_followed_by(self, db, posts):
        assert run_search(db, "quick + zebra") == [posts["zebra"]]
        assert run_search(db, "zebra + quick") == []

    def test_or_and_exclusion(self, db, posts):
        assert run_search(db, "zebra | lion") == [posts["lion"], posts["zebra"]]
        assert run_search(db, "zebra | lion -roars") == [posts["zebra"]]

    def test_authors(self, db, posts):
        assert run_search(db, "from:bob") == [posts["lion"]]
        assert run_search(db, "lion author:alice") == [posts["lion"]]
        assert run_search(db, "lion author:bob") == []
        assert run_search(db, "from:nobody") == []

    def test_files(self, db, posts):
        assert run_search(db, "has:images") == [posts["zebra"]]
        assert run_search(db, "has:.jpg") == [posts["zebra"]]
        assert run_search(db, "-has:files") == [posts["lion"]]

    def test_user_text_is_not_sql(self, db, posts):
        assert run_search(db, "'; drop table posts; --") == []
        assert run_search(db, "zebra") == [posts["zebra"]]


class TestFeedsAndVisibility:
    """Feed conditions and the visibility rules of the database backend."""

    @pytest.fixture
    def data(self, db):
        with db.session(expire_on_commit=False) as session:
            alice = add_user(session, "alice")
            bob = add_user(session, "bob")
            carol = add_user(session, "carol")
            cats = add_user(session, "cats", type="group")

            public = add_post(session, bob, day(1), body="public")
            cats_posts = feed(session, cats, "Posts")
            in_group = add_post(session, alice, day(2), body="group", feed_ids=[cats_posts.id], destination_feed_ids=[cats_posts.id])
            private = add_post(session, bob, day(3), body="private", is_private=True, is_protected=True)
            protected = add_post(session, carol, day(4), body="protected", is_protected=True)

            session.add(Subscription(user_id=alice.uid, feed_id=feed(session, bob, "Posts").uid))

            comment = Comment(post_id=public.uid, user_id=carol.uid, body="nice", created_at=day(1))
            session.add(comment)
            session.flush()
            session.add(CommentLike(comment_id=comment.id, user_id=alice.id))

            # public post is in alice's Comments feed through her comment
            public.feed_ids = public.feed_ids + [feed(session, alice, "Comments").id]

        return {
            "alice": str(alice.uid),
            "carol": str(carol.uid),
            "public": str(public.uid),
            "in_group": str(in_group.uid),
            "private": str(private.uid),
            "protected": str(protected.uid),
        }

    def test_anonymous_sees_public_posts(self, db, data):
        assert run_search(db, "") == [data["in_group"], data["public"]]

    def test_subscriber_sees_private_posts(self, db, data):
        assert run_search(db, "", viewer_id=data["alice"]) == [
            data["protected"], data["private"], data["in_group"], data["public"],
        ]

    def test_stranger_does_not_see_private_posts(self, db, data):
        assert data["private"] not in run_search(db, "", viewer_id=data["carol"])

    def test_in_group(self, db, data):
        assert run_search(db, "in:cats") == [data["in_group"]]
        assert run_search(db, "-in:cats") == [data["public"]]

    def test_in_my_discussions(self, db, data):
        assert run_search(db, "in-my:discussions", viewer_id=data["alice"]) == [data["in_group"], data["public"]]

    def test_in_my_requires_viewer(self, db, data):
        with pytest.raises(AuthRequired):
            run_search(db, "in-my:discussions")

    def test_cliked_by(self, db, data):
        assert run_search(db, "cliked-by:alice") == [data["public"]]
        assert run_search(db, "cliked-by:carol") == []

    def test_privacy_filters(self, db, data):
        assert run_search(db, "is:private", viewer_id=data["alice"]) == [data["private"]]
        assert run_search(db, "is:protected", viewer_id=data["alice"]) == [data["protected"]]


class TestHiddenComments:
    """Hidden comments and comments by banned users hide only themselves."""

    @pytest.fixture
    def data(self, db):
        with db.session(expire_on_commit=False) as session:
            alice = add_user(session, "alice")
            bob = add_user(session, "bob")
            carol = add_user(session, "carol")

            commented = add_post(session, carol, day(1), body="cat")
            session.add(Comment(post_id=commented.uid, user_id=bob.uid, body="dog", created_at=day(1)))

            hidden = add_post(session, carol, day(2), body="cat")
            session.add(Comment(post_id=hidden.uid, user_id=bob.uid, body="mouse", hide_type=1, created_at=day(2)))

            session.add(Ban(user_id=alice.uid, banned_user_id=bob.uid))

        return {"alice": str(alice.uid), "commented": str(commented.uid), "hidden": str(hidden.uid)}

    def test_post_with_hidden_comment_is_found(self, db, data):
        assert run_search(db, "cat") == [data["hidden"], data["commented"]]

    def test_hidden_comment_text_is_not_searched(self, db, data):
        assert run_search(db, "mouse") == []

    def test_banned_commenter(self, db, data):
        assert run_search(db, "dog") == [data["commented"]]
        assert run_search(db, "dog", viewer_id=data["alice"]) == []
        assert run_search(db, "cat", viewer_id=data["alice"]) == [data["hidden"], data["commented"]]
