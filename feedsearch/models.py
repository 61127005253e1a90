"""
SQLAlchemy models for the tables the search compiler reads.

Only the columns used by search are mapped. Posts and comments carry a
generated ``body_tsvector`` column for full-text search, and posts carry the
int ids of all feeds they belong to in ``feed_ids`` (checked with ``&&``).
"""
import uuid
from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy import (
    Boolean, Computed, DateTime, ForeignKey, Identity, Index, Integer,
    String, Text,
)
from sqlalchemy.dialects.postgresql import ARRAY, TSVECTOR, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from feedsearch.constants import DEFAULT_TEXT_SEARCH_CONFIG

# comments.hide_type of a regular (not hidden or deleted) comment
COMMENT_VISIBLE = 0


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _tsvector(column: str) -> Computed:
    return Computed(f"to_tsvector('{DEFAULT_TEXT_SEARCH_CONFIG}', coalesce({column}, ''))", persisted=True)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class User(Base):
    """
    A user or a group.

    Attributes:
        uid: Primary key
        id: Int id, used by comment likes
        username: Unique name used in queries ('from:alice')
        type: 'user' or 'group'
        gone_status: Not null for deleted/suspended accounts
    """
    __tablename__ = 'users'

    uid: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    id: Mapped[int] = mapped_column(Integer, Identity(), unique=True, nullable=False)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default='user')
    gone_status: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    @property
    def is_active(self) -> bool:
        return self.gone_status is None


class Feed(Base):
    """A named feed of an account: Posts, Comments, Likes, Directs, Saves..."""
    __tablename__ = 'feeds'

    uid: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    id: Mapped[int] = mapped_column(Integer, Identity(), unique=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey('users.uid', ondelete='CASCADE'), nullable=False)
    name: Mapped[str] = mapped_column(String(32), nullable=False)

    __table_args__ = (
        Index('ix_feeds_user_id_name', 'user_id', 'name'),
    )


class Subscription(Base):
    """A user following a feed."""
    __tablename__ = 'subscriptions'

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey('users.uid', ondelete='CASCADE'), primary_key=True)
    feed_id: Mapped[uuid.UUID] = mapped_column(ForeignKey('feeds.uid', ondelete='CASCADE'), primary_key=True)


class Ban(Base):
    """user_id does not want to see anything by banned_user_id."""
    __tablename__ = 'bans'

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey('users.uid', ondelete='CASCADE'), primary_key=True)
    banned_user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey('users.uid', ondelete='CASCADE'), primary_key=True)


class Post(Base):
    """A post with its search-relevant columns."""
    __tablename__ = 'posts'

    uid: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    id: Mapped[int] = mapped_column(Integer, Identity(), unique=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey('users.uid', ondelete='CASCADE'), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False, default='')
    body_tsvector = mapped_column(TSVECTOR, _tsvector('body'))
    feed_ids: Mapped[List[int]] = mapped_column(ARRAY(Integer), nullable=False, default=list)
    destination_feed_ids: Mapped[List[int]] = mapped_column(ARRAY(Integer), nullable=False, default=list)
    is_private: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_protected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    bumped_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        Index('ix_posts_body_tsvector', 'body_tsvector', postgresql_using='gin'),
        Index('ix_posts_feed_ids', 'feed_ids', postgresql_using='gin'),
        Index('ix_posts_bumped_at', 'bumped_at'),
        Index('ix_posts_created_at', 'created_at'),
    )


class Comment(Base):
    """A comment with its search-relevant columns."""
    __tablename__ = 'comments'

    uid: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    id: Mapped[int] = mapped_column(Integer, Identity(), unique=True, nullable=False)
    post_id: Mapped[uuid.UUID] = mapped_column(ForeignKey('posts.uid', ondelete='CASCADE'), nullable=False, index=True)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey('users.uid', ondelete='SET NULL'), nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False, default='')
    body_tsvector = mapped_column(TSVECTOR, _tsvector('body'))
    hide_type: Mapped[int] = mapped_column(Integer, nullable=False, default=COMMENT_VISIBLE)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        Index('ix_comments_body_tsvector', 'body_tsvector', postgresql_using='gin'),
    )


class CommentLike(Base):
    """A like of a comment; both sides are int ids."""
    __tablename__ = 'comment_likes'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    comment_id: Mapped[int] = mapped_column(ForeignKey('comments.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)


class Attachment(Base):
    """A file attached to a post."""
    __tablename__ = 'attachments'

    uid: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    post_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey('posts.uid', ondelete='CASCADE'), nullable=True, index=True)
    media_type: Mapped[str] = mapped_column(String(16), nullable=False, default='general')  # image, audio, general
    file_name: Mapped[str] = mapped_column(String(512), nullable=False, default='')


class PostCounters(Base):
    """Denormalized per-post counters."""
    __tablename__ = 'post_counters'

    post_id: Mapped[uuid.UUID] = mapped_column(ForeignKey('posts.uid', ondelete='CASCADE'), primary_key=True)
    comments_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    likes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class CommentCounters(Base):
    """Denormalized per-comment counters."""
    __tablename__ = 'comment_counters'

    comment_id: Mapped[uuid.UUID] = mapped_column(ForeignKey('comments.uid', ondelete='CASCADE'), primary_key=True)
    likes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
