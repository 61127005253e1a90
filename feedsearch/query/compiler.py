"""
SQL compiler for parsed search queries.

Turns a ParsedQuery into one PostgreSQL statement that returns the ids of the
matching posts, newest first. The statement has this shape:

    [with posts as materialized (select * from posts p where <feeds>)]
    select p.uid, p.<sort>_at as date, p.id
      from posts p join users u ... [left join comments c ...]
      where <text in post body> and <common filters>
      group by ... having <aggregate filters>
    union
    select p.uid, p.<sort>_at as date, p.id
      from ...
      where <text in comment body> and <common filters>
      group by ... having <aggregate filters>
    order by date desc, id desc limit :limit offset :offset

Text that applies to both posts and comments would naturally be
``(p.body_tsvector @@ q or c.body_tsvector @@ q)``, but PostgreSQL cannot use
the indexes for such an OR, so the two alternatives become two UNION members.

Feed conditions (``in:``, ``commented-by:``...) are evaluated first in a
materialized CTE: the planner tends to check ``feed_ids && ...`` after cheaper
looking but less selective conditions, which is much slower on large tables.

Every user-derived value is a bound parameter; see ``feedsearch.query.sql``.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Dict, List, Optional, Sequence, Tuple, TypeVar, TYPE_CHECKING

from feedsearch.constants import (
    DEFAULT_LIMIT, DEFAULT_MAX_QUERY_COMPLEXITY, DEFAULT_OFFSET, DEFAULT_SORT,
    DEFAULT_TEXT_SEARCH_CONFIG, ME, SORT_KEYS,
)
from feedsearch.errors import AuthRequired, ComplexityExceeded
from feedsearch.open_list import OpenList

from .parser import ParsedQuery, query_complexity, walk_in_scope, walk_with_scope
from .sql import (
    FALSE, TRUE, SQLParams, and_join, is_nontrivial, or_join, sql_in,
    sql_intarray_in, sql_not,
)
from .tokens import (
    Token, Text, AnyText, SeqTexts, Condition, InScope, Scope, ACCOUNT_CONDITIONS,
)

if TYPE_CHECKING:
    from feedsearch.backend import Account, SearchBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")

AccountsMap = Dict[str, Optional["Account"]]

# Named feeds behind the account/feed conditions
FEED_CONDITIONS = {
    'in': 'Posts',
    'commented-by': 'Comments',
    'liked-by': 'Likes',
}

# Comments are kept when their author is gone, so are their Comments feeds
GONE_USER_FEEDS = frozenset(['Comments'])

MY_FEEDS = ('saves', 'directs', 'discussions', 'friends')

PRIVACY_WORDS = ('public', 'private', 'protected')

# The 'file' type means any of these
COMMON_FILE_TYPES = ('audio', 'image', 'general')


@dataclass
class CompiledQuery:
    """A ready to run statement with its bind parameters."""
    sql: str
    params: Dict[str, Any] = field(default_factory=dict)
    complexity: int = 0

    def __str__(self):
        return self.sql


def is_condition(token: Token, name: str) -> bool:
    return isinstance(token, Condition) and token.name == name


# =============================================================================
# Text search
# =============================================================================

def _quote_lexeme(word: str) -> str:
    """Quote a word as a tsquery lexeme."""
    return "'" + word.replace("\\", "\\\\").replace("'", "''") + "'"


class TextQueryBuilder:
    """Builds tsquery expressions for text tokens of one statement."""

    def __init__(self, params: SQLParams, config_name: str):
        self.params = params
        self.config_name = config_name
        self._config = None

    def text(self, text: Text) -> str:
        if self._config is None:
            self._config = self.params.bind(self.config_name)
        cfg = f"cast({self._config} as regconfig)"

        if text.is_phrase:
            sql = f"phraseto_tsquery({cfg}, {self.params.bind(text.value)})"
        elif text.is_prefix:
            lexeme = _quote_lexeme(text.value.rstrip('*')) + ':*'
            sql = f"to_tsquery({cfg}, {self.params.bind(lexeme)})"
        else:
            sql = f"plainto_tsquery({cfg}, {self.params.bind(text.value)})"

        return f"(!!{sql})" if text.excluded else sql

    def token(self, token: Token) -> str:
        match token:
            case Text():
                return self.text(token)
            case AnyText(children=children):
                return self._group([self.text(c) for c in children], '||')
            case SeqTexts(children=children):
                return self._group([self.token(c) for c in children], '<->')
            case InScope(payload=payload):
                return self.token(payload)
        raise TypeError(f"Not a text token: {token!r}")

    def scope(self, tokens: Sequence[Token], scope: Scope) -> Optional[str]:
        """Conjunction of all text blocks of exactly the given scope."""
        parts = [
            self.token(t) for t in walk_in_scope(tokens, scope)
            if isinstance(t, (SeqTexts, InScope))
        ]
        return self._group(parts, '&&') if parts else None

    @staticmethod
    def _group(parts: List[str], op: str) -> str:
        if len(parts) == 1:
            return parts[0]
        return f"({f' {op} '.join(parts)})"


# =============================================================================
# Filters
# =============================================================================

def _as_list(token: Condition) -> OpenList[str]:
    args = OpenList(token.args)
    return OpenList.inverse(args) if token.excluded else args


def author_names(tokens: Sequence[Token], scope: Scope) -> OpenList[str]:
    """Allowed text authors ('author:'/'by:') for one scope."""
    result = OpenList.everything()
    for token in walk_in_scope(tokens, scope):
        if is_condition(token, 'author'):
            result = OpenList.intersection(result, _as_list(token))
    return result


def post_author_names(tokens: Sequence[Token]) -> OpenList[str]:
    """Allowed post authors ('from:'), regardless of scope."""
    result = OpenList.everything()
    for token in tokens:
        if is_condition(token, 'from'):
            result = OpenList.intersection(result, _as_list(token))
    return result


def names_to_ids(names: OpenList[str], accounts: AccountsMap) -> OpenList[str]:
    """Replace names with account ids, dropping unknown names."""
    return names.map(lambda n: accounts[n].id if accounts.get(n) else None)


def interval_sql(token: Condition, column: str, params: SQLParams, is_date: bool) -> str:
    """
    Bounds check for an interval condition.

    Date bounds are half-open [lower, upper); counter bounds are inclusive.
    """
    lower, upper = token.args

    if is_date:
        sql = and_join([
            lower and f"{column} >= cast({params.bind(lower)} as timestamptz)",
            upper and f"{column} < cast({params.bind(upper)} as timestamptz)",
        ])
    elif lower and upper:
        sql = f"{column} between {params.bind(int(lower))} and {params.bind(int(upper))}"
    else:
        sql = and_join([
            lower and f"{column} >= {params.bind(int(lower))}",
            upper and f"{column} <= {params.bind(int(upper))}",
        ])

    return sql_not(sql) if token.excluded else sql


def content_date_sql(tokens: Sequence[Token], column: str, scope: Scope, params: SQLParams) -> str:
    """'date:' conditions of exactly the given scope."""
    return and_join([
        interval_sql(t, column, params, is_date=True)
        for t in walk_in_scope(tokens, scope) if is_condition(t, 'date')
    ])


def post_date_sql(tokens: Sequence[Token], column: str, params: SQLParams) -> str:
    """'post-date:' conditions, regardless of scope."""
    return and_join([
        interval_sql(t, column, params, is_date=True)
        for t in tokens if is_condition(t, 'post-date')
    ])


def counters_sql(tokens: Sequence[Token], name: str, column: str, params: SQLParams) -> str:
    return and_join([
        interval_sql(t, column, params, is_date=False)
        for t in tokens if is_condition(t, name)
    ])


def _split_by_exclusion(tokens: Sequence[Token], name: str, words=None) -> Tuple[Optional[list], Optional[list]]:
    """
    Collect the arguments of the named conditions into (positive, negative).

    Either side is None if there are no such conditions.
    """
    positive = None
    negative = None

    for token in tokens:
        if not is_condition(token, name):
            continue
        args = [a for a in token.args if words is None or words(a)]
        if token.excluded:
            negative = list(dict.fromkeys((negative or []) + args))
        else:
            positive = list(dict.fromkeys((positive or []) + args))

    return positive, negative


def _privacy_condition(word: str, alias: str) -> str:
    if word == 'public':
        return f"not {alias}.is_protected"
    if word == 'protected':
        return f"({alias}.is_protected and not {alias}.is_private)"
    return f"{alias}.is_private"


def privacy_sql(tokens: Sequence[Token], alias: str) -> str:
    """'is:public', 'is:protected' and 'is:private' filters."""
    positive, negative = _split_by_exclusion(tokens, 'is', lambda w: w in PRIVACY_WORDS)

    return and_join([
        positive is not None and or_join([_privacy_condition(w, alias) for w in positive]),
        negative is not None and sql_not(or_join([_privacy_condition(w, alias) for w in negative])),
    ])


def _file_types_aggregate(types: List[str], alias: str, params: SQLParams) -> str:
    if all(t in types for t in COMMON_FILE_TYPES):
        return f"bool_or({alias}.media_type is not null)"

    conditions = []
    for t in types:
        if t.startswith('.'):
            conditions.append(
                f"lower(reverse(split_part(reverse({alias}.file_name), '.', 1))) = "
                f"{params.bind(t[1:])}"
            )
        else:
            conditions.append(f"{alias}.media_type = {params.bind(t)}")

    sql = or_join(conditions)
    return f"bool_or({sql})" if is_nontrivial(sql) else sql


def file_types_sql(tokens: Sequence[Token], alias: str, params: SQLParams) -> str:
    """'has:' filters as aggregates over the post attachments."""
    def expand(args: Optional[list]) -> Optional[list]:
        if args is None:
            return None
        result = []
        for a in args:
            result.extend(COMMON_FILE_TYPES if a == 'file' else [a])
        return list(dict.fromkeys(result))

    positive, negative = _split_by_exclusion(tokens, 'has')
    positive, negative = expand(positive), expand(negative)

    return and_join([
        positive is not None and _file_types_aggregate(positive, alias, params),
        negative is not None and sql_not(_file_types_aggregate(negative, alias, params)),
    ])


def cliked_by_sql(tokens: Sequence[Token], column: str, accounts: AccountsMap, params: SQLParams) -> str:
    """'cliked-by:' filters as aggregates over the comment likes."""
    comment_tokens = list(walk_in_scope(tokens, Scope.COMMENTS))
    positive, negative = _split_by_exclusion(comment_tokens, 'cliked-by')

    def aggregate(names: List[str]) -> str:
        ids = [accounts[n].int_id for n in names if accounts.get(n)]
        if not ids:
            return FALSE
        return f"bool_or({column} = any(cast({params.bind(ids)} as int[])))"

    return and_join([
        positive is not None and aggregate(positive),
        negative is not None and sql_not(aggregate(negative)),
    ])


def is_discussions(token: Token) -> bool:
    """
    True for 'in-my:discussions'.

    Discussions are the posts the viewer commented on, liked, or wrote. The
    first two are feeds, the last is authorship, so the compiler adds "or posts
    from me" to this condition (and "not posts from me" to its excluded form).
    """
    return is_condition(token, 'in-my') and any('discussion' in a for a in token.args)


async def gather_or_cancel(*aws: Awaitable[T]) -> List[T]:
    """
    Like asyncio.gather, but when one awaitable fails the others are cancelled
    and awaited before the error propagates.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def _join_lines(lines: Sequence[Any], joiner: str = '') -> str:
    lines = [line for line in lines if line]
    return f"\n{joiner}\n".join(lines) if joiner else "\n".join(lines)


# =============================================================================
# Compiler
# =============================================================================

class QueryCompiler:
    """
    Compiles parsed queries into SQL for one backend.

    The compiler keeps no per-query state, so one instance can serve many
    concurrent compilations.
    """

    def __init__(
        self,
        backend: "SearchBackend",
        text_search_config: str = DEFAULT_TEXT_SEARCH_CONFIG,
        max_query_complexity: int = DEFAULT_MAX_QUERY_COMPLEXITY,
    ):
        self.backend = backend
        self.text_search_config = text_search_config
        self.max_query_complexity = max_query_complexity

    def check(self, tokens: ParsedQuery, viewer_id: Optional[str] = None, sort: str = DEFAULT_SORT) -> int:
        """
        Reject queries that must not reach the database.

        Returns:
            The query complexity
        """
        complexity = query_complexity(tokens)
        if complexity > self.max_query_complexity:
            logger.info(f"Rejecting query with complexity {complexity} > {self.max_query_complexity}")
            raise ComplexityExceeded(complexity, self.max_query_complexity)

        if viewer_id is None and any(is_condition(t, 'in-my') for t in tokens):
            raise AuthRequired("Please sign in to use 'in-my:' filter")

        if sort not in SORT_KEYS:
            raise ValueError(f"Unknown sort key: {sort}")

        return complexity

    async def compile(
        self,
        tokens: ParsedQuery,
        viewer_id: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
        offset: int = DEFAULT_OFFSET,
        sort: str = DEFAULT_SORT,
    ) -> CompiledQuery:
        """
        Compile a parsed query.

        Args:
            tokens: Result of parse_query()
            viewer_id: Id of the signed-in user, None for anonymous
            limit: Page size
            offset: Page offset
            sort: 'bumped', 'created' or 'updated'

        Returns:
            CompiledQuery returning post ids ordered by (sort date, id) desc

        Raises:
            ComplexityExceeded: The query is too complex
            AuthRequired: The query needs a signed-in viewer
        """
        complexity = self.check(tokens, viewer_id, sort)

        has_post_tokens = False
        has_comment_tokens = False
        for _, scope in walk_with_scope(tokens):
            has_post_tokens = has_post_tokens or bool(scope & Scope.POSTS)
            has_comment_tokens = has_comment_tokens or bool(scope & Scope.COMMENTS)

        # Name -> account (or None) for every name used in the query
        accounts, tokens = await self._resolve_accounts(tokens, viewer_id)

        params = SQLParams()
        texts = TextQueryBuilder(params, self.text_search_config)

        # Text queries
        common_text = texts.scope(tokens, Scope.ALL)
        posts_only_text = texts.scope(tokens, Scope.POSTS)
        comments_only_text = texts.scope(tokens, Scope.COMMENTS)

        # Text authorship ('author:'/'by:')
        common_authors = names_to_ids(author_names(tokens, Scope.ALL), accounts)
        post_text_authors = names_to_ids(author_names(tokens, Scope.POSTS), accounts)
        comment_text_authors = names_to_ids(author_names(tokens, Scope.COMMENTS), accounts)

        # Post authorship ('from:')
        post_authors = names_to_ids(post_author_names(tokens), accounts)

        # Feeds
        feed_parts = []
        for token, feed_ids in await self._feed_id_lists(tokens, accounts):
            feed_sql = sql_intarray_in('p.feed_ids', feed_ids, params)
            if is_discussions(token):
                me_id = accounts[ME].id
                if token.excluded:
                    post_authors = OpenList.intersection(post_authors, OpenList.inverse([me_id]))
                else:
                    feed_sql = or_join([feed_sql, f"p.user_id = cast({params.bind(me_id)} as uuid)"])
            feed_parts.append(feed_sql)
        posts_feeds_sql = and_join(feed_parts)

        # Dates
        posts_content_date_sql = and_join([
            content_date_sql(tokens, 'p.created_at', Scope.ALL, params),
            content_date_sql(tokens, 'p.created_at', Scope.POSTS, params),
        ])
        comments_content_date_sql = and_join([
            content_date_sql(tokens, 'c.created_at', Scope.ALL, params),
            content_date_sql(tokens, 'c.created_at', Scope.COMMENTS, params),
        ])
        posts_date_sql = post_date_sql(tokens, 'p.created_at', params)

        # Files
        file_types = file_types_sql(tokens, 'a', params)
        use_files_table = is_nontrivial(file_types)

        # Privacy
        posts_privacy_sql = privacy_sql(tokens, 'p')

        # Counters
        post_counters_sql = and_join([
            counters_sql(tokens, 'comments', 'pc.comments_count', params),
            counters_sql(tokens, 'likes', 'pc.likes_count', params),
        ])
        use_post_counters_table = is_nontrivial(post_counters_sql)

        comment_counters_sql = counters_sql(tokens, 'clikes', 'cc.likes_count', params)
        use_comment_counters_table = is_nontrivial(comment_counters_sql)

        # Comment likes
        clikes_sql = cliked_by_sql(tokens, 'cl.user_id', accounts, params)
        use_clikes_table = is_nontrivial(clikes_sql)

        # Visibility
        posts_restrictions_sql = await self.backend.posts_visibility_sql(viewer_id, params)
        comments_join_sql = None
        if has_comment_tokens:
            # hidden comments drop out of the join, their posts stay
            visible_comments = await self.backend.comments_visibility_sql(viewer_id, params, 'c')
            comments_join_sql = f"left join comments c on c.post_id = p.uid and {visible_comments}"

        # Text matches for both UNION members
        posts_part_text_sql = and_join([
            common_text and f"p.body_tsvector @@ {common_text}",
            posts_only_text and f"p.body_tsvector @@ {posts_only_text}",
            comments_only_text and f"c.body_tsvector @@ {comments_only_text}",
        ])
        comments_part_text_sql = and_join([
            common_text and f"c.body_tsvector @@ {common_text}",
            posts_only_text and f"p.body_tsvector @@ {posts_only_text}",
            comments_only_text and f"c.body_tsvector @@ {comments_only_text}",
        ])

        posts_text_authors_sql = and_join([
            sql_in('p.user_id', common_authors, params),
            sql_in('p.user_id', post_text_authors, params),
        ])
        comments_text_authors_sql = and_join([
            sql_in('c.user_id', common_authors, params),
            sql_in('c.user_id', comment_text_authors, params),
        ])

        from_sql = _join_lines([
            "from posts p",
            "join users u on p.user_id = u.uid",
            comments_join_sql,
            use_clikes_table and "left join comment_likes cl on cl.comment_id = c.id",
            use_files_table and "left join attachments a on a.post_id = p.uid",
            use_post_counters_table and "join post_counters pc on pc.post_id = p.uid",
            use_comment_counters_table and "join comment_counters cc on cc.comment_id = c.uid",
        ])

        common_where_sql = and_join([
            sql_in('p.user_id', post_authors, params),
            posts_date_sql,
            posts_restrictions_sql,
            post_counters_sql,
            comment_counters_sql,
            posts_privacy_sql,
        ])
        having_sql = and_join([file_types, clikes_sql])

        def select(part_sql: str) -> str:
            return _join_lines([
                f"select p.uid, p.{sort}_at as date, p.id",
                from_sql,
                f"where {and_join([part_sql, common_where_sql])}",
                f"group by p.uid, p.{sort}_at, p.id",
                f"having {having_sql}",
            ])

        posts_part = select(and_join([posts_part_text_sql, posts_text_authors_sql, posts_content_date_sql]))
        comments_part = select(and_join([comments_part_text_sql, comments_text_authors_sql, comments_content_date_sql]))

        sql = _join_lines([
            posts_feeds_sql != TRUE
            and f"with posts as materialized (select * from posts p where {posts_feeds_sql})",
            _join_lines([
                (has_post_tokens or not has_comment_tokens) and posts_part,
                has_comment_tokens and comments_part,
            ], 'union'),
            f"order by date desc, id desc limit {params.bind(int(limit))} offset {params.bind(int(offset))}",
        ])

        logger.debug(f"Compiled search query:\n{sql}")
        return CompiledQuery(sql=sql, params=params.values, complexity=complexity)

    # -------------------------------------------------------------------------
    # Collaborator lookups
    # -------------------------------------------------------------------------

    async def _resolve_accounts(self, tokens: ParsedQuery, viewer_id: Optional[str]) -> Tuple[AccountsMap, ParsedQuery]:
        """
        Resolve every account name used in the query.

        Returns the name -> account map and the tokens with 'me' replaced by
        the viewer's username.
        """
        me = await self.backend.get_account_by_id(viewer_id) if viewer_id is not None else None

        names: List[str] = []
        result: List[Token] = []

        for token in tokens:
            if isinstance(token, Condition) and token.name in ACCOUNT_CONDITIONS:
                if ME in token.args:
                    if me is None:
                        raise AuthRequired("Please sign in to use 'me' as username")
                    token = replace(token, args=tuple(me.username if a == ME else a for a in token.args))
                names.extend(token.args)
            result.append(token)

        names = list(dict.fromkeys(names))
        found = await self.backend.resolve_accounts_by_name(names) if names else {}

        accounts: AccountsMap = {name: found.get(name) for name in names}
        accounts[ME] = me

        unknown = [name for name in names if accounts[name] is None]
        if unknown:
            logger.debug(f"Unknown account names in query: {unknown}")

        return accounts, tuple(result)

    async def _feed_id_lists(self, tokens: ParsedQuery, accounts: AccountsMap) -> List[Tuple[Condition, OpenList[int]]]:
        """One OpenList of feed ids per feed condition; a post must match all of them."""
        feed_tokens = [
            t for t in tokens
            if isinstance(t, Condition) and (t.name in FEED_CONDITIONS or t.name in ('to', 'in-my'))
        ]
        lists = await gather_or_cancel(*(self._feed_ids(t, accounts) for t in feed_tokens))
        return list(zip(feed_tokens, lists))

    async def _named_feed_ids(self, owners: Sequence["Account"], feed_names: Sequence[str]) -> List[int]:
        if not owners:
            return []
        owner_ids = list(dict.fromkeys(a.id for a in owners))
        return list(await self.backend.resolve_feed_ids(owner_ids, list(feed_names)))

    async def _feed_ids(self, token: Condition, accounts: AccountsMap) -> OpenList[int]:
        owners = [accounts.get(n) for n in dict.fromkeys(token.args)]
        feed_name = FEED_CONDITIONS.get(token.name)

        # in:, commented-by:, liked-by:
        if feed_name:
            owners = [a for a in owners if a and (a.is_active or feed_name in GONE_USER_FEEDS)]
            ids = await self._named_feed_ids(owners, [feed_name])
            return OpenList(ids, not token.excluded)

        # to: (directs to users, posts to groups)
        if token.name == 'to':
            directs, group_posts = await gather_or_cancel(
                self._named_feed_ids([a for a in owners if a and a.is_user()], ['Directs']),
                self._named_feed_ids([a for a in owners if a and a.is_active and a.is_group()], ['Posts']),
            )
            return OpenList(directs + group_posts, not token.excluded)

        # in-my:
        me = accounts[ME]
        if me is None:
            raise AuthRequired("Please sign in to use 'in-my:' filter")
        names = [n if n.endswith('s') else f"{n}s" for n in dict.fromkeys(token.args)]
        names = [n for n in dict.fromkeys(names) if n in MY_FEEDS]

        async def my_feed_ids(name: str) -> List[int]:
            if name == 'saves':
                return await self._named_feed_ids([me], ['Saves'])
            if name == 'directs':
                return await self._named_feed_ids([me], ['Directs'])
            if name == 'discussions':
                return await self._named_feed_ids([me], ['Comments', 'Likes'])
            return list(await self.backend.resolve_subscription_feed_ids(me.id))

        id_lists = await gather_or_cancel(*(my_feed_ids(n) for n in names))
        return OpenList([i for ids in id_lists for i in ids], not token.excluded)
