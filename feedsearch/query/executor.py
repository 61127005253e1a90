"""
Search entry point.

Parses a query string, compiles it against a backend and runs the statement:

    from feedsearch.db import get_db
    from feedsearch.query import search

    post_ids = await search(get_db(), "cat in:pets comments:>=3", viewer_id=me)
"""

import logging
from typing import List, Optional, TYPE_CHECKING

from feedsearch.config import SearchConfig, get_config

from .compiler import CompiledQuery, QueryCompiler
from .parser import parse_query

if TYPE_CHECKING:
    from feedsearch.backend import SearchBackend

logger = logging.getLogger(__name__)


async def compile_search(
    backend: "SearchBackend",
    query: str,
    viewer_id: Optional[str] = None,
    limit: Optional[int] = None,
    offset: int = 0,
    sort: Optional[str] = None,
    max_query_complexity: Optional[int] = None,
    config: Optional[SearchConfig] = None,
) -> CompiledQuery:
    """Parse and compile a query string without running it."""
    config = config or get_config()

    tokens = parse_query(query, min_prefix_length=config.min_prefix_length)
    logger.debug(f"Parsed search query {query!r}: {tokens}")

    compiler = QueryCompiler(
        backend,
        text_search_config=config.text_search_config,
        max_query_complexity=(
            max_query_complexity if max_query_complexity is not None else config.max_query_complexity
        ),
    )
    return await compiler.compile(
        tokens,
        viewer_id=viewer_id,
        limit=limit if limit is not None else config.default_limit,
        offset=offset,
        sort=sort or config.default_sort,
    )


async def search(
    backend: "SearchBackend",
    query: str,
    viewer_id: Optional[str] = None,
    limit: Optional[int] = None,
    offset: int = 0,
    sort: Optional[str] = None,
    max_query_complexity: Optional[int] = None,
    config: Optional[SearchConfig] = None,
) -> List[str]:
    """
    Search posts.

    Args:
        backend: Collaborator that resolves names and runs SQL
        query: Query string as typed by the user
        viewer_id: Id of the signed-in user, None for anonymous
        limit: Page size (config default_limit if not given)
        offset: Page offset
        sort: 'bumped', 'created' or 'updated' (config default_sort if not given)
        max_query_complexity: Override of the configured complexity limit
        config: Configuration (global config if not given)

    Returns:
        Post ids, newest first

    Raises:
        ComplexityExceeded: The query is too complex
        AuthRequired: The query needs a signed-in viewer
    """
    compiled = await compile_search(
        backend, query,
        viewer_id=viewer_id,
        limit=limit,
        offset=offset,
        sort=sort,
        max_query_complexity=max_query_complexity,
        config=config,
    )
    return await backend.execute_query(compiled.sql, compiled.params)
