"""
feedsearch - search query compiler for feed-based social networks

Parses search strings with words, phrases, scopes and named filters
(``from:``, ``in:``, ``comments:>=3``, ``date:2020``...) and compiles them
into a single parameterized PostgreSQL statement returning post ids.

Example Usage:
    >>> from feedsearch import get_db, search
    >>> post_ids = await search(get_db(), "cat + mouse in:pets", viewer_id=me)
"""

__version__ = "0.3.0"
__author__ = "feedsearch Contributors"

# Configuration
from feedsearch.config import SearchConfig, get_config, init_config

# Errors
from feedsearch.errors import SearchError, AuthRequired, ComplexityExceeded

# Backend
from feedsearch.backend import Account, SearchBackend
from feedsearch.db import Database, get_db

# Query language
from feedsearch.open_list import OpenList
from feedsearch.query import (
    parse_query,
    query_complexity,
    QueryCompiler,
    CompiledQuery,
    compile_search,
    search,
)

__all__ = [
    # Configuration
    "SearchConfig",
    "get_config",
    "init_config",

    # Errors
    "SearchError",
    "AuthRequired",
    "ComplexityExceeded",

    # Backend
    "Account",
    "SearchBackend",
    "Database",
    "get_db",

    # Query language
    "OpenList",
    "parse_query",
    "query_complexity",
    "QueryCompiler",
    "CompiledQuery",
    "compile_search",
    "search",
]
