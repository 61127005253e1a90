"""
feedsearch query language.

Compiles search strings typed by users into one PostgreSQL statement over
posts and comments.

Syntax:

    cat mouse               both words (in posts or comments)
    "cat mouse"             exact phrase
    cat*                    prefix search
    -cat                    exclude word
    cat | dog               any of the words
    cat + mouse             words following each other
    in-body: cat            only in post bodies (scope until the next scope)
    in-comments: cat        only in comments
    in-body:cat,mouse       cat or mouse in post bodies
    from:alice,bob          posts by alice or bob
    author:alice            texts written by alice (by: is an alias)
    in:cats                 posts in a user/group feed (group: is an alias)
    in-my:friends           posts in my home feed (also saves, directs, discussions)
    commented-by:alice      posts commented by alice
    liked-by:alice          posts liked by alice
    cliked-by:alice         posts with comments liked by alice
    to:alice                directs to alice or posts to group alice
    is:private              also is:public, is:protected
    has:images              also audio, files, or an extension like .pdf
    comments:>=3            counters: comments, likes, clikes
    date:2020-06            content date: date, post-date

Example usage:

    from feedsearch.db import get_db
    from feedsearch.query import parse_query, search

    tokens = parse_query("cat + mouse | dog -from:alice")

    post_ids = await search(get_db(), "in:cats comments:>=3", viewer_id=viewer)
"""

# Tokens
from .tokens import (
    Scope,
    Token,
    Text,
    AnyText,
    SeqTexts,
    Condition,
    ScopeStart,
    InScope,
    Pipe,
    Plus,
)

# Intervals
from .intervals import (
    parse_counter_expression,
    parse_date_expression,
)

# Tokenizer and parser
from .lexer import tokenize
from .parser import (
    ParsedQuery,
    parse_query,
    join_by_pipes,
    join_by_pluses,
    walk_with_scope,
    walk_in_scope,
    query_complexity,
)

# Compiler
from .sql import SQLParams
from .compiler import (
    CompiledQuery,
    QueryCompiler,
)

# Executor
from .executor import (
    compile_search,
    search,
)

__all__ = [
    # Tokens
    'Scope',
    'Token',
    'Text',
    'AnyText',
    'SeqTexts',
    'Condition',
    'ScopeStart',
    'InScope',
    'Pipe',
    'Plus',

    # Intervals
    'parse_counter_expression',
    'parse_date_expression',

    # Parser
    'tokenize',
    'ParsedQuery',
    'parse_query',
    'join_by_pipes',
    'join_by_pluses',
    'walk_with_scope',
    'walk_in_scope',
    'query_complexity',

    # Compiler
    'SQLParams',
    'CompiledQuery',
    'QueryCompiler',

    # Executor
    'compile_search',
    'search',
]
