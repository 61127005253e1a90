"""
Errors raised by the feedsearch query compiler.

Malformed query fragments are never errors: the parser drops them and the
rest of the query still compiles. Only the conditions below abort a search,
and they are raised before any SQL is sent to the database.
"""


class SearchError(Exception):
    """Base class for search errors that should be shown to the user."""
    pass


class AuthRequired(SearchError):
    """The query uses 'me' or 'in-my:' but there is no signed-in viewer."""
    pass


class ComplexityExceeded(SearchError):
    """The query is too expensive to run."""

    def __init__(self, complexity: int, limit: int):
        super().__init__("The search query is too complex, try to simplify it")
        self.complexity = complexity
        self.limit = limit
