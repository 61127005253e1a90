"""
Constants for feedsearch.

These constants are used by various modules for sensible defaults.
Most are also available via the config system.
"""

# Query limits
DEFAULT_MIN_PREFIX_LENGTH = 2
DEFAULT_MAX_QUERY_COMPLEXITY = 30

# Paging
DEFAULT_LIMIT = 30
DEFAULT_OFFSET = 0

# Sorting: the value selects the p.<sort>_at column
DEFAULT_SORT = "bumped"
SORT_KEYS = ("bumped", "created", "updated")

# Full-text search configuration name passed to to_tsquery() and friends
DEFAULT_TEXT_SEARCH_CONFIG = "pg_catalog.simple"

# Special account name that refers to the current viewer
ME = "me"
