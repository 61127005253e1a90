"""
Parser for the search query language.

Turns the primitive token stream of the tokenizer into a ParsedQuery:

1. Implicit scopes: ``cliked-by:`` and ``clikes:`` only make sense in comments,
   so they open an ``in-comments:`` scope when no scope is set before them.
2. Pipe fold: ``a | b | c`` becomes one AnyText.
3. Plus fold: every AnyText becomes a SeqTexts; ``a + b`` joins them.

Precedence follows from the fold order: ``|`` binds tighter than ``+``, which
binds tighter than the implicit AND between blocks:

    cat + mouse | dog    ->   cat FOLLOWED-BY (mouse OR dog)
    cat + mouse dog      ->   (cat FOLLOWED-BY mouse) AND dog

All functions here are pure and return new tuples.
"""

from typing import Iterator, Optional, Sequence, Tuple

from feedsearch.constants import DEFAULT_MIN_PREFIX_LENGTH

from .lexer import tokenize
from .tokens import (
    Token, AnyText, SeqTexts, Condition, ScopeStart, InScope, Pipe, Plus,
    Scope, COMMENT_ONLY_CONDITIONS,
)

ParsedQuery = Tuple[Token, ...]


# =============================================================================
# Reducer
# =============================================================================

def join_by_pipes(tokens: Sequence[Token]) -> ParsedQuery:
    """Merge every ``AnyText (Pipe AnyText)+`` run into one AnyText."""
    result = []
    i = 0

    while i < len(tokens):
        token = tokens[i]

        if isinstance(token, Pipe):
            prev = result[-1] if result else None
            nxt = tokens[i + 1] if i + 1 < len(tokens) else None
            if isinstance(prev, AnyText) and isinstance(nxt, AnyText):
                result[-1] = AnyText(prev.children + nxt.children)
                i += 2
            else:
                # Out of place, ignore
                i += 1
            continue

        result.append(token)
        i += 1

    return tuple(result)


def join_by_pluses(tokens: Sequence[Token]) -> ParsedQuery:
    """Wrap every AnyText into SeqTexts and join ``SeqTexts (Plus AnyText)+`` runs."""
    result = []
    i = 0

    while i < len(tokens):
        token = tokens[i]

        if isinstance(token, Plus):
            prev = result[-1] if result else None
            nxt = tokens[i + 1] if i + 1 < len(tokens) else None
            if isinstance(prev, SeqTexts) and isinstance(nxt, AnyText):
                result[-1] = SeqTexts(prev.children + (nxt,))
                i += 2
            else:
                # Out of place, ignore
                i += 1
            continue

        if isinstance(token, AnyText):
            token = SeqTexts((token,))

        result.append(token)
        i += 1

    return tuple(result)


def apply_comment_scope(tokens: Sequence[Token]) -> ParsedQuery:
    """
    Add the implicit ``in-comments:`` scope for comment-only conditions.

    If a comment-only condition follows an explicit scope other than
    in-comments, the condition is dropped.
    """
    tokens = tuple(tokens)

    for name in COMMENT_ONLY_CONDITIONS:
        idx = next(
            (i for i, t in enumerate(tokens) if isinstance(t, Condition) and t.name == name),
            None,
        )
        if idx is None:
            continue

        scope_idx = next(
            (i for i in range(idx - 1, -1, -1) if isinstance(tokens[i], ScopeStart)),
            None,
        )

        if scope_idx is None:
            tokens = (ScopeStart(Scope.COMMENTS),) + tokens
        elif tokens[scope_idx].scope != Scope.COMMENTS:
            tokens = tokens[:idx] + tokens[idx + 1:]

    return tokens


# =============================================================================
# Scope walker
# =============================================================================

def walk_with_scope(tokens: Sequence[Token]) -> Iterator[Tuple[Token, Scope]]:
    """Yield (token, effective scope) for every token except ScopeStart."""
    current = Scope.ALL

    for token in tokens:
        match token:
            case ScopeStart(scope=scope):
                current = scope
            case InScope(scope=scope):
                yield token, scope
            case _:
                yield token, current


def walk_in_scope(tokens: Sequence[Token], scope: Scope) -> Iterator[Token]:
    """Yield tokens whose effective scope is exactly the given one."""
    for token, current in walk_with_scope(tokens):
        if current == scope:
            yield token


# =============================================================================
# Entry points
# =============================================================================

def query_complexity(tokens: Sequence[Token]) -> int:
    return sum(t.complexity() for t in tokens)


def parse_query(query: str, min_prefix_length: Optional[int] = None) -> ParsedQuery:
    """
    Parse a search query string.

    Args:
        query: Raw query string
        min_prefix_length: Shortest word allowed for prefix (word*) search

    Returns:
        Tuple of tokens without Pipe or Plus
    """
    if min_prefix_length is None:
        min_prefix_length = DEFAULT_MIN_PREFIX_LENGTH

    tokens = tokenize(query, min_prefix_length)
    tokens = apply_comment_scope(tokens)
    return join_by_pluses(join_by_pipes(tokens))
