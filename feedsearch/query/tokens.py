"""
Token types of the search query language.

A parsed query is a flat tuple of tokens. The tokenizer produces primitive
tokens (Text wrapped in AnyText, Condition, ScopeStart, InScope, Pipe, Plus);
the reducer then folds Pipe/Plus away so that every free-standing text block
becomes a SeqTexts of one or more AnyText groups:

    cat + mouse | dog   ->   SeqTexts([AnyText([cat]), AnyText([mouse, dog])])

All tokens are frozen dataclasses, so a parsed query can be shared freely.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntFlag
from typing import List, Optional, Pattern, Tuple


class Scope(IntFlag):
    """Part of the document a token applies to."""
    POSTS = 1
    COMMENTS = 2
    ALL = POSTS | COMMENTS


# =============================================================================
# Tokens
# =============================================================================

class Token(ABC):
    """Base class for all tokens."""

    @abstractmethod
    def complexity(self) -> int:
        """Cost of this token for the query complexity limit."""
        pass


@dataclass(frozen=True)
class Text(Token):
    """A single word or phrase."""
    excluded: bool
    is_phrase: bool
    value: str

    @property
    def is_prefix(self) -> bool:
        return not self.is_phrase and self.value.endswith('*')

    def complexity(self) -> int:
        return 1

    def __repr__(self):
        value = f'"{self.value}"' if self.is_phrase else self.value
        return f"{'-' if self.excluded else ''}{value}"


@dataclass(frozen=True)
class AnyText(Token):
    """Any of the children (OR)."""
    children: Tuple[Text, ...]

    def complexity(self) -> int:
        return sum(c.complexity() for c in self.children)

    def __repr__(self):
        return f"AnyText({' | '.join(repr(c) for c in self.children)})"


@dataclass(frozen=True)
class SeqTexts(Token):
    """All of the children, adjacent and in order (FOLLOWED-BY)."""
    children: Tuple[AnyText, ...]

    def complexity(self) -> int:
        return sum(c.complexity() for c in self.children)

    def __repr__(self):
        return f"SeqTexts({' + '.join(repr(c) for c in self.children)})"


@dataclass(frozen=True)
class Condition(Token):
    """
    A named operator like ``from:alice,bob`` or ``-comments:3..5``.

    For interval conditions args is the resolved (lower, upper) pair.
    """
    excluded: bool
    name: str
    args: Tuple[str, ...]

    def complexity(self) -> int:
        if self.name in INTERVAL_CONDITIONS:
            return 1
        return max(len(self.args), 1)

    def __repr__(self):
        return f"{'-' if self.excluded else ''}{self.name}:{','.join(self.args)}"


@dataclass(frozen=True)
class ScopeStart(Token):
    """Switch the ambient scope for all following tokens (``in-body:``)."""
    scope: Scope

    def complexity(self) -> int:
        return 0


@dataclass(frozen=True)
class InScope(Token):
    """A text match limited to one scope (``in-comments:cat,mouse``)."""
    scope: Scope
    payload: AnyText

    def complexity(self) -> int:
        return self.payload.complexity()


@dataclass(frozen=True)
class Pipe(Token):
    """Raw ``|`` combinator, removed by the reducer."""

    def complexity(self) -> int:
        return 0


@dataclass(frozen=True)
class Plus(Token):
    """Raw ``+`` combinator, removed by the reducer."""

    def complexity(self) -> int:
        return 0


# =============================================================================
# Operator names
# =============================================================================

SCOPE_STARTS: List[Tuple[Pattern, Scope]] = [
    (re.compile(r'^in-?body$'), Scope.POSTS),
    (re.compile(r'^in-?comments?$'), Scope.COMMENTS),
]

LIST_CONDITIONS: List[Tuple[Pattern, str]] = [
    (re.compile(r'^in-?my$'), 'in-my'),
    (re.compile(r'^(in|groups?)$'), 'in'),
    (re.compile(r'^commented-?by$'), 'commented-by'),
    (re.compile(r'^liked-?by$'), 'liked-by'),
    (re.compile(r'^cliked-?by$'), 'cliked-by'),
    (re.compile(r'^from$'), 'from'),
    (re.compile(r'^(authors?|by)$'), 'author'),
    (re.compile(r'^to$'), 'to'),
    (re.compile(r'^is$'), 'is'),
]

FILE_CONDITION = re.compile(r'^(has|with)$')

DATE_CONDITIONS: List[Tuple[Pattern, str]] = [
    (re.compile(r'^dates?$'), 'date'),
    (re.compile(r'^post-?dates?$'), 'post-date'),
]

COUNTER_CONDITIONS: List[Tuple[Pattern, str]] = [
    (re.compile(r'^comments?$'), 'comments'),
    (re.compile(r'^likes?$'), 'likes'),
    (re.compile(r'^clikes?$'), 'clikes'),
]

INTERVAL_CONDITIONS = frozenset(name for _, name in DATE_CONDITIONS + COUNTER_CONDITIONS)

# Conditions whose arguments are account names
ACCOUNT_CONDITIONS = frozenset([
    'in', 'commented-by', 'liked-by', 'cliked-by', 'from', 'author', 'to',
])

# Conditions that only make sense inside comments
COMMENT_ONLY_CONDITIONS = ('cliked-by', 'clikes')


def match_name(name: str, table: List[Tuple[Pattern, object]]) -> Optional[object]:
    """Return the canonical value for name from a (regex, value) table."""
    for pattern, value in table:
        if pattern.match(name):
            return value
    return None


# =============================================================================
# Text helpers
# =============================================================================

_EDGE_JUNK_RE = re.compile(r'^[\W_]+|[\W_]+$')


def trim_text(text: str, min_prefix_length: int) -> str:
    """
    Strip punctuation around a word.

    A trailing '*' (prefix search) survives only if the remaining word is at
    least min_prefix_length characters long.
    """
    text = text.strip()
    is_prefix = text.endswith('*')
    word = _EDGE_JUNK_RE.sub('', text)

    if is_prefix and word and len(word) >= min_prefix_length:
        return word + '*'
    return word
