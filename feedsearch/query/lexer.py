"""
Tokenizer for the search query language.

Splits a query string into primitive tokens with a single regular expression
pass. Every lexeme is one of:

    |                         Pipe
    +                         Plus
    -?(name:)?"quoted text"   text phrase, or a condition/scope with a phrase
    -?(name:)?word            text word, or a condition/scope with arguments

The tokenizer never fails: lexemes it cannot make sense of become plain text
or are dropped.
"""

import json
import logging
import re
import unicodedata
import uuid
from typing import List, Optional

from .intervals import parse_counter_expression, parse_date_expression
from .tokens import (
    Token, Text, AnyText, Condition, ScopeStart, InScope, Pipe, Plus,
    SCOPE_STARTS, LIST_CONDITIONS, FILE_CONDITION, DATE_CONDITIONS,
    COUNTER_CONDITIONS, match_name, trim_text,
)

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r'''
    (?P<pipe> \| ) |
    (?P<plus> \+ ) |
    (?:
        (?P<exclude> - )?
        (?: (?P<cond> [\w-]+ ) : )?
        (?:
            (?P<qstring> "(?:[^"\\]|\\.)*" ) |
            (?P<word> \S+ )
        )
    )
''', re.VERBOSE)

# "in-body:" with nothing after the colon
_BARE_NAME_RE = re.compile(r'^[\w-]+:$')

FILE_TYPES = ('image', 'audio', 'file')


def normalize_text(text: str) -> str:
    """Bring the query to one Unicode form and one letter case."""
    return unicodedata.normalize('NFKC', text).lower()


def is_uuid(s: Optional[str]) -> bool:
    """True for canonical hyphenated UUIDs only."""
    if not s or len(s) != 36:
        return False
    try:
        return str(uuid.UUID(s)) == s
    except ValueError:
        return False


def _unquote(qstring: str) -> str:
    try:
        return json.loads(qstring)
    except ValueError:
        # Unknown escape sequence: keep the text between the quotes as is
        return qstring[1:-1]


def _split_words(s: Optional[str], min_prefix_length: int) -> List[str]:
    if not s:
        return []
    words = (trim_text(w, min_prefix_length) for w in s.split(','))
    return [w for w in words if w]


def _file_types(s: Optional[str]) -> List[str]:
    """Valid arguments of has:/with: (image, audio, file or a .extension)."""
    result = []
    for w in (s or '').split(','):
        w = w.strip()
        if w.startswith('.') and len(w) > 1:
            result.append(w)
            continue
        w = re.sub(r's$', '', w)
        if w in FILE_TYPES:
            result.append(w)
    return result


def _lexeme_tokens(match: re.Match, min_prefix_length: int) -> List[Token]:
    """Turn one regex match into zero or more primitive tokens."""
    if match.group('pipe'):
        return [Pipe()]
    if match.group('plus'):
        return [Plus()]

    raw = match.group(0)
    excluded = bool(match.group('exclude'))
    cond = match.group('cond')
    word = match.group('word')
    qstring = match.group('qstring')
    phrase = _unquote(qstring) if qstring is not None else None

    # UUIDs are matched as exact phrases, not split on hyphens
    if phrase is None and is_uuid(word):
        phrase, word = word.replace('-', ' '), None
    elif phrase is not None and is_uuid(phrase):
        phrase = phrase.replace('-', ' ')

    # in-body: (start of scope)
    if _BARE_NAME_RE.match(raw):
        scope = match_name(raw[:-1], SCOPE_STARTS)
        if scope is not None:
            return [ScopeStart(scope)]

    if cond:
        # (-)in:friends,cats
        name = match_name(cond, LIST_CONDITIONS)
        if name is not None:
            source = match.group('word') if qstring is None else phrase
            args = _split_words(source, min_prefix_length)
            return [Condition(excluded, name, tuple(args))]

        # (-)in-body:cat,mouse or in-body:"cat mouse"
        scope = match_name(cond, SCOPE_STARTS)
        if scope is not None:
            if phrase is not None:
                return [InScope(scope, AnyText((Text(excluded, True, phrase),)))]

            words = _split_words(word, min_prefix_length)
            if not words:
                return []
            if not excluded:
                # in-body:cat,mouse => cat | mouse
                return [InScope(scope, AnyText(tuple(Text(False, False, w) for w in words)))]
            # -in-body:cat,mouse => -cat -mouse
            return [InScope(scope, AnyText((Text(True, False, w),))) for w in words]

        # (-)date:2020-01-01..2020-01-02
        name = match_name(cond, DATE_CONDITIONS)
        if name is not None:
            interval = parse_date_expression(word or '')
            if interval is None:
                logger.debug(f"Ignoring invalid date expression: {raw}")
                return []
            return [Condition(excluded, name, interval)]

        # (-)has:images,audio
        if FILE_CONDITION.match(cond):
            return [Condition(excluded, 'has', tuple(_file_types(word)))]

        # (-)comments:2..12
        name = match_name(cond, COUNTER_CONDITIONS)
        if name is not None:
            interval = parse_counter_expression(word or '')
            if interval is None:
                logger.debug(f"Ignoring invalid counter expression: {raw}")
                return []
            return [Condition(excluded, name, interval)]

        # Unknown condition, treat the whole lexeme as text
        text = trim_text(raw, min_prefix_length)
        return [AnyText((Text(excluded, False, text),))] if text else []

    if phrase is not None:
        return [AnyText((Text(excluded, True, phrase),))] if phrase.strip() else []

    text = trim_text(word, min_prefix_length)
    return [AnyText((Text(excluded, False, text),))] if text else []


def tokenize(query: str, min_prefix_length: int) -> List[Token]:
    """
    Scan a query string into primitive tokens.

    Args:
        query: Raw query string as typed by the user
        min_prefix_length: Shortest word allowed for prefix (word*) search

    Returns:
        List of tokens, including raw Pipe and Plus tokens
    """
    tokens: List[Token] = []
    for match in _TOKEN_RE.finditer(normalize_text(query)):
        tokens.extend(_lexeme_tokens(match, min_prefix_length))
    return tokens
