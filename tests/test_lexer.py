"""
Tests for feedsearch/query/lexer.py and the token helpers.

The tokenizer never raises: every input produces a (possibly empty) list of
primitive tokens.
"""
import pytest

from feedsearch.query.lexer import is_uuid, normalize_text, tokenize
from feedsearch.query.tokens import (
    AnyText, Condition, InScope, Pipe, Plus, Scope, ScopeStart, Text, trim_text,
)


def word(value, excluded=False):
    return AnyText((Text(excluded, False, value),))


def phrase(value, excluded=False):
    return AnyText((Text(excluded, True, value),))


def lex(query, min_prefix_length=2):
    return tokenize(query, min_prefix_length)


class TestTrimText:
    """Test punctuation trimming and prefix markers."""

    @pytest.mark.parametrize("raw,expected", [
        ("cat", "cat"),
        ("hello!!", "hello"),
        ("(cat)", "cat"),
        ("_cat_", "cat"),
        ("don't", "don't"),
        ("***", ""),
        ("cat*", "cat*"),
        ("ca*", "ca*"),
        ("c*", "c"),
    ])
    def test_trim(self, raw, expected):
        assert trim_text(raw, 2) == expected

    def test_prefix_respects_min_length(self):
        assert trim_text("cat*", 4) == "cat"
        assert trim_text("c*", 1) == "c*"


class TestHelpers:
    def test_normalize_text(self):
        assert normalize_text("CaT") == "cat"
        assert normalize_text("ＣＡＴ") == "cat"

    def test_is_uuid(self):
        assert is_uuid("1b4e28ba-2fa1-11d2-883f-0cc0aa7d4f00")
        assert not is_uuid("1b4e28ba2fa111d2883f0cc0aa7d4f00")
        assert not is_uuid("not-a-uuid")
        assert not is_uuid(None)


class TestWords:
    """Test plain words, phrases and combinators."""

    def test_words(self):
        assert lex("cat mouse") == [word("cat"), word("mouse")]

    def test_case_is_folded(self):
        assert lex("Cat") == [word("cat")]

    def test_excluded_word(self):
        assert lex("-cat") == [word("cat", excluded=True)]

    def test_lone_minus_is_dropped(self):
        assert lex("-") == []

    def test_phrase(self):
        assert lex('"cat mouse"') == [phrase("cat mouse")]

    def test_excluded_phrase(self):
        assert lex('-"cat mouse"') == [phrase("cat mouse", excluded=True)]

    def test_escaped_quotes_in_phrase(self):
        assert lex(r'"say \"hi\""') == [phrase('say "hi"')]

    def test_empty_phrase_is_dropped(self):
        assert lex('""') == []

    def test_pipe_and_plus(self):
        assert lex("cat | dog + mouse") == [word("cat"), Pipe(), word("dog"), Plus(), word("mouse")]

    def test_prefix(self):
        tokens = lex("cat*")
        assert tokens == [word("cat*")]
        assert tokens[0].children[0].is_prefix

    def test_short_prefix_becomes_word(self):
        assert lex("c*") == [word("c")]

    def test_uuid_becomes_phrase(self):
        tokens = lex("post 1B4E28BA-2FA1-11D2-883F-0CC0AA7D4F00")
        assert tokens == [word("post"), phrase("1b4e28ba 2fa1 11d2 883f 0cc0aa7d4f00")]

    def test_quoted_uuid_becomes_phrase(self):
        assert lex('"1b4e28ba-2fa1-11d2-883f-0cc0aa7d4f00"') == [phrase("1b4e28ba 2fa1 11d2 883f 0cc0aa7d4f00")]

    def test_empty_query(self):
        assert lex("") == []
        assert lex("   ") == []


class TestScopes:
    """Test scope starts and in-scope texts."""

    @pytest.mark.parametrize("query,scope", [
        ("in-body:", Scope.POSTS),
        ("inbody:", Scope.POSTS),
        ("in-comments:", Scope.COMMENTS),
        ("in-comment:", Scope.COMMENTS),
    ])
    def test_scope_start(self, query, scope):
        assert lex(query) == [ScopeStart(scope)]

    def test_in_scope_words(self):
        assert lex("in-body:cat,mouse") == [
            InScope(Scope.POSTS, AnyText((Text(False, False, "cat"), Text(False, False, "mouse")))),
        ]

    def test_in_scope_phrase(self):
        assert lex('in-comments:"cat mouse"') == [InScope(Scope.COMMENTS, phrase("cat mouse"))]

    def test_excluded_in_scope_words(self):
        assert lex("-in-body:cat,mouse") == [
            InScope(Scope.POSTS, word("cat", excluded=True)),
            InScope(Scope.POSTS, word("mouse", excluded=True)),
        ]

    def test_empty_in_scope_is_dropped(self):
        assert lex("in-body:,,") == []


class TestConditions:
    """Test named conditions."""

    @pytest.mark.parametrize("query,name", [
        ("from:alice", "from"),
        ("in:alice", "in"),
        ("group:alice", "in"),
        ("groups:alice", "in"),
        ("author:alice", "author"),
        ("authors:alice", "author"),
        ("by:alice", "author"),
        ("commented-by:alice", "commented-by"),
        ("commentedby:alice", "commented-by"),
        ("liked-by:alice", "liked-by"),
        ("cliked-by:alice", "cliked-by"),
        ("to:alice", "to"),
        ("in-my:alice", "in-my"),
        ("inmy:alice", "in-my"),
        ("is:alice", "is"),
    ])
    def test_list_condition_aliases(self, query, name):
        assert lex(query) == [Condition(False, name, ("alice",))]

    def test_list_arguments(self):
        assert lex("from:Alice,bob,") == [Condition(False, "from", ("alice", "bob"))]

    def test_excluded_condition(self):
        assert lex("-from:alice") == [Condition(True, "from", ("alice",))]

    def test_quoted_arguments(self):
        assert lex('from:"alice,bob"') == [Condition(False, "from", ("alice", "bob"))]

    def test_counter_condition(self):
        assert lex("comments:>2") == [Condition(False, "comments", ("3", ""))]
        assert lex("-likes:0") == [Condition(True, "likes", ("0", "0"))]
        assert lex("clikes:1..3") == [Condition(False, "clikes", ("1", "3"))]

    def test_invalid_counter_is_dropped(self):
        assert lex("comments:x cat") == [word("cat")]

    def test_date_condition(self):
        assert lex("date:2020") == [Condition(False, "date", ("2020-01-01", "2021-01-01"))]
        assert lex("post-date:<2020-06") == [Condition(False, "post-date", ("", "2020-06-01"))]

    def test_invalid_date_is_dropped(self):
        assert lex("date:2020-02-30") == []

    def test_file_condition(self):
        assert lex("has:images,audio") == [Condition(False, "has", ("image", "audio"))]
        assert lex("-with:files") == [Condition(True, "has", ("file",))]

    def test_file_condition_extensions(self):
        assert lex("has:pdf,.PDF") == [Condition(False, "has", (".pdf",))]

    def test_unknown_condition_is_text(self):
        assert lex("foo:bar") == [word("foo:bar")]
        assert lex("-foo:bar") == [word("foo:bar", excluded=True)]
