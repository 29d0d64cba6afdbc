from __future__ import annotations

import re

import pytest

from player_deobfuscator.exceptions import LexerError
from player_deobfuscator.lexer import (
    check_balanced,
    declared_functions,
    find_closing_brace,
    match_to_closing_brace,
    tokenize,
)


def test_tokenize_kinds() -> None:
    tokens = list(tokenize('var a="x{";b=/}/g;c=`t`'))
    kinds = [(token.kind, token.value) for token in tokens]
    assert ("string", '"x{"') in kinds
    assert ("regex", "/}/g") in kinds
    assert ("template", "`t`") in kinds
    assert kinds[0] == ("name", "var")


def test_division_is_not_a_regex() -> None:
    tokens = list(tokenize("a=b/2/c"))
    assert [token.value for token in tokens] == ["a", "=", "b", "/", "2", "/", "c"]


@pytest.mark.parametrize(
    "body",
    [
        '{return "}"}',
        "{return '}'+\"{\"}",
        "{return /}/.test(a)}",
        "{return `}${ {a:1}.a }}`}",
        "{// }\nreturn a}",
        "{/* } */return a}",
        "{if(a){b()}else{c[0]=d}}",
    ],
)
def test_find_closing_brace_skips_literals(body: str) -> None:
    text = "x=function(a)" + body + ";rest()"
    end = find_closing_brace(text, len("x=function"))
    assert text[:end].endswith(body)
    assert text[end:] == ";rest()"


def test_find_closing_brace_reports_unclosed_block() -> None:
    with pytest.raises(LexerError):
        find_closing_brace("f=function(a){return a", 10)


def test_mismatched_bracket_raises() -> None:
    with pytest.raises(LexerError):
        find_closing_brace("{(}", 0)


def test_unterminated_string_raises() -> None:
    with pytest.raises(LexerError):
        find_closing_brace('{return "abc\n}', 0)


def test_match_to_closing_brace_literal_anchor() -> None:
    text = 'var Wma=function(a){var b={c:"}"};return a};Wma("")'
    assert match_to_closing_brace(text, "Wma=function") == '(a){var b={c:"}"};return a}'


def test_match_to_closing_brace_pattern_anchor() -> None:
    text = "xWma=function(){return 1};Wma=function(a){return a}"
    anchor = re.compile(r"(?<![\w$.])Wma=function")
    assert match_to_closing_brace(text, anchor) == "(a){return a}"


def test_match_to_closing_brace_missing_anchor() -> None:
    with pytest.raises(LexerError):
        match_to_closing_brace("var a=1;", "Wma=function")


def test_check_balanced() -> None:
    check_balanced("function f(a){return [a,{b:(1)}]}")
    with pytest.raises(LexerError):
        check_balanced("function f(a){return [a}")
    with pytest.raises(LexerError):
        check_balanced("function f(a){")


def test_declared_functions_top_level_only() -> None:
    code = "function a(){var x=function(){}};var b=function(c){};let d = function(){}"
    assert declared_functions(code) == ["a", "b", "d"]


def test_declared_functions_rejects_broken_code() -> None:
    with pytest.raises(LexerError):
        declared_functions("function a(){return 1")
