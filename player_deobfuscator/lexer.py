"""Lightweight JavaScript lexer used for function body extraction.

Player scripts are large, minified and hostile to regular expressions:
function bodies contain nested blocks, object literals, string literals with
stray braces, template literals with embedded expressions and regular
expression literals.  Rather than rely on a full JavaScript parser, this
module implements a small tokenizer that understands exactly enough of the
grammar to keep track of bracket nesting:

* single, double quoted and template strings (including ``${...}`` nesting)
* line and block comments
* regular expression literals, distinguished from division by the previous
  significant token
* ``{}``, ``()`` and ``[]`` nesting, with mismatches reported as errors

The produced tokens are intentionally coarse.  Operators are emitted one
character at a time and numbers are only loosely validated.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Pattern, Union

from .exceptions import LexerError

_WHITESPACE = {" ", "\t", "\r", "\n", "\v", "\f", "\u00a0", "\ufeff", "\u2028", "\u2029"}
_LINE_TERMINATORS = {"\n", "\r", "\u2028", "\u2029"}
_OPENERS = {"{": "}", "(": ")", "[": "]"}
_CLOSERS = {"}": "{", ")": "(", "]": "["}
_TEMPLATE_EXPR = "${"

# Keywords after which a slash starts a regular expression literal.
_REGEX_KEYWORDS = {
    "await",
    "case",
    "delete",
    "do",
    "else",
    "in",
    "instanceof",
    "new",
    "of",
    "return",
    "throw",
    "typeof",
    "void",
    "yield",
}

_NAME_RE = re.compile(r"[#A-Za-z_$\u0080-\uffff][\w$\u0080-\uffff]*")
_NUMBER_RE = re.compile(r"\.?[0-9][\w.]*")
_FLAGS_RE = re.compile(r"[\w$]*")


@dataclass(frozen=True)
class Token:
    """Single lexical token with its span in the scanned text."""

    kind: str
    value: str
    start: int
    end: int


def _preview(text: str, pos: int, width: int = 24) -> str:
    return text[pos : pos + width].replace("\n", "\\n")


class JavaScriptLexer:
    """Tokenize JavaScript source starting at ``start``.

    The lexer keeps a stack of open brackets (``{``, ``(``, ``[`` and the
    ``${`` of template literals).  :attr:`depth` reports how many are still
    open after the most recently yielded token, which is what callers use to
    find the end of a block.
    """

    def __init__(self, text: str, start: int = 0) -> None:
        self.text = text
        self.pos = start
        self._stack: List[str] = []
        self._last: Optional[Token] = None

    @property
    def depth(self) -> int:
        return len(self._stack)

    # ------------------------------------------------------------------
    def tokens(self) -> Iterator[Token]:
        text = self.text
        length = len(text)
        while self.pos < length:
            ch = text[self.pos]

            if ch in _WHITESPACE:
                self.pos += 1
                continue

            if ch == "/" and self.pos + 1 < length and text[self.pos + 1] in "/*":
                self._skip_comment()
                continue

            if ch in "\"'":
                yield self._emit(self._scan_string(ch))
                continue

            if ch == "`":
                yield self._emit(self._scan_template(self.pos, self.pos + 1))
                continue

            if ch == "/":
                if self._regex_allowed():
                    yield self._emit(self._scan_regex())
                else:
                    end = self.pos + 2 if text.startswith("/=", self.pos) else self.pos + 1
                    yield self._emit(self._token("punct", self.pos, end))
                continue

            if ch in _OPENERS:
                self._stack.append(ch)
                yield self._emit(self._token("punct", self.pos, self.pos + 1))
                continue

            if ch in _CLOSERS:
                if not self._stack:
                    raise LexerError(f"unbalanced {ch!r} at offset {self.pos}")
                opener = self._stack.pop()
                if opener == _TEMPLATE_EXPR and ch == "}":
                    # End of a ``${...}`` expression: resume the template.
                    yield self._emit(self._scan_template(self.pos, self.pos + 1))
                    continue
                if opener != _CLOSERS[ch]:
                    raise LexerError(
                        f"{ch!r} at offset {self.pos} does not close {opener!r}"
                    )
                yield self._emit(self._token("punct", self.pos, self.pos + 1))
                continue

            match = _NAME_RE.match(text, self.pos)
            if match:
                yield self._emit(self._token("name", self.pos, match.end()))
                continue

            match = _NUMBER_RE.match(text, self.pos)
            if match:
                yield self._emit(self._token("number", self.pos, match.end()))
                continue

            if ch in "@\\":
                raise LexerError(f"unexpected character {ch!r} at offset {self.pos}")

            yield self._emit(self._token("punct", self.pos, self.pos + 1))

    # ------------------------------------------------------------------
    def _token(self, kind: str, start: int, end: int) -> Token:
        self.pos = end
        return Token(kind, self.text[start:end], start, end)

    def _emit(self, token: Token) -> Token:
        self._last = token
        return token

    def _regex_allowed(self) -> bool:
        last = self._last
        if last is None:
            return True
        if last.kind == "name":
            return last.value in _REGEX_KEYWORDS
        if last.kind in ("number", "string", "regex"):
            return False
        if last.kind == "template":
            # A template head (ending in ``${``) is followed by an expression.
            return last.value.endswith(_TEMPLATE_EXPR)
        return last.value not in (")", "]")

    def _skip_comment(self) -> None:
        text = self.text
        if text[self.pos + 1] == "/":
            end = self.pos + 2
            while end < len(text) and text[end] not in _LINE_TERMINATORS:
                end += 1
            self.pos = end
            return
        end = text.find("*/", self.pos + 2)
        if end == -1:
            raise LexerError(f"unterminated block comment at offset {self.pos}")
        self.pos = end + 2

    def _scan_string(self, quote: str) -> Token:
        text = self.text
        start = self.pos
        index = start + 1
        while index < len(text):
            ch = text[index]
            if ch == "\\":
                index += 3 if text.startswith("\r\n", index + 1) else 2
                continue
            if ch == quote:
                return self._token("string", start, index + 1)
            if ch in ("\n", "\r"):
                break
            index += 1
        raise LexerError(f"unterminated string literal at offset {start}: {_preview(text, start)!r}")

    def _scan_template(self, start: int, index: int) -> Token:
        text = self.text
        while index < len(text):
            ch = text[index]
            if ch == "\\":
                index += 2
                continue
            if ch == "`":
                return self._token("template", start, index + 1)
            if ch == "$" and text.startswith("{", index + 1):
                self._stack.append(_TEMPLATE_EXPR)
                return self._token("template", start, index + 2)
            index += 1
        raise LexerError(f"unterminated template literal at offset {start}")

    def _scan_regex(self) -> Token:
        text = self.text
        start = self.pos
        index = start + 1
        in_class = False
        while index < len(text):
            ch = text[index]
            if ch == "\\":
                index += 2
                continue
            if ch in _LINE_TERMINATORS:
                break
            if in_class:
                if ch == "]":
                    in_class = False
            elif ch == "[":
                in_class = True
            elif ch == "/":
                flags = _FLAGS_RE.match(text, index + 1)
                end = flags.end() if flags else index + 1
                return self._token("regex", start, end)
            index += 1
        raise LexerError(f"unterminated regular expression at offset {start}: {_preview(text, start)!r}")


def tokenize(text: str, start: int = 0) -> Iterator[Token]:
    """Yield the tokens of ``text`` from offset ``start``."""

    return JavaScriptLexer(text, start).tokens()


def find_closing_brace(text: str, start: int) -> int:
    """Return the offset just past the ``}`` closing the first block after ``start``.

    Tokens preceding the first ``{`` (for example a parameter list) are
    scanned as well and must be balanced on their own.
    """

    lexer = JavaScriptLexer(text, start)
    for token in lexer.tokens():
        if token.kind == "punct" and token.value == "}" and lexer.depth == 0:
            return token.end
    raise LexerError(f"reached end of input before closing the block started after offset {start}")


def match_to_closing_brace(text: str, anchor: Union[str, Pattern[str]]) -> str:
    """Return the text following ``anchor`` up to and including its closing brace.

    A string ``anchor`` is located literally, a compiled pattern with
    ``search``; the first occurrence wins either way.  For
    ``anchor="Wma=function"`` and text ``...Wma=function(a){return a}...`` the
    result is ``"(a){return a}"``.
    """

    if isinstance(anchor, str):
        index = text.find(anchor)
        if index == -1:
            raise LexerError(f"anchor {anchor!r} not found")
        start = index + len(anchor)
    else:
        match = anchor.search(text)
        if match is None:
            raise LexerError(f"anchor {anchor.pattern!r} not found")
        start = match.end()
    return text[start : find_closing_brace(text, start)]


def check_balanced(code: str) -> None:
    """Scan all of ``code`` and raise :class:`LexerError` unless it is well formed.

    Well formed means every literal and comment is terminated and every
    bracket is closed by its matching counterpart.
    """

    lexer = JavaScriptLexer(code)
    for _token in lexer.tokens():
        pass
    if lexer.depth:
        raise LexerError(f"{lexer.depth} bracket(s) left open at end of input")


def declared_functions(code: str) -> List[str]:
    """Return the names of functions declared at the top level of ``code``.

    Recognises ``function NAME(...)`` and ``var|let|const NAME=function``.
    The whole input is scanned, so malformed code raises :class:`LexerError`
    exactly like :func:`check_balanced`.
    """

    lexer = JavaScriptLexer(code)
    names: List[str] = []
    window: List[str] = []
    for token in lexer.tokens():
        if lexer.depth or not (token.kind == "name" or token.value == "="):
            window.clear()
            continue
        window.append(token.value)
        if token.kind != "name":
            continue
        if len(window) >= 2 and window[-2] == "function":
            names.append(token.value)
        elif (
            token.value == "function"
            and len(window) >= 4
            and window[-4] in ("var", "let", "const")
            and window[-2] == "="
        ):
            names.append(window[-3])
    if lexer.depth:
        raise LexerError(f"{lexer.depth} bracket(s) left open at end of input")
    return names


__all__ = [
    "JavaScriptLexer",
    "Token",
    "check_balanced",
    "declared_functions",
    "find_closing_brace",
    "match_to_closing_brace",
    "tokenize",
]
