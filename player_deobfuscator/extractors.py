"""Regex and lexer driven extraction of functions from player scripts.

Three extractors live here:

* :func:`extract_signature_timestamp` returns the ``signatureTimestamp``
  digits embedded in the player configuration.
* :func:`extract_signature_function` isolates the signature scrambling
  function together with the helper objects it calls into.
* :func:`extract_throttling_function` isolates the ``n`` parameter transform.

All of them are pure: they receive the player text (and a sandbox used only
for validation) and return a value or raise an :class:`ExtractionError`.
Nothing is cached here.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

from .exceptions import (
    ExtractionError,
    IndirectionOutOfBounds,
    LexerError,
    PatternNotFound,
)
from .lexer import find_closing_brace, match_to_closing_brace
from .patterns import (
    DEFAULT_LIBRARY,
    SIGNATURE_FUNCTION,
    THROTTLING_FUNCTION,
    TIMESTAMP,
    PatternLibrary,
    function_array_regex,
    helper_declaration_regex,
    helper_reference_regex,
    signature_body_regex,
    throttling_body_regex,
)
from .sandbox import ScriptSandbox

LOG = logging.getLogger(__name__)

DEFAULT_ENTRY_POINT = "deobfuscate"

_ASCII_DIGITS = re.compile(r"[0-9]+")

# Receivers of method calls that never need a helper declaration.
_GLOBAL_OBJECTS = frozenset(
    {"Array", "JSON", "Math", "Number", "Object", "RegExp", "String", "this", "window"}
)


@dataclass(frozen=True)
class ExtractedFunction:
    """A self-contained snippet ready to be run by a sandbox.

    ``name`` is the function to call inside ``body``.  ``origin`` is the name
    the function carries in the player script, which differs from ``name``
    when a wrapper entry point was generated.
    """

    name: str
    body: str
    origin: str


def _tried(library: PatternLibrary, kind: str) -> Tuple[str, ...]:
    return tuple(matcher.name for matcher in library.table(kind))


# ----------------------------------------------------------------------
def extract_signature_timestamp(player_code: str, *, library: PatternLibrary = DEFAULT_LIBRARY) -> str:
    """Return the decimal signature timestamp embedded in ``player_code``."""

    found = library.first_match(TIMESTAMP, player_code)
    if found is None:
        raise PatternNotFound(TIMESTAMP, _tried(library, TIMESTAMP))
    matcher, match = found
    value = match.group("value")
    LOG.debug("signature timestamp %s found by %s", value, matcher.name)
    return value


# ----------------------------------------------------------------------
def find_signature_function_name(player_code: str, *, library: PatternLibrary = DEFAULT_LIBRARY) -> str:
    found = library.first_match(SIGNATURE_FUNCTION, player_code)
    if found is None:
        raise PatternNotFound(SIGNATURE_FUNCTION, _tried(library, SIGNATURE_FUNCTION))
    matcher, match = found
    name = match.group("name")
    LOG.debug("signature function %r found by %s", name, matcher.name)
    return name


def _helper_objects(player_code: str, body: str, args: str) -> List[str]:
    """Return ``var HELPER={...}`` for every object the signature body calls into."""

    skipped = {arg.strip() for arg in args.split(",")} | _GLOBAL_OBJECTS
    helpers: List[str] = []
    seen = set()
    for reference in helper_reference_regex().finditer(body):
        helper = reference.group("helper")
        if helper in skipped or helper in seen:
            continue
        seen.add(helper)
        declaration = helper_declaration_regex(helper).search(player_code)
        if declaration is None:
            raise PatternNotFound("signature helper object", detail=f"no declaration of {helper!r}")
        try:
            end = find_closing_brace(player_code, declaration.end())
        except LexerError as exc:
            raise PatternNotFound("signature helper object", detail=str(exc)) from exc
        LOG.debug("signature helper object %r spans %d chars", helper, end - declaration.end())
        helpers.append(f"var {helper}={player_code[declaration.end():end]}")
    return helpers


def extract_signature_function(
    player_code: str,
    sandbox: ScriptSandbox,
    *,
    library: PatternLibrary = DEFAULT_LIBRARY,
    entry_point: str = DEFAULT_ENTRY_POINT,
) -> ExtractedFunction:
    """Isolate the signature function and wrap it behind ``entry_point``.

    The produced snippet looks like::

        var XY={...};function NAME(a){...};function deobfuscate(a){return NAME(a)}

    and is validated with ``sandbox.compile_or_fail`` before being returned.
    """

    name = find_signature_function_name(player_code, library=library)
    match = signature_body_regex(name).search(player_code)
    if match is None:
        raise PatternNotFound(SIGNATURE_FUNCTION, detail=f"no body for {name!r}")
    args = match.group("args")

    parts = _helper_objects(player_code, match.group("body"), args)
    parts.append(f"function {name}({args}){match.group('body')}")
    if name != entry_point:
        parts.append(f"function {entry_point}(a){{return {name}(a)}}")
    code = ";".join(parts)

    sandbox.compile_or_fail(code)
    return ExtractedFunction(entry_point, code, name)


# ----------------------------------------------------------------------
def resolve_function_array(player_code: str, array_name: str, index: str) -> str:
    """Return entry ``index`` of ``var ARRAY=[a,b,c]`` declared in ``player_code``."""

    if not _ASCII_DIGITS.fullmatch(index):
        raise IndirectionOutOfBounds(array_name, index)
    match = function_array_regex(array_name).search(player_code)
    if match is None:
        raise IndirectionOutOfBounds(array_name, index)
    names = [entry.strip() for entry in match.group("names").split(",")]
    position = int(index)
    if position >= len(names) or not names[position]:
        raise IndirectionOutOfBounds(array_name, index, len(names))
    return names[position]


def find_throttling_function_name(player_code: str, *, library: PatternLibrary = DEFAULT_LIBRARY) -> str:
    """Apply the throttling matchers and resolve array indirection if present."""

    found = library.first_match(THROTTLING_FUNCTION, player_code)
    if found is None:
        raise PatternNotFound(THROTTLING_FUNCTION, _tried(library, THROTTLING_FUNCTION))
    matcher, match = found
    name = match.group("name")
    index = match.group("index") if matcher.indirect else None
    if index is not None:
        LOG.debug("throttling matcher %s points at %s[%s]", matcher.name, name, index)
        name = resolve_function_array(player_code, name, index)
    LOG.debug("throttling function %r found by %s", name, matcher.name)
    return name


BodyStrategy = Callable[[str, str], Union[str, ExtractionError]]


def _body_from_lexer(player_code: str, name: str) -> Union[str, ExtractionError]:
    anchor = re.compile(r"(?<![\w$.])" + re.escape(name) + r"\s*=\s*function")
    try:
        tail = match_to_closing_brace(player_code, anchor)
    except LexerError as exc:
        return PatternNotFound(THROTTLING_FUNCTION, detail=f"lexer could not isolate {name!r}: {exc}")
    return f"function {name}{tail};"


def _body_from_regex(player_code: str, name: str) -> Union[str, ExtractionError]:
    match = throttling_body_regex(name).search(player_code)
    if match is None:
        return PatternNotFound(THROTTLING_FUNCTION, detail=f'no join("") terminated body for {name!r}')
    return f"function {name}{match.group('tail')}"


BODY_STRATEGIES: Tuple[BodyStrategy, ...] = (_body_from_lexer, _body_from_regex)


def extract_function_body(
    player_code: str,
    name: str,
    strategies: Sequence[BodyStrategy] = BODY_STRATEGIES,
) -> str:
    """Return the first body produced by ``strategies``; raise the last failure."""

    error: Optional[ExtractionError] = None
    for strategy in strategies:
        outcome = strategy(player_code, name)
        if not isinstance(outcome, ExtractionError):
            return outcome
        LOG.debug("%s failed: %s", strategy.__name__, outcome)
        error = outcome
    if error is None:
        raise PatternNotFound(THROTTLING_FUNCTION, detail="no body strategies configured")
    raise error


def extract_throttling_function(
    player_code: str,
    sandbox: ScriptSandbox,
    *,
    library: PatternLibrary = DEFAULT_LIBRARY,
) -> ExtractedFunction:
    """Isolate the ``n`` transform as ``function NAME(a){...};``."""

    name = find_throttling_function_name(player_code, library=library)
    code = extract_function_body(player_code, name)
    sandbox.compile_or_fail(code)
    return ExtractedFunction(name, code, name)


__all__ = [
    "BODY_STRATEGIES",
    "DEFAULT_ENTRY_POINT",
    "ExtractedFunction",
    "extract_function_body",
    "extract_signature_function",
    "extract_signature_timestamp",
    "extract_throttling_function",
    "find_signature_function_name",
    "find_throttling_function_name",
    "resolve_function_array",
]
