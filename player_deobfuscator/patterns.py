"""
Pattern Library
Ordered matcher tables used to locate functions inside player scripts.

Matchers are tried strictly in table order and the first match wins.  The
order encodes which obfuscation variant takes precedence, so new variants are
appended rather than inserted.  Each matcher names its capture groups:

``value``
    the signature timestamp digits
``name``
    a function name, or the name of an array of function names when the
    matcher also captures ``index``
``index``
    position inside the array of function names (optional group)
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Dict, Match, Optional, Pattern, Tuple

TIMESTAMP = "signature timestamp"
SIGNATURE_FUNCTION = "signature function name"
THROTTLING_FUNCTION = "throttling function name"

_VAR = r"[a-zA-Z0-9$_]"
_VARS = _VAR + "+"


@dataclass(frozen=True)
class Matcher:
    """A single named extraction strategy."""

    name: str
    regex: Pattern[str]
    description: str = ""

    @property
    def groups(self) -> int:
        return self.regex.groups

    @property
    def indirect(self) -> bool:
        """Whether a match may point into an array of function names."""
        return "index" in self.regex.groupindex

    def search(self, text: str) -> Optional[Match[str]]:
        return self.regex.search(text)


def _matcher(name: str, pattern: str, description: str = "") -> Matcher:
    return Matcher(name, re.compile(pattern), description)


TIMESTAMP_MATCHERS: Tuple[Matcher, ...] = (
    _matcher(
        "sts_assignment",
        r"signatureTimestamp[=:](?P<value>\d+)",
        "signatureTimestamp:12345 inside the player configuration",
    ),
)

SIGNATURE_NAME_MATCHERS: Tuple[Matcher, ...] = (
    _matcher(
        "set_encode_uri",
        r"\b[cs]s\s*&&\s*[adf]\.set\([^,]+\s*,\s*encodeURIComponent\s*\(\s*(?P<name>[a-zA-Z0-9$]+)\(",
        "cs&&d.set(b,encodeURIComponent(NAME(decodeURIComponent(c))))",
    ),
    _matcher(
        "split_assign_a",
        r'(?:\b|[^a-zA-Z0-9$])(?P<name>[a-zA-Z0-9$]{2,})\s*=\s*function\(\s*a\s*\)'
        r'\s*\{\s*a\s*=\s*a\.split\(\s*""\s*\)',
        'NAME=function(a){a=a.split("")...',
    ),
    _matcher(
        "decode_h_s",
        r"\bm=(?P<name>[a-zA-Z0-9$]{2,})\(decodeURIComponent\(h\.s\)\)",
        "m=NAME(decodeURIComponent(h.s))",
    ),
    _matcher(
        "decode_c",
        r"\bc&&\(c=(?P<name>[a-zA-Z0-9$]{2,})\(decodeURIComponent\(c\)\)",
        "c&&(c=NAME(decodeURIComponent(c))",
    ),
    _matcher(
        "split_assign_any",
        r'(?P<name>[\w$]+)\s*=\s*function\((?P<arg>\w+)\)\{\s*(?P=arg)=\s*(?P=arg)\.split\(""\)\s*;',
        'NAME=function(x){x=x.split("");...',
    ),
    _matcher(
        "set_encode_uri_c_d",
        r"\bc\s*&&\s*d\.set\([^,]+\s*,\s*(?:encodeURIComponent\s*\()(?P<name>[a-zA-Z0-9$]+)\(",
        "c&&d.set(b,encodeURIComponent(NAME(...",
    ),
    _matcher(
        "set_encode_uri_any",
        r"\b[a-zA-Z0-9]+\s*&&\s*[a-zA-Z0-9]+\.set\([^,]+\s*,\s*encodeURIComponent\s*\(\s*(?P<name>[a-zA-Z0-9$]+)\(",
        "x&&y.set(b,encodeURIComponent(NAME(...",
    ),
)

THROTTLING_NAME_MATCHERS: Tuple[Matcher, ...] = (
    _matcher(
        "nn_lookup_tail",
        _VAR + r'="nn"\[\+' + _VARS + r"\." + _VARS + r"\]," + _VARS + r"\(" + _VARS + r"\),"
        + _VARS + "=" + _VARS + r"\." + _VARS + r"\[" + _VARS + r"\]\|\|null\).+\|\|(?P<name>"
        + _VARS + r')\(""\)',
        'b="nn"[+a.D],WL(a),c=a.j[b]||null)&&(...SDa.length||Wma("")',
    ),
    _matcher(
        "nn_lookup_index",
        _VAR + r'="nn"\[\+' + _VARS + r"\." + _VARS + r"\]," + _VARS + r"\(" + _VARS + r"\),"
        + _VARS + "=" + _VARS + r"\." + _VARS + r"\[" + _VARS + r"\]\|\|null\)&&\(" + _VARS
        + "=(?P<name>" + _VARS + r")\[(?P<index>\d+)\]",
        'b="nn"[+a.D],WL(a),c=a.j[b]||null)&&(c=SDa[0](c)',
    ),
    _matcher(
        "nn_get_tail",
        _VAR + r'="nn"\[\+' + _VARS + r"\." + _VARS + r"\]," + _VARS + "=" + _VARS
        + r"\.get\(" + _VARS + r"\)\).+\|\|(?P<name>" + _VARS + r')\(""\)',
        'b="nn"[+a.D],c=a.get(b))&&(...rDa.length||rma("")',
    ),
    _matcher(
        "nn_get_index",
        _VAR + r'="nn"\[\+' + _VARS + r"\." + _VARS + r"\]," + _VARS + "=" + _VARS
        + r"\.get\(" + _VARS + r"\)\)&&\(" + _VARS + "=(?P<name>" + _VARS + r")\[(?P<index>\d+)\]",
        'b="nn"[+a.D],c=a.get(b))&&(c=rDa[0](c)',
    ),
    _matcher(
        "from_char_code",
        r"\(" + _VAR + r"=String\.fromCharCode\(110\)," + _VAR + "=" + _VAR + r"\.get\("
        + _VAR + r"\)\)&&\(" + _VAR + "=(?P<name>" + _VARS + r")(?:\[(?P<index>\d+)\])?\("
        + _VAR + r"\)",
        "(b=String.fromCharCode(110),c=a.get(b))&&(c=BDa[0](c)",
    ),
    _matcher(
        "get_n",
        r'\.get\("n"\)\)&&\(' + _VAR + "=(?P<name>" + _VARS + r")(?:\[(?P<index>\d+)\])?\("
        + _VAR + r"\)",
        '.get("n"))&&(b=Yva[0](b)',
    ),
    _matcher(
        "single_entry_array",
        r"var\s*[a-zA-Z0-9$_]{3}\s*=\s*\[(?P<name>[a-zA-Z0-9$_]{3})\]",
        "var XYZ=[NAME]",
    ),
)


@dataclass(frozen=True)
class PatternLibrary:
    """Ordered matcher tables, one per target kind."""

    timestamp: Tuple[Matcher, ...] = TIMESTAMP_MATCHERS
    signature_function: Tuple[Matcher, ...] = SIGNATURE_NAME_MATCHERS
    throttling_function: Tuple[Matcher, ...] = THROTTLING_NAME_MATCHERS

    def table(self, kind: str) -> Tuple[Matcher, ...]:
        return self._tables()[kind]

    def extend(self, kind: str, *matchers: Matcher) -> "PatternLibrary":
        """Return a copy with ``matchers`` appended to the table for ``kind``."""

        field = {
            TIMESTAMP: "timestamp",
            SIGNATURE_FUNCTION: "signature_function",
            THROTTLING_FUNCTION: "throttling_function",
        }[kind]
        return replace(self, **{field: self.table(kind) + tuple(matchers)})

    def first_match(self, kind: str, text: str) -> Optional[Tuple[Matcher, Match[str]]]:
        """Return the earliest matcher of ``kind`` matching ``text`` and its match."""

        for matcher in self.table(kind):
            match = matcher.search(text)
            if match is not None:
                return matcher, match
        return None

    def _tables(self) -> Dict[str, Tuple[Matcher, ...]]:
        return {
            TIMESTAMP: self.timestamp,
            SIGNATURE_FUNCTION: self.signature_function,
            THROTTLING_FUNCTION: self.throttling_function,
        }


DEFAULT_LIBRARY = PatternLibrary()


# --- Patterns parameterised by an already known name ----------------------
def signature_body_regex(name: str) -> Pattern[str]:
    """``NAME=function(args){body}`` closed at the first ``}``."""

    quoted = re.escape(name)
    return re.compile(
        rf"(?:function\s+{quoted}|[{{;,]\s*{quoted}\s*=\s*function|var\s+{quoted}\s*=\s*function)"
        r"\s*\((?P<args>[^)]*)\)\s*(?P<body>\{[^}]+\})"
    )


def helper_reference_regex() -> Pattern[str]:
    """Method calls such as ``XY.ab(a,3)`` or ``a=XY["ab"](a,3)`` inside a function body."""

    return re.compile(r"(?<![\w$.'\"`])(?P<helper>[A-Za-z_$][\w$]*)(?:\.[\w$]+|\[[^\]]+\])\(")


def helper_declaration_regex(name: str) -> Pattern[str]:
    quoted = re.escape(name)
    return re.compile(rf"(?:(?:var|let|const)\s+|[;,{{]\s*){quoted}\s*=\s*(?=\{{)")


def function_array_regex(name: str) -> Pattern[str]:
    """``var NAME=[a,b,c];`` holding the names of several functions."""

    return re.compile(r"var " + re.escape(name) + r"\s*=\s*\[(?P<names>.+?)\][;,]")


def throttling_body_regex(name: str) -> Pattern[str]:
    """``NAME=function(a){...return b.join("")};`` used when lexing fails."""

    return re.compile(
        re.escape(name) + r'=\s*function(?P<tail>[\S\s]*?\}\s*return [\w$]+?\.join\(""\)\s*\};)',
        re.DOTALL,
    )


def throttling_parameter_regex() -> Pattern[str]:
    """The ``n`` query parameter of a streaming URL."""

    return re.compile(r"[&?]n=(?P<value>[^&]+)")


__all__ = [
    "DEFAULT_LIBRARY",
    "Matcher",
    "PatternLibrary",
    "SIGNATURE_FUNCTION",
    "SIGNATURE_NAME_MATCHERS",
    "THROTTLING_FUNCTION",
    "THROTTLING_NAME_MATCHERS",
    "TIMESTAMP",
    "TIMESTAMP_MATCHERS",
    "function_array_regex",
    "helper_declaration_regex",
    "helper_reference_regex",
    "signature_body_regex",
    "throttling_body_regex",
    "throttling_parameter_regex",
]
