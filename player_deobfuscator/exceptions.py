"""Custom exception hierarchy for the player deobfuscator."""

from __future__ import annotations

from typing import Sequence


class DeobfuscationError(Exception):
    """Base class for all deobfuscation related errors."""


class ExtractionError(DeobfuscationError):
    """Raised when a value could not be extracted from the player script."""


class PatternNotFound(ExtractionError):
    """None of the known matchers for ``kind`` matched the player script."""

    def __init__(self, kind: str, tried: Sequence[str] = (), detail: str | None = None) -> None:
        self.kind = kind
        self.tried = tuple(tried)
        message = f"could not find {kind} with any of the known patterns"
        if self.tried:
            message += f" (tried: {', '.join(self.tried)})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class IndirectionOutOfBounds(ExtractionError):
    """An array-of-names lookup referenced an invalid or missing entry."""

    def __init__(self, array_name: str, index: str, size: int | None = None) -> None:
        self.array_name = array_name
        self.index = index
        self.size = size
        if size is None:
            message = f"function name array {array_name!r} could not be resolved (index {index!r})"
        else:
            message = f"index {index!r} is outside of function name array {array_name!r} of size {size}"
        super().__init__(message)


class SourceFetchError(ExtractionError):
    """The script source collaborator could not supply the raw player script."""

    def __init__(self, identity: str, reason: str = "") -> None:
        self.identity = identity
        message = f"could not fetch player script for {identity!r}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class PreviousExtractionFailed(ExtractionError):
    """A previous extraction for the same identity failed and was not retried."""

    def __init__(self, identity: str, cause: BaseException) -> None:
        self.identity = identity
        self.cause = cause
        super().__init__(f"previous extraction for {identity!r} failed: {cause}")


class ScriptError(DeobfuscationError):
    """Base class for failures reported by the script sandbox."""


class ScriptCompileError(ScriptError):
    """The extracted script text does not parse."""


class ScriptRuntimeError(ScriptError):
    """The extracted function raised or returned an unusable value."""


class ScriptTimeoutError(ScriptRuntimeError):
    """The extracted function exceeded the sandbox execution budget."""


class LexerError(DeobfuscationError):
    """The brace-matching lexer could not find a balanced closing brace."""


__all__ = [
    "DeobfuscationError",
    "ExtractionError",
    "IndirectionOutOfBounds",
    "LexerError",
    "PatternNotFound",
    "PreviousExtractionFailed",
    "ScriptCompileError",
    "ScriptError",
    "ScriptRuntimeError",
    "ScriptTimeoutError",
    "SourceFetchError",
]
