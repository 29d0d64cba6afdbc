"""Extract and run signature and throttling functions from player scripts."""

from __future__ import annotations

from .cache import PlayerCache
from .config import DeobfuscatorConfig, load_config
from .exceptions import (
    DeobfuscationError,
    ExtractionError,
    IndirectionOutOfBounds,
    LexerError,
    PatternNotFound,
    PreviousExtractionFailed,
    ScriptCompileError,
    ScriptError,
    ScriptRuntimeError,
    ScriptTimeoutError,
    SourceFetchError,
)
from .extractors import (
    ExtractedFunction,
    extract_signature_function,
    extract_signature_timestamp,
    extract_throttling_function,
)
from .manager import JavaScriptPlayerManager
from .patterns import DEFAULT_LIBRARY, Matcher, PatternLibrary
from .sandbox import JavaScriptSandbox, ScriptSandbox
from .sources import CallableScriptSource, FileScriptSource, ScriptSource, StaticScriptSource

__version__ = "0.1.0"

__all__ = [
    "CallableScriptSource",
    "DEFAULT_LIBRARY",
    "DeobfuscationError",
    "DeobfuscatorConfig",
    "ExtractedFunction",
    "ExtractionError",
    "FileScriptSource",
    "IndirectionOutOfBounds",
    "JavaScriptPlayerManager",
    "JavaScriptSandbox",
    "LexerError",
    "Matcher",
    "PatternLibrary",
    "PatternNotFound",
    "PlayerCache",
    "PreviousExtractionFailed",
    "ScriptCompileError",
    "ScriptError",
    "ScriptRuntimeError",
    "ScriptSandbox",
    "ScriptSource",
    "ScriptTimeoutError",
    "SourceFetchError",
    "StaticScriptSource",
    "extract_signature_function",
    "extract_signature_timestamp",
    "extract_throttling_function",
    "load_config",
]
