"""Adapters supplying raw player scripts to the manager."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Protocol, Union, runtime_checkable

LOG = logging.getLogger(__name__)


@runtime_checkable
class ScriptSource(Protocol):
    """Return the raw player script relevant to ``identity``.

    Implementations may raise anything; the manager reports failures as
    :class:`~player_deobfuscator.exceptions.SourceFetchError`.
    """

    def fetch_raw_script(self, identity: str) -> str: ...


class CallableScriptSource:
    """Wrap a plain ``identity -> script`` callable."""

    def __init__(self, func: Callable[[str], str]) -> None:
        self._func = func

    def fetch_raw_script(self, identity: str) -> str:
        return self._func(identity)


class StaticScriptSource:
    """Serve the same script text for every identity."""

    def __init__(self, text: str) -> None:
        self.text = text

    def fetch_raw_script(self, identity: str) -> str:
        return self.text


class FileScriptSource:
    """Read a player script saved on disk, once per fetch."""

    def __init__(self, path: Union[str, Path], *, encoding: str = "utf-8") -> None:
        self.path = Path(path)
        self.encoding = encoding

    def fetch_raw_script(self, identity: str) -> str:
        LOG.debug("reading player script for %s from %s", identity, self.path)
        return self.path.read_text(encoding=self.encoding)


__all__ = ["CallableScriptSource", "FileScriptSource", "ScriptSource", "StaticScriptSource"]
