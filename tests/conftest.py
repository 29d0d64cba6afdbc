"""Test configuration ensuring the project package is importable."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Sequence, Union

import pytest

ROOT = Path(__file__).resolve().parent.parent
TESTS = ROOT / "tests"
FIXTURES = TESTS / "fixtures"

root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)
else:
    idx = sys.path.index(root_str)
    if idx != 0:
        sys.path.insert(0, sys.path.pop(idx))
if str(TESTS) not in sys.path:
    sys.path.insert(1, str(TESTS))

from player_deobfuscator.config import DeobfuscatorConfig  # noqa: E402
from player_deobfuscator.manager import JavaScriptPlayerManager  # noqa: E402

PLAYER_PATH = FIXTURES / "player" / "base.js"


class CountingSource:
    """Script source recording every fetch; raises ``text`` if it is an exception."""

    def __init__(self, text: Union[str, BaseException]) -> None:
        self.text = text
        self.calls: List[str] = []

    def fetch_raw_script(self, identity: str) -> str:
        self.calls.append(identity)
        if isinstance(self.text, BaseException):
            raise self.text
        return self.text


class RecordingSandbox:
    """Sandbox double that returns a fixed value and records calls."""

    def __init__(self, result: str = "ok", error: BaseException | None = None) -> None:
        self.result = result
        self.error = error
        self.compiled: List[str] = []
        self.runs: List[tuple] = []

    def compile_or_fail(self, code: str) -> None:
        self.compiled.append(code)

    def run(self, code: str, entry_point: str, args: Sequence[str]) -> str:
        self.runs.append((code, entry_point, tuple(args)))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture(scope="session")
def player_text() -> str:
    return PLAYER_PATH.read_text(encoding="utf-8")


@pytest.fixture
def counting_source(player_text: str) -> CountingSource:
    return CountingSource(player_text)


@pytest.fixture
def default_config() -> DeobfuscatorConfig:
    return DeobfuscatorConfig()


@pytest.fixture
def manager(counting_source: CountingSource, default_config: DeobfuscatorConfig) -> JavaScriptPlayerManager:
    return JavaScriptPlayerManager(counting_source, config=default_config)
