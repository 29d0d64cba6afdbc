"""Runtime configuration for the player manager.

Values are layered: dataclass defaults, then the ``deobfuscator`` section of
a JSON file (the packaged ``config.json`` unless another path is given), then
``PLAYER_DEOBFUSCATOR_*`` environment variables.  A value that cannot be
parsed leaves the previous layer in place.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

LOG = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).with_name("config.json")
_SECTION = "deobfuscator"

ENV_SANDBOX_TIMEOUT = "PLAYER_DEOBFUSCATOR_SANDBOX_TIMEOUT"
ENV_ENTRY_POINT = "PLAYER_DEOBFUSCATOR_ENTRY_POINT"
ENV_CACHE_FAILURES = "PLAYER_DEOBFUSCATOR_CACHE_FAILURES"


@dataclass(frozen=True)
class DeobfuscatorConfig:
    sandbox_timeout_s: float = 5.0
    entry_point: str = "deobfuscate"
    cache_failures: bool = True

    def __post_init__(self) -> None:
        if self.sandbox_timeout_s <= 0:
            raise ValueError("sandbox_timeout_s must be positive")
        if not self.entry_point:
            raise ValueError("entry_point must not be empty")


def _parse_bool_flag(value: object) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return None


def _parse_timeout(value: object) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _parse_entry_point(value: object) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _read_section(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        LOG.debug("config file %s not found, using defaults", path)
        return {}
    except OSError:  # pragma: no cover - unreadable file
        LOG.debug("failed to read %s", path, exc_info=True)
        return {}

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        LOG.debug("invalid JSON in %s", path, exc_info=True)
        return {}
    section = data.get(_SECTION) if isinstance(data, dict) else None
    return section if isinstance(section, dict) else {}


def _apply(config: DeobfuscatorConfig, values: Mapping[str, object], origin: str) -> DeobfuscatorConfig:
    updates: Dict[str, Any] = {}
    parsers = {
        "sandbox_timeout_s": _parse_timeout,
        "entry_point": _parse_entry_point,
        "cache_failures": _parse_bool_flag,
    }
    for field_name, parser in parsers.items():
        if field_name not in values:
            continue
        parsed = parser(values[field_name])
        if parsed is None:
            LOG.debug("ignoring invalid %s=%r from %s", field_name, values[field_name], origin)
            continue
        updates[field_name] = parsed
    return replace(config, **updates) if updates else config


def load_config(
    path: Union[str, Path, None] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> DeobfuscatorConfig:
    """Build a :class:`DeobfuscatorConfig` from the file and environment layers."""

    config_path = Path(path) if path is not None else _CONFIG_PATH
    environ = os.environ if environ is None else environ

    config = _apply(DeobfuscatorConfig(), _read_section(config_path), str(config_path))

    env_values: Dict[str, object] = {}
    for field_name, variable in (
        ("sandbox_timeout_s", ENV_SANDBOX_TIMEOUT),
        ("entry_point", ENV_ENTRY_POINT),
        ("cache_failures", ENV_CACHE_FAILURES),
    ):
        if variable in environ:
            env_values[field_name] = environ[variable]
    return _apply(config, env_values, "environment")


__all__ = [
    "DeobfuscatorConfig",
    "ENV_CACHE_FAILURES",
    "ENV_ENTRY_POINT",
    "ENV_SANDBOX_TIMEOUT",
    "load_config",
]
