"""Thread-safe memoization tiers shared by a player manager."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Generic, Hashable, Optional, TypeVar

from .extractors import ExtractedFunction

LOG = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class _CacheTier(Generic[K, V]):
    """One lock-guarded mapping.  Stored values are never replaced."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._entries: Dict[K, V] = {}

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            return self._entries.get(key)

    def put_if_absent(self, key: K, value: V) -> V:
        """Store ``value`` unless ``key`` is present; return the stored value."""

        with self._lock:
            return self._entries.setdefault(key, value)

    def discard(self, key: K) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class PlayerCache:
    """Positive and negative caches for one player manager.

    ``scripts``, ``timestamps``, ``signature_functions``,
    ``throttling_functions`` and ``failures`` are keyed by content identity.
    ``throttling_results`` is keyed by the encrypted parameter value, which
    always decrypts to the same output for a given player version.
    """

    def __init__(self) -> None:
        self._global_lock = threading.Lock()
        self.scripts: _CacheTier[str, str] = _CacheTier("scripts")
        self.timestamps: _CacheTier[str, str] = _CacheTier("timestamps")
        self.signature_functions: _CacheTier[str, ExtractedFunction] = _CacheTier("signature_functions")
        self.throttling_functions: _CacheTier[str, ExtractedFunction] = _CacheTier("throttling_functions")
        self.throttling_results: _CacheTier[str, str] = _CacheTier("throttling_results")
        self.failures: _CacheTier[str, BaseException] = _CacheTier("failures")

    def tiers(self) -> Dict[str, _CacheTier]:
        return {
            tier.name: tier
            for tier in (
                self.scripts,
                self.timestamps,
                self.signature_functions,
                self.throttling_functions,
                self.throttling_results,
                self.failures,
            )
        }

    def clear_all(self) -> None:
        """Empty every tier, including the fetched raw scripts."""

        with self._global_lock:
            for tier in self.tiers().values():
                tier.clear()
        LOG.debug("player caches cleared")

    def sizes(self) -> Dict[str, int]:
        return {name: len(tier) for name, tier in self.tiers().items()}


__all__ = ["PlayerCache"]
