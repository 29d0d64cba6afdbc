"""High level entry point combining sources, extractors, caches and sandbox."""

from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

from .cache import PlayerCache
from .config import DeobfuscatorConfig, load_config
from .exceptions import DeobfuscationError, PreviousExtractionFailed, SourceFetchError
from .extractors import (
    ExtractedFunction,
    extract_signature_function,
    extract_signature_timestamp,
    extract_throttling_function,
)
from .patterns import DEFAULT_LIBRARY, PatternLibrary, throttling_parameter_regex
from .sandbox import JavaScriptSandbox, ScriptSandbox
from .sources import ScriptSource

LOG = logging.getLogger(__name__)

T = TypeVar("T")


class JavaScriptPlayerManager:
    """Deobfuscate signatures and throttling parameters for player scripts.

    Every public operation checks the positive cache, then the negative
    cache, then fetches the raw script through ``source`` (once per identity),
    runs the relevant extractor and finally executes the extracted function in
    the sandbox.  Extraction failures are remembered per identity and replayed
    as :class:`PreviousExtractionFailed` until :meth:`reset_all` is called.
    With ``cache_failures`` off nothing is remembered and the raw script of
    the failed identity is dropped, so the next call fetches it again.

    Instances are safe to share between threads.
    """

    def __init__(
        self,
        source: ScriptSource,
        *,
        sandbox: Optional[ScriptSandbox] = None,
        cache: Optional[PlayerCache] = None,
        config: Optional[DeobfuscatorConfig] = None,
        library: PatternLibrary = DEFAULT_LIBRARY,
    ) -> None:
        self.config = config if config is not None else load_config()
        self.source = source
        self.sandbox = sandbox if sandbox is not None else JavaScriptSandbox(
            timeout_s=self.config.sandbox_timeout_s
        )
        self.cache = cache if cache is not None else PlayerCache()
        self.library = library

    # ------------------------------------------------------------------
    def get_signature_timestamp(self, identity: str) -> str:
        """Return the signature timestamp of the player used for ``identity``."""

        cached = self.cache.timestamps.get(identity)
        if cached is not None:
            LOG.debug("signature timestamp cache hit for %s", identity)
            return cached
        value = self._extract(identity, lambda code: extract_signature_timestamp(code, library=self.library))
        return self.cache.timestamps.put_if_absent(identity, value)

    def deobfuscate_signature(self, identity: str, obfuscated_signature: str) -> str:
        """Run the player's signature function on ``obfuscated_signature``."""

        function = self._signature_function(identity)
        return self.sandbox.run(function.body, function.name, [obfuscated_signature])

    def decrypt_throttling_parameter(self, url: str, identity: str) -> str:
        """Return ``url`` with its ``n`` parameter replaced by the decrypted value.

        A URL without an ``n`` parameter is returned unchanged without
        fetching anything.
        """

        match = throttling_parameter_regex().search(url)
        if match is None:
            return url

        encrypted = match.group("value")
        decrypted = self.cache.throttling_results.get(encrypted)
        if decrypted is None:
            function = self._throttling_function(identity)
            decrypted = self.sandbox.run(function.body, function.name, [encrypted])
            decrypted = self.cache.throttling_results.put_if_absent(encrypted, decrypted)
        else:
            LOG.debug("throttling result cache hit for %s", encrypted)
        return url[: match.start("value")] + decrypted + url[match.end("value") :]

    def throttling_cache_size(self) -> int:
        return len(self.cache.throttling_results)

    def clear_throttling_cache(self) -> None:
        self.cache.throttling_results.clear()

    def reset_all(self) -> None:
        """Forget every cached result, failure and raw script."""

        self.cache.clear_all()

    # ------------------------------------------------------------------
    def _signature_function(self, identity: str) -> ExtractedFunction:
        cached = self.cache.signature_functions.get(identity)
        if cached is not None:
            LOG.debug("signature function cache hit for %s", identity)
            return cached
        function = self._extract(
            identity,
            lambda code: extract_signature_function(
                code,
                self.sandbox,
                library=self.library,
                entry_point=self.config.entry_point,
            ),
        )
        LOG.info("extracted signature function %s (%d chars) for %s", function.origin, len(function.body), identity)
        return self.cache.signature_functions.put_if_absent(identity, function)

    def _throttling_function(self, identity: str) -> ExtractedFunction:
        cached = self.cache.throttling_functions.get(identity)
        if cached is not None:
            LOG.debug("throttling function cache hit for %s", identity)
            return cached
        function = self._extract(
            identity,
            lambda code: extract_throttling_function(code, self.sandbox, library=self.library),
        )
        LOG.info("extracted throttling function %s (%d chars) for %s", function.name, len(function.body), identity)
        return self.cache.throttling_functions.put_if_absent(identity, function)

    def _extract(self, identity: str, extractor: Callable[[str], T]) -> T:
        previous = self.cache.failures.get(identity)
        if previous is not None:
            raise PreviousExtractionFailed(identity, previous) from previous
        try:
            return extractor(self._raw_script(identity))
        except DeobfuscationError as exc:
            if self.config.cache_failures:
                self.cache.failures.put_if_absent(identity, exc)
                LOG.warning("extraction for %s failed and will not be retried: %s", identity, exc)
            else:
                # A retry must see a freshly fetched script.
                self.cache.scripts.discard(identity)
                LOG.warning("extraction for %s failed: %s", identity, exc)
            raise

    def _raw_script(self, identity: str) -> str:
        cached = self.cache.scripts.get(identity)
        if cached is not None:
            return cached
        LOG.info("fetching player script for %s", identity)
        try:
            text = self.source.fetch_raw_script(identity)
        except Exception as exc:  # collaborator failures of any kind
            raise SourceFetchError(identity, str(exc)) from exc
        if not isinstance(text, str):
            raise SourceFetchError(identity, f"expected str, got {type(text).__name__}")
        return self.cache.scripts.put_if_absent(identity, text)


__all__ = ["JavaScriptPlayerManager"]
