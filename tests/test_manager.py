from __future__ import annotations

import threading

import pytest

from conftest import CountingSource, RecordingSandbox
from player_deobfuscator.config import DeobfuscatorConfig
from player_deobfuscator.exceptions import (
    PatternNotFound,
    PreviousExtractionFailed,
    ScriptCompileError,
    ScriptRuntimeError,
    SourceFetchError,
)
from player_deobfuscator.manager import JavaScriptPlayerManager

THROTTLED_URL = "https://host/videoplayback?n=VVF2xyZLVRZZxHXZ&other=other"
DECRYPTED_URL = "https://host/videoplayback?n=iHywZkMipkszqA&other=other"


def test_signature_timestamp(manager, counting_source) -> None:
    assert manager.get_signature_timestamp("vid") == "19834"
    assert manager.get_signature_timestamp("vid") == "19834"
    assert counting_source.calls == ["vid"]


def test_deobfuscate_signature_example() -> None:
    script = (
        'var xyz=function(a){a=a.split("");return a.reverse().join("")};'
        "cs&&d.set(b,encodeURIComponent(xyz(decodeURIComponent(cs))));"
    )
    manager = JavaScriptPlayerManager(CountingSource(script), config=DeobfuscatorConfig())
    assert manager.deobfuscate_signature("vid", "ABCD") == "DCBA"


def test_decrypt_throttling_parameter_example(manager) -> None:
    assert manager.decrypt_throttling_parameter(THROTTLED_URL, "vid") == DECRYPTED_URL
    assert manager.throttling_cache_size() == 1


def test_determinism(player_text: str) -> None:
    outputs = set()
    for _ in range(2):
        manager = JavaScriptPlayerManager(CountingSource(player_text), config=DeobfuscatorConfig())
        outputs.add(
            (
                manager.deobfuscate_signature("vid", "ABCDEF"),
                manager.decrypt_throttling_parameter(THROTTLED_URL, "vid"),
            )
        )
    assert outputs == {("FEDCBA", DECRYPTED_URL)}


def test_one_fetch_and_one_extraction_per_identity(player_text: str) -> None:
    source = CountingSource(player_text)
    sandbox = RecordingSandbox(result="out")
    manager = JavaScriptPlayerManager(source, sandbox=sandbox, config=DeobfuscatorConfig())

    manager.deobfuscate_signature("vid", "ABCD")
    manager.deobfuscate_signature("vid", "EFGH")
    manager.get_signature_timestamp("vid")

    assert source.calls == ["vid"]
    assert len(sandbox.compiled) == 1
    assert [args for _, _, args in sandbox.runs] == [("ABCD",), ("EFGH",)]


def test_throttling_results_are_cached_by_value(player_text: str) -> None:
    sandbox = RecordingSandbox(result="plain")
    manager = JavaScriptPlayerManager(CountingSource(player_text), sandbox=sandbox, config=DeobfuscatorConfig())

    first = manager.decrypt_throttling_parameter("https://a/x?n=abc", "vid")
    second = manager.decrypt_throttling_parameter("https://b/y?foo=1&n=abc", "other")

    assert first == "https://a/x?n=plain"
    assert second == "https://b/y?foo=1&n=plain"
    assert len(sandbox.runs) == 1
    manager.clear_throttling_cache()
    assert manager.throttling_cache_size() == 0


def test_only_the_parameter_value_is_replaced(player_text: str) -> None:
    sandbox = RecordingSandbox(result="NEW")
    manager = JavaScriptPlayerManager(CountingSource(player_text), sandbox=sandbox, config=DeobfuscatorConfig())
    url = "https://host/abc/videoplayback?id=abc&n=abc"
    assert manager.decrypt_throttling_parameter(url, "vid") == "https://host/abc/videoplayback?id=abc&n=NEW"


def test_fast_path_without_parameter(manager, counting_source) -> None:
    url = "https://host/videoplayback?id=1&other=other"
    assert manager.decrypt_throttling_parameter(url, "vid") == url
    assert counting_source.calls == []
    assert manager.throttling_cache_size() == 0


def test_negative_cache_short_circuits() -> None:
    source = CountingSource("var nothing=1;")
    manager = JavaScriptPlayerManager(source, config=DeobfuscatorConfig())

    with pytest.raises(PatternNotFound) as first:
        manager.deobfuscate_signature("vid", "ABCD")
    with pytest.raises(PreviousExtractionFailed) as second:
        manager.deobfuscate_signature("vid", "ABCD")

    assert source.calls == ["vid"]
    assert second.value.cause is first.value
    assert second.value.identity == "vid"


def test_negative_cache_is_shared_across_operations() -> None:
    source = CountingSource("var cfg={signatureTimestamp:1};")
    manager = JavaScriptPlayerManager(source, config=DeobfuscatorConfig())
    with pytest.raises(PatternNotFound):
        manager.decrypt_throttling_parameter("https://host/x?n=abc", "vid")
    with pytest.raises(PreviousExtractionFailed):
        manager.get_signature_timestamp("vid")
    assert manager.get_signature_timestamp("other") == "1"


def test_negative_cache_can_be_disabled() -> None:
    source = CountingSource("var nothing=1;")
    manager = JavaScriptPlayerManager(source, config=DeobfuscatorConfig(cache_failures=False))
    for _ in range(2):
        with pytest.raises(PatternNotFound):
            manager.get_signature_timestamp("vid")
    assert source.calls == ["vid", "vid"]


def test_disabled_negative_cache_recovers_after_upstream_change() -> None:
    source = CountingSource("var nothing=1;")
    manager = JavaScriptPlayerManager(source, config=DeobfuscatorConfig(cache_failures=False))
    with pytest.raises(PatternNotFound):
        manager.get_signature_timestamp("vid")
    source.text = "var cfg={signatureTimestamp:7};"
    assert manager.get_signature_timestamp("vid") == "7"
    assert len(manager.cache.failures) == 0


def test_unparsable_signature_function_is_never_cached() -> None:
    script = (
        'var xyz=function(a){a=a.split("");a=;return a.join("")};'
        "cs&&d.set(b,encodeURIComponent(xyz(decodeURIComponent(cs))));"
    )
    source = CountingSource(script)
    manager = JavaScriptPlayerManager(source, config=DeobfuscatorConfig())
    with pytest.raises(ScriptCompileError):
        manager.deobfuscate_signature("vid", "ABCD")
    assert manager.cache.signature_functions.get("vid") is None
    with pytest.raises(PreviousExtractionFailed) as excinfo:
        manager.deobfuscate_signature("vid", "ABCD")
    assert isinstance(excinfo.value.cause, ScriptCompileError)
    assert source.calls == ["vid"]


def test_source_failure_is_wrapped_and_remembered() -> None:
    source = CountingSource(ConnectionError("offline"))
    manager = JavaScriptPlayerManager(source, config=DeobfuscatorConfig())
    with pytest.raises(SourceFetchError) as excinfo:
        manager.get_signature_timestamp("vid")
    assert isinstance(excinfo.value.__cause__, ConnectionError)
    with pytest.raises(PreviousExtractionFailed):
        manager.get_signature_timestamp("vid")
    assert source.calls == ["vid"]


def test_runtime_failures_are_not_remembered(player_text: str) -> None:
    sandbox = RecordingSandbox(error=ScriptRuntimeError("bad input"))
    manager = JavaScriptPlayerManager(CountingSource(player_text), sandbox=sandbox, config=DeobfuscatorConfig())
    for _ in range(2):
        with pytest.raises(ScriptRuntimeError):
            manager.deobfuscate_signature("vid", "ABCD")
    assert len(sandbox.runs) == 2


def test_reset_refetches(manager, counting_source) -> None:
    manager.get_signature_timestamp("vid")
    manager.reset_all()
    manager.get_signature_timestamp("vid")
    assert counting_source.calls == ["vid", "vid"]


def test_reset_forgets_failures() -> None:
    source = CountingSource("var nothing=1;")
    manager = JavaScriptPlayerManager(source, config=DeobfuscatorConfig())
    with pytest.raises(PatternNotFound):
        manager.get_signature_timestamp("vid")
    source.text = "var cfg={signatureTimestamp:42};"
    manager.reset_all()
    assert manager.get_signature_timestamp("vid") == "42"


def test_entry_point_comes_from_config(player_text: str) -> None:
    sandbox = RecordingSandbox()
    manager = JavaScriptPlayerManager(
        CountingSource(player_text),
        sandbox=sandbox,
        config=DeobfuscatorConfig(entry_point="unscramble"),
    )
    manager.deobfuscate_signature("vid", "ABCD")
    code, entry_point, _ = sandbox.runs[0]
    assert entry_point == "unscramble"
    assert code.endswith("function unscramble(a){return Rva(a)}")


def test_concurrent_requests_agree(player_text: str) -> None:
    manager = JavaScriptPlayerManager(CountingSource(player_text), config=DeobfuscatorConfig())
    results = []
    errors = []

    def worker() -> None:
        try:
            results.append(manager.deobfuscate_signature("vid", "ABCD"))
        except Exception as exc:  # pragma: no cover - reported below
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert results == ["DCBA"] * 4
