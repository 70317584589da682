"""
Detector and detector pool tests.
"""

import asyncio
import time

import httpx
from langdetect.language import Language

from polydict.config import Settings
from polydict.services import detection
from polydict.services.arbitration import ArbitrationPolicy, DetectionArbitrator
from polydict.services.detection import (
    BaiduDetector,
    DetectorPool,
    GoogleDetector,
    LangdetectDetector,
    SimpleDetector,
    build_detectors,
)
from polydict.services.errors import ProviderError
from polydict.services.models import ConfirmationPath
from polydict.services.providers import BaiduProvider, GoogleProvider, build_providers

from fakes import FakeDetector


def test_simple_detector_japanese_kana():
    signal = SimpleDetector().classify("こんにちは")
    assert signal.language == "ja"
    assert signal.confidence == 1.0


def test_simple_detector_japanese_with_kanji():
    signal = SimpleDetector().classify("日本語を勉強します")
    assert signal.language == "ja"
    assert signal.confidence == 1.0


def test_simple_detector_chinese():
    signal = SimpleDetector().classify("你好，世界")
    assert signal.language == "zh-CHS"
    assert signal.confidence == 1.0


def test_simple_detector_korean():
    assert SimpleDetector().classify("안녕하세요").language == "ko"


def test_simple_detector_ascii_is_english():
    signal = SimpleDetector().classify("good morning")
    assert signal.language == "en"
    assert signal.confidence == 0.9


def test_simple_detector_cyrillic_is_capped():
    signal = SimpleDetector().classify("привет")
    assert signal.language == "ru"
    assert signal.confidence == 0.7


def test_simple_detector_accented_latin_is_ambiguous():
    signal = SimpleDetector().classify("déjà vu")
    assert not signal.usable
    assert signal.error == "no unambiguous script"


def test_simple_detector_without_letters():
    signal = SimpleDetector().classify("1234 !!")
    assert signal.error == "no letters"


def test_detector_failures_become_signals():
    async def run():
        failing = FakeDetector("remote", error=ProviderError("54003", "Access frequency limited"))
        slow = FakeDetector("slow", language="fr", delay=0.5, timeout_s=0.05)
        return await failing.run("bonjour"), await slow.run("bonjour")

    failed, timed_out = asyncio.run(run())
    assert failed.error.startswith("54003")
    assert timed_out.error == "timeout"
    assert not failed.usable and not timed_out.usable


def test_pool_yields_in_completion_order():
    async def run():
        pool = DetectorPool([
            FakeDetector("slow", language="fr", confidence=0.5, delay=0.05),
            FakeDetector("fast", language="de", confidence=0.5),
        ])
        return [signal.detector async for signal in pool.detect("hallo", deadline=1.0)]

    assert asyncio.run(run()) == ["fast", "slow"]


def test_pool_deadline_drops_late_detectors_without_cancelling_them():
    late = FakeDetector("late", language="fr", delay=0.2)

    async def run():
        pool = DetectorPool([FakeDetector("fast", language="de"), late])
        start = time.perf_counter()
        received = [signal.detector async for signal in pool.detect("hallo", deadline=0.05)]
        elapsed = time.perf_counter() - start
        await asyncio.sleep(0.3)
        return received, elapsed, pool

    received, elapsed, pool = asyncio.run(run())
    assert received == ["fast"]
    assert elapsed < 0.2
    assert late.calls == 1
    assert not pool._running


def test_google_detector_parses_response():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["sl"] == "auto"
        return httpx.Response(200, json={
            "sentences": [{"trans": "Hello", "orig": "Bonjour"}],
            "src": "fr",
            "confidence": 0.93,
            "ld_result": {"srclangs": ["fr"], "srclangs_confidences": [0.93]},
        })

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await GoogleDetector(GoogleProvider(client)).run("Bonjour")

    signal = asyncio.run(run())
    assert signal.language == "fr"
    assert signal.confidence == 0.93
    assert signal.alternatives == (("fr", 0.93),)


def test_google_detector_maps_chinese_code():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"sentences": [], "src": "zh-CN", "confidence": 1.0})

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await GoogleDetector(GoogleProvider(client)).run("你好")

    assert asyncio.run(run()).language == "zh-CHS"


def test_google_detector_rate_limited():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="Too Many Requests")

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await GoogleDetector(GoogleProvider(client)).run("Bonjour")

    signal = asyncio.run(run())
    assert signal.error is not None
    assert signal.language is None


def test_google_detector_non_object_body_becomes_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await GoogleDetector(GoogleProvider(client)).run("Bonjour")

    signal = asyncio.run(run())
    assert signal.language is None
    assert "JSON object" in signal.error


def test_google_detector_unexpected_shape_becomes_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"src": "fr", "ld_result": "broken"})

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await GoogleDetector(GoogleProvider(client)).run("Bonjour")

    signal = asyncio.run(run())
    assert signal.error.startswith("AttributeError")


def test_malformed_remote_detector_still_yields_default_confirmation():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            pool = DetectorPool([GoogleDetector(GoogleProvider(client))])
            policy = ArbitrationPolicy(default_language="en", deadline_s=0.5)
            return await DetectionArbitrator(policy).arbitrate(pool.detect("Bonjour", deadline=0.5))

    confirmed = asyncio.run(run())
    assert confirmed.language == "en"
    assert confirmed.path == ConfirmationPath.DEFAULT


def test_baidu_detector_maps_backend_code():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/language")
        return httpx.Response(200, json={"error_code": 0, "msg": "success", "data": {"src": "jp"}})

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await BaiduDetector(BaiduProvider(client, "id", "secret")).run("こんにちは")

    signal = asyncio.run(run())
    assert signal.raw_code == "jp"
    assert signal.language == "ja"


def test_baidu_detector_error_code():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error_code": "54003", "error_msg": "Invalid Access Limit"})

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await BaiduDetector(BaiduProvider(client, "id", "secret")).run("bonjour")

    signal = asyncio.run(run())
    assert signal.error.startswith("54003")
    assert not signal.usable


def test_langdetect_detector_maps_chinese_code(monkeypatch):
    monkeypatch.setattr(
        detection, "detect_langs", lambda text: [Language("zh-cn", 0.9999), Language("ko", 0.0001)]
    )
    signal = asyncio.run(LangdetectDetector().run("你好世界"))
    assert signal.raw_code == "zh-cn"
    assert signal.language == "zh-CHS"
    assert signal.confidence == 1.0
    assert signal.alternatives == (("zh-cn", 1.0), ("ko", 0.0))


def test_langdetect_detector_english_sentence():
    signal = asyncio.run(LangdetectDetector().run("The quick brown fox jumps over the lazy dog every morning"))
    assert signal.language == "en"
    assert 0.0 < signal.confidence <= 1.0


def test_langdetect_detector_without_features():
    signal = asyncio.run(LangdetectDetector().run("12345 !!!"))
    assert signal.error == "Unable to detect language"


def test_build_detectors_skips_detectors_without_providers():
    config = Settings(
        ENABLED_PROVIDERS="baidu,google",
        ENABLED_DETECTORS="simple,langdetect,baidu,google,bogus",
        BAIDU_APP_ID="",
        BAIDU_APP_SECRET="",
        DETECTOR_TIMEOUT_MS=800,
    )
    detectors = build_detectors(config, build_providers(config, client=None))
    assert [detector.name for detector in detectors] == ["simple", "langdetect", "google"]
    assert all(detector.timeout_s == 0.8 for detector in detectors)
