"""
Backend client tests against mocked HTTP transports.
"""

import asyncio
import json
from urllib.parse import parse_qs

import httpx
import pytest

from polydict.config import Settings
from polydict.services.errors import ProviderError
from polydict.services.providers import (
    BaiduProvider,
    CaiyunProvider,
    DEEPL_FREE_ENDPOINT,
    DEEPL_PRO_ENDPOINT,
    DeepLProvider,
    YoudaoProvider,
    build_providers,
)


def _run(handler, call):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await call(client)

    return asyncio.run(run())


def _form(request: httpx.Request):
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


YOUDAO_WORD = {
    "errorCode": "0",
    "query": "good",
    "l": "en2zh-CHS",
    "translation": ["好"],
    "basic": {
        "us-phonetic": "ɡʊd",
        "uk-phonetic": "ɡʊd",
        "exam_type": ["CET4"],
        "explains": ["adj. 好的", "n. 好处"],
        "wfs": [{"wf": {"name": "比较级", "value": "better"}}],
    },
    "web": [
        {"key": "good", "value": ["好", "良好"]},
        {"key": "Good Friday", "value": ["耶稣受难节"]},
    ],
}


def test_youdao_parses_dictionary_entry():
    seen = {}

    def handler(request):
        seen.update(_form(request))
        return httpx.Response(200, json=YOUDAO_WORD)

    payload = _run(handler, lambda client: YoudaoProvider(client, "key", "secret").translate("good", "en", "zh-CHS"))
    assert seen["from"] == "en" and seen["to"] == "zh-CHS"
    assert seen["signType"] == "v3"
    assert payload.translations == ["好"]
    assert payload.detected_source == "en"
    entry = payload.entry
    assert entry.headword == "good"
    assert entry.explanations == ["adj. 好的", "n. 好处"]
    assert entry.forms == [("比较级", "better")]
    assert entry.web_translation == ("good", ["好", "良好"])
    assert entry.web_phrases == [("Good Friday", ["耶稣受难节"])]


def test_youdao_sentence_has_no_entry():
    def handler(request):
        return httpx.Response(200, json={"errorCode": "0", "translation": ["你好，世界"], "l": "en2zh-CHS"})

    payload = _run(
        handler, lambda client: YoudaoProvider(client, "key", "secret").translate("hello world", "en", "zh-CHS")
    )
    assert payload.entry is None


def test_youdao_error_code_raises():
    def handler(request):
        return httpx.Response(200, json={"errorCode": "207"})

    with pytest.raises(ProviderError) as excinfo:
        _run(handler, lambda client: YoudaoProvider(client, "key", "secret").translate("good", "en", "ja"))
    assert excinfo.value.code == "207"


def test_youdao_sign_truncates_long_input():
    provider = YoudaoProvider(None, "key", "secret")
    text = "a" * 10 + "b" * 30 + "c" * 10
    assert provider._sign_input(text) == "a" * 10 + "50" + "c" * 10
    assert provider._sign_input("short") == "short"


def test_baidu_translation():
    def handler(request):
        form = _form(request)
        assert form["from"] == "jp" and form["to"] == "en"
        return httpx.Response(200, json={"from": "jp", "to": "en", "trans_result": [{"src": "こんにちは", "dst": "Hello"}]})

    payload = _run(handler, lambda client: BaiduProvider(client, "id", "secret").translate("こんにちは", "jp", "en"))
    assert payload.translations == ["Hello"]
    assert payload.detected_source == "jp"


def test_baidu_error_code_raises():
    def handler(request):
        return httpx.Response(200, json={"error_code": "54003", "error_msg": "Invalid Access Limit"})

    with pytest.raises(ProviderError) as excinfo:
        _run(handler, lambda client: BaiduProvider(client, "id", "secret").translate("hi", "en", "zh"))
    assert excinfo.value.code == "54003"
    assert excinfo.value.message == "Invalid Access Limit"


def test_baidu_success_code_is_not_an_error():
    def handler(request):
        return httpx.Response(200, json={"error_code": "0", "error_msg": "success", "data": {"src": "fra"}})

    assert _run(handler, lambda client: BaiduProvider(client, "id", "secret").detect("bonjour")) == "fra"


def test_caiyun_translation():
    def handler(request):
        body = json.loads(request.content)
        assert body["trans_type"] == "en2ja"
        assert request.headers["x-authorization"] == "token abc"
        return httpx.Response(200, json={"target": ["こんにちは"]})

    payload = _run(handler, lambda client: CaiyunProvider(client, "abc").translate("hello", "en", "ja"))
    assert payload.translations == ["こんにちは"]


def test_deepl_endpoint_depends_on_key():
    assert DeepLProvider(None, "abc:fx").endpoint == DEEPL_FREE_ENDPOINT
    assert DeepLProvider(None, "abc").endpoint == DEEPL_PRO_ENDPOINT


def test_deepl_translation_strips_source_region():
    def handler(request):
        body = json.loads(request.content)
        assert body["source_lang"] == "EN"
        assert body["target_lang"] == "DE"
        assert request.headers["Authorization"] == "DeepL-Auth-Key abc:fx"
        return httpx.Response(200, json={"translations": [{"text": "Hallo ", "detected_source_language": "EN"}]})

    payload = _run(handler, lambda client: DeepLProvider(client, "abc:fx").translate("Hello", "EN-US", "DE"))
    assert payload.translations == ["Hallo"]
    assert payload.detected_source == "EN"


def test_deepl_quota_status_propagates():
    def handler(request):
        return httpx.Response(456, json={"message": "Quota exceeded"})

    with pytest.raises(httpx.HTTPStatusError):
        _run(handler, lambda client: DeepLProvider(client, "abc:fx").translate("Hello", "EN", "DE"))


def test_build_providers_skips_unconfigured_and_unknown():
    config = Settings(
        ENABLED_PROVIDERS="youdao,deepl,bogus,google",
        DEEPL_API_KEY="abc:fx",
        YOUDAO_APP_KEY="",
        YOUDAO_APP_SECRET="",
        BAIDU_MAX_QUERY_LENGTH=1000,
    )
    providers = build_providers(config, client=None)
    assert [provider.name for provider in providers] == ["deepl", "google"]
    assert config.max_query_length("baidu") == 1000
