"""
Backend clients for the translation and dictionary services.

Each client speaks one backend's request shape and returns a ProviderPayload.
Documented error answers are raised as ProviderError with the backend's own
code; httpx exceptions propagate untouched so the dispatcher can classify them.
"""

import hashlib
import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

import httpx

from ..config import Settings
from .errors import ErrorKind, ProviderError, classify, describe
from .languages import Backend
from .models import DictionaryEntry, ProviderPayload, RequestSource, SourceKind

logger = logging.getLogger(__name__)

YOUDAO_ENDPOINT = "https://openapi.youdao.com/api"
BAIDU_TRANSLATE_ENDPOINT = "https://fanyi-api.baidu.com/api/trans/vip/translate"
BAIDU_DETECT_ENDPOINT = "https://fanyi-api.baidu.com/api/trans/vip/language"
CAIYUN_ENDPOINT = "https://api.interpreter.caiyunai.com/v1/translator"
DEEPL_FREE_ENDPOINT = "https://api-free.deepl.com/v2/translate"
DEEPL_PRO_ENDPOINT = "https://api.deepl.com/v2/translate"
GOOGLE_ENDPOINT = "https://translate.googleapis.com/translate_a/single"


def create_http_client(config: Settings) -> httpx.AsyncClient:
    """Shared transport for every backend call."""
    return httpx.AsyncClient(timeout=10.0, proxy=config.http_proxy_url or None)


def _salt() -> str:
    return uuid.uuid4().hex


def _json_object(response: httpx.Response) -> Dict:
    data = response.json()
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


class BaseProvider(ABC):
    """One remote translation or dictionary backend."""

    name: str = ""
    backend: Backend
    kind: SourceKind = SourceKind.TRANSLATION

    def __init__(self, client: httpx.AsyncClient, max_length: int = 5000):
        self._client = client
        self.max_length = max_length

    @property
    def source(self) -> RequestSource:
        return RequestSource(kind=self.kind, name=self.name)

    @property
    def is_configured(self) -> bool:
        return True

    @abstractmethod
    async def translate(self, text: str, source_code: str, target_code: str) -> ProviderPayload:
        raise NotImplementedError


class YoudaoProvider(BaseProvider):
    """Youdao open API: translation plus dictionary data for single words."""

    name = "youdao"
    backend = Backend.YOUDAO
    kind = SourceKind.DICTIONARY

    def __init__(self, client: httpx.AsyncClient, app_key: str, app_secret: str, max_length: int = 5000):
        super().__init__(client, max_length)
        self.app_key = app_key
        self.app_secret = app_secret

    @property
    def is_configured(self) -> bool:
        return bool(self.app_key and self.app_secret)

    @staticmethod
    def _sign_input(text: str) -> str:
        if len(text) <= 20:
            return text
        return f"{text[:10]}{len(text)}{text[-10:]}"

    def sign(self, text: str, salt: str, curtime: str) -> str:
        raw = f"{self.app_key}{self._sign_input(text)}{salt}{curtime}{self.app_secret}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    async def translate(self, text: str, source_code: str, target_code: str) -> ProviderPayload:
        salt = _salt()
        curtime = str(int(time.time()))
        params = {
            "q": text,
            "from": source_code,
            "to": target_code,
            "appKey": self.app_key,
            "salt": salt,
            "sign": self.sign(text, salt, curtime),
            "signType": "v3",
            "curtime": curtime,
        }
        response = await self._client.post(YOUDAO_ENDPOINT, data=params)
        response.raise_for_status()
        data = _json_object(response)

        code = str(data.get("errorCode", ""))
        if code != "0":
            raise ProviderError(code, describe(self.backend, code, ErrorKind.UNKNOWN))

        detected = None
        direction = data.get("l")
        if isinstance(direction, str) and "2" in direction:
            detected = direction.split("2", 1)[0]

        return ProviderPayload(
            translations=[item for item in data.get("translation") or [] if item],
            detected_source=detected,
            entry=self._parse_entry(text, data),
        )

    @staticmethod
    def _parse_entry(text: str, data: Dict) -> Optional[DictionaryEntry]:
        basic = data.get("basic") or {}
        web = data.get("web") or []
        if not basic and not web:
            return None

        entry = DictionaryEntry(
            headword=data.get("query") or text,
            phonetic=basic.get("phonetic"),
            us_phonetic=basic.get("us-phonetic"),
            uk_phonetic=basic.get("uk-phonetic"),
            exam_types=list(basic.get("exam_type") or []),
            explanations=list(basic.get("explains") or []),
        )
        for item in basic.get("wfs") or []:
            form = item.get("wf") or {}
            if form.get("name") and form.get("value"):
                entry.forms.append((form["name"], form["value"]))

        for index, item in enumerate(web):
            key = item.get("key", "")
            values = list(item.get("value") or [])
            if not key or not values:
                continue
            # Youdao lists the query itself first, followed by phrases containing it
            if index == 0 and key.lower() == entry.headword.lower():
                entry.web_translation = (key, values)
            else:
                entry.web_phrases.append((key, values))
        return entry


class BaiduProvider(BaseProvider):
    """Baidu general translation API, which also offers language detection."""

    name = "baidu"
    backend = Backend.BAIDU

    def __init__(self, client: httpx.AsyncClient, app_id: str, app_secret: str, max_length: int = 2000):
        super().__init__(client, max_length)
        self.app_id = app_id
        self.app_secret = app_secret

    @property
    def is_configured(self) -> bool:
        return bool(self.app_id and self.app_secret)

    def sign(self, text: str, salt: str) -> str:
        raw = f"{self.app_id}{text}{salt}{self.app_secret}"
        return hashlib.md5(raw.encode("utf-8")).hexdigest()

    def _params(self, text: str) -> Dict[str, str]:
        salt = _salt()
        return {"q": text, "appid": self.app_id, "salt": salt, "sign": self.sign(text, salt)}

    def _check(self, data: Dict) -> None:
        code = data.get("error_code")
        if code is None:
            return
        code = str(code)
        kind = classify(self.backend, code)
        if kind != ErrorKind.SUCCESS:
            raise ProviderError(code, data.get("error_msg") or describe(self.backend, code, kind))

    async def translate(self, text: str, source_code: str, target_code: str) -> ProviderPayload:
        params = self._params(text)
        params.update({"from": source_code, "to": target_code})
        response = await self._client.post(BAIDU_TRANSLATE_ENDPOINT, data=params)
        response.raise_for_status()
        data = _json_object(response)
        self._check(data)

        results = data["trans_result"]
        return ProviderPayload(
            translations=[item["dst"] for item in results if item.get("dst")],
            detected_source=data.get("from"),
        )

    async def detect(self, text: str) -> str:
        response = await self._client.post(BAIDU_DETECT_ENDPOINT, data=self._params(text))
        response.raise_for_status()
        data = _json_object(response)
        self._check(data)
        return data["data"]["src"]


class CaiyunProvider(BaseProvider):
    name = "caiyun"
    backend = Backend.CAIYUN

    def __init__(self, client: httpx.AsyncClient, token: str, max_length: int = 5000):
        super().__init__(client, max_length)
        self.token = token

    @property
    def is_configured(self) -> bool:
        return bool(self.token)

    async def translate(self, text: str, source_code: str, target_code: str) -> ProviderPayload:
        payload = {
            "source": [text],
            "trans_type": f"{source_code}2{target_code}",
            "detect": True,
            "request_id": _salt(),
        }
        headers = {
            "content-type": "application/json",
            "x-authorization": f"token {self.token}",
        }
        response = await self._client.post(CAIYUN_ENDPOINT, headers=headers, json=payload)
        response.raise_for_status()
        data = _json_object(response)
        return ProviderPayload(translations=[item for item in data["target"] if item])


class DeepLProvider(BaseProvider):
    name = "deepl"
    backend = Backend.DEEPL

    def __init__(self, client: httpx.AsyncClient, api_key: str, max_length: int = 5000):
        super().__init__(client, max_length)
        self.api_key = api_key
        self.endpoint = DEEPL_FREE_ENDPOINT  # Free tier keys end with ":fx"
        if api_key and not api_key.endswith(":fx"):
            self.endpoint = DEEPL_PRO_ENDPOINT

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def translate(self, text: str, source_code: str, target_code: str) -> ProviderPayload:
        # DeepL source codes don't take the -US/-BR suffix
        source = source_code.split("-", 1)[0]
        payload = {
            "text": [text],  # DeepL v2 expects array
            "target_lang": target_code,
            "source_lang": source,
        }
        headers = {
            "Authorization": f"DeepL-Auth-Key {self.api_key}",
            "Content-Type": "application/json",
        }
        start_time = time.perf_counter()
        response = await self._client.post(self.endpoint, headers=headers, json=payload)
        response.raise_for_status()
        data = _json_object(response)

        translations = data.get("translations", [])
        if not translations:
            raise ValueError("DeepL returned no translations")
        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(f"DeepL translation took {duration_ms:.1f}ms (source={source})")
        return ProviderPayload(
            translations=[item.get("text", "").strip() for item in translations],
            detected_source=translations[0].get("detected_source_language"),
        )


class GoogleProvider(BaseProvider):
    """Google web translate endpoint (no credentials)."""

    name = "google"
    backend = Backend.GOOGLE

    async def _query(self, text: str, source_code: str, target_code: str) -> Dict:
        params = {
            "client": "gtx",
            "sl": source_code,
            "tl": target_code,
            "dt": "t",
            "dj": "1",
            "ie": "UTF-8",
            "oe": "UTF-8",
            "q": text,
        }
        response = await self._client.get(GOOGLE_ENDPOINT, params=params)
        response.raise_for_status()
        return _json_object(response)

    async def translate(self, text: str, source_code: str, target_code: str) -> ProviderPayload:
        data = await self._query(text, source_code, target_code)
        translated = "".join(sentence.get("trans", "") for sentence in data["sentences"])
        return ProviderPayload(translations=[translated.strip()], detected_source=data.get("src"))

    async def detect(self, text: str) -> Tuple[str, Optional[float], List[Tuple[str, float]]]:
        data = await self._query(text, "auto", "en")
        ld_result = data.get("ld_result") or {}
        alternatives = list(zip(ld_result.get("srclangs") or [], ld_result.get("srclangs_confidences") or []))
        return data["src"], data.get("confidence"), alternatives


def build_providers(config: Settings, client: httpx.AsyncClient) -> List[BaseProvider]:
    """Instantiate the enabled providers in display order, skipping unconfigured ones."""
    factories = {
        "youdao": lambda: YoudaoProvider(
            client, config.youdao_app_key, config.youdao_app_secret, config.max_query_length("youdao")
        ),
        "baidu": lambda: BaiduProvider(
            client, config.baidu_app_id, config.baidu_app_secret, config.max_query_length("baidu")
        ),
        "caiyun": lambda: CaiyunProvider(client, config.caiyun_token, config.max_query_length("caiyun")),
        "deepl": lambda: DeepLProvider(client, config.deepl_api_key, config.max_query_length("deepl")),
        "google": lambda: GoogleProvider(client, config.max_query_length("google")),
    }

    providers: List[BaseProvider] = []
    for name in config.provider_order:
        factory = factories.get(name)
        if factory is None:
            logger.warning("Unknown provider in ENABLED_PROVIDERS: %s", name)
            continue
        provider = factory()
        if not provider.is_configured:
            logger.info("Provider %s has no credentials, not dispatched", name)
            continue
        providers.append(provider)
    logger.info("Providers registered: %s", [provider.name for provider in providers])
    return providers
