from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    backend_port: int = Field(8000, alias="BACKEND_PORT")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")

    # Backend credentials (a provider without credentials is not dispatched)
    youdao_app_key: str = Field("", alias="YOUDAO_APP_KEY")
    youdao_app_secret: str = Field("", alias="YOUDAO_APP_SECRET")
    baidu_app_id: str = Field("", alias="BAIDU_APP_ID")
    baidu_app_secret: str = Field("", alias="BAIDU_APP_SECRET")
    caiyun_token: str = Field("", alias="CAIYUN_TOKEN")
    deepl_api_key: str = Field("", alias="DEEPL_API_KEY")

    # Language preferences
    default_source_lang: str = Field("en", alias="DEFAULT_SOURCE_LANG")  # Used when detection yields nothing
    default_target_lang: str = Field("zh-CHS", alias="DEFAULT_TARGET_LANG")
    second_target_lang: str = Field("en", alias="SECOND_TARGET_LANG")  # Used when source == target

    # Provider dispatch
    enabled_providers: str = Field("youdao,deepl,google,baidu,caiyun", alias="ENABLED_PROVIDERS")  # Comma-separated, display order
    provider_timeout_ms: int = Field(5000, alias="PROVIDER_TIMEOUT_MS")
    youdao_max_query_length: int = Field(5000, alias="YOUDAO_MAX_QUERY_LENGTH")
    baidu_max_query_length: int = Field(2000, alias="BAIDU_MAX_QUERY_LENGTH")  # ~6000 bytes of UTF-8 Chinese
    caiyun_max_query_length: int = Field(5000, alias="CAIYUN_MAX_QUERY_LENGTH")
    deepl_max_query_length: int = Field(5000, alias="DEEPL_MAX_QUERY_LENGTH")
    google_max_query_length: int = Field(5000, alias="GOOGLE_MAX_QUERY_LENGTH")

    # Language detection
    enabled_detectors: str = Field("simple,langdetect,baidu,google", alias="ENABLED_DETECTORS")
    authoritative_detectors: str = Field("simple", alias="AUTHORITATIVE_DETECTORS")
    detection_confidence_threshold: float = Field(0.8, alias="DETECTION_CONFIDENCE_THRESHOLD")
    detection_deadline_ms: int = Field(1500, alias="DETECTION_DEADLINE_MS")
    detector_timeout_ms: int = Field(1200, alias="DETECTOR_TIMEOUT_MS")

    # Transport
    http_proxy_url: str = Field("", alias="HTTP_PROXY_URL")

    # Presentation
    show_failure_notices: bool = Field(True, alias="SHOW_FAILURE_NOTICES")

    @property
    def provider_order(self) -> List[str]:
        return _split(self.enabled_providers)

    @property
    def detector_names(self) -> List[str]:
        return _split(self.enabled_detectors)

    @property
    def authoritative_detector_names(self) -> List[str]:
        return _split(self.authoritative_detectors)

    def max_query_length(self, provider: str) -> int:
        return getattr(self, f"{provider}_max_query_length", 5000)


settings = Settings()
