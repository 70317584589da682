"""
Language registry.

Maps the canonical language id used throughout polydict to each backend's
proprietary language code. Canonical ids follow Youdao's vocabulary
("zh-CHS", "en", "ja", ...). The table is immutable and shared by every
query without locking.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class Backend(str, Enum):
    """Remote services that have their own language vocabulary."""
    YOUDAO = "youdao"
    BAIDU = "baidu"
    CAIYUN = "caiyun"
    DEEPL = "deepl"
    GOOGLE = "google"


@dataclass(frozen=True)
class LanguageRecord:
    id: str
    title: str
    chinese_title: Optional[str] = None
    youdao: Optional[str] = None
    baidu: Optional[str] = None
    caiyun: Optional[str] = None
    deepl: Optional[str] = None
    google: Optional[str] = None
    youdao_web: Optional[str] = None
    eudic_web: Optional[str] = None
    voices: Tuple[str, ...] = field(default_factory=tuple)

    def code(self, backend: Backend) -> Optional[str]:
        return getattr(self, backend.value)

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "chinese_title": self.chinese_title,
            "codes": {backend.value: self.code(backend) for backend in Backend},
            "youdao_web": self.youdao_web,
            "eudic_web": self.eudic_web,
            "voices": list(self.voices),
        }


class LanguageRegistry:
    """Read-only lookup over a fixed set of language records."""

    def __init__(self, records: Iterable[LanguageRecord]):
        self._records: Dict[str, LanguageRecord] = {}
        self._by_code: Dict[Backend, Dict[str, str]] = {backend: {} for backend in Backend}

        for record in records:
            if record.id in self._records:
                raise ValueError(f"Duplicate canonical language id: {record.id}")
            self._records[record.id] = record
            for backend in Backend:
                code = record.code(backend)
                if code is None:
                    continue
                key = code.lower()
                existing = self._by_code[backend].get(key)
                if existing is not None:
                    raise ValueError(
                        f"{backend.value} code {code!r} is shared by {existing} and {record.id}"
                    )
                self._by_code[backend][key] = record.id

    def __iter__(self):
        return iter(self._records.values())

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, canonical_id: str) -> bool:
        return canonical_id in self._records

    def lookup(self, canonical_id: str) -> Optional[LanguageRecord]:
        return self._records.get(canonical_id)

    def code_for(self, canonical_id: str, backend: Backend) -> Optional[str]:
        """Backend code for a language, or None when the backend does not support it."""
        record = self._records.get(canonical_id)
        if record is None:
            return None
        return record.code(backend)

    def canonical_for(self, backend: Backend, code: Optional[str]) -> Optional[str]:
        """Canonical id for a backend code, or None when the code is unknown."""
        if not code:
            return None
        return self._by_code[backend].get(code.strip().lower())

    def supported_by(self, backend: Backend) -> List[str]:
        return [record.id for record in self._records.values() if record.code(backend) is not None]


LANGUAGES: Tuple[LanguageRecord, ...] = (
    LanguageRecord(
        id="zh-CHS", title="Chinese-Simplified", chinese_title="中文",
        youdao="zh-CHS", baidu="zh", caiyun="zh", deepl="ZH", google="zh-CN",
        voices=("Ting-Ting",),
    ),
    LanguageRecord(
        id="zh-CHT", title="Chinese-Traditional", chinese_title="中文",
        youdao="zh-CHT", baidu="cht", google="zh-TW",
        voices=("Ting-Ting",),
    ),
    LanguageRecord(
        id="en", title="English", chinese_title="英语",
        youdao="en", baidu="en", caiyun="en", deepl="EN-US", google="en",
        youdao_web="eng", eudic_web="en", voices=("Samantha", "Alex"),
    ),
    LanguageRecord(
        id="ja", title="Japanese", chinese_title="日语",
        youdao="ja", baidu="jp", caiyun="ja", deepl="JA", google="ja",
        youdao_web="jap", voices=("Kyoko",),
    ),
    LanguageRecord(
        id="ko", title="Korean", chinese_title="韩语",
        youdao="ko", baidu="kor", deepl="KO", google="ko",
        youdao_web="ko", voices=("Yuna",),
    ),
    LanguageRecord(
        id="fr", title="French", chinese_title="法语",
        youdao="fr", baidu="fra", deepl="FR", google="fr",
        youdao_web="fr", eudic_web="fr", voices=("Amelie", "Thomas"),
    ),
    LanguageRecord(
        id="es", title="Spanish", chinese_title="西班牙语",
        youdao="es", baidu="spa", deepl="ES", google="es",
        eudic_web="es", voices=("Jorge", "Juan", "Diego", "Monica", "Paulina"),
    ),
    LanguageRecord(
        id="it", title="Italian", chinese_title="意大利语",
        youdao="it", baidu="it", deepl="IT", google="it",
        voices=("Alice", "Luca"),
    ),
    LanguageRecord(
        id="de", title="German", chinese_title="德语",
        youdao="de", baidu="de", deepl="DE", google="de",
        eudic_web="de", voices=("Anna",),
    ),
    LanguageRecord(
        id="pt", title="Portuguese", chinese_title="葡萄牙语",
        youdao="pt", baidu="pt", deepl="PT-BR", google="pt",
        voices=("Joana", "Luciana"),
    ),
    LanguageRecord(
        id="ru", title="Russian", chinese_title="俄语",
        youdao="ru", baidu="ru", deepl="RU", google="ru",
        voices=("Milena", "Yuri"),
    ),
    LanguageRecord(
        id="ar", title="Arabic", chinese_title="阿拉伯语",
        youdao="ar", baidu="ara", deepl="AR", google="ar",
        voices=("Maged",),
    ),
    LanguageRecord(id="th", title="Thai", youdao="th", baidu="th", google="th", voices=("Kanya",)),
    LanguageRecord(id="sv", title="Swedish", youdao="sv", baidu="swe", deepl="SV", google="sv", voices=("Alva",)),
    LanguageRecord(id="nl", title="Dutch", youdao="nl", baidu="nl", deepl="NL", google="nl", voices=("Ellen", "Xander")),
    LanguageRecord(id="ro", title="Romanian", youdao="ro", baidu="rom", deepl="RO", google="ro", voices=("Ioana",)),
    LanguageRecord(id="sk", title="Slovak", youdao="sk", baidu="slo", deepl="SK", google="sk", voices=("Laura",)),
    LanguageRecord(id="hu", title="Hungarian", youdao="hu", baidu="hu", deepl="HU", google="hu", voices=("Mariska",)),
    LanguageRecord(id="el", title="Greek", youdao="el", baidu="el", deepl="EL", google="el", voices=("Melina",)),
    LanguageRecord(id="da", title="Danish", youdao="da", baidu="dan", deepl="DA", google="da", voices=("Sara",)),
    LanguageRecord(id="fi", title="Finnish", youdao="fi", baidu="fin", deepl="FI", google="fi", voices=("Satu",)),
    LanguageRecord(id="pl", title="Polish", youdao="pl", baidu="pl", deepl="PL", google="pl", voices=("Zosia",)),
    LanguageRecord(id="cs", title="Czech", youdao="cs", baidu="cs", deepl="CS", google="cs", voices=("Zuzana",)),
)

registry = LanguageRegistry(LANGUAGES)
