"""Value types passed between detection, dispatch and aggregation."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import ErrorKind

AUTO = "auto"


@dataclass(frozen=True)
class QueryContext:
    """One user input event. Superseded by the next context, never mutated."""
    text: str
    source_lang: str
    target_lang: str
    sequence: int

    @property
    def wants_detection(self) -> bool:
        return self.source_lang == AUTO


@dataclass(frozen=True)
class DetectionSignal:
    detector: str
    raw_code: Optional[str] = None
    language: Optional[str] = None  # Canonical id, None if unmappable
    confidence: Optional[float] = None
    alternatives: Tuple[Tuple[str, float], ...] = ()
    error: Optional[str] = None

    @property
    def usable(self) -> bool:
        return self.error is None and self.language is not None


class ConfirmationPath(str, Enum):
    USER = "user"
    AUTHORITATIVE = "authoritative"
    QUORUM = "quorum"
    FALLBACK = "fallback"
    DEFAULT = "default"


@dataclass(frozen=True)
class ConfirmedLanguage:
    language: str
    detector: str
    confidence: Optional[float]
    path: ConfirmationPath
    agreeing: Tuple[str, ...] = ()


class SourceKind(str, Enum):
    """Closed set of request sources."""
    TRANSLATION = "translation"
    DICTIONARY = "dictionary"
    DETECTOR = "detector"


@dataclass(frozen=True)
class RequestSource:
    kind: SourceKind
    name: str


SOURCE_TITLES = {
    "youdao": "Youdao",
    "baidu": "Baidu",
    "caiyun": "Caiyun",
    "deepl": "DeepL",
    "google": "Google",
    "simple": "Simple",
    "langdetect": "Langdetect",
}


def source_label(source: RequestSource) -> str:
    title = SOURCE_TITLES.get(source.name, source.name.capitalize())
    match source.kind:
        case SourceKind.TRANSLATION:
            return f"{title} Translate"
        case SourceKind.DICTIONARY:
            return f"{title} Dictionary"
        case SourceKind.DETECTOR:
            return f"{title} Detect"
    raise ValueError(f"Unhandled source kind: {source.kind}")


@dataclass
class DictionaryEntry:
    """Word-level result of a dictionary backend."""
    headword: str
    phonetic: Optional[str] = None
    us_phonetic: Optional[str] = None
    uk_phonetic: Optional[str] = None
    exam_types: List[str] = field(default_factory=list)
    explanations: List[str] = field(default_factory=list)
    forms: List[Tuple[str, str]] = field(default_factory=list)
    web_translation: Optional[Tuple[str, List[str]]] = None
    web_phrases: List[Tuple[str, List[str]]] = field(default_factory=list)


@dataclass
class ProviderPayload:
    translations: List[str]
    detected_source: Optional[str] = None
    entry: Optional[DictionaryEntry] = None


class OutcomeState(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class ProviderOutcome:
    """Result slot of one provider for one query sequence.

    Moves from PENDING to a terminal state exactly once.
    """
    source: RequestSource
    sequence: int
    state: OutcomeState = OutcomeState.PENDING
    payload: Optional[ProviderPayload] = None
    error_kind: Optional[ErrorKind] = None
    raw_code: Optional[str] = None
    message: Optional[str] = None
    latency_ms: float = 0.0
    _started: float = field(default_factory=time.perf_counter, repr=False, compare=False)

    @property
    def provider(self) -> str:
        return self.source.name

    @property
    def is_terminal(self) -> bool:
        return self.state != OutcomeState.PENDING

    def _complete(self, state: OutcomeState) -> "ProviderOutcome":
        if self.is_terminal:
            raise RuntimeError(f"Outcome for {self.provider} already completed ({self.state.value})")
        self.state = state
        self.latency_ms = (time.perf_counter() - self._started) * 1000
        return self

    def succeed(self, payload: ProviderPayload) -> "ProviderOutcome":
        self.payload = payload
        self.error_kind = ErrorKind.SUCCESS
        return self._complete(OutcomeState.SUCCESS)

    def fail(self, kind: ErrorKind, raw_code: Optional[str] = None, message: Optional[str] = None) -> "ProviderOutcome":
        self.error_kind = kind
        self.raw_code = raw_code
        self.message = message
        return self._complete(OutcomeState.FAILED)

    def time_out(self, message: Optional[str] = None) -> "ProviderOutcome":
        self.error_kind = ErrorKind.TIMEOUT
        self.message = message
        return self._complete(OutcomeState.TIMED_OUT)


class SectionKind(str, Enum):
    DICTIONARY_ENTRY = "dictionary-entry"
    TRANSLATION = "translation"
    EXPLANATION = "explanation"
    FORMS = "forms"
    WEB_TRANSLATION = "web-translation"
    WEB_PHRASE = "web-phrase"


@dataclass(frozen=True)
class DisplayRow:
    text: str
    subtitle: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "subtitle": self.subtitle}


@dataclass(frozen=True)
class DisplaySection:
    kind: SectionKind
    provider: str
    title: str
    rows: Tuple[DisplayRow, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "provider": self.provider,
            "title": self.title,
            "rows": [row.to_dict() for row in self.rows],
        }


@dataclass(frozen=True)
class Notice:
    provider: str
    error_kind: ErrorKind
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"provider": self.provider, "error_kind": self.error_kind.value, "message": self.message}


@dataclass(frozen=True)
class Snapshot:
    """What the presentation layer sees after every change."""
    sequence: int
    detection_pending: bool
    source_lang: Optional[str]
    detected_by: Optional[str]
    target_lang: Optional[str]
    sections: Tuple[DisplaySection, ...] = ()
    notices: Tuple[Notice, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "detection_pending": self.detection_pending,
            "source_lang": self.source_lang,
            "detected_by": self.detected_by,
            "target_lang": self.target_lang,
            "sections": [section.to_dict() for section in self.sections],
            "notices": [notice.to_dict() for notice in self.notices],
        }
