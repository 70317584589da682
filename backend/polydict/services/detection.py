"""
Language detectors and the pool that runs them concurrently.

Detectors never raise: every failure becomes a DetectionSignal with `error`
set, so one broken or rate-limited detector cannot disturb the others.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, List, Optional, Sequence, Set, Tuple

import httpx
from langdetect import DetectorFactory, LangDetectException, detect_langs

from ..config import Settings
from .errors import ProviderError, classify
from .languages import Backend, LanguageRegistry, registry as default_registry
from .models import DetectionSignal
from .providers import BaiduProvider, BaseProvider, GoogleProvider

logger = logging.getLogger(__name__)

DetectorFactory.seed = 0

# Pure ASCII text is taken as English
ASCII_ENGLISH_CONFIDENCE = 0.9


class BaseDetector(ABC):
    name: str = ""
    backend: Optional[Backend] = None  # Vocabulary of the raw codes this detector reports

    def __init__(self, timeout_s: float = 1.2, registry: LanguageRegistry = default_registry):
        self.timeout_s = timeout_s
        self.registry = registry

    def _signal(
        self,
        raw_code: Optional[str],
        confidence: Optional[float] = None,
        alternatives: Sequence[Tuple[str, float]] = (),
    ) -> DetectionSignal:
        if self.backend is None:
            language = raw_code if raw_code in self.registry else None
        else:
            language = self.registry.canonical_for(self.backend, raw_code)
        if raw_code and language is None:
            logger.debug("%s detector reported unmapped code %r", self.name, raw_code)
        return DetectionSignal(
            detector=self.name,
            raw_code=raw_code,
            language=language,
            confidence=confidence,
            alternatives=tuple(alternatives),
        )

    def _failure(self, error: str) -> DetectionSignal:
        return DetectionSignal(detector=self.name, error=error)

    async def run(self, text: str) -> DetectionSignal:
        """Detect with this detector's own timeout; always returns a signal."""
        try:
            return await asyncio.wait_for(self.detect(text), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            logger.info("%s detector timed out after %.2fs", self.name, self.timeout_s)
            return self._failure("timeout")
        except ProviderError as exc:
            kind = classify(self.backend, exc.code) if self.backend else None
            logger.warning("%s detector rejected (code=%s, kind=%s): %s", self.name, exc.code, kind, exc)
            return self._failure(f"{exc.code}: {exc}")
        except httpx.HTTPError as exc:
            logger.warning("%s detector request failed: %s", self.name, exc)
            return self._failure(str(exc) or exc.__class__.__name__)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("%s detector returned an unexpected response: %s", self.name, exc)
            return self._failure(str(exc) or exc.__class__.__name__)
        except Exception as exc:
            logger.exception(f"{self.name} detector failed unexpectedly")
            return self._failure(f"{exc.__class__.__name__}: {exc}")

    @abstractmethod
    async def detect(self, text: str) -> DetectionSignal:
        raise NotImplementedError


class SimpleDetector(BaseDetector):
    """Character-script heuristic. Cheap, local and always available."""

    name = "simple"

    # (language, pattern, ceiling) - ceiling caps confidence for scripts shared by several languages
    SCRIPT_PATTERNS = (
        ("ja", re.compile(r'[\u3040-\u309F\u30A0-\u30FF]'), 1.0),  # Kana
        ("ko", re.compile(r'[\uAC00-\uD7AF\u1100-\u11FF]'), 1.0),  # Hangul
        ("zh-CHS", re.compile(r'[\u4E00-\u9FFF]'), 1.0),  # Han
        ("el", re.compile(r'[\u0370-\u03FF\u1F00-\u1FFF]'), 1.0),  # Greek
        ("th", re.compile(r'[\u0E00-\u0E7F]'), 1.0),  # Thai
        ("ru", re.compile(r'[\u0400-\u04FF]'), 0.7),  # Cyrillic (Russian, etc)
        ("ar", re.compile(r'[\u0600-\u06FF]'), 0.7),  # Arabic script
    )

    async def detect(self, text: str) -> DetectionSignal:
        return self.classify(text)

    def classify(self, text: str) -> DetectionSignal:
        letters = [char for char in text if char.isalpha()]
        if not letters:
            return self._failure("no letters")

        counts: Dict[str, int] = {}
        for language, pattern, _ in self.SCRIPT_PATTERNS:
            matches = len(pattern.findall(text))
            if matches:
                counts[language] = matches

        if counts:
            if "ja" in counts:
                # Japanese mixes kanji with kana
                counts["ja"] += counts.pop("zh-CHS", 0)
            ceilings = {language: ceiling for language, _, ceiling in self.SCRIPT_PATTERNS}
            scores = {
                language: min(ceilings[language], count / len(letters)) for language, count in counts.items()
            }
            ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
            best, confidence = ranked[0]
            return self._signal(best, round(confidence, 3), ranked)

        if all(char.isascii() for char in letters):
            return self._signal("en", ASCII_ENGLISH_CONFIDENCE, [("en", ASCII_ENGLISH_CONFIDENCE)])

        return self._failure("no unambiguous script")


class LangdetectDetector(BaseDetector):
    """Statistical n-gram detector from the langdetect package."""

    name = "langdetect"
    backend = Backend.GOOGLE  # ISO 639-1 codes, "zh-cn"/"zh-tw" for Chinese

    async def detect(self, text: str) -> DetectionSignal:
        try:
            candidates = await asyncio.to_thread(detect_langs, text)
        except LangDetectException as exc:
            raise ValueError("Unable to detect language") from exc
        best = candidates[0]
        alternatives = [(candidate.lang, round(candidate.prob, 3)) for candidate in candidates]
        return self._signal(best.lang, round(best.prob, 3), alternatives)


class BaiduDetector(BaseDetector):
    name = "baidu"
    backend = Backend.BAIDU

    def __init__(self, provider: BaiduProvider, **kwargs):
        super().__init__(**kwargs)
        self.provider = provider

    async def detect(self, text: str) -> DetectionSignal:
        code = await self.provider.detect(text)
        return self._signal(code)


class GoogleDetector(BaseDetector):
    name = "google"
    backend = Backend.GOOGLE

    def __init__(self, provider: GoogleProvider, **kwargs):
        super().__init__(**kwargs)
        self.provider = provider

    async def detect(self, text: str) -> DetectionSignal:
        code, confidence, alternatives = await self.provider.detect(text)
        return self._signal(code, confidence, alternatives)


class DetectorPool:
    """Runs every detector concurrently and yields signals as they complete."""

    def __init__(self, detectors: Sequence[BaseDetector]):
        self.detectors = list(detectors)
        self._running: Set[asyncio.Task] = set()

    @property
    def names(self) -> List[str]:
        return [detector.name for detector in self.detectors]

    async def detect(self, text: str, deadline: float) -> AsyncIterator[DetectionSignal]:
        """Yield at most one signal per detector, in completion order, until `deadline` seconds pass.

        Detectors still running at the deadline are left to finish; their
        results are dropped.
        """
        tasks = []
        for detector in self.detectors:
            task = asyncio.create_task(detector.run(text), name=f"detect-{detector.name}")
            self._running.add(task)
            task.add_done_callback(self._running.discard)
            tasks.append(task)

        try:
            for next_done in asyncio.as_completed(tasks, timeout=deadline):
                yield await next_done
        except asyncio.TimeoutError:
            late = [detector.name for detector, task in zip(self.detectors, tasks) if not task.done()]
            logger.info("Detection deadline %.2fs reached, still running: %s", deadline, late)


def build_detectors(config: Settings, providers: Sequence[BaseProvider]) -> List[BaseDetector]:
    timeout_s = config.detector_timeout_ms / 1000.0
    by_name = {provider.name: provider for provider in providers}
    baidu = by_name.get("baidu")
    google = by_name.get("google")

    detectors: List[BaseDetector] = []
    for name in config.detector_names:
        if name == "simple":
            detectors.append(SimpleDetector(timeout_s=timeout_s))
        elif name == "langdetect":
            detectors.append(LangdetectDetector(timeout_s=timeout_s))
        elif name == "baidu" and isinstance(baidu, BaiduProvider):
            detectors.append(BaiduDetector(baidu, timeout_s=timeout_s))
        elif name == "google" and isinstance(google, GoogleProvider):
            detectors.append(GoogleDetector(google, timeout_s=timeout_s))
        else:
            logger.info("Detector %s unavailable, skipped", name)
    return detectors
