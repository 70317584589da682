"""
Detection arbitration.

Turns the unordered, differently-confident signals of the detector pool into
exactly one ConfirmedLanguage per query:

1. an allow-listed (local) detector above the confidence threshold confirms
   immediately;
2. otherwise two distinct detectors agreeing on a language confirm it,
   whatever their confidence;
3. at the deadline, the highest-confidence signal wins, or the configured
   default source language when nothing usable arrived.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Dict, FrozenSet, List, Optional

from ..config import Settings
from .models import ConfirmationPath, ConfirmedLanguage, DetectionSignal

logger = logging.getLogger(__name__)


class ArbitrationState(Enum):
    COLLECTING = "collecting"
    CONFIRMED = "confirmed"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ArbitrationPolicy:
    authoritative: FrozenSet[str] = frozenset({"simple"})
    confidence_threshold: float = 0.8
    quorum: int = 2
    deadline_s: float = 1.5
    default_language: str = "en"

    @classmethod
    def from_settings(cls, config: Settings) -> "ArbitrationPolicy":
        return cls(
            authoritative=frozenset(config.authoritative_detector_names),
            confidence_threshold=config.detection_confidence_threshold,
            deadline_s=config.detection_deadline_ms / 1000.0,
            default_language=config.default_source_lang,
        )


class DetectionArbitrator:
    """Single-use arbitrator for one query."""

    def __init__(self, policy: ArbitrationPolicy):
        self.policy = policy
        self.state = ArbitrationState.COLLECTING
        self.result: Optional[ConfirmedLanguage] = None
        self.signals: List[DetectionSignal] = []
        self._votes: Dict[str, List[DetectionSignal]] = {}

    def offer(self, signal: DetectionSignal) -> Optional[ConfirmedLanguage]:
        """Consider one signal; returns the confirmation if this signal settles it."""
        if self.state != ArbitrationState.COLLECTING:
            return self.result

        self.signals.append(signal)
        if not signal.usable:
            logger.debug("Ignoring %s signal (error=%s, raw=%s)", signal.detector, signal.error, signal.raw_code)
            return None

        if (
            signal.detector in self.policy.authoritative
            and signal.confidence is not None
            and signal.confidence > self.policy.confidence_threshold
        ):
            return self._confirm(
                ConfirmedLanguage(
                    language=signal.language,
                    detector=signal.detector,
                    confidence=signal.confidence,
                    path=ConfirmationPath.AUTHORITATIVE,
                    agreeing=(signal.detector,),
                ),
                ArbitrationState.CONFIRMED,
            )

        votes = self._votes.setdefault(signal.language, [])
        if all(vote.detector != signal.detector for vote in votes):
            votes.append(signal)
        if len(votes) >= self.policy.quorum:
            confidences = [vote.confidence for vote in votes if vote.confidence is not None]
            return self._confirm(
                ConfirmedLanguage(
                    language=signal.language,
                    detector=signal.detector,
                    confidence=max(confidences) if confidences else None,
                    path=ConfirmationPath.QUORUM,
                    agreeing=tuple(vote.detector for vote in votes),
                ),
                ArbitrationState.CONFIRMED,
            )
        return None

    def conclude(self) -> ConfirmedLanguage:
        """Settle without agreement: best signal so far, else the default language."""
        if self.result is not None:
            return self.result

        usable = [signal for signal in self.signals if signal.usable]
        if usable:
            # max() keeps the earliest signal on ties; missing confidence ranks lowest
            best = max(usable, key=lambda signal: -1.0 if signal.confidence is None else signal.confidence)
            return self._confirm(
                ConfirmedLanguage(
                    language=best.language,
                    detector=best.detector,
                    confidence=best.confidence,
                    path=ConfirmationPath.FALLBACK,
                    agreeing=(best.detector,),
                ),
                ArbitrationState.FALLBACK,
            )

        return self._confirm(
            ConfirmedLanguage(
                language=self.policy.default_language,
                detector="default",
                confidence=None,
                path=ConfirmationPath.DEFAULT,
            ),
            ArbitrationState.FALLBACK,
        )

    async def arbitrate(self, signals: AsyncIterator[DetectionSignal]) -> ConfirmedLanguage:
        """Consume signals until confirmation, exhaustion or the policy deadline."""

        async def collect() -> None:
            async for signal in signals:
                if self.offer(signal) is not None:
                    return

        try:
            await asyncio.wait_for(collect(), timeout=self.policy.deadline_s)
        except asyncio.TimeoutError:
            logger.info("Arbitration deadline %.2fs elapsed with %d signal(s)", self.policy.deadline_s, len(self.signals))
        finally:
            aclose = getattr(signals, "aclose", None)
            if aclose is not None:
                await aclose()
        return self.conclude()

    def _confirm(self, confirmed: ConfirmedLanguage, state: ArbitrationState) -> ConfirmedLanguage:
        self.result = confirmed
        self.state = state
        logger.info(
            "Source language confirmed: %s via %s (%s, confidence=%s)",
            confirmed.language, confirmed.detector, confirmed.path.value, confirmed.confidence,
        )
        return confirmed


def user_confirmed(language: str) -> ConfirmedLanguage:
    """Confirmation for an explicitly requested source language."""
    return ConfirmedLanguage(language=language, detector="user", confidence=1.0, path=ConfirmationPath.USER)
