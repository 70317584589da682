"""Per-provider outcome counters behind the metrics endpoints."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict

from .models import OutcomeState, ProviderOutcome

logger = logging.getLogger(__name__)


@dataclass
class ProviderStats:
    """Outcome counters for one provider."""
    total_requests: int = 0
    total_latency_ms: float = 0.0
    max_latency_ms: float = 0.0
    outcomes: Dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def record(self, outcome: ProviderOutcome):
        self.total_requests += 1
        self.total_latency_ms += outcome.latency_ms
        self.max_latency_ms = max(self.max_latency_ms, outcome.latency_ms)
        kind = outcome.error_kind.value if outcome.error_kind else outcome.state.value
        self.outcomes[kind] += 1

    def get_summary(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "avg_latency_ms": round(self.total_latency_ms / max(1, self.total_requests), 1),
            "max_latency_ms": round(self.max_latency_ms, 1),
            "outcomes": dict(self.outcomes),
        }


class DispatchMetrics:
    """Per-provider statistics across all queries of the process."""

    def __init__(self):
        self._providers: Dict[str, ProviderStats] = defaultdict(ProviderStats)

    def record(self, outcome: ProviderOutcome):
        if outcome.state == OutcomeState.PENDING:
            return
        self._providers[outcome.provider].record(outcome)

    def get_summary(self) -> Dict[str, Any]:
        return {name: stats.get_summary() for name, stats in sorted(self._providers.items())}

    def reset(self):
        self._providers.clear()


dispatch_metrics = DispatchMetrics()
