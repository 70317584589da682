"""
Query orchestration.

A QueryOrchestrator owns one session's state (a WebSocket connection or a
single HTTP request). Every user input creates a new QueryContext with a
higher sequence number; work started for older sequences is allowed to finish
but its results are dropped on arrival. Subscribers receive a Snapshot after
every change.
"""

import asyncio
import logging
from typing import List, Optional, Set

import httpx

from ..config import Settings, settings
from .aggregator import ResultAggregator
from .arbitration import ArbitrationPolicy, DetectionArbitrator, user_confirmed
from .detection import BaseDetector, DetectorPool, build_detectors
from .dispatcher import ProviderDispatcher
from .languages import LanguageRegistry, registry as default_registry
from .models import AUTO, ConfirmedLanguage, QueryContext, Snapshot
from .providers import BaseProvider, build_providers, create_http_client

logger = logging.getLogger(__name__)


class QueryOrchestrator:
    def __init__(
        self,
        pool: DetectorPool,
        dispatcher: ProviderDispatcher,
        policy: ArbitrationPolicy,
        default_target: str = "zh-CHS",
        second_target: str = "en",
        show_notices: bool = True,
        registry: LanguageRegistry = default_registry,
    ):
        self.pool = pool
        self.dispatcher = dispatcher
        self.policy = policy
        self.default_target = default_target
        self.second_target = second_target
        self.registry = registry
        self.aggregator = ResultAggregator(dispatcher.sources, show_notices=show_notices)

        self._sequence = 0
        self._current: Optional[QueryContext] = None
        self._confirmed: Optional[ConfirmedLanguage] = None
        self._target: Optional[str] = None
        self._detection_pending = False
        self._subscribers: List[asyncio.Queue] = []
        self._tasks: Set[asyncio.Task] = set()
        self._latest: Optional[asyncio.Task] = None

    @property
    def sequence(self) -> int:
        return self._sequence

    @property
    def current(self) -> Optional[QueryContext]:
        return self._current

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def snapshot(self) -> Snapshot:
        confirmed = self._confirmed
        return Snapshot(
            sequence=self._sequence,
            detection_pending=self._detection_pending,
            source_lang=confirmed.language if confirmed else None,
            detected_by=confirmed.detector if confirmed else None,
            target_lang=self._target,
            sections=self.aggregator.sections,
            notices=self.aggregator.notices,
        )

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for queue in self._subscribers:
            queue.put_nowait(snapshot)

    def _validate(self, language: str, allow_auto: bool = False) -> None:
        if allow_auto and language == AUTO:
            return
        if language not in self.registry:
            raise ValueError(f"Unknown language: {language}")

    def _next_context(self, text: str, source_lang: str, target_lang: str) -> QueryContext:
        self._sequence += 1
        context = QueryContext(text=text, source_lang=source_lang, target_lang=target_lang, sequence=self._sequence)
        self._current = context
        self.aggregator.reset(context.sequence)
        return context

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        self._latest = task
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Query task failed", exc_info=task.exception())

    def resolve_target(self, source_lang: str, requested: str) -> str:
        """Switch to the second target language when source and target coincide."""
        if requested != source_lang:
            return requested
        if self.second_target != source_lang:
            return self.second_target
        return self.default_target

    def submit(self, text: str, source_lang: str = AUTO, target_lang: Optional[str] = None) -> QueryContext:
        """Start a new query, superseding whatever is in flight."""
        text = (text or "").strip()
        if not text:
            raise ValueError("Query text must be non-empty")
        target_lang = target_lang or self.default_target
        self._validate(source_lang, allow_auto=True)
        self._validate(target_lang)

        context = self._next_context(text, source_lang, target_lang)
        self._confirmed = None
        self._target = None
        self._detection_pending = True
        logger.info(f"Query #{context.sequence} submitted ({source_lang} -> {target_lang}, {len(text)} chars)")
        self._publish()
        self._spawn(self._run(context))
        return context

    def override_target(self, target_lang: str) -> QueryContext:
        """Re-dispatch the current text to another target language, keeping the detected source."""
        if self._current is None:
            raise ValueError("No query to re-target")
        self._validate(target_lang)
        confirmed = self._confirmed
        if confirmed is None:
            # Detection has not settled yet, so the whole query starts over
            return self.submit(self._current.text, self._current.source_lang, target_lang)

        context = self._next_context(self._current.text, confirmed.language, target_lang)
        self._target = self.resolve_target(confirmed.language, target_lang)
        logger.info(f"Query #{context.sequence} re-targeted to {self._target}")
        self._publish()
        self._spawn(self._dispatch(context, confirmed, self._target))
        return context

    async def _confirm(self, context: QueryContext) -> ConfirmedLanguage:
        if not context.wants_detection:
            return user_confirmed(context.source_lang)
        arbitrator = DetectionArbitrator(self.policy)
        return await arbitrator.arbitrate(self.pool.detect(context.text, self.policy.deadline_s))

    async def _run(self, context: QueryContext) -> None:
        confirmed = await self._confirm(context)
        if context.sequence != self._sequence:
            logger.info(f"Query #{context.sequence} superseded by #{self._sequence} before dispatch")
            return

        self._confirmed = confirmed
        self._detection_pending = False
        self._target = self.resolve_target(confirmed.language, context.target_lang)
        self._publish()
        await self._dispatch(context, confirmed, self._target)

    async def _dispatch(self, context: QueryContext, confirmed: ConfirmedLanguage, target_lang: str) -> None:
        async for outcome in self.dispatcher.dispatch(context, confirmed, target_lang):
            if self.aggregator.on_outcome(outcome):
                self._publish()

    async def wait(self) -> Snapshot:
        """Wait for the most recently started work to finish."""
        if self._latest is not None:
            await asyncio.shield(self._latest)
        return self.snapshot()

    async def query(self, text: str, source_lang: str = AUTO, target_lang: Optional[str] = None) -> Snapshot:
        """Run one query to completion."""
        self.submit(text, source_lang, target_lang)
        return await self.wait()


class QueryService:
    """Process-wide backends shared by every session."""

    def __init__(self, config: Settings, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client or create_http_client(config)
        self.providers: List[BaseProvider] = build_providers(config, self._client)
        self.detectors: List[BaseDetector] = build_detectors(config, self.providers)

    def new_session(self) -> QueryOrchestrator:
        return QueryOrchestrator(
            pool=DetectorPool(self.detectors),
            dispatcher=ProviderDispatcher(self.providers, timeout_s=self.config.provider_timeout_ms / 1000.0),
            policy=ArbitrationPolicy.from_settings(self.config),
            default_target=self.config.default_target_lang,
            second_target=self.config.second_target_lang,
            show_notices=self.config.show_failure_notices,
        )

    async def close(self) -> None:
        await self._client.aclose()


query_service = QueryService(settings)
