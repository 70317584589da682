"""
Provider dispatch.

Fans one confirmed query out to every configured backend at once and reports
each backend's outcome as soon as it settles. Queries a backend cannot serve
(unsupported language, text too long) are answered locally without a network
call. Nothing is retried inside a query.
"""

import asyncio
import logging
from typing import AsyncIterator, List, Optional, Sequence, Set

import httpx

from .errors import ErrorKind, ProviderError, classify, describe
from .languages import LanguageRegistry, registry as default_registry
from .models import ConfirmedLanguage, ProviderOutcome, QueryContext, RequestSource
from .providers import BaseProvider
from .stats import DispatchMetrics, dispatch_metrics

logger = logging.getLogger(__name__)


class ProviderDispatcher:
    def __init__(
        self,
        providers: Sequence[BaseProvider],
        timeout_s: float = 5.0,
        registry: LanguageRegistry = default_registry,
        metrics: Optional[DispatchMetrics] = dispatch_metrics,
    ):
        self.providers = list(providers)
        self.timeout_s = timeout_s
        self.registry = registry
        self.metrics = metrics
        self._running: Set[asyncio.Task] = set()

    @property
    def sources(self) -> List[RequestSource]:
        return [provider.source for provider in self.providers]

    def _reject_locally(
        self, provider: BaseProvider, outcome: ProviderOutcome, text: str, source_lang: str, target_lang: str
    ) -> bool:
        if len(text) > provider.max_length:
            outcome.fail(
                ErrorKind.QUERY_REJECTED,
                message=f"Query exceeds {provider.max_length} characters",
            )
            return True

        if (
            self.registry.code_for(source_lang, provider.backend) is None
            or self.registry.code_for(target_lang, provider.backend) is None
        ):
            outcome.fail(
                ErrorKind.UNSUPPORTED_LANGUAGE_PAIR,
                message=f"{source_lang} -> {target_lang} not supported",
            )
            return True
        return False

    async def dispatch(
        self, context: QueryContext, confirmed: ConfirmedLanguage, target_lang: Optional[str] = None
    ) -> AsyncIterator[ProviderOutcome]:
        """Yield one terminal outcome per provider, in completion order."""
        target_lang = target_lang or context.target_lang
        local: List[ProviderOutcome] = []
        tasks = []

        for provider in self.providers:
            outcome = ProviderOutcome(source=provider.source, sequence=context.sequence)
            if self._reject_locally(provider, outcome, context.text, confirmed.language, target_lang):
                logger.info("Skipping %s for #%d: %s", provider.name, context.sequence, outcome.message)
                local.append(outcome)
                continue
            task = asyncio.create_task(
                self._call(
                    provider,
                    outcome,
                    context.text,
                    self.registry.code_for(confirmed.language, provider.backend),
                    self.registry.code_for(target_lang, provider.backend),
                ),
                name=f"dispatch-{provider.name}-{context.sequence}",
            )
            self._running.add(task)
            task.add_done_callback(self._running.discard)
            tasks.append(task)

        for outcome in local:
            self._record(outcome)
            yield outcome

        for next_done in asyncio.as_completed(tasks):
            outcome = await next_done
            self._record(outcome)
            yield outcome

    async def _call(
        self, provider: BaseProvider, outcome: ProviderOutcome, text: str, source_code: str, target_code: str
    ) -> ProviderOutcome:
        backend = provider.backend
        try:
            payload = await asyncio.wait_for(
                provider.translate(text, source_code, target_code),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(f"{provider.name} timed out after {self.timeout_s}s")
            return outcome.time_out(f"No answer within {self.timeout_s}s")
        except httpx.TimeoutException as exc:
            logger.warning(f"{provider.name} transport timeout: {exc}")
            return outcome.time_out(str(exc) or "Transport timeout")
        except ProviderError as exc:
            kind = classify(backend, exc.code)
            logger.warning(f"{provider.name} error code {exc.code} ({kind.value}): {exc}")
            return outcome.fail(kind, exc.code, exc.message or describe(backend, exc.code, kind))
        except httpx.HTTPStatusError as exc:
            code = str(exc.response.status_code)
            kind = classify(backend, code)
            logger.warning(f"{provider.name} HTTP {code} ({kind.value})")
            return outcome.fail(kind, code, describe(backend, code, kind))
        except httpx.HTTPError as exc:
            logger.warning(f"{provider.name} request failed: {exc}")
            return outcome.fail(ErrorKind.NETWORK_FAILURE, message=str(exc) or exc.__class__.__name__)
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            logger.exception("%s returned an unexpected response", provider.name)
            return outcome.fail(ErrorKind.UNKNOWN, message=f"Unexpected response: {exc}")
        except Exception as exc:
            logger.exception(f"{provider.name} failed unexpectedly")
            return outcome.fail(ErrorKind.UNKNOWN, message=f"{exc.__class__.__name__}: {exc}")

        outcome.succeed(payload)
        logger.debug(f"{provider.name} answered #{outcome.sequence} in {outcome.latency_ms:.1f}ms")
        return outcome

    def _record(self, outcome: ProviderOutcome) -> None:
        if self.metrics is not None:
            self.metrics.record(outcome)
