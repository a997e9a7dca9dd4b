"""DispatchEngine - routes analysis requests to one or more providers.

Responsibilities:
- Gate local-backed providers on server readiness
- Bound every provider call by its timeout
- Convert backend-side failures into failed results
- Run comparisons concurrently and report them together
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..db import dispatch_logs
from ..errors import TransportError
from ..providers.base import AnalysisResult, BaseProvider, ProviderRequest, elapsed_ms
from ..supervisor.health import check_status
from ..supervisor.protocol import ServerStatus

logger = logging.getLogger(__name__)

NOT_READY_MESSAGE = "Local model server not ready"

StatusCheck = Callable[..., Awaitable[ServerStatus]]


@dataclass(frozen=True)
class ComparisonReport:
    """Results of one request sent to several providers."""

    results: Tuple[AnalysisResult, ...]
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    total_time_ms: int = 0

    def by_provider(self) -> Dict[str, AnalysisResult]:
        return {r.provider: r for r in self.results}

    @property
    def fastest(self) -> Optional[AnalysisResult]:
        """Quickest successful result, if any provider succeeded."""
        succeeded = [r for r in self.results if r.ok]
        if not succeeded:
            return None
        return min(succeeded, key=lambda r: r.processing_time_ms)

    def to_dict(self) -> Dict[str, Any]:
        fastest = self.fastest
        return {
            "correlation_id": self.correlation_id,
            "total_time_ms": self.total_time_ms,
            "fastest_provider": fastest.provider if fastest else None,
            "results": [r.to_dict() for r in self.results],
        }


class DispatchEngine:
    """
    Issues provider calls under a uniform failure policy.

    Soft failures (not ready, timeout, no response, backend errors) come back
    as AnalysisResult.error. Unknown provider ids and request construction
    errors are raised.
    """

    def __init__(
        self,
        providers: Mapping[str, BaseProvider],
        status_check: StatusCheck = check_status,
    ):
        """
        Args:
            providers: Provider id -> provider
            status_check: Readiness check for local-backed providers
        """
        self.providers = dict(providers)
        self.status_check = status_check

    def _resolve(self, provider_id: str) -> BaseProvider:
        provider = self.providers.get(provider_id)
        if provider is None:
            raise ValueError(
                f"Unknown provider '{provider_id}'. Available: {', '.join(sorted(self.providers))}"
            )
        return provider

    async def _is_ready(self, provider: BaseProvider) -> bool:
        status = await self.status_check(getattr(provider, "base_url", None))
        if not status.model_ready:
            logger.info(f"{provider.provider_id}: gated, {status.error or 'model not ready'}")
        return status.model_ready

    async def _run_branch(
        self,
        request: ProviderRequest,
        provider: BaseProvider,
        correlation_id: Optional[str] = None,
    ) -> AnalysisResult:
        """Gate, run and time-bound one provider call."""
        start = time.perf_counter()
        operation = request.operation.value
        timeout = provider.timeout_for(request)

        try:
            if provider.requires_local_server and not await self._is_ready(provider):
                result = AnalysisResult.failure(provider.provider_id, NOT_READY_MESSAGE, elapsed_ms(start))
            else:
                try:
                    result = await asyncio.wait_for(provider.run(request), timeout=timeout)
                except asyncio.TimeoutError:
                    logger.warning(f"{provider.provider_id}: {operation} timed out after {timeout}s")
                    result = AnalysisResult.failure(
                        provider.provider_id,
                        f"Timed out after {int(timeout * 1000)}ms",
                        elapsed_ms(start),
                    )
                except TransportError as e:
                    logger.warning(f"{provider.provider_id}: {operation} failed: {e}")
                    result = AnalysisResult.failure(provider.provider_id, str(e), elapsed_ms(start))
        except Exception as e:
            await self._record(provider.provider_id, operation, elapsed_ms(start), "failed_hard", correlation_id, str(e), request)
            raise

        status = "succeeded" if result.ok else "failed_soft"
        await self._record(provider.provider_id, operation, result.processing_time_ms, status, correlation_id, result.error, request)
        return result

    @staticmethod
    async def _record(
        provider_id: str,
        operation: str,
        duration_ms: int,
        status: str,
        correlation_id: Optional[str],
        error: Optional[str],
        request: ProviderRequest,
    ) -> None:
        """Write the call to the dispatch log off the event loop; failures are only logged."""
        try:
            await asyncio.to_thread(
                dispatch_logs.log_call,
                provider=provider_id,
                operation=operation,
                duration_ms=duration_ms,
                status=status,
                correlation_id=correlation_id,
                error_message=error,
                input_size_bytes=len(request.image),
            )
        except Exception as e:
            logger.warning(f"Failed to write dispatch log: {e}")

    async def dispatch_single(self, request: ProviderRequest, provider_id: str) -> AnalysisResult:
        """
        Send a request to one provider.

        Raises:
            ValueError: If the provider id is unknown
            RequestBuildError: If the provider request cannot be formed
        """
        provider = self._resolve(provider_id)
        logger.debug(f"Dispatching to {provider_id}: {request.describe()}")
        return await self._run_branch(request, provider)

    async def dispatch_comparison(
        self, request: ProviderRequest, provider_ids: Sequence[str]
    ) -> ComparisonReport:
        """
        Send the same request to several providers concurrently.

        Every branch runs to completion; a slow or failing provider never
        cancels the others. Results keep the order of ``provider_ids``.

        Raises:
            ValueError: If the list is empty, has duplicates, or names an unknown provider
            RequestBuildError: Re-raised after all branches have settled
        """
        if not provider_ids:
            raise ValueError("At least one provider is required for a comparison")
        if len(set(provider_ids)) != len(provider_ids):
            raise ValueError(f"Duplicate providers in comparison: {list(provider_ids)}")

        providers = [self._resolve(pid) for pid in provider_ids]
        correlation_id = str(uuid.uuid4())
        start = time.perf_counter()

        logger.info(f"Comparison {correlation_id}: dispatching {request.operation.value} to {', '.join(provider_ids)}")
        settled = await asyncio.gather(
            *(self._run_branch(request, p, correlation_id) for p in providers),
            return_exceptions=True,
        )

        results: List[AnalysisResult] = []
        for outcome in settled:
            if isinstance(outcome, BaseException):
                raise outcome
            results.append(outcome)

        total = max([elapsed_ms(start)] + [r.processing_time_ms for r in results])
        logger.info(f"Comparison {correlation_id}: settled in {total}ms")
        return ComparisonReport(results=tuple(results), correlation_id=correlation_id, total_time_ms=total)


# Global engine instance
_engine: Optional[DispatchEngine] = None


def get_engine() -> DispatchEngine:
    """Get or create the global DispatchEngine over the registered providers."""
    global _engine
    if _engine is None:
        from ..providers.registry import get_providers

        _engine = DispatchEngine(get_providers())
    return _engine


def reset_engine() -> None:
    global _engine
    _engine = None
