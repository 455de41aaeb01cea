"""
Refresh scheduler - periodically re-admits settled sources for re-ingestion.

Runs as a long-lived loop that:
1. Claims every standby source (never-refreshed first, then the stalest)
2. Hands the claims to a caller-supplied async handler (the scraper side)
3. Sleeps for the configured interval

Only the claim is retried on transient store errors. A failed claim
statement changes no rows, so retrying it is safe. Once sources are claimed
they are ``refreshing`` and no later sweep matches them, so a handler
failure is never retried here: it is raised as RefreshHandlerError carrying
the stranded claims.
"""

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable

import structlog

from kchoo.observability.logging import bind_context, unbind_context
from kchoo.observability.metrics import get_metrics
from kchoo.observability.tracing import get_tracer, traced
from kchoo.refresh.backoff import ExponentialBackoff, is_retryable
from kchoo.refresh.config import RefreshConfig
from kchoo.sources.repository import SourcesRepository
from kchoo.sources.schemas import RefreshClaim

logger = structlog.get_logger(__name__)

RefreshHandler = Callable[[list[RefreshClaim]], Awaitable[None]]


class RefreshHandlerError(Exception):
    """The handler failed after sources were claimed for refreshing."""

    def __init__(self, claims: list[RefreshClaim], cause: BaseException):
        self.claims = claims
        self.source_ids = [c.id for c in claims]
        super().__init__(
            f"Refresh handler failed for {len(claims)} claimed sources: {cause}"
        )


class RefreshScheduler:
    """
    Sweeps standby sources back into the pipeline on a fixed interval.

    The handler owns everything after the claim: fetching new content,
    calling ``report_progress`` and finally ``finish_processing`` or
    ``mark_errors`` on the repository.

    Usage:
        scheduler = RefreshScheduler(repo, handler=dispatch_to_scrapers)
        await scheduler.start()  # Runs until stopped
    """

    def __init__(
        self,
        repository: SourcesRepository,
        handler: RefreshHandler,
        config: RefreshConfig | None = None,
        scheduler_id: str | None = None,
    ):
        self._repo = repository
        self._handler = handler
        self._config = config or RefreshConfig()
        self._backoff = ExponentialBackoff(
            base_delay=self._config.backoff_base_delay,
            max_delay=self._config.backoff_max_delay,
        )
        self._tracer = get_tracer("kchoo.refresh")
        self._running = False
        self._wakeup = asyncio.Event()
        self.scheduler_id = scheduler_id or f"refresh-{uuid.uuid4().hex[:8]}"

    @property
    def is_running(self) -> bool:
        return self._running

    async def run_once(self) -> list[RefreshClaim]:
        """Claim all standby sources and pass them to the handler.

        Raises:
            StoreError: The claim failed; no source changed state.
            RefreshHandlerError: The handler raised after the claim.
        """
        start_time = time.monotonic()

        with traced(self._tracer, "refresh_cycle") as span:
            claims = await self._repo.claim_sources_to_refresh()
            span.set_attribute("claimed", len(claims))
            if claims:
                try:
                    await self._handler(claims)
                except Exception as e:
                    raise RefreshHandlerError(claims, e) from e

        elapsed = time.monotonic() - start_time
        get_metrics().record_refresh_cycle(len(claims), elapsed)
        logger.info(
            "Refresh cycle complete",
            claimed=len(claims),
            latency_s=round(elapsed, 3),
        )
        return claims

    async def start(self) -> None:
        """Run refresh cycles until stop() is called."""
        self._running = True
        self._wakeup.clear()
        bind_context(scheduler_id=self.scheduler_id)
        logger.info(
            "Starting refresh scheduler",
            interval_seconds=self._config.interval_seconds,
        )

        try:
            while self._running:
                try:
                    await self.run_once()
                    self._backoff.reset()
                    delay = self._config.interval_seconds
                except RefreshHandlerError as e:
                    logger.error(
                        "Refresh handler failed, sources left refreshing",
                        source_ids=e.source_ids,
                        error=str(e.__cause__),
                    )
                    raise
                except Exception as e:
                    if not is_retryable(e):
                        logger.error("Refresh claim failed", error=str(e))
                        raise
                    delay = self._backoff.next_delay()
                    logger.warning(
                        "Transient store error, retrying refresh claim",
                        error=str(e),
                        error_type=type(e).__name__,
                        attempt=self._backoff.attempt,
                        retry_in_s=round(delay, 2),
                    )

                await self._sleep(delay)
        except asyncio.CancelledError:
            logger.info("Refresh scheduler cancelled")
        finally:
            self._running = False
            logger.info("Refresh scheduler stopped")
            unbind_context("scheduler_id")

    async def stop(self) -> None:
        """Stop the scheduler after the current cycle."""
        logger.info("Stopping refresh scheduler")
        self._running = False
        self._wakeup.set()

    async def _sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds, returning early if stop() is called."""
        if not self._running:
            return
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
