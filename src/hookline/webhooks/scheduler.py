"""Retry scheduler and delivery worker pool.

A scan loop finds pending deliveries that are due, claims each one with a
conditional UPDATE and puts it on a bounded asyncio queue. A fixed number
of worker tasks take deliveries off the queue, attempt them and record the
outcome. Because claims live in the database, several schedulers can share
one database without delivering the same record twice.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING
from uuid import uuid4

from hookline.config import RetryPolicy, SchedulerSettings
from hookline.exceptions import StorageError
from hookline.logging import bind_context, get_logger, unbind_context
from hookline.models import Delivery, DeliveryStatus, utc_now

if TYPE_CHECKING:
    from hookline.storage import WebhookStorage

    from .engine import DeliveryEngine

logger = get_logger(__name__)

WEBHOOK_DISABLED = "webhook disabled"
MAX_ATTEMPTS_EXCEEDED = "max attempts exceeded"

_WorkItem = tuple[Delivery, str]


class RetryScheduler:
    """Background delivery of due webhook deliveries.

    Example:
        ```python
        scheduler = RetryScheduler(storage, engine, RetryPolicy(), SchedulerSettings())
        await scheduler.start()
        ...
        scheduler.wake()  # new deliveries are waiting
        ...
        await scheduler.stop()
        ```
    """

    def __init__(
        self,
        storage: WebhookStorage,
        engine: DeliveryEngine,
        policy: RetryPolicy | None = None,
        settings: SchedulerSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the scheduler.

        Args:
            storage: Storage for webhooks and deliveries.
            engine: Engine that performs HTTP attempts.
            policy: Attempt ceiling and backoff schedule.
            settings: Worker pool and loop settings.
            clock: Source of the current time.
        """
        self._storage = storage
        self._engine = engine
        self._policy = policy or RetryPolicy()
        self._settings = settings or SchedulerSettings()
        self._clock = clock

        self._queue: asyncio.Queue[_WorkItem] = asyncio.Queue(maxsize=self._settings.queue_size)
        self._wake = asyncio.Event()
        self._workers: list[asyncio.Task[None]] = []
        self._scan_task: asyncio.Task[None] | None = None
        self._cleanup_task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def queued(self) -> int:
        """Deliveries claimed and waiting for a worker."""
        return self._queue.qsize()

    @property
    def claim_ttl(self) -> timedelta:
        return timedelta(seconds=self._settings.claim_ttl_seconds)

    async def start(self) -> None:
        """Start the worker pool, scan loop and cleanup loop."""
        if self._running:
            return
        self._running = True

        self._workers = [
            asyncio.create_task(self._worker(), name=f"hookline-worker-{i}")
            for i in range(self._settings.workers)
        ]
        self._scan_task = asyncio.create_task(self._scan_loop(), name="hookline-scan")
        self._cleanup_task = asyncio.create_task(self._cleanup_loop(), name="hookline-cleanup")

        logger.info(
            "Webhook scheduler started",
            workers=self._settings.workers,
            scan_interval=self._settings.scan_interval_seconds,
        )

    async def stop(self) -> None:
        """Stop scanning and shut the worker pool down.

        Claimed deliveries that no worker has started are released at once.
        In-flight attempts get ``shutdown_grace_seconds`` to finish; workers
        still busy after that are cancelled and release their claims.
        """
        if not self._running:
            return
        self._running = False

        loops = [t for t in (self._scan_task, self._cleanup_task) if t is not None]
        for task in loops:
            task.cancel()
        await asyncio.gather(*loops, return_exceptions=True)
        self._scan_task = None
        self._cleanup_task = None

        while True:
            try:
                delivery, token = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            await self._release(delivery.id, token)
            self._queue.task_done()

        try:
            await asyncio.wait_for(self._queue.join(), timeout=self._settings.shutdown_grace_seconds)
        except TimeoutError:
            logger.warning(
                "In-flight deliveries still running, cancelling",
                grace=self._settings.shutdown_grace_seconds,
            )

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        logger.info("Webhook scheduler stopped")

    def wake(self) -> None:
        """Run the next scan now instead of waiting for the interval."""
        self._wake.set()

    async def scan_once(self) -> int:
        """Claim due deliveries and hand them to the workers.

        Returns:
            Number of deliveries queued.
        """
        free = self._settings.queue_size - self._queue.qsize()
        if free <= 0:
            return 0

        now = self._clock()
        ttl = self.claim_ttl
        candidates = await self._storage.get_due_deliveries(
            now, limit=min(self._settings.batch_size, free), claim_ttl=ttl
        )

        queued = 0
        for candidate in candidates:
            token = uuid4().hex
            delivery = await self._storage.claim_delivery(candidate.id, token, now, ttl)
            if delivery is None:
                continue
            try:
                self._queue.put_nowait((delivery, token))
            except asyncio.QueueFull:
                await self._release(delivery.id, token)
                break
            queued += 1

        if queued:
            logger.debug("Queued due deliveries", count=queued)
        return queued

    async def process(self, delivery: Delivery, token: str) -> Delivery | None:
        """Attempt one claimed delivery and record the outcome.

        Returns:
            The updated delivery, or None if it was released or the claim
            was lost to another scheduler.
        """
        webhook = await self._storage.get_webhook(delivery.webhook_id)
        if webhook is None:
            logger.warning("Webhook not found, releasing delivery")
            await self._release(delivery.id, token)
            return None

        if not webhook.active:
            logger.info("Dead-lettering delivery for disabled webhook")
            return await self._storage.mark_dead(delivery.id, token, WEBHOOK_DISABLED, self._clock())

        if self._policy.is_exhausted(delivery.attempts):
            return await self._storage.mark_dead(
                delivery.id, token, MAX_ATTEMPTS_EXCEEDED, self._clock()
            )

        result = await self._engine.attempt(delivery, webhook)
        updated = await self._storage.record_attempt(
            delivery.id, token, result, self._policy, now=self._clock()
        )
        if updated is None:
            logger.warning("Lost claim on delivery, result discarded")
        elif updated.status is DeliveryStatus.DEAD:
            logger.warning(
                "Delivery dead-lettered",
                attempts=updated.attempts,
                error=updated.error_message,
            )
        return updated

    async def cleanup_once(self) -> int:
        """Delete delivered and dead deliveries past the retention period."""
        cutoff = self._clock() - timedelta(days=self._settings.retention_days)
        deleted = await self._storage.delete_old_deliveries(cutoff)
        if deleted:
            logger.info("Cleaned up old webhook deliveries", deleted=deleted)
        return deleted

    async def process_due(self) -> int:
        """Claim due deliveries and process them in the calling task.

        For one-shot runs (a cron job, a management command) that do not
        start the worker pool.

        Returns:
            Number of deliveries processed.
        """
        await self.scan_once()
        processed = 0
        while True:
            try:
                delivery, token = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            await self._handle(delivery, token)
            processed += 1
        return processed

    async def _worker(self) -> None:
        while True:
            delivery, token = await self._queue.get()
            await self._handle(delivery, token)

    async def _handle(self, delivery: Delivery, token: str) -> None:
        bind_context(delivery_id=delivery.id, webhook_id=delivery.webhook_id)
        try:
            await self.process(delivery, token)
        except asyncio.CancelledError:
            await self._release(delivery.id, token)
            raise
        except Exception:
            logger.exception("Error processing delivery")
            await self._release(delivery.id, token)
        finally:
            unbind_context("delivery_id", "webhook_id")
            self._queue.task_done()

    async def _scan_loop(self) -> None:
        interval = self._settings.scan_interval_seconds
        while True:
            self._wake.clear()
            try:
                await self.scan_once()
            except Exception:
                logger.exception("Delivery scan failed", retry_in=interval)
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=interval)
            except TimeoutError:
                pass

    async def _cleanup_loop(self) -> None:
        while True:
            try:
                await self.cleanup_once()
            except Exception:
                logger.exception("Delivery cleanup failed")
            await asyncio.sleep(self._settings.cleanup_interval_seconds)

    async def _release(self, delivery_id: str, token: str) -> None:
        try:
            await self._storage.release_claim(delivery_id, token)
        except StorageError as e:
            logger.warning("Could not release claim", delivery_id=delivery_id, error=str(e))
