"""Delivery record storage for Hookline.

Every state change a worker makes is a single conditional UPDATE keyed on
the delivery id and the worker's claim token. A worker whose claim expired
and was taken over therefore cannot overwrite the new owner's result.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, delete, func, or_, select, update

from hookline.exceptions import NotFoundError, ValidationError
from hookline.models import (
    AttemptResult,
    Delivery,
    DeliveryStats,
    DeliveryStatus,
    WebhookHealth,
    utc_now,
)

from .retry import db_retry
from .tables import DeliveryRow, WebhookRow

if TYPE_CHECKING:
    from hookline.config import RetryPolicy

TERMINAL_STATUSES = (DeliveryStatus.DELIVERED.value, DeliveryStatus.DEAD.value)


def attempt_transition(
    attempts: int,
    result: AttemptResult,
    policy: RetryPolicy,
    now: datetime,
) -> dict[str, Any]:
    """Column values after an attempt with the given result.

    Args:
        attempts: Attempts made before this one.
        result: Outcome of this attempt.
        policy: Attempt ceiling and backoff schedule.
        now: Time the attempt finished.

    Returns:
        Values for the delivery row: delivered on success, pending with a
        backed-off next_retry_at on a retryable failure below the ceiling,
        dead otherwise.
    """
    attempts += 1
    values: dict[str, Any] = {
        "attempts": attempts,
        "response_code": result.status_code,
        "response_body": result.response_body,
        "error_message": result.error,
    }

    if result.succeeded:
        values.update(
            status=DeliveryStatus.DELIVERED.value,
            delivered_at=now,
            next_retry_at=None,
            error_message=None,
        )
    elif result.retryable and not policy.is_exhausted(attempts):
        values.update(
            status=DeliveryStatus.PENDING.value,
            next_retry_at=now + policy.next_delay(attempts),
        )
    else:
        values.update(status=DeliveryStatus.DEAD.value, next_retry_at=None)

    return values


def _delivery_values(delivery: Delivery) -> dict[str, Any]:
    values = delivery.model_dump()
    values["status"] = delivery.status.value
    return values


def _due_clause(now: datetime, claim_ttl: timedelta) -> Any:
    """Pending, due, and not held by a live claim."""
    return and_(
        DeliveryRow.status == DeliveryStatus.PENDING.value,
        or_(DeliveryRow.next_retry_at.is_(None), DeliveryRow.next_retry_at <= now),
        or_(DeliveryRow.claim_token.is_(None), DeliveryRow.claimed_at < now - claim_ttl),
    )


class DeliveryMixin:
    """Mixin providing delivery operations for WebhookStorage.

    This mixin expects the following from the base class:
    - _transaction() -> async context manager yielding an AsyncSession
    """

    _transaction: Any

    @db_retry
    async def create_deliveries(self, deliveries: list[Delivery]) -> list[Delivery]:
        """Insert deliveries in one transaction (all or nothing)."""
        if not deliveries:
            return []
        async with self._transaction() as session:
            session.add_all(DeliveryRow(**_delivery_values(d)) for d in deliveries)
        return deliveries

    async def create_delivery(self, delivery: Delivery) -> Delivery:
        await self.create_deliveries([delivery])
        return delivery

    @db_retry
    async def get_delivery(self, delivery_id: str) -> Delivery | None:
        async with self._transaction() as session:
            row = await session.get(DeliveryRow, delivery_id)
            return Delivery.model_validate(row) if row is not None else None

    @db_retry
    async def list_deliveries(
        self,
        webhook_id: str,
        status: DeliveryStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Delivery]:
        """Delivery history for a webhook, newest first."""
        stmt = select(DeliveryRow).where(DeliveryRow.webhook_id == webhook_id)
        if status is not None:
            stmt = stmt.where(DeliveryRow.status == DeliveryStatus(status).value)
        stmt = (
            stmt.order_by(DeliveryRow.created_at.desc(), DeliveryRow.id.desc())
            .limit(limit)
            .offset(offset)
        )
        async with self._transaction() as session:
            rows = (await session.scalars(stmt)).all()
            return [Delivery.model_validate(row) for row in rows]

    @db_retry
    async def count_deliveries(
        self,
        webhook_id: str,
        status: DeliveryStatus | None = None,
    ) -> int:
        stmt = select(func.count()).select_from(DeliveryRow).where(
            DeliveryRow.webhook_id == webhook_id
        )
        if status is not None:
            stmt = stmt.where(DeliveryRow.status == DeliveryStatus(status).value)
        async with self._transaction() as session:
            return int((await session.execute(stmt)).scalar_one())

    @db_retry
    async def get_recent_failed_deliveries(self, limit: int = 20) -> list[Delivery]:
        """Most recent dead deliveries across all webhooks."""
        stmt = (
            select(DeliveryRow)
            .where(DeliveryRow.status == DeliveryStatus.DEAD.value)
            .order_by(DeliveryRow.created_at.desc())
            .limit(limit)
        )
        async with self._transaction() as session:
            rows = (await session.scalars(stmt)).all()
            return [Delivery.model_validate(row) for row in rows]

    @db_retry
    async def get_due_deliveries(
        self,
        now: datetime,
        limit: int,
        claim_ttl: timedelta,
    ) -> list[Delivery]:
        """Pending deliveries that are due and unclaimed, oldest first.

        Args:
            now: Reference time.
            limit: Maximum deliveries to return.
            claim_ttl: Claims older than this count as abandoned.
        """
        stmt = (
            select(DeliveryRow)
            .where(_due_clause(now, claim_ttl))
            .order_by(DeliveryRow.created_at, DeliveryRow.id)
            .limit(limit)
        )
        async with self._transaction() as session:
            rows = (await session.scalars(stmt)).all()
            return [Delivery.model_validate(row) for row in rows]

    @db_retry
    async def claim_delivery(
        self,
        delivery_id: str,
        token: str,
        now: datetime,
        claim_ttl: timedelta,
    ) -> Delivery | None:
        """Atomically take ownership of a due delivery.

        Only one of any number of concurrent callers can succeed: the
        UPDATE matches the row only while it is still pending, due and
        unclaimed (or its claim has expired).

        Returns:
            The claimed delivery, or None if someone else holds it or it is
            no longer due.
        """
        stmt = (
            update(DeliveryRow)
            .where(DeliveryRow.id == delivery_id, _due_clause(now, claim_ttl))
            .values(claim_token=token, claimed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)
            if result.rowcount != 1:
                return None
            row = await session.get(DeliveryRow, delivery_id)
            return Delivery.model_validate(row) if row is not None else None

    @db_retry
    async def release_claim(self, delivery_id: str, token: str) -> bool:
        """Give a claimed delivery back without recording an attempt."""
        stmt = (
            update(DeliveryRow)
            .where(DeliveryRow.id == delivery_id, DeliveryRow.claim_token == token)
            .values(claim_token=None, claimed_at=None, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return bool(result.rowcount)

    @db_retry
    async def record_attempt(
        self,
        delivery_id: str,
        token: str,
        result: AttemptResult,
        policy: RetryPolicy,
        now: datetime | None = None,
    ) -> Delivery | None:
        """Write the outcome of an attempt and release the claim.

        Returns:
            The updated delivery, or None if the claim was lost.
        """
        now = now or utc_now()
        async with self._transaction() as session:
            row = await session.get(DeliveryRow, delivery_id, with_for_update=True)
            if (
                row is None
                or row.claim_token != token
                or row.status != DeliveryStatus.PENDING.value
            ):
                return None

            values = attempt_transition(row.attempts, result, policy, now)
            stmt = (
                update(DeliveryRow)
                .where(
                    DeliveryRow.id == delivery_id,
                    DeliveryRow.claim_token == token,
                    DeliveryRow.status == DeliveryStatus.PENDING.value,
                )
                .values(**values, claim_token=None, claimed_at=None, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            updated = await session.execute(stmt)
            if updated.rowcount != 1:
                return None

            await session.refresh(row)
            return Delivery.model_validate(row)

    @db_retry
    async def mark_dead(
        self,
        delivery_id: str,
        token: str,
        error: str,
        now: datetime | None = None,
    ) -> Delivery | None:
        """Dead-letter a claimed delivery without an HTTP attempt."""
        now = now or utc_now()
        stmt = (
            update(DeliveryRow)
            .where(
                DeliveryRow.id == delivery_id,
                DeliveryRow.claim_token == token,
                DeliveryRow.status == DeliveryStatus.PENDING.value,
            )
            .values(
                status=DeliveryStatus.DEAD.value,
                error_message=error,
                next_retry_at=None,
                claim_token=None,
                claimed_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)
            if result.rowcount != 1:
                return None
            row = await session.get(DeliveryRow, delivery_id)
            return Delivery.model_validate(row) if row is not None else None

    @db_retry
    async def reset_delivery(self, delivery_id: str, now: datetime | None = None) -> Delivery:
        """Administrative retry: put a finished delivery back in the queue.

        Resets attempts and diagnostics and makes the delivery due at ``now``.

        Raises:
            NotFoundError: If the delivery does not exist.
            ValidationError: If the delivery is still pending.
        """
        now = now or utc_now()
        stmt = (
            update(DeliveryRow)
            .where(DeliveryRow.id == delivery_id, DeliveryRow.status.in_(TERMINAL_STATUSES))
            .values(
                status=DeliveryStatus.PENDING.value,
                attempts=0,
                next_retry_at=now,
                delivered_at=None,
                response_code=None,
                response_body=None,
                error_message=None,
                claim_token=None,
                claimed_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)
            row = await session.get(DeliveryRow, delivery_id)
            if row is None:
                raise NotFoundError("delivery", delivery_id)
            if result.rowcount != 1:
                raise ValidationError("status", "delivery is still pending")
            return Delivery.model_validate(row)

    @db_retry
    async def delete_old_deliveries(self, older_than: datetime) -> int:
        """Purge delivered and dead deliveries created before a cutoff.

        Returns:
            Number of deliveries deleted.
        """
        stmt = delete(DeliveryRow).where(
            DeliveryRow.created_at < older_than,
            DeliveryRow.status.in_(TERMINAL_STATUSES),
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return int(result.rowcount or 0)

    @db_retry
    async def get_delivery_stats(
        self,
        webhook_id: str,
        since: datetime | None = None,
    ) -> DeliveryStats:
        """Delivery counts by status for a webhook.

        Args:
            webhook_id: Webhook to summarize.
            since: Only count deliveries created at or after this time.
        """
        stmt = (
            select(DeliveryRow.status, func.count())
            .where(DeliveryRow.webhook_id == webhook_id)
            .group_by(DeliveryRow.status)
        )
        if since is not None:
            stmt = stmt.where(DeliveryRow.created_at >= since)

        async with self._transaction() as session:
            counts = {status: int(n) for status, n in (await session.execute(stmt)).all()}
        return _stats_from_counts(counts)

    @db_retry
    async def get_health_summary(self, since: datetime | None = None) -> list[WebhookHealth]:
        """Per-webhook delivery statistics for every webhook, ordered by name."""
        counts_stmt = select(DeliveryRow.webhook_id, DeliveryRow.status, func.count()).group_by(
            DeliveryRow.webhook_id, DeliveryRow.status
        )
        if since is not None:
            counts_stmt = counts_stmt.where(DeliveryRow.created_at >= since)
        webhooks_stmt = select(WebhookRow.id, WebhookRow.name, WebhookRow.active).order_by(
            WebhookRow.name, WebhookRow.id
        )

        async with self._transaction() as session:
            per_webhook: dict[str, dict[str, int]] = {}
            for webhook_id, status, n in (await session.execute(counts_stmt)).all():
                per_webhook.setdefault(webhook_id, {})[status] = int(n)
            webhooks = (await session.execute(webhooks_stmt)).all()

        return [
            WebhookHealth(
                webhook_id=webhook_id,
                name=name,
                active=active,
                stats=_stats_from_counts(per_webhook.get(webhook_id, {})),
            )
            for webhook_id, name, active in webhooks
        ]


def _stats_from_counts(counts: dict[str, int]) -> DeliveryStats:
    return DeliveryStats(
        total=sum(counts.values()),
        delivered=counts.get(DeliveryStatus.DELIVERED.value, 0),
        pending=counts.get(DeliveryStatus.PENDING.value, 0),
        dead=counts.get(DeliveryStatus.DEAD.value, 0),
    )
