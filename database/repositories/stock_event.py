import logging
from datetime import date, datetime, timezone
from typing import List, Optional, Dict, Any

from sqlalchemy import select, update, func

from database.models import StockNotificationEventRecord
from database.repositories.base import BaseRepository
from notification.models import (
    StockNotificationEvent,
    StockNotificationEventStatus,
    PendingCount,
    predecessors_of,
)

logger = logging.getLogger(__name__)

Status = StockNotificationEventStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_record(event: StockNotificationEvent) -> StockNotificationEventRecord:
    return StockNotificationEventRecord(
        id=event.id,
        source_message_id=event.source_message_id,
        source_group_id=event.source_group_id,
        recipient_id=event.recipient_id,
        guest_id=event.guest_id,
        product_id=event.product_id,
        sku=event.sku,
        screen=event.screen,
        source_type=event.source_type,
        source_name=event.source_name,
        status=event.status.value,
        received_at=_as_utc(event.received_at),
        received_on=event.received_on,
        processed_at=_as_utc(event.processed_at),
        sent_at=_as_utc(event.sent_at),
        error_message=event.error_message,
        retry_count=event.retry_count,
        raw_payload=event.raw_payload,
    )


def _to_domain(record: StockNotificationEventRecord) -> StockNotificationEvent:
    return StockNotificationEvent(
        id=record.id,
        source_message_id=record.source_message_id,
        source_group_id=record.source_group_id,
        recipient_id=record.recipient_id,
        guest_id=record.guest_id,
        product_id=record.product_id,
        sku=record.sku,
        screen=record.screen,
        source_type=record.source_type,
        source_name=record.source_name,
        status=Status(record.status),
        received_at=_as_utc(record.received_at),
        received_on=record.received_on,
        processed_at=_as_utc(record.processed_at),
        sent_at=_as_utc(record.sent_at),
        error_message=record.error_message,
        retry_count=record.retry_count or 0,
        raw_payload=record.raw_payload or {},
    )


class StockNotificationEventRepository(BaseRepository):
    """
    Event store for stock notification events.

    Every mutating call runs in its own transaction and commits before
    returning. Status updates are compare-and-set: a row only changes when
    its current status may legally move to the new one, so a concurrent
    run that already advanced the event makes the update a no-op.
    """

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, event: StockNotificationEvent) -> StockNotificationEvent:
        """Insert a new event. Raises PersistenceError if the id exists."""
        logger.debug(f"Saving stock notification event {event.id}")
        self.db.add(_to_record(event))
        self._commit(f"save stock notification event {event.id}")
        return event

    def update_status(self, event_id: str, status: StockNotificationEventStatus) -> bool:
        return self._transition(event_id, status)

    def update_status_with_error(
        self,
        event_id: str,
        status: StockNotificationEventStatus,
        error_message: str
    ) -> bool:
        return self._transition(event_id, status, error_message=error_message)

    def mark_siblings_skipped(
        self,
        recipient_id: str,
        sku: str,
        day: date,
        except_event_id: str,
        reason: str = "Duplicate: another event for the same recipient-SKU was sent"
    ) -> int:
        """Flip every other PENDING event for the pair/day to SKIPPED."""
        now = _utcnow()
        stmt = (
            update(StockNotificationEventRecord)
            .where(
                StockNotificationEventRecord.recipient_id == recipient_id,
                StockNotificationEventRecord.sku == sku,
                StockNotificationEventRecord.received_on == day,
                StockNotificationEventRecord.id != except_event_id,
                StockNotificationEventRecord.status == Status.PENDING.value,
            )
            .values(
                status=Status.SKIPPED.value,
                error_message=reason,
                processed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        count = self._execute_write(stmt, f"skip siblings of {except_event_id}")

        if count > 0:
            logger.debug(f"Marked {count} duplicate events as skipped for recipient={recipient_id}, sku={sku}")
        return count

    def _transition(
        self,
        event_id: str,
        status: StockNotificationEventStatus,
        error_message: Optional[str] = None
    ) -> bool:
        now = _utcnow()
        values: Dict[str, Any] = {'status': status.value, 'updated_at': now}

        if status == Status.PROCESSING:
            values['processed_at'] = now
        elif status == Status.SENT:
            values['sent_at'] = now
            values['processed_at'] = now
            values['error_message'] = None
        elif status == Status.FAILED:
            values['processed_at'] = now
            values['retry_count'] = StockNotificationEventRecord.retry_count + 1
        elif status == Status.SKIPPED:
            values['processed_at'] = now

        if error_message is not None:
            values['error_message'] = error_message

        allowed_from = [s.value for s in predecessors_of(status)]
        stmt = (
            update(StockNotificationEventRecord)
            .where(
                StockNotificationEventRecord.id == event_id,
                StockNotificationEventRecord.status.in_(allowed_from),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        updated = self._execute_write(stmt, f"move {event_id} to {status.value}") > 0

        if not updated:
            logger.warning(f"Stock notification event {event_id} not moved to {status.value} - not found or already advanced")
        return updated

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_distinct_pending_for_day(self, day: date) -> List[StockNotificationEvent]:
        """
        One PENDING event per (recipient_id, sku) received on `day`.

        The representative is the earliest received_at, then lowest id.
        Results are ordered by (received_at, id).
        """
        ranked = (
            select(
                StockNotificationEventRecord.id.label('id'),
                func.row_number().over(
                    partition_by=(
                        StockNotificationEventRecord.recipient_id,
                        StockNotificationEventRecord.sku,
                    ),
                    order_by=(
                        StockNotificationEventRecord.received_at.asc(),
                        StockNotificationEventRecord.id.asc(),
                    ),
                ).label('row_rank'),
            )
            .where(
                StockNotificationEventRecord.status == Status.PENDING.value,
                StockNotificationEventRecord.received_on == day,
            )
            .subquery()
        )
        stmt = (
            select(StockNotificationEventRecord)
            .join(ranked, StockNotificationEventRecord.id == ranked.c.id)
            .where(ranked.c.row_rank == 1)
            .order_by(
                StockNotificationEventRecord.received_at.asc(),
                StockNotificationEventRecord.id.asc(),
            )
        )
        return [_to_domain(r) for r in self._scalars(stmt)]

    def exists_sent_for_recipient_sku_on_day(self, recipient_id: str, sku: str, day: date) -> bool:
        sent = select(StockNotificationEventRecord.id).where(
            StockNotificationEventRecord.recipient_id == recipient_id,
            StockNotificationEventRecord.sku == sku,
            StockNotificationEventRecord.received_on == day,
            StockNotificationEventRecord.status == Status.SENT.value,
        )
        return bool(self._scalar(
            select(sent.exists()), f"check sent events for recipient={recipient_id}, sku={sku}"
        ))

    def find_by_id(self, event_id: str) -> Optional[StockNotificationEvent]:
        stmt = select(StockNotificationEventRecord).where(StockNotificationEventRecord.id == event_id)
        records = self._scalars(stmt)
        return _to_domain(records[0]) if records else None

    def find_by_status(
        self,
        status: StockNotificationEventStatus,
        limit: Optional[int] = None
    ) -> List[StockNotificationEvent]:
        stmt = select(StockNotificationEventRecord).where(
            StockNotificationEventRecord.status == status.value
        ).order_by(StockNotificationEventRecord.received_at.asc())

        if limit is not None:
            stmt = stmt.limit(limit)

        return [_to_domain(r) for r in self._scalars(stmt)]

    def find_pending_for_day(self, day: date) -> List[StockNotificationEvent]:
        stmt = select(StockNotificationEventRecord).where(
            StockNotificationEventRecord.status == Status.PENDING.value,
            StockNotificationEventRecord.received_on == day,
        ).order_by(StockNotificationEventRecord.received_at.asc(), StockNotificationEventRecord.id.asc())
        return [_to_domain(r) for r in self._scalars(stmt)]

    def count_pending_for_day(self, day: date) -> PendingCount:
        pending = (
            StockNotificationEventRecord.status == Status.PENDING.value,
            StockNotificationEventRecord.received_on == day,
        )
        pairs = (
            select(StockNotificationEventRecord.recipient_id, StockNotificationEventRecord.sku)
            .where(*pending)
            .distinct()
            .subquery()
        )
        description = f"count pending events for {day}"
        total = self._scalar(
            select(func.count()).select_from(StockNotificationEventRecord).where(*pending), description
        ) or 0
        distinct = self._scalar(select(func.count()).select_from(pairs), description) or 0

        return PendingCount(date=day, total_pending_events=total, distinct_recipient_sku_pairs=distinct)

