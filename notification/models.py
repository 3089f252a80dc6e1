"""
Stock notification domain types.

StockNotificationEvent is an immutable value. State changes produce a new
copy through the mark_* helpers, which refuse transitions the state machine
does not allow:

    PENDING -> PROCESSING -> SENT | FAILED | SKIPPED
    PENDING -> SKIPPED | FAILED
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone, tzinfo
from enum import Enum
from typing import Optional, Dict, Any, List, FrozenSet

from notification.exceptions import InvalidTransitionError


class StockNotificationEventStatus(str, Enum):
    """Lifecycle states of a stock notification event."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: FrozenSet[StockNotificationEventStatus] = frozenset({
    StockNotificationEventStatus.SENT,
    StockNotificationEventStatus.FAILED,
    StockNotificationEventStatus.SKIPPED,
})

ALLOWED_TRANSITIONS: Dict[StockNotificationEventStatus, FrozenSet[StockNotificationEventStatus]] = {
    StockNotificationEventStatus.PENDING: frozenset({
        StockNotificationEventStatus.PROCESSING,
        StockNotificationEventStatus.SKIPPED,
        StockNotificationEventStatus.FAILED,
    }),
    StockNotificationEventStatus.PROCESSING: frozenset({
        StockNotificationEventStatus.SENT,
        StockNotificationEventStatus.FAILED,
        StockNotificationEventStatus.SKIPPED,
    }),
    StockNotificationEventStatus.SENT: frozenset(),
    StockNotificationEventStatus.FAILED: frozenset(),
    StockNotificationEventStatus.SKIPPED: frozenset(),
}


def can_transition(current: StockNotificationEventStatus, new: StockNotificationEventStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


def predecessors_of(status: StockNotificationEventStatus) -> List[StockNotificationEventStatus]:
    """Statuses an event may be in for a move to `status` to be legal."""
    return [
        current for current, targets in ALLOWED_TRANSITIONS.items()
        if status in targets
    ]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class StockNotificationEvent:
    """One ingested "item available again" notice for a recipient and product."""
    id: str
    source_message_id: str
    recipient_id: str
    product_id: int
    sku: str
    received_at: datetime
    received_on: date
    source_group_id: Optional[str] = None
    guest_id: Optional[str] = None
    screen: Optional[str] = None
    source_type: Optional[str] = None
    source_name: Optional[str] = None
    status: StockNotificationEventStatus = StockNotificationEventStatus.PENDING
    processed_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    raw_payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        source_message_id: str,
        recipient_id: str,
        product_id: int,
        sku: str,
        source_group_id: Optional[str] = None,
        guest_id: Optional[str] = None,
        screen: Optional[str] = None,
        source_type: Optional[str] = None,
        source_name: Optional[str] = None,
        raw_payload: Optional[Dict[str, Any]] = None,
        received_at: Optional[datetime] = None,
        local_tz: Optional[tzinfo] = None,
    ) -> "StockNotificationEvent":
        """
        Build a new PENDING event.

        Args:
            received_at: Intake instant (defaults to now, UTC)
            local_tz: Time zone whose calendar defines the event's day
                (defaults to UTC)

        Raises:
            ValueError: If recipient_id or sku is blank
        """
        if not recipient_id or not recipient_id.strip():
            raise ValueError("recipient_id must not be blank")
        if not sku or not sku.strip():
            raise ValueError("sku must not be blank")

        received_at = received_at or _utcnow()
        received_on = received_at.astimezone(local_tz or timezone.utc).date()

        return cls(
            id=str(uuid.uuid4()),
            source_message_id=source_message_id,
            source_group_id=source_group_id,
            recipient_id=recipient_id,
            guest_id=guest_id,
            product_id=product_id,
            sku=sku,
            screen=screen,
            source_type=source_type,
            source_name=source_name,
            status=StockNotificationEventStatus.PENDING,
            received_at=received_at,
            received_on=received_on,
            raw_payload=dict(raw_payload or {}),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def with_status(self, status: StockNotificationEventStatus, **changes: Any) -> "StockNotificationEvent":
        """Return a copy in `status`, applying any other field changes."""
        if not can_transition(self.status, status):
            raise InvalidTransitionError(
                f"Event {self.id}: cannot move from {self.status.value} to {status.value}"
            )
        return replace(self, status=status, **changes)

    def mark_processing(self, now: Optional[datetime] = None) -> "StockNotificationEvent":
        return self.with_status(StockNotificationEventStatus.PROCESSING, processed_at=now or _utcnow())

    def mark_sent(self, now: Optional[datetime] = None) -> "StockNotificationEvent":
        now = now or _utcnow()
        return self.with_status(
            StockNotificationEventStatus.SENT,
            sent_at=now,
            processed_at=now,
            error_message=None,
        )

    def mark_failed(self, error_message: str, now: Optional[datetime] = None) -> "StockNotificationEvent":
        return self.with_status(
            StockNotificationEventStatus.FAILED,
            error_message=error_message,
            processed_at=now or _utcnow(),
            retry_count=self.retry_count + 1,
        )

    def mark_skipped(self, reason: str, now: Optional[datetime] = None) -> "StockNotificationEvent":
        return self.with_status(
            StockNotificationEventStatus.SKIPPED,
            error_message=reason,
            processed_at=now or _utcnow(),
        )


@dataclass
class ProcessDayResult:
    """Summary of one batch run over a single day."""
    date: date
    total_events: int = 0
    total_sent: int = 0
    total_failed: int = 0
    total_skipped: int = 0
    failed_event_ids: List[str] = field(default_factory=list)
    error_messages: List[str] = field(default_factory=list)
    run_error: Optional[str] = None

    @property
    def total_processed(self) -> int:
        return self.total_sent + self.total_failed

    @property
    def success(self) -> bool:
        return self.total_failed == 0 and self.run_error is None

    def record_failure(self, event_id: str, message: str) -> None:
        self.total_failed += 1
        self.failed_event_ids.append(event_id)
        self.error_messages.append(f"Event {event_id}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date.isoformat(),
            'total_events': self.total_events,
            'total_processed': self.total_processed,
            'total_sent': self.total_sent,
            'total_failed': self.total_failed,
            'total_skipped': self.total_skipped,
            'failed_event_ids': list(self.failed_event_ids),
            'error_messages': list(self.error_messages),
            'run_error': self.run_error,
            'success': self.success,
        }


@dataclass
class IntakeStats:
    """Counts for one intake poll."""
    received: int = 0
    stored: int = 0
    dropped: int = 0
    retained: int = 0

    def merge(self, other: "IntakeStats") -> None:
        self.received += other.received
        self.stored += other.stored
        self.dropped += other.dropped
        self.retained += other.retained


@dataclass(frozen=True)
class PendingCount:
    """Pending events for a day versus the distinct pairs among them."""
    date: date
    total_pending_events: int
    distinct_recipient_sku_pairs: int
