#!/usr/bin/env python3
"""
Test doubles for the stock notification pipeline.

- sqlite_session_factory(): in-memory SQLite event store with tables created
- make_event(): PENDING StockNotificationEvent with sensible defaults
- FakeQueue: in-memory MessageQueue recording deletes
- RecordingDeliveryClient: StockDeliveryClient with scripted failures
"""
import json
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Dict, List, Any, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database.models import Base
from notification.delivery import StockDeliveryClient
from notification.exceptions import DeliveryError
from notification.models import StockNotificationEvent
from notification.queue import MessageQueue, QueueMessage


def sqlite_session_factory() -> sessionmaker:
    """Fresh in-memory database shared by every session from the factory."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def make_event(
    recipient_id: str = "U1",
    sku: str = "SKU1",
    received_at: Optional[datetime] = None,
    product_id: int = 101,
    message_id: str = "msg-1",
    **overrides
) -> StockNotificationEvent:
    event = StockNotificationEvent.create(
        source_message_id=message_id,
        recipient_id=recipient_id,
        product_id=product_id,
        sku=sku,
        received_at=received_at or datetime(2025, 3, 14, 9, 0, tzinfo=timezone.utc),
        raw_payload={'userId': recipient_id, 'itemId': product_id, 'skuid': sku},
    )
    if overrides:
        event = replace(event, **overrides)
    return event


def make_message(body: Any, message_id: str = "msg-1", group_id: Optional[str] = "group-1") -> QueueMessage:
    if not isinstance(body, str):
        body = json.dumps(body)
    return QueueMessage(
        message_id=message_id,
        body=body,
        receipt_handle=f"receipt-{message_id}",
        group_id=group_id,
    )


class FakeQueue(MessageQueue):
    """Hands out pre-loaded batches, one per receive()."""

    def __init__(self, batches: Optional[List[List[QueueMessage]]] = None):
        self.batches = list(batches or [])
        self.deleted: List[str] = []
        self.receive_calls = 0

    def receive(self) -> List[QueueMessage]:
        self.receive_calls += 1
        if self.batches:
            return self.batches.pop(0)
        return []

    def delete(self, message: QueueMessage) -> None:
        self.deleted.append(message.message_id)


class RecordingDeliveryClient(StockDeliveryClient):
    """Records delivered events; raises for recipients listed in `failures`."""

    def __init__(self, failures: Optional[Dict[str, Exception]] = None):
        self.failures = failures or {}
        self.delivered: List[StockNotificationEvent] = []

    @property
    def name(self) -> str:
        return 'recording'

    def send_stock_notification(self, event: StockNotificationEvent) -> bool:
        error = self.failures.get(event.recipient_id)
        if error is not None:
            raise error
        self.delivered.append(event)
        return True


def failing_with(message: str) -> DeliveryError:
    return DeliveryError(message)
