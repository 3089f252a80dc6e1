"""
Stock Notification Module

Back-in-stock notifications with once-per-day deduplication.

Pieces:
    notification.intake     - IntakeConsumer (queue -> event store)
    notification.processor  - StockNotificationProcessor (daily batch)
    notification.delivery   - CleverTapDeliveryClient (campaign trigger)
    notification.queue      - SqsMessageQueue (inbound transport)
    notification.tasks      - RQ task for scheduled runs

Usage:
    from core.app_context import AppContext
    from core.config_loader import load_config

    context = AppContext.build(load_config())
    result = context.processor.process_day()
"""

from notification.exceptions import (
    StockNotificationError,
    InvalidMessageError,
    PersistenceError,
    InvalidTransitionError,
    DeliveryError,
)

from notification.models import (
    StockNotificationEvent,
    StockNotificationEventStatus,
    ProcessDayResult,
    IntakeStats,
    PendingCount,
    can_transition,
    predecessors_of,
)

from notification.payload import (
    StockMessagePayload,
    decode_message_body,
)

__all__ = [
    # Exceptions
    'StockNotificationError',
    'InvalidMessageError',
    'PersistenceError',
    'InvalidTransitionError',
    'DeliveryError',
    # Models
    'StockNotificationEvent',
    'StockNotificationEventStatus',
    'ProcessDayResult',
    'IntakeStats',
    'PendingCount',
    'can_transition',
    'predecessors_of',
    # Payload
    'StockMessagePayload',
    'decode_message_body',
]
