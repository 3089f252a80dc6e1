"""Exceptions raised by the stock notification pipeline."""

from typing import Optional


class StockNotificationError(Exception):
    """Base class for all stock notification errors."""


class InvalidMessageError(StockNotificationError):
    """Queue message cannot be turned into an event and must be dropped."""


class PersistenceError(StockNotificationError):
    """Event store read or write failed."""


class InvalidTransitionError(StockNotificationError):
    """Status change not allowed by the event state machine."""


class DeliveryError(StockNotificationError):
    """
    Delivery to the campaign-trigger API failed.

    The remote system exposes no structured error taxonomy, so the message
    text is the only way to tell a configuration problem from a rejected
    payload.
    """

    def __init__(self, message: str, event_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.event_id = event_id

    def __str__(self) -> str:
        return self.message
