#!/usr/bin/env python3
"""
Stock Notification Intake Consumer

Turns queue messages into PENDING StockNotificationEvent rows.

Per message:
1. Decode and validate the body
2. Invalid -> delete from the queue, store nothing (dropped)
3. Valid -> save a new PENDING event
4. Delete the message only after the save succeeded; on a storage failure
   the message stays on the queue and is redelivered after the visibility
   timeout (retained)

Messages are handled one at a time and independently: a failure on one
never affects the rest of the poll.

Usage:
    consumer = IntakeConsumer(queue, uow_factory(), local_tz=ZoneInfo("Asia/Kolkata"))
    stop = threading.Event()
    consumer.run(stop)   # until stop.set()
"""

import logging
import threading
from datetime import tzinfo
from enum import Enum
from typing import Optional

from database.uow import StockEventUowFactory, uow_factory
from notification.exceptions import InvalidMessageError
from notification.models import StockNotificationEvent, IntakeStats
from notification.payload import decode_message_body
from notification.queue import MessageQueue, QueueMessage

logger = logging.getLogger(__name__)


class IntakeOutcome(Enum):
    """What happened to a single queue message."""
    STORED = "stored"
    DROPPED = "dropped"
    RETAINED = "retained"


class IntakeConsumer:
    """Long-polling consumer that persists stock notification messages."""

    def __init__(
        self,
        queue: MessageQueue,
        uow: Optional[StockEventUowFactory] = None,
        local_tz: Optional[tzinfo] = None,
        polling_interval_seconds: float = 5.0
    ):
        """
        Args:
            queue: Inbound message queue
            uow: Factory returning a repository unit of work
            local_tz: Time zone whose calendar decides an event's day
            polling_interval_seconds: Back-off after a failed receive
        """
        self.queue = queue
        self.uow = uow or uow_factory()
        self.local_tz = local_tz
        self.polling_interval_seconds = polling_interval_seconds

    def run(self, stop_event: threading.Event) -> IntakeStats:
        """
        Poll until stop_event is set.

        The flag is checked between polls, so a poll that has started is
        always allowed to finish. Returns totals for the whole run.
        """
        logger.info("Stock notification intake started")
        totals = IntakeStats()

        while not stop_event.is_set():
            try:
                stats = self.poll_once()
            except Exception as e:
                logger.error(f"Error while polling stock notification queue: {e}", exc_info=True)
                # Interruptible back-off
                stop_event.wait(self.polling_interval_seconds)
                continue

            totals.merge(stats)
            if not stats.received and not self.queue.wait_time_seconds:
                # Nothing blocked in receive(), so pause before the next poll
                stop_event.wait(self.polling_interval_seconds)

        logger.info(
            f"Stock notification intake stopped. Received: {totals.received}, Stored: {totals.stored}, "
            f"Dropped: {totals.dropped}, Retained: {totals.retained}"
        )
        return totals

    def poll_once(self) -> IntakeStats:
        """Receive one batch and handle every message in it."""
        stats = IntakeStats()
        messages = self.queue.receive()

        if not messages:
            logger.debug("No messages received from stock notification queue")
            return stats

        logger.info(f"Received {len(messages)} messages from stock notification queue")

        for message in messages:
            stats.received += 1
            try:
                outcome = self.handle_message(message)
            except Exception as e:
                logger.error(f"Error processing message {message.message_id}: {e}", exc_info=True)
                outcome = IntakeOutcome.RETAINED

            if outcome == IntakeOutcome.STORED:
                stats.stored += 1
            elif outcome == IntakeOutcome.DROPPED:
                stats.dropped += 1
            else:
                stats.retained += 1

        if stats.dropped:
            logger.warning(f"Dropped {stats.dropped} invalid stock notification messages")

        return stats

    def handle_message(self, message: QueueMessage) -> IntakeOutcome:
        logger.debug(f"Processing message {message.message_id}")

        try:
            payload, raw = decode_message_body(message.body)
        except InvalidMessageError as e:
            # Unrecoverable: acknowledge so it is never redelivered
            logger.warning(f"Message {message.message_id} is invalid, dropping: {e}")
            self._acknowledge(message)
            return IntakeOutcome.DROPPED

        event = StockNotificationEvent.create(
            source_message_id=message.message_id,
            source_group_id=message.group_id,
            recipient_id=payload.recipient_id,
            guest_id=payload.guest_id,
            product_id=payload.item_id,
            sku=payload.sku,
            screen=payload.screen,
            source_type=payload.source_type,
            source_name=payload.source_name,
            raw_payload=raw,
            local_tz=self.local_tz,
        )

        try:
            with self.uow() as repo:
                repo.save(event)
        except Exception as e:
            # Left on the queue; redelivered after the visibility timeout
            logger.error(f"Failed to store message {message.message_id}, leaving it on the queue: {e}")
            return IntakeOutcome.RETAINED

        logger.info(f"Saved stock notification event: id={event.id}, recipient={event.recipient_id}, sku={event.sku}")
        self._acknowledge(message)
        return IntakeOutcome.STORED

    def _acknowledge(self, message: QueueMessage) -> None:
        try:
            self.queue.delete(message)
        except Exception as e:
            logger.error(f"Failed to delete message {message.message_id} from queue: {e}")
