#!/usr/bin/env python3
"""
Stock Notification Batch Processor

Delivers at most one back-in-stock notification per (recipient, sku) pair
per day. For every representative PENDING event of the day, in
(received_at, id) order:

1. Already SENT for the pair today -> SKIPPED, no delivery
2. PENDING -> PROCESSING
3. Deliver:
   - success: SENT, then every other PENDING sibling -> SKIPPED
   - DeliveryError: FAILED with the client's message (siblings untouched)
   - anything else: FAILED with "Unexpected error: ..."
4. Move on regardless of the outcome

Nothing raised while handling one pair escapes the run; the returned
ProcessDayResult is the only summary.

Usage:
    processor = StockNotificationProcessor(delivery_client, uow_factory())
    result = processor.process_day(date(2025, 1, 31))
"""

import logging
from datetime import date, datetime, tzinfo
from typing import Optional

from database.uow import StockEventUowFactory, uow_factory
from database.repositories.stock_event import StockNotificationEventRepository
from notification.delivery import StockDeliveryClient
from notification.exceptions import DeliveryError
from notification.models import (
    StockNotificationEvent,
    StockNotificationEventStatus,
    ProcessDayResult,
    PendingCount,
)

logger = logging.getLogger(__name__)

Status = StockNotificationEventStatus

ALREADY_SENT_REASON = "Duplicate: notification already sent for this recipient-SKU today"
SIBLING_SENT_REASON = "Duplicate: another event for the same recipient-SKU was sent"
UNEXPECTED_ERROR_PREFIX = "Unexpected error: "


class StockNotificationProcessor:
    """Runs the daily deduplicate-and-deliver pass."""

    def __init__(
        self,
        delivery_client: StockDeliveryClient,
        uow: Optional[StockEventUowFactory] = None,
        local_tz: Optional[tzinfo] = None
    ):
        """
        Args:
            delivery_client: Campaign-trigger client
            uow: Factory returning a repository unit of work
            local_tz: Time zone defining "today" when no date is given
        """
        self.delivery_client = delivery_client
        self.uow = uow or uow_factory()
        self.local_tz = local_tz

    def today(self) -> date:
        return datetime.now(self.local_tz).date()

    def process_day(self, day: Optional[date] = None) -> ProcessDayResult:
        """Process every distinct pending pair received on `day` (default: today)."""
        day = day or self.today()
        result = ProcessDayResult(date=day)
        logger.info(f"Processing stock notification events for date: {day}")

        try:
            with self.uow() as repo:
                events = repo.find_distinct_pending_for_day(day)
                result.total_events = len(events)
                logger.info(f"Found {len(events)} distinct pending events to process for date: {day}")

                for event in events:
                    self._process_event(repo, event, day, result)
        except Exception as e:
            # Selecting the day's events failed; nothing was attempted
            logger.error(f"Error processing stock notifications for {day}: {e}", exc_info=True)
            result.run_error = str(e)
            result.error_messages.append(f"Run failed: {e}")

        logger.info(
            f"Completed processing stock notifications for date {day}. Total: {result.total_events}, "
            f"Sent: {result.total_sent}, Failed: {result.total_failed}, Skipped: {result.total_skipped}"
        )
        return result

    def pending_count(self, day: Optional[date] = None) -> PendingCount:
        day = day or self.today()
        with self.uow() as repo:
            return repo.count_pending_for_day(day)

    def _process_event(
        self,
        repo: StockNotificationEventRepository,
        event: StockNotificationEvent,
        day: date,
        result: ProcessDayResult
    ) -> None:
        try:
            if repo.exists_sent_for_recipient_sku_on_day(event.recipient_id, event.sku, day):
                logger.debug(f"Notification already sent for recipient={event.recipient_id}, sku={event.sku} on {day}. Skipping.")
                if repo.update_status_with_error(event.id, Status.SKIPPED, ALREADY_SENT_REASON):
                    result.total_skipped += 1
                return

            if not repo.update_status(event.id, Status.PROCESSING):
                # Gone, or claimed by an overlapping run
                logger.info(f"Event {event.id} is no longer pending, skipping")
                return
            event = event.mark_processing()

            self.delivery_client.send_stock_notification(event)

            if not repo.update_status(event.id, Status.SENT):
                # Delivered, but the row left PROCESSING under us
                logger.warning(f"Event {event.id} was delivered but could not be marked sent")
            result.total_sent += 1
            event = event.mark_sent()

        except DeliveryError as e:
            logger.error(f"Failed to deliver stock notification event {event.id}: {e.message}")
            self._mark_failed(repo, event, e.message)
            result.record_failure(event.id, e.message)

        except Exception as e:
            logger.error(f"Unexpected error processing stock notification event {event.id}: {e}", exc_info=True)
            self._mark_failed(repo, event, f"{UNEXPECTED_ERROR_PREFIX}{e}")
            result.record_failure(event.id, str(e))

        else:
            self._skip_siblings(repo, event, day, result)

    def _skip_siblings(
        self,
        repo: StockNotificationEventRepository,
        event: StockNotificationEvent,
        day: date,
        result: ProcessDayResult
    ) -> None:
        if event.status != Status.SENT:
            return

        try:
            siblings = repo.mark_siblings_skipped(
                event.recipient_id, event.sku, day, event.id, SIBLING_SENT_REASON
            )
        except Exception as e:
            # The send stands; leftover siblings hit the sent-today guard next run
            logger.error(f"Event {event.id} was sent but its duplicates could not be skipped: {e}")
            result.error_messages.append(f"Event {event.id}: sent, but duplicates not skipped: {e}")
            return

        result.total_skipped += siblings
        logger.info(
            f"Successfully processed stock notification: eventId={event.id}, "
            f"recipient={event.recipient_id}, sku={event.sku}, skippedDuplicates={siblings}"
        )

    def _mark_failed(self, repo: StockNotificationEventRepository, event: StockNotificationEvent, message: str) -> None:
        try:
            repo.update_status_with_error(event.id, Status.FAILED, message)
        except Exception as e:
            logger.error(f"Could not record failure for event {event.id}: {e}")
