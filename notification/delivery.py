#!/usr/bin/env python3
"""
Stock Delivery Clients

Thin clients for the external campaign-trigger system. A client either
returns normally (delivered) or raises DeliveryError with a human-readable
message. Clients never retry; a failed event is left for a later run.

Usage:
    from notification.delivery import CleverTapDeliveryClient

    client = CleverTapDeliveryClient(account_id, passcode, base_url)
    client.send_stock_notification(event)
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Any, Optional
import logging
import json
import os

import requests

from notification.exceptions import DeliveryError
from notification.models import StockNotificationEvent

logger = logging.getLogger(__name__)

STOCK_EVENT_NAME = "stock_status_changed"
STOCK_NOTIFICATION_TYPE = "BACK_IN_STOCK"
STOCK_STATUS_AVAILABLE = "available"


def _is_dry_run_mode() -> bool:
    """Check if delivery should run in dry-run (log-only) mode."""
    return os.environ.get('NOTIFICATION_DRY_RUN', '').lower() in ('true', '1', 'yes')


def build_stock_event_data(event: StockNotificationEvent) -> Dict[str, Any]:
    """Key-value payload the back-in-stock campaign expects."""
    evt_data = {
        'notification_type': STOCK_NOTIFICATION_TYPE,
        'stock_status': STOCK_STATUS_AVAILABLE,
        'productId': str(event.product_id),
        'sku': event.sku,
    }
    if event.screen is not None:
        evt_data['screen'] = event.screen
    if event.source_type is not None:
        evt_data['sourceType'] = event.source_type
    if event.source_name is not None:
        evt_data['sourceName'] = event.source_name
    return evt_data


class StockDeliveryClient(ABC):
    """
    Abstract delivery client for stock notifications.

    Implementations raise DeliveryError on any failure. The return value of
    send_stock_notification is only meaningful as True.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the client identifier."""
        pass

    @abstractmethod
    def send_stock_notification(self, event: StockNotificationEvent) -> bool:
        """
        Deliver a "stock available" notification for one event.

        Raises:
            DeliveryError: If the remote system rejects the request or is unreachable
        """
        pass

    def validate_config(self) -> bool:
        return True


class CleverTapDeliveryClient(StockDeliveryClient):
    """Raises `stock_status_changed` events through the CleverTap upload API."""

    def __init__(
        self,
        account_id: Optional[str],
        passcode: Optional[str],
        base_url: str,
        timeout_seconds: int = 30,
        session: Optional[requests.Session] = None
    ):
        self.account_id = account_id
        self.passcode = passcode
        self.base_url = base_url.rstrip('/')
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    @property
    def name(self) -> str:
        return 'clevertap'

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/1/upload"

    def validate_config(self) -> bool:
        return bool(self.account_id and self.passcode and self.base_url)

    def build_request(self, event: StockNotificationEvent) -> Dict[str, Any]:
        return {
            'd': [{
                'identity': event.recipient_id,
                'type': 'event',
                'evtName': STOCK_EVENT_NAME,
                'evtData': build_stock_event_data(event),
                'ts': int(datetime.now(timezone.utc).timestamp()),
            }]
        }

    def send_stock_notification(self, event: StockNotificationEvent) -> bool:
        if not event.recipient_id or not event.recipient_id.strip():
            raise DeliveryError("No valid recipient ID for stock notification", event.id)

        if not self.validate_config():
            raise DeliveryError("CleverTap is not configured (account id, passcode and base url are required)", event.id)

        payload = self.build_request(event)

        if _is_dry_run_mode():
            logger.info(f"[DRY RUN] CleverTap upload for event {event.id}: {json.dumps(payload)}")
            return True

        logger.info(f"Uploading {STOCK_EVENT_NAME} event to CleverTap: eventId={event.id}, recipient={event.recipient_id}, sku={event.sku}")

        headers = {
            'X-CleverTap-Account-Id': self.account_id,
            'X-CleverTap-Passcode': self.passcode,
            'Content-Type': 'application/json',
        }

        try:
            response = self.session.post(
                self.endpoint,
                json=payload,
                headers=headers,
                timeout=self.timeout_seconds
            )
        except requests.RequestException as e:
            logger.error(f"Failed to upload stock notification event to CleverTap: eventId={event.id}, error={e}")
            raise DeliveryError(f"Failed to send stock notification: {e}", event.id) from e

        response_body = response.text
        logger.debug(f"CleverTap response ({response.status_code}): {response_body}")
        try:
            result = response.json()
        except ValueError as e:
            raise DeliveryError(f"Unknown CleverTap response: {response_body}", event.id) from e

        return self._check_response(event, result, response_body)

    def _check_response(self, event: StockNotificationEvent, result: Any, response_body: str) -> bool:
        if not isinstance(result, dict):
            raise DeliveryError(f"Unknown CleverTap response: {response_body}", event.id)

        if 'processed' in result:
            processed = int(result.get('processed') or 0)
            unprocessed = result.get('unprocessed') or 0
            if processed > 0:
                logger.info(f"CleverTap accepted event {event.id} (processed={processed})")
                return True
            message = f"CleverTap processed 0 events, unprocessed: {unprocessed}, response: {response_body}"
            logger.error(message)
            raise DeliveryError(message, event.id)

        if result.get('status') == 'success':
            logger.info(f"CleverTap accepted event {event.id}")
            return True

        if 'error' in result:
            logger.error(f"CleverTap API error for event {event.id}: {result['error']}")
            raise DeliveryError(f"CleverTap API error: {result['error']}", event.id)

        message = f"Unknown CleverTap response: {response_body}"
        logger.error(message)
        raise DeliveryError(message, event.id)
