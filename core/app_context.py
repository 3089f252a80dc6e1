from dataclasses import dataclass
from typing import Optional

from core.config_loader import AppConfig, CleverTapConfig
from database.database import build_session_factory
from database.uow import StockEventUowFactory, uow_factory
from notification.delivery import StockDeliveryClient, CleverTapDeliveryClient
from notification.intake import IntakeConsumer
from notification.processor import StockNotificationProcessor
from notification.queue import SqsMessageQueue


@dataclass
class AppContext:
    """Application context container that holds all wired dependencies.

    DB access goes through `uow`, which opens a fresh session per unit of
    work. The SQS queue is only built when intake is started.
    """
    config: AppConfig
    uow: StockEventUowFactory
    delivery_client: StockDeliveryClient
    processor: StockNotificationProcessor

    @classmethod
    def build(cls, config: AppConfig) -> "AppContext":
        """Build an AppContext from config.

        Args:
            config: Loaded application configuration

        Returns:
            Fully wired AppContext instance
        """
        uow = uow_factory(build_session_factory(config.database.url))
        delivery_client = cls._build_delivery_client(config.clevertap)
        processor = StockNotificationProcessor(
            delivery_client=delivery_client,
            uow=uow,
            local_tz=config.stock.tzinfo
        )

        return cls(
            config=config,
            uow=uow,
            delivery_client=delivery_client,
            processor=processor
        )

    @staticmethod
    def _build_delivery_client(clevertap_config: CleverTapConfig) -> StockDeliveryClient:
        return CleverTapDeliveryClient(
            account_id=clevertap_config.account_id,
            passcode=clevertap_config.passcode,
            base_url=clevertap_config.resolved_base_url,
            timeout_seconds=clevertap_config.timeout_seconds
        )

    def build_intake_consumer(self, queue: Optional[SqsMessageQueue] = None) -> IntakeConsumer:
        """Build the SQS intake consumer.

        Raises:
            ValueError: If the queue is disabled or has no URL configured
        """
        sqs_config = self.config.sqs

        if queue is None:
            if not sqs_config.enabled:
                raise ValueError("Stock notification SQS intake is disabled in config")
            if not sqs_config.queue_url:
                raise ValueError("Stock notification SQS queue URL is not configured")

            queue = SqsMessageQueue(
                queue_url=sqs_config.queue_url,
                region=sqs_config.region,
                max_messages=sqs_config.max_messages,
                wait_time_seconds=sqs_config.wait_time_seconds,
                visibility_timeout_seconds=sqs_config.visibility_timeout_seconds,
                endpoint_url=sqs_config.endpoint_url
            )

        return IntakeConsumer(
            queue=queue,
            uow=self.uow,
            local_tz=self.config.stock.tzinfo,
            polling_interval_seconds=sqs_config.polling_interval_seconds
        )
