"""
Inbound queue transport for stock notification messages.

SqsMessageQueue long-polls an SQS (FIFO) queue. A received message stays
invisible for the visibility timeout; it is only removed by delete(). A
message that is never deleted becomes visible again and is redelivered,
which is what gives intake its at-least-once behaviour.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any

import boto3

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueMessage:
    """One message as received from the queue."""
    message_id: str
    body: str
    receipt_handle: str
    group_id: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)


class MessageQueue(ABC):
    """Receive/acknowledge contract used by the intake consumer."""

    # Seconds receive() may block waiting for messages; 0 returns at once
    wait_time_seconds: int = 0

    @abstractmethod
    def receive(self) -> List[QueueMessage]:
        """Block for up to the configured wait time and return received messages."""
        pass

    @abstractmethod
    def delete(self, message: QueueMessage) -> None:
        """Acknowledge a message so it is never redelivered."""
        pass


class SqsMessageQueue(MessageQueue):
    """MessageQueue backed by AWS SQS."""

    def __init__(
        self,
        queue_url: str,
        region: str = "ap-south-1",
        max_messages: int = 10,
        wait_time_seconds: int = 20,
        visibility_timeout_seconds: int = 30,
        endpoint_url: Optional[str] = None,
        client=None
    ):
        """
        Args:
            queue_url: SQS queue URL
            region: AWS region
            max_messages: Messages per receive (SQS caps this at 10)
            wait_time_seconds: Long-poll wait (SQS caps this at 20)
            visibility_timeout_seconds: How long a received message stays hidden
            endpoint_url: Custom endpoint (localstack)
            client: Pre-configured boto3 SQS client (for testing)
        """
        if not queue_url:
            raise ValueError("SQS queue URL is required")

        self.queue_url = queue_url
        self.max_messages = max(1, min(max_messages, 10))
        self.wait_time_seconds = max(0, min(wait_time_seconds, 20))
        self.visibility_timeout_seconds = visibility_timeout_seconds

        if client is not None:
            self._client = client
        else:
            client_kwargs = {'region_name': region}
            if endpoint_url:
                client_kwargs['endpoint_url'] = endpoint_url
            self._client = boto3.client('sqs', **client_kwargs)

    def receive(self) -> List[QueueMessage]:
        response = self._client.receive_message(
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=self.max_messages,
            WaitTimeSeconds=self.wait_time_seconds,
            VisibilityTimeout=self.visibility_timeout_seconds,
            AttributeNames=['All'],
            MessageAttributeNames=['All'],
        )

        messages = []
        for raw in response.get('Messages', []):
            attributes = raw.get('Attributes') or {}
            messages.append(QueueMessage(
                message_id=raw['MessageId'],
                body=raw.get('Body', ''),
                receipt_handle=raw['ReceiptHandle'],
                group_id=attributes.get('MessageGroupId'),
                attributes=attributes,
            ))
        return messages

    def delete(self, message: QueueMessage) -> None:
        self._client.delete_message(
            QueueUrl=self.queue_url,
            ReceiptHandle=message.receipt_handle,
        )
        logger.debug(f"Deleted message {message.message_id} from SQS queue")
