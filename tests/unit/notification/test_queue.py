import unittest
from unittest.mock import MagicMock, patch

from notification.queue import SqsMessageQueue, QueueMessage

QUEUE_URL = "https://sqs.ap-south-1.amazonaws.com/123456789012/stock.fifo"


class TestSqsMessageQueue(unittest.TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.queue = SqsMessageQueue(QUEUE_URL, max_messages=10, wait_time_seconds=20,
                                     visibility_timeout_seconds=45, client=self.client)

    def test_receive_maps_messages(self):
        self.client.receive_message.return_value = {
            'Messages': [{
                'MessageId': 'm-1',
                'ReceiptHandle': 'r-1',
                'Body': '{"userId":"U1"}',
                'Attributes': {'MessageGroupId': 'g-1'},
            }]
        }

        messages = self.queue.receive()

        self.assertEqual(messages, [QueueMessage(
            message_id='m-1', body='{"userId":"U1"}', receipt_handle='r-1',
            group_id='g-1', attributes={'MessageGroupId': 'g-1'},
        )])
        kwargs = self.client.receive_message.call_args.kwargs
        self.assertEqual(kwargs['QueueUrl'], QUEUE_URL)
        self.assertEqual(kwargs['MaxNumberOfMessages'], 10)
        self.assertEqual(kwargs['WaitTimeSeconds'], 20)
        self.assertEqual(kwargs['VisibilityTimeout'], 45)

    def test_receive_with_no_messages(self):
        self.client.receive_message.return_value = {}
        self.assertEqual(self.queue.receive(), [])

    def test_delete_uses_receipt_handle(self):
        self.queue.delete(QueueMessage(message_id='m-1', body='{}', receipt_handle='r-1'))
        self.client.delete_message.assert_called_once_with(QueueUrl=QUEUE_URL, ReceiptHandle='r-1')

    def test_limits_are_clamped(self):
        queue = SqsMessageQueue(QUEUE_URL, max_messages=50, wait_time_seconds=60, client=self.client)
        self.assertEqual(queue.max_messages, 10)
        self.assertEqual(queue.wait_time_seconds, 20)

    def test_queue_url_required(self):
        with self.assertRaises(ValueError):
            SqsMessageQueue("", client=self.client)

    @patch('notification.queue.boto3')
    def test_builds_boto3_client(self, mock_boto3):
        SqsMessageQueue(QUEUE_URL, region="eu-west-1", endpoint_url="http://localhost:4566")
        mock_boto3.client.assert_called_once_with(
            'sqs', region_name="eu-west-1", endpoint_url="http://localhost:4566"
        )


if __name__ == '__main__':
    unittest.main()
