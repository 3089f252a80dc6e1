import contextlib
import threading
import unittest
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

from notification.exceptions import PersistenceError
from notification.intake import IntakeConsumer, IntakeOutcome
from notification.models import IntakeStats, StockNotificationEventStatus
from tests.mocks.stock_mocks import FakeQueue, make_message


def mock_uow(repo):
    """Unit-of-work factory yielding the given (mock) repository."""
    @contextlib.contextmanager
    def _uow():
        yield repo
    return _uow


VALID_BODY = {"userId": "U1", "itemId": 101, "skuid": "SKU1", "screen": "pdp"}


class TestHandleMessage(unittest.TestCase):

    def setUp(self):
        self.repo = MagicMock()
        self.queue = FakeQueue()
        self.consumer = IntakeConsumer(self.queue, uow=mock_uow(self.repo), local_tz=ZoneInfo("Asia/Kolkata"))

    def test_valid_message_is_stored_then_acknowledged(self):
        message = make_message(VALID_BODY, message_id="m-1", group_id="g-1")

        outcome = self.consumer.handle_message(message)

        self.assertEqual(outcome, IntakeOutcome.STORED)
        self.assertEqual(self.queue.deleted, ["m-1"])
        saved = self.repo.save.call_args[0][0]
        self.assertEqual(saved.status, StockNotificationEventStatus.PENDING)
        self.assertEqual(saved.recipient_id, "U1")
        self.assertEqual(saved.product_id, 101)
        self.assertEqual(saved.sku, "SKU1")
        self.assertEqual(saved.screen, "pdp")
        self.assertEqual(saved.source_message_id, "m-1")
        self.assertEqual(saved.source_group_id, "g-1")
        self.assertEqual(saved.raw_payload, VALID_BODY)

    def test_guest_message_uses_guest_id(self):
        message = make_message({"guestId": "G7", "itemId": 5, "skuid": "S"})
        self.consumer.handle_message(message)

        saved = self.repo.save.call_args[0][0]
        self.assertEqual(saved.recipient_id, "G7")
        self.assertEqual(saved.guest_id, "G7")

    def test_invalid_message_is_dropped_and_acknowledged(self):
        message = make_message({"itemId": 5, "skuid": "S"}, message_id="bad")

        outcome = self.consumer.handle_message(message)

        self.assertEqual(outcome, IntakeOutcome.DROPPED)
        self.assertEqual(self.queue.deleted, ["bad"])
        self.repo.save.assert_not_called()

    def test_values_too_large_for_storage_are_dropped(self):
        bodies = [
            {"userId": "U1", "itemId": 2 ** 64, "skuid": "SKU1"},
            {"userId": "U" * 65, "itemId": 1, "skuid": "SKU1"},
            {"userId": "U1", "itemId": 1, "skuid": "S" * 65},
        ]
        for i, body in enumerate(bodies):
            with self.subTest(body=body):
                outcome = self.consumer.handle_message(make_message(body, message_id=f"big-{i}"))
                self.assertEqual(outcome, IntakeOutcome.DROPPED)

        self.assertEqual(self.queue.deleted, ["big-0", "big-1", "big-2"])
        self.repo.save.assert_not_called()

    def test_unparseable_body_is_dropped(self):
        outcome = self.consumer.handle_message(make_message("not json", message_id="junk"))
        self.assertEqual(outcome, IntakeOutcome.DROPPED)
        self.assertEqual(self.queue.deleted, ["junk"])

    def test_storage_failure_leaves_message_on_queue(self):
        self.repo.save.side_effect = PersistenceError("db down")

        outcome = self.consumer.handle_message(make_message(VALID_BODY))

        self.assertEqual(outcome, IntakeOutcome.RETAINED)
        self.assertEqual(self.queue.deleted, [])

    def test_delete_failure_does_not_undo_store(self):
        self.queue.delete = MagicMock(side_effect=RuntimeError("network"))

        outcome = self.consumer.handle_message(make_message(VALID_BODY))

        self.assertEqual(outcome, IntakeOutcome.STORED)
        self.repo.save.assert_called_once()


class TestPollAndRun(unittest.TestCase):

    def test_poll_once_counts_each_message_independently(self):
        repo = MagicMock()
        repo.save.side_effect = [None, PersistenceError("db down"), None]
        batch = [
            make_message(VALID_BODY, message_id="m-1"),
            make_message({"skuid": "S"}, message_id="m-2"),
            make_message(VALID_BODY, message_id="m-3"),
            make_message(VALID_BODY, message_id="m-4"),
        ]
        queue = FakeQueue([batch])
        consumer = IntakeConsumer(queue, uow=mock_uow(repo))

        stats = consumer.poll_once()

        self.assertEqual(stats, IntakeStats(received=4, stored=2, dropped=1, retained=1))
        self.assertEqual(queue.deleted, ["m-1", "m-2", "m-4"])

    def test_poll_once_with_empty_queue(self):
        consumer = IntakeConsumer(FakeQueue(), uow=mock_uow(MagicMock()))
        self.assertEqual(consumer.poll_once(), IntakeStats())

    def test_run_stops_when_event_is_set(self):
        stop_event = threading.Event()
        queue = FakeQueue([[make_message(VALID_BODY, message_id="m-1")]])
        original_receive = queue.receive

        def receive_then_stop():
            messages = original_receive()
            if queue.receive_calls >= 2:
                stop_event.set()
            return messages

        queue.receive = receive_then_stop
        consumer = IntakeConsumer(queue, uow=mock_uow(MagicMock()))

        totals = consumer.run(stop_event)

        self.assertEqual(queue.receive_calls, 2)
        self.assertEqual(totals.received, 1)
        self.assertEqual(totals.stored, 1)

    def test_run_survives_receive_errors(self):
        stop_event = threading.Event()
        calls = []

        def failing_receive():
            calls.append(1)
            if len(calls) >= 2:
                stop_event.set()
            raise RuntimeError("sqs unavailable")

        queue = FakeQueue()
        queue.receive = failing_receive
        consumer = IntakeConsumer(queue, uow=mock_uow(MagicMock()), polling_interval_seconds=0)

        totals = consumer.run(stop_event)

        self.assertEqual(len(calls), 2)
        self.assertEqual(totals, IntakeStats())

    def test_run_waits_between_empty_polls_without_long_polling(self):
        stop_event = MagicMock()
        stop_event.is_set.side_effect = [False, False, True]
        queue = FakeQueue()
        consumer = IntakeConsumer(queue, uow=mock_uow(MagicMock()), polling_interval_seconds=3.0)

        consumer.run(stop_event)

        self.assertEqual(queue.receive_calls, 2)
        self.assertEqual(stop_event.wait.call_count, 2)
        stop_event.wait.assert_called_with(3.0)

    def test_run_does_not_wait_after_empty_long_poll(self):
        stop_event = MagicMock()
        stop_event.is_set.side_effect = [False, False, True]
        queue = FakeQueue()
        queue.wait_time_seconds = 20
        consumer = IntakeConsumer(queue, uow=mock_uow(MagicMock()), polling_interval_seconds=3.0)

        consumer.run(stop_event)

        self.assertEqual(queue.receive_calls, 2)
        stop_event.wait.assert_not_called()

    def test_run_does_not_wait_after_a_non_empty_poll(self):
        stop_event = MagicMock()
        stop_event.is_set.side_effect = [False, True]
        queue = FakeQueue([[make_message(VALID_BODY, message_id="m-1")]])

        IntakeConsumer(queue, uow=mock_uow(MagicMock()), polling_interval_seconds=3.0).run(stop_event)

        stop_event.wait.assert_not_called()

    def test_run_does_not_poll_when_already_stopped(self):
        stop_event = threading.Event()
        stop_event.set()
        queue = FakeQueue()
        IntakeConsumer(queue, uow=mock_uow(MagicMock())).run(stop_event)
        self.assertEqual(queue.receive_calls, 0)


if __name__ == '__main__':
    unittest.main()
