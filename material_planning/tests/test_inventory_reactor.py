"""
Tests for the inventory change reactor and change feeds.
"""
import threading
import unittest
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, call

from material_planning.core.thresholds import ReorderConfig
from material_planning.db.interface import PlanningBackend
from material_planning.exceptions import DatabaseError, SubscriptionError, ValidationError
from material_planning.models import ReorderStatus, TriggerType
from material_planning.services.change_feed import (
    InMemoryChangeFeed, InventoryChangeEvent, PollingInventoryChangeFeed
)
from material_planning.services.inventory_reactor import InventoryChangeReactor
from material_planning.tests.factories import add_sku, make_backend, set_available


class TestInventoryChangeReactor(unittest.TestCase):
    def setUp(self):
        """Set up test fixtures."""
        self.backend, self.session_factory = make_backend()
        self.feed = InMemoryChangeFeed()
        self.reactor = InventoryChangeReactor(
            self.backend,
            self.feed,
            executor=ThreadPoolExecutor(max_workers=1),
            resubscribe_attempts=3,
            resubscribe_backoff_seconds=0.5,
            minimum_order_quantity=1,
            sleep=MagicMock()
        )
        self.reactor.start()
        self.sku = add_sku(self.session_factory, available=15)

    def _drop(self, previous, new):
        set_available(self.session_factory, self.sku.id, new)
        self.feed.publish(InventoryChangeEvent(self.sku.id, 'WH-1', previous, new)).result(timeout=5)

    def test_decrease_below_minimum_queues_trigger(self):
        """Stock dropping from 15 to 8 against 10/50 queues a reorder of 42."""
        self._drop(15, 8)
        self.reactor.stop()

        records = self.backend.list_trigger_records(self.sku.id)
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].trigger_type, TriggerType.INVENTORY_CHANGE)
        self.assertEqual(records[0].status, ReorderStatus.PENDING)
        self.assertEqual(records[0].inventory_level, 8)
        self.assertEqual(records[0].reorder_quantity, 42)

    def test_second_event_does_not_duplicate_pending(self):
        self._drop(15, 8)
        self._drop(8, 9)
        # Redelivery of the first event after a reconnect
        self.feed.publish(InventoryChangeEvent(self.sku.id, 'WH-1', 15, 8)).result(timeout=5)
        self.reactor.stop()

        pending = self.backend.list_pending_trigger_records()
        self.assertEqual(len(pending), 1)
        self.assertEqual(pending[0].inventory_level, 8)

    def test_increase_is_ignored(self):
        set_available(self.session_factory, self.sku.id, 5)
        self.feed.publish(InventoryChangeEvent(self.sku.id, 'WH-1', 2, 5)).result(timeout=5)
        self.reactor.stop()

        self.assertEqual(self.backend.list_trigger_records(self.sku.id), [])

    def test_decrease_above_minimum_is_ignored(self):
        self._drop(15, 12)
        self.reactor.stop()

        self.assertEqual(self.backend.list_trigger_records(self.sku.id), [])

    def test_disabled_sku_is_ignored(self):
        sku = add_sku(self.session_factory, available=3, auto_reorder_enabled=False)
        self.feed.publish(InventoryChangeEvent(sku.id, 'WH-1', 20, 3)).result(timeout=5)
        self.reactor.stop()

        self.assertEqual(self.backend.list_trigger_records(sku.id), [])

    def test_events_after_stop_are_dropped(self):
        self.reactor.stop()
        self.assertIsNone(self.reactor._on_event(InventoryChangeEvent(self.sku.id, 'WH-1', 15, 8)))


class TestReactorErrorHandling(unittest.TestCase):
    def setUp(self):
        self.backend = MagicMock(spec=PlanningBackend)
        self.feed = InMemoryChangeFeed()
        self.sleep = MagicMock()
        self.reactor = InventoryChangeReactor(
            self.backend,
            self.feed,
            executor=ThreadPoolExecutor(max_workers=1),
            resubscribe_attempts=3,
            resubscribe_backoff_seconds=2,
            minimum_order_quantity=1,
            sleep=self.sleep
        )
        self.reactor.start()

    def tearDown(self):
        self.reactor.executor.shutdown(wait=True)

    def test_handler_errors_never_reach_the_feed(self):
        self.backend.get_sku_reorder_config.side_effect = DatabaseError("timeout")

        future = self.reactor._on_event(InventoryChangeEvent('SKU-1', 'WH-1', 20, 3))

        self.assertIsNone(future.result(timeout=5))
        self.assertTrue(self.reactor.is_running)

    def test_zero_quantity_decision_is_not_queued(self):
        self.backend.get_sku_reorder_config.return_value = ReorderConfig('SKU-1', 10, 10, auto_reorder_enabled=True)
        self.backend.get_available_quantity.return_value = 10

        future = self.reactor._on_event(InventoryChangeEvent('SKU-1', 'WH-1', 12, 10))

        self.assertIsNone(future.result(timeout=5))
        self.backend.insert_trigger_record.assert_not_called()

    def test_resubscribe_with_linear_backoff(self):
        self.feed.subscribe_failures = 2

        self.assertTrue(self.reactor.resubscribe(SubscriptionError("socket closed")))

        self.assertEqual(self.sleep.call_args_list, [call(2), call(4), call(6)])
        self.assertTrue(self.feed.subscribed)
        self.assertTrue(self.reactor.is_running)

    def test_resubscribe_gives_up_and_surfaces(self):
        self.feed.subscribe_failures = 10

        self.assertFalse(self.reactor.resubscribe(SubscriptionError("socket closed")))

        self.assertFalse(self.reactor.is_running)
        self.assertIsInstance(self.reactor.last_error, SubscriptionError)
        self.assertEqual(self.feed.subscribe_calls, 4)

    def test_feed_failure_triggers_resubscribe(self):
        self.feed.fail(SubscriptionError("socket closed"))
        self.reactor.wait_for_resubscribe(timeout=5)

        self.assertTrue(self.feed.subscribed)
        self.assertEqual(self.feed.subscribe_calls, 2)

    def test_repeated_disconnects_share_one_resubscribe(self):
        release = threading.Event()
        sleeps = []

        def blocking_sleep(seconds):
            sleeps.append(seconds)
            release.wait(timeout=5)

        self.reactor._sleep = blocking_sleep
        self.reactor._on_error(SubscriptionError("socket closed"))
        first = self.reactor._resubscribe_thread
        self.reactor._on_error(SubscriptionError("socket closed again"))

        self.assertIs(self.reactor._resubscribe_thread, first)
        release.set()
        self.reactor.wait_for_resubscribe(timeout=5)

        self.assertEqual(sleeps, [2])
        self.assertEqual(self.feed.subscribe_calls, 2)
        self.assertTrue(self.feed.subscribed)


class TestChangeFeeds(unittest.TestCase):
    def test_event_from_realtime_payload(self):
        event = InventoryChangeEvent.from_payload({
            'old': {'sku_id': 'SKU-1', 'warehouse_id': 'WH-1', 'available_quantity': 15},
            'new': {'sku_id': 'SKU-1', 'warehouse_id': 'WH-1', 'available_quantity': 8}
        })

        self.assertEqual(event, InventoryChangeEvent('SKU-1', 'WH-1', 15, 8))
        self.assertTrue(event.is_decrease)

    def test_event_from_flat_payload(self):
        event = InventoryChangeEvent.from_payload(
            {'sku_id': 'SKU-1', 'warehouse_id': None, 'previous_quantity': 3, 'new_quantity': 7}
        )
        self.assertFalse(event.is_decrease)

    def test_event_payload_without_quantities_is_rejected(self):
        with self.assertRaises(ValidationError):
            InventoryChangeEvent.from_payload({'new': {'sku_id': 'SKU-1'}})

    def test_polling_feed_diffs_snapshots(self):
        backend, session_factory = make_backend()
        sku = add_sku(session_factory, available=15)
        feed = PollingInventoryChangeFeed(backend, interval_seconds=60)
        received = []

        self.assertEqual(feed.poll_once(received.append), 0)
        set_available(session_factory, sku.id, 8)
        self.assertEqual(feed.poll_once(received.append), 1)

        self.assertEqual(received, [InventoryChangeEvent(sku.id, 'WH-1', 15, 8)])


if __name__ == '__main__':
    unittest.main()
