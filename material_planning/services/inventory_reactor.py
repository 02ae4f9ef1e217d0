# material_planning/services/inventory_reactor.py
import logging
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Callable, Optional

from material_planning.config import config
from material_planning.core.thresholds import evaluate
from material_planning.db.interface import PlanningBackend
from material_planning.exceptions import DuplicateTriggerSkipped, SubscriptionError
from material_planning.logging_setup import log_exception
from material_planning.models import ReorderHistory, TriggerType
from material_planning.services.change_feed import ChangeFeed, InventoryChangeEvent
from material_planning.services.trigger_queue import ReorderTriggerQueue

logger = logging.getLogger(__name__)


class InventoryChangeReactor:
    """Queues inventory_change triggers when a SKU's stock drops to its minimum.

    Events are handed to a worker pool so the feed's delivery path never
    blocks on the backend and never sees an exception.
    """

    def __init__(
        self,
        backend: PlanningBackend,
        feed: ChangeFeed,
        queue: Optional[ReorderTriggerQueue] = None,
        executor: Optional[Executor] = None,
        resubscribe_attempts: Optional[int] = None,
        resubscribe_backoff_seconds: Optional[float] = None,
        minimum_order_quantity: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        reorder_config = config.reorder_config
        self.backend = backend
        self.feed = feed
        self.queue = queue or ReorderTriggerQueue(backend)
        self.executor = executor or ThreadPoolExecutor(
            max_workers=reorder_config['max_workers'],
            thread_name_prefix='inventory-reactor'
        )
        self.resubscribe_attempts = (
            resubscribe_attempts if resubscribe_attempts is not None
            else reorder_config['resubscribe_attempts']
        )
        self.resubscribe_backoff_seconds = (
            resubscribe_backoff_seconds if resubscribe_backoff_seconds is not None
            else reorder_config['resubscribe_backoff_seconds']
        )
        self.minimum_order_quantity = (
            minimum_order_quantity if minimum_order_quantity is not None
            else reorder_config['minimum_order_quantity']
        )
        self._sleep = sleep

        self.is_running = False
        self.last_error: Optional[Exception] = None
        self._resubscribe_thread: Optional[threading.Thread] = None
        self._resubscribe_lock = threading.Lock()

    def start(self):
        """Subscribe to the change feed.

        Raises:
            SubscriptionError: If the initial subscription fails
        """
        self.feed.subscribe(self._on_event, self._on_error)
        self.is_running = True
        self.last_error = None
        logger.info("Inventory change reactor started")

    def stop(self, wait: bool = True):
        self.is_running = False
        self.feed.unsubscribe()
        self.executor.shutdown(wait=wait)
        logger.info("Inventory change reactor stopped")

    def _on_event(self, event: InventoryChangeEvent) -> Optional[Future]:
        """Feed callback: dispatch and return immediately."""
        if not self.is_running:
            return None

        try:
            return self.executor.submit(self._handle_safely, event)
        except RuntimeError as e:
            # Executor already shut down
            logger.warning(f"Dropping inventory change for SKU {event.sku_id}: {str(e)}")
            return None

    def _handle_safely(self, event: InventoryChangeEvent) -> Optional[ReorderHistory]:
        try:
            return self.handle_event(event)
        except Exception as e:
            log_exception(
                'reactor', e, f"Error handling inventory change in warehouse {event.warehouse_id}", sku_id=event.sku_id
            )
            return None

    def handle_event(self, event: InventoryChangeEvent) -> Optional[ReorderHistory]:
        """Evaluate a single inventory change.

        Returns:
            The queued trigger record, or None when nothing was queued
        """
        if not event.is_decrease:
            return None

        reorder_config = self.backend.get_sku_reorder_config(event.sku_id)
        if not reorder_config.auto_reorder_enabled:
            return None

        available = self.backend.get_available_quantity(event.sku_id)
        decision = evaluate(event.sku_id, available, reorder_config, self.minimum_order_quantity)
        if decision is None or not decision.actionable:
            return None

        try:
            return self.queue.enqueue(
                event.sku_id,
                TriggerType.INVENTORY_CHANGE,
                decision,
                vendor_id=reorder_config.preferred_vendor_id,
                notes=f"Inventory dropped from {event.previous_quantity} to {event.new_quantity}"
                      + (f" in warehouse {event.warehouse_id}" if event.warehouse_id else "")
            )
        except DuplicateTriggerSkipped:
            return None

    def _on_error(self, error: Exception):
        """Feed callback for disconnects: resubscribe off the feed's thread."""
        logger.error(f"Inventory change feed error: {str(error)}")
        if not self.is_running:
            return

        with self._resubscribe_lock:
            if self._resubscribe_thread is not None and self._resubscribe_thread.is_alive():
                logger.info("Resubscribe already in progress")
                return

            self._resubscribe_thread = threading.Thread(
                target=self.resubscribe,
                args=(error,),
                name='inventory-reactor-resubscribe',
                daemon=True
            )
            self._resubscribe_thread.start()

    def resubscribe(self, error: Optional[Exception] = None) -> bool:
        """Try to resubscribe with linear backoff.

        Returns:
            True once subscribed again; False after every attempt failed, in
            which case the reactor stops and records last_error
        """
        last_error = error
        for attempt in range(1, self.resubscribe_attempts + 1):
            self._sleep(self.resubscribe_backoff_seconds * attempt)
            if not self.is_running:
                return False

            try:
                self.feed.unsubscribe()
                self.feed.subscribe(self._on_event, self._on_error)
                logger.info(f"Resubscribed to inventory changes on attempt {attempt}")
                return True
            except Exception as e:
                last_error = e
                logger.warning(f"Resubscribe attempt {attempt}/{self.resubscribe_attempts} failed: {str(e)}")

        self.is_running = False
        self.last_error = SubscriptionError(
            f"Inventory change feed lost after {self.resubscribe_attempts} resubscribe attempts: {last_error}"
        )
        logger.critical(self.last_error.message)
        return False

    def wait_for_resubscribe(self, timeout: Optional[float] = None):
        thread = self._resubscribe_thread
        if thread is not None:
            thread.join(timeout)
