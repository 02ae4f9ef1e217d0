# material_planning/services/change_feed.py
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, NamedTuple, Optional, Tuple

from material_planning.exceptions import SubscriptionError, ValidationError

logger = logging.getLogger(__name__)


class InventoryChangeEvent(NamedTuple):
    """One warehouse x SKU available-quantity update."""
    sku_id: str
    warehouse_id: Optional[str]
    previous_quantity: int
    new_quantity: int

    @property
    def is_decrease(self) -> bool:
        return self.new_quantity < self.previous_quantity

    @classmethod
    def from_payload(cls, payload: Dict) -> 'InventoryChangeEvent':
        """Build an event from a flat dict or a realtime {"old", "new"} row payload.

        Raises:
            ValidationError: If the payload carries no SKU or quantities
        """
        if 'new' in payload:
            old_row = payload.get('old') or {}
            new_row = payload.get('new') or {}
            sku_id = new_row.get('sku_id') or old_row.get('sku_id')
            warehouse_id = new_row.get('warehouse_id') or old_row.get('warehouse_id')
            previous = old_row.get('available_quantity')
            new = new_row.get('available_quantity')
        else:
            sku_id = payload.get('sku_id')
            warehouse_id = payload.get('warehouse_id')
            previous = payload.get('previous_quantity')
            new = payload.get('new_quantity')

        if not sku_id or previous is None or new is None:
            raise ValidationError("Inventory change payload is missing sku_id or quantities", details=payload)

        return cls(sku_id, warehouse_id, int(previous), int(new))


EventHandler = Callable[[InventoryChangeEvent], None]
ErrorHandler = Callable[[Exception], None]


class ChangeFeed(ABC):
    """Source of inventory change events."""

    @abstractmethod
    def subscribe(self, on_event: EventHandler, on_error: ErrorHandler) -> None:
        """Start delivering events.

        Raises:
            SubscriptionError: If the subscription cannot be established
        """
        pass

    @abstractmethod
    def unsubscribe(self) -> None:
        pass


class InMemoryChangeFeed(ChangeFeed):
    """Feed driven by explicit publish() calls, used for local runs and tests."""

    def __init__(self, subscribe_failures: int = 0):
        # Number of upcoming subscribe() calls that should fail
        self.subscribe_failures = subscribe_failures
        self.subscribe_calls = 0
        self._on_event = None
        self._on_error = None

    @property
    def subscribed(self) -> bool:
        return self._on_event is not None

    def subscribe(self, on_event: EventHandler, on_error: ErrorHandler) -> None:
        self.subscribe_calls += 1
        if self.subscribe_failures > 0:
            self.subscribe_failures -= 1
            raise SubscriptionError("Inventory change subscription refused")

        self._on_event = on_event
        self._on_error = on_error

    def unsubscribe(self) -> None:
        self._on_event = None
        self._on_error = None

    def publish(self, event: InventoryChangeEvent):
        """Deliver an event and return whatever the subscriber returned."""
        if self._on_event is not None:
            return self._on_event(event)
        return None

    def fail(self, error: Exception) -> None:
        """Simulate a disconnect."""
        on_error = self._on_error
        self.unsubscribe()
        if on_error is not None:
            on_error(error)


class PollingInventoryChangeFeed(ChangeFeed):
    """Feed that diffs warehouse inventory snapshots on a fixed interval.

    Stands in for a realtime channel on backends without one.
    """

    def __init__(self, backend, interval_seconds: float = 5.0):
        self.backend = backend
        self.interval_seconds = interval_seconds
        self._snapshot: Dict[Tuple[str, str], int] = {}
        self._stop_event = threading.Event()
        self._thread = None

    def _take_snapshot(self) -> Dict[Tuple[str, str], int]:
        return {
            (row.sku_id, row.warehouse_id): row.available_quantity or 0
            for row in self.backend.list_inventory_rows()
        }

    def subscribe(self, on_event: EventHandler, on_error: ErrorHandler) -> None:
        try:
            self._snapshot = self._take_snapshot()
        except Exception as e:
            raise SubscriptionError(f"Failed to read initial inventory snapshot: {str(e)}")

        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._poll,
            args=(on_event, on_error, self._stop_event),
            name='inventory-change-feed',
            daemon=True
        )
        self._thread.start()
        logger.info(f"Polling inventory changes every {self.interval_seconds}s")

    def unsubscribe(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.interval_seconds + 1)
        self._thread = None

    def poll_once(self, on_event: EventHandler) -> int:
        """Diff the current inventory against the last snapshot.

        Returns:
            Number of events delivered
        """
        current = self._take_snapshot()
        delivered = 0

        for (sku_id, warehouse_id), quantity in current.items():
            previous = self._snapshot.get((sku_id, warehouse_id))
            if previous is not None and previous != quantity:
                on_event(InventoryChangeEvent(sku_id, warehouse_id, previous, quantity))
                delivered += 1

        self._snapshot = current
        return delivered

    def _poll(self, on_event: EventHandler, on_error: ErrorHandler, stop_event: threading.Event):
        while not stop_event.wait(self.interval_seconds):
            try:
                self.poll_once(on_event)
            except Exception as e:
                logger.error(f"Inventory change feed disconnected: {str(e)}")
                stop_event.set()
                on_error(SubscriptionError(f"Inventory change feed disconnected: {str(e)}"))
                return
