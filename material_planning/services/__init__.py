from .change_feed import (
    ChangeFeed, InMemoryChangeFeed, InventoryChangeEvent, PollingInventoryChangeFeed
)
from .trigger_queue import ReorderTriggerQueue, ALLOWED_TRANSITIONS
from .reorder_processor import ReorderProcessor
from .planning_statistics import PlanningStatistics
from .reorder_service import ReorderService
from .inventory_reactor import InventoryChangeReactor

__all__ = [
    'ChangeFeed',
    'InMemoryChangeFeed',
    'InventoryChangeEvent',
    'PollingInventoryChangeFeed',
    'ReorderTriggerQueue',
    'ALLOWED_TRANSITIONS',
    'ReorderProcessor',
    'PlanningStatistics',
    'ReorderService',
    'InventoryChangeReactor'
]
