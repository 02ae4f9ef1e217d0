from .config import config
from .db import db, get_backend
from .logging_setup import logger, get_logger
from .exceptions import (
    MaterialPlanningError, ReorderError, NoVendorConfigured,
    PurchaseOrderCreationFailed, DuplicateTriggerSkipped, InvalidQuantity
)

__all__ = [
    'config',
    'db',
    'get_backend',
    'logger',
    'get_logger',
    'MaterialPlanningError',
    'ReorderError',
    'NoVendorConfigured',
    'PurchaseOrderCreationFailed',
    'DuplicateTriggerSkipped',
    'InvalidQuantity'
]
