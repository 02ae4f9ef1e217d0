from .cache import TTLCache
from .po_numbers import next_po_number
from .validation import validate_trigger_record, validate_reorder_settings

__all__ = [
    'TTLCache',
    'next_po_number',
    'validate_trigger_record',
    'validate_reorder_settings'
]
