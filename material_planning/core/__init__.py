from .thresholds import (
    ReorderConfig, TriggerDecision,
    validate_quantity, calculate_reorder_quantity, evaluate,
    calculate_thresholds, resolve_reorder_config,
    classify_stock_levels, classify_stock_status,
    calculate_status_percentage, summarize_statuses, get_current_month
)

__all__ = [
    'ReorderConfig',
    'TriggerDecision',
    'validate_quantity',
    'calculate_reorder_quantity',
    'evaluate',
    'calculate_thresholds',
    'resolve_reorder_config',
    'classify_stock_levels',
    'classify_stock_status',
    'calculate_status_percentage',
    'summarize_statuses',
    'get_current_month'
]
