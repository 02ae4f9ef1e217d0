from typing import Dict

from material_planning.models import ReorderHistory


def validate_trigger_record(record: ReorderHistory) -> Dict[str, str]:
    """Validate a trigger record before it is enqueued.

    Args:
        record: Trigger record to validate

    Returns:
        Dictionary with validation errors
    """
    errors = {}

    if not record.sku_id:
        errors['sku_id'] = 'SKU ID is required'

    if record.trigger_type is None:
        errors['trigger_type'] = 'Trigger type is required'

    for field in ('inventory_level', 'min_threshold', 'optimal_threshold', 'reorder_quantity'):
        value = getattr(record, field)
        if value is None:
            errors[field] = f'{field} is required'
        elif value < 0:
            errors[field] = f'{field} cannot be negative'

    if (record.min_threshold is not None and record.optimal_threshold is not None
            and record.min_threshold > record.optimal_threshold):
        errors['min_threshold'] = 'Minimum threshold cannot exceed optimal threshold'

    return errors


def validate_reorder_settings(values: Dict) -> Dict[str, str]:
    """Validate reorder configuration values an operator wants to store.

    Args:
        values: Mapping of SKU reorder configuration fields

    Returns:
        Dictionary with validation errors
    """
    errors = {}

    if 'auto_reorder_enabled' in values and not isinstance(values['auto_reorder_enabled'], bool):
        errors['auto_reorder_enabled'] = 'Auto reorder flag must be true or false'

    if 'preferred_vendor_id' in values and values['preferred_vendor_id'] == '':
        errors['preferred_vendor_id'] = 'Vendor ID cannot be empty'

    min_threshold = values.get('min_threshold')
    optimal_threshold = values.get('optimal_threshold')
    for field, value in (('min_threshold', min_threshold), ('optimal_threshold', optimal_threshold)):
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
            errors[field] = f'{field} must be a non-negative integer'

    if ('min_threshold' not in errors and 'optimal_threshold' not in errors
            and min_threshold is not None and optimal_threshold is not None
            and min_threshold > optimal_threshold):
        errors['min_threshold'] = 'Minimum threshold cannot exceed optimal threshold'

    return errors
