import re
import time
from typing import Optional

PO_NUMBER_PATTERN = re.compile(r'PO-(\d+)')


def next_po_number(latest_po_number: Optional[str]) -> str:
    """Generate the next sequential purchase order number.

    Args:
        latest_po_number: Most recently issued PO number, if any

    Returns:
        'PO-0001' for the first order, the incremented number when the latest
        one follows the PO-<digits> pattern, or a timestamp-based number
    """
    if not latest_po_number:
        return 'PO-0001'

    match = PO_NUMBER_PATTERN.search(latest_po_number)
    if match:
        return f"PO-{int(match.group(1)) + 1:04d}"

    return f"PO-{int(time.time() * 1000)}"
