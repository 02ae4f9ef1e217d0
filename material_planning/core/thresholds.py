# material_planning/core/thresholds.py
import numbers
from datetime import date
from typing import Dict, List, NamedTuple, Optional, Sequence, Union

import numpy as np

from ..exceptions import InvalidQuantity, ValidationError
from ..models import StockManagementType, StockStatus, ThresholdSource

Quantity = Union[int, float]


def validate_quantity(value: Quantity, name: str = 'quantity') -> int:
    """Validate a stock quantity and return it as an int.

    Args:
        value: Quantity to validate
        name: Field name used in the error message

    Returns:
        The quantity as a non-negative integer

    Raises:
        InvalidQuantity: If the value is negative, not a number, or fractional
    """
    if isinstance(value, bool) or value is None:
        raise InvalidQuantity(f"{name} must be an integer, got {value!r}", details={'field': name})

    if isinstance(value, numbers.Integral):
        quantity = int(value)
    elif isinstance(value, float) and value.is_integer():
        quantity = int(value)
    else:
        raise InvalidQuantity(f"{name} must be an integer, got {value!r}", details={'field': name})

    if quantity < 0:
        raise InvalidQuantity(f"{name} cannot be negative, got {quantity}", details={'field': name})

    return quantity


class ReorderConfig:
    """Resolved reorder configuration of a single SKU."""

    def __init__(
        self,
        sku_id: str,
        min_threshold: Quantity,
        optimal_threshold: Quantity,
        auto_reorder_enabled: bool = False,
        preferred_vendor_id: Optional[str] = None,
        threshold_source: ThresholdSource = ThresholdSource.SKU,
        is_configured: Optional[bool] = None
    ):
        self.sku_id = sku_id
        self.min_threshold = validate_quantity(min_threshold, 'min_threshold')
        self.optimal_threshold = validate_quantity(optimal_threshold, 'optimal_threshold')

        if self.min_threshold > self.optimal_threshold:
            raise ValidationError(
                f"min_threshold ({self.min_threshold}) cannot exceed "
                f"optimal_threshold ({self.optimal_threshold}) for SKU {sku_id}",
                details={'sku_id': sku_id}
            )

        self.auto_reorder_enabled = bool(auto_reorder_enabled)
        self.preferred_vendor_id = preferred_vendor_id
        self.threshold_source = threshold_source
        if is_configured is None:
            is_configured = self.min_threshold > 0 or self.optimal_threshold > 0
        self.is_configured = is_configured

    def to_dict(self) -> Dict:
        return {
            'sku_id': self.sku_id,
            'min_threshold': self.min_threshold,
            'optimal_threshold': self.optimal_threshold,
            'auto_reorder_enabled': self.auto_reorder_enabled,
            'preferred_vendor_id': self.preferred_vendor_id,
            'threshold_source': self.threshold_source.value,
            'is_configured': self.is_configured
        }

    def __repr__(self):
        return (
            f"ReorderConfig(sku_id={self.sku_id!r}, min={self.min_threshold}, "
            f"optimal={self.optimal_threshold}, auto={self.auto_reorder_enabled}, "
            f"vendor={self.preferred_vendor_id!r})"
        )


class TriggerDecision(NamedTuple):
    """Outcome of a threshold evaluation that warrants a reorder trigger."""
    sku_id: str
    inventory_level: int
    min_threshold: int
    optimal_threshold: int
    reorder_quantity: int

    @property
    def actionable(self) -> bool:
        # Zero-quantity decisions never produce a purchase order
        return self.reorder_quantity > 0


def calculate_reorder_quantity(
    current_available_quantity: Quantity,
    optimal_threshold: Quantity,
    minimum_order_quantity: int = 1
) -> int:
    """Calculate the quantity needed to restore stock to the optimal level.

    Args:
        current_available_quantity: Available (total - reserved) quantity
        optimal_threshold: Target stock level
        minimum_order_quantity: Smallest quantity a non-zero order may carry

    Returns:
        Reorder quantity, 0 when stock is already at or above optimal
    """
    current = validate_quantity(current_available_quantity, 'current_available_quantity')
    optimal = validate_quantity(optimal_threshold, 'optimal_threshold')
    minimum = validate_quantity(minimum_order_quantity, 'minimum_order_quantity')

    quantity = max(optimal - current, 0)
    if 0 < quantity < minimum:
        quantity = minimum

    return quantity


def evaluate(
    sku_id: str,
    current_available_quantity: Quantity,
    config: ReorderConfig,
    minimum_order_quantity: int = 1
) -> Optional[TriggerDecision]:
    """Decide whether a SKU's current stock warrants a reorder trigger.

    Side-effect free; callers decide what to do with the decision.

    Args:
        sku_id: SKU identifier
        current_available_quantity: Available quantity across warehouses
        config: Resolved reorder configuration for the SKU
        minimum_order_quantity: Floor applied to non-zero reorder quantities

    Returns:
        TriggerDecision when stock is at or below the minimum threshold and
        auto reorder is enabled, otherwise None

    Raises:
        InvalidQuantity: If any quantity is negative or malformed
    """
    current = validate_quantity(current_available_quantity, 'current_available_quantity')

    if not config.auto_reorder_enabled:
        return None

    if current > config.min_threshold:
        return None

    return TriggerDecision(
        sku_id=sku_id,
        inventory_level=current,
        min_threshold=config.min_threshold,
        optimal_threshold=config.optimal_threshold,
        reorder_quantity=calculate_reorder_quantity(
            current, config.optimal_threshold, minimum_order_quantity
        )
    )


def get_current_month(today: Optional[date] = None) -> int:
    """Current month number (1-12)."""
    return (today or date.today()).month


def _monthly_levels(monthly_stock_levels, month: int) -> Optional[Dict[str, int]]:
    """Extract one month's levels from either stored shape.

    Mapping shape: {"3": {"minStock": 10, "maxStock": 40}}
    List shape: [{"month": 3, "min_stock": 10, "max_stock": 40}]
    """
    if not monthly_stock_levels:
        return None

    if isinstance(monthly_stock_levels, dict):
        entry = monthly_stock_levels.get(str(month)) or monthly_stock_levels.get(month)
        if not entry:
            return None
        return {
            'min': entry.get('minStock', entry.get('min_stock')) or 0,
            'max': entry.get('maxStock', entry.get('max_stock')) or 0
        }

    for entry in monthly_stock_levels:
        if int(entry.get('month', 0)) == month:
            return {
                'min': entry.get('min_stock', entry.get('minStock')) or 0,
                'max': entry.get('max_stock', entry.get('maxStock')) or 0
            }

    return None


def calculate_thresholds(product_class, month: Optional[int] = None) -> Dict:
    """Calculate min/optimal thresholds from a class threshold profile.

    Monthly-managed classes use the current month's levels when that month
    carries a non-zero level, and fall back to the overall levels otherwise.

    Args:
        product_class: ProductClass (or None when the SKU has no class)
        month: Month number to use (defaults to the current month)

    Returns:
        Dictionary with min_threshold, optimal_threshold, source,
        current_month and is_configured
    """
    if month is None:
        month = get_current_month()

    if product_class is None:
        return {
            'min_threshold': 0,
            'optimal_threshold': 0,
            'source': ThresholdSource.OVERALL,
            'current_month': None,
            'is_configured': False
        }

    management_type = product_class.stock_management_type
    if isinstance(management_type, str):
        management_type = StockManagementType(management_type)

    if management_type == StockManagementType.MONTHLY:
        levels = _monthly_levels(product_class.monthly_stock_levels, month)
        if levels and (levels['min'] > 0 or levels['max'] > 0):
            return {
                'min_threshold': int(levels['min']),
                'optimal_threshold': int(levels['max']),
                'source': ThresholdSource.MONTHLY,
                'current_month': month,
                'is_configured': True
            }

    min_stock = product_class.overall_min_stock or 0
    max_stock = product_class.overall_max_stock or 0
    return {
        'min_threshold': int(min_stock),
        'optimal_threshold': int(max_stock),
        'source': ThresholdSource.OVERALL,
        'current_month': None,
        'is_configured': min_stock > 0 or max_stock > 0
    }


def resolve_reorder_config(sku, month: Optional[int] = None) -> ReorderConfig:
    """Resolve the effective reorder configuration of a SKU.

    SKU-level thresholds win when both are set; otherwise the class profile
    applies.

    Raises:
        ValidationError: If the resolved thresholds are invalid
    """
    if sku.min_threshold is not None and sku.optimal_threshold is not None:
        return ReorderConfig(
            sku_id=sku.id,
            min_threshold=sku.min_threshold,
            optimal_threshold=sku.optimal_threshold,
            auto_reorder_enabled=bool(sku.auto_reorder_enabled),
            preferred_vendor_id=sku.preferred_vendor_id,
            threshold_source=ThresholdSource.SKU
        )

    thresholds = calculate_thresholds(sku.product_class, month)
    return ReorderConfig(
        sku_id=sku.id,
        min_threshold=thresholds['min_threshold'],
        optimal_threshold=thresholds['optimal_threshold'],
        auto_reorder_enabled=bool(sku.auto_reorder_enabled),
        preferred_vendor_id=sku.preferred_vendor_id,
        threshold_source=thresholds['source'],
        is_configured=thresholds['is_configured']
    )


def classify_stock_levels(
    available: Sequence[Quantity],
    min_thresholds: Sequence[Quantity],
    optimal_thresholds: Sequence[Quantity],
    low_band_pct: float = 50.0,
    overstock_margin_pct: float = 50.0
) -> np.ndarray:
    """Classify many SKUs at once.

    critical: available <= min
    low: available <= min * (1 + low_band_pct / 100)
    overstocked: available > optimal * (1 + overstock_margin_pct / 100)
    SKUs with no thresholds configured (0/0) are always normal.

    Returns:
        Array of StockStatus values (as strings), one per SKU
    """
    available = np.asarray(available, dtype=float)
    mins = np.asarray(min_thresholds, dtype=float)
    optimals = np.asarray(optimal_thresholds, dtype=float)

    if np.any(available < 0) or np.any(mins < 0) or np.any(optimals < 0):
        raise InvalidQuantity("Stock quantities and thresholds cannot be negative")

    configured = (mins > 0) | (optimals > 0)
    low_limit = mins * (1.0 + low_band_pct / 100.0)
    overstock_limit = optimals * (1.0 + overstock_margin_pct / 100.0)

    conditions = [
        ~configured,
        available <= mins,
        available <= low_limit,
        (optimals > 0) & (available > overstock_limit)
    ]
    choices = [
        StockStatus.NORMAL.value,
        StockStatus.CRITICAL.value,
        StockStatus.LOW.value,
        StockStatus.OVERSTOCKED.value
    ]

    return np.select(conditions, choices, default=StockStatus.NORMAL.value)


def classify_stock_status(
    available: Quantity,
    min_threshold: Quantity,
    optimal_threshold: Quantity,
    low_band_pct: float = 50.0,
    overstock_margin_pct: float = 50.0
) -> StockStatus:
    """Classify a single SKU. See classify_stock_levels."""
    statuses = classify_stock_levels(
        [available], [min_threshold], [optimal_threshold], low_band_pct, overstock_margin_pct
    )
    return StockStatus(str(statuses[0]))


def calculate_status_percentage(
    available: Quantity,
    min_threshold: Quantity,
    status: StockStatus
) -> int:
    """How close a SKU is to its minimum threshold (0-100, 150 when overstocked)."""
    if status == StockStatus.OVERSTOCKED:
        return 150

    if status in (StockStatus.CRITICAL, StockStatus.LOW) and min_threshold > 0:
        return min(100, int(round(available / min_threshold * 100)))

    return 100


def summarize_statuses(statuses: List[str]) -> Dict[str, int]:
    """Count classified statuses."""
    values, counts = np.unique(np.asarray(statuses, dtype=str), return_counts=True)
    tally = {status.value: 0 for status in StockStatus}
    for value, count in zip(values, counts):
        tally[str(value)] = int(count)
    return tally
