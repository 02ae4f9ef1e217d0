"""
Tests for threshold evaluation, resolution and stock classification.
"""
import unittest
from unittest.mock import MagicMock

import pytest

from material_planning.core.thresholds import (
    ReorderConfig, calculate_reorder_quantity, calculate_status_percentage,
    calculate_thresholds, classify_stock_levels, classify_stock_status, evaluate,
    resolve_reorder_config, summarize_statuses, validate_quantity
)
from material_planning.exceptions import InvalidQuantity, ValidationError
from material_planning.models import StockManagementType, StockStatus, ThresholdSource


def make_config(min_threshold=10, optimal_threshold=50, enabled=True, vendor_id=None):
    return ReorderConfig(
        sku_id='SKU-1',
        min_threshold=min_threshold,
        optimal_threshold=optimal_threshold,
        auto_reorder_enabled=enabled,
        preferred_vendor_id=vendor_id
    )


class TestEvaluate(unittest.TestCase):
    def test_drop_below_minimum_triggers(self):
        """Stock dropping from 15 to 8 against 10/50 orders 42."""
        decision = evaluate('SKU-1', 8, make_config())

        self.assertIsNotNone(decision)
        self.assertEqual(decision.reorder_quantity, 42)
        self.assertEqual(decision.inventory_level, 8)
        self.assertEqual(decision.min_threshold, 10)
        self.assertEqual(decision.optimal_threshold, 50)
        self.assertTrue(decision.actionable)

    def test_at_minimum_triggers(self):
        decision = evaluate('SKU-1', 10, make_config())
        self.assertEqual(decision.reorder_quantity, 40)

    def test_above_minimum_does_not_trigger(self):
        self.assertIsNone(evaluate('SKU-1', 11, make_config()))

    def test_disabled_never_triggers(self):
        config = make_config(enabled=False)
        for quantity in (0, 5, 10, 11, 1000):
            self.assertIsNone(evaluate('SKU-1', quantity, config))

    def test_reorder_quantity_monotonic_in_stock(self):
        config = make_config(min_threshold=20, optimal_threshold=60)
        quantities = [evaluate('SKU-1', level, config).reorder_quantity for level in range(20, -1, -1)]
        self.assertEqual(quantities, sorted(quantities))

    def test_zero_quantity_decision_is_not_actionable(self):
        config = make_config(min_threshold=10, optimal_threshold=10)
        decision = evaluate('SKU-1', 10, config)

        self.assertIsNotNone(decision)
        self.assertEqual(decision.reorder_quantity, 0)
        self.assertFalse(decision.actionable)

    def test_minimum_order_quantity_floor(self):
        config = make_config(min_threshold=10, optimal_threshold=12)
        decision = evaluate('SKU-1', 10, config, minimum_order_quantity=5)
        self.assertEqual(decision.reorder_quantity, 5)

    def test_negative_quantity_raises(self):
        with self.assertRaises(InvalidQuantity):
            evaluate('SKU-1', -1, make_config())

    def test_fractional_quantity_raises(self):
        with self.assertRaises(InvalidQuantity):
            evaluate('SKU-1', 2.5, make_config())

    def test_invalid_quantity_raises_even_when_disabled(self):
        with self.assertRaises(InvalidQuantity):
            evaluate('SKU-1', -3, make_config(enabled=False))


class TestQuantities(unittest.TestCase):
    def test_validate_quantity_accepts_integral_float(self):
        self.assertEqual(validate_quantity(4.0), 4)

    def test_validate_quantity_rejects_bool_and_none(self):
        for value in (True, None, 'ten'):
            with self.assertRaises(InvalidQuantity):
                validate_quantity(value)

    def test_calculate_reorder_quantity_never_negative(self):
        self.assertEqual(calculate_reorder_quantity(80, 50), 0)

    def test_config_rejects_min_above_optimal(self):
        with self.assertRaises(ValidationError):
            make_config(min_threshold=60, optimal_threshold=50)

    def test_config_rejects_negative_threshold(self):
        with self.assertRaises(InvalidQuantity):
            make_config(min_threshold=-1)


class TestThresholdResolution(unittest.TestCase):
    def _class(self, management_type=StockManagementType.OVERALL, min_stock=5, max_stock=25, monthly=None):
        product_class = MagicMock()
        product_class.stock_management_type = management_type
        product_class.overall_min_stock = min_stock
        product_class.overall_max_stock = max_stock
        product_class.monthly_stock_levels = monthly
        return product_class

    def _sku(self, min_threshold=None, optimal_threshold=None, product_class=None):
        sku = MagicMock()
        sku.id = 'SKU-1'
        sku.min_threshold = min_threshold
        sku.optimal_threshold = optimal_threshold
        sku.auto_reorder_enabled = True
        sku.preferred_vendor_id = 'V-1'
        sku.product_class = product_class
        return sku

    def test_overall_levels(self):
        thresholds = calculate_thresholds(self._class(), month=3)

        self.assertEqual(thresholds['min_threshold'], 5)
        self.assertEqual(thresholds['optimal_threshold'], 25)
        self.assertEqual(thresholds['source'], ThresholdSource.OVERALL)
        self.assertTrue(thresholds['is_configured'])

    def test_monthly_levels_mapping_shape(self):
        monthly = {'3': {'minStock': 12, 'maxStock': 40}}
        thresholds = calculate_thresholds(self._class(StockManagementType.MONTHLY, monthly=monthly), month=3)

        self.assertEqual(thresholds['source'], ThresholdSource.MONTHLY)
        self.assertEqual(thresholds['min_threshold'], 12)
        self.assertEqual(thresholds['optimal_threshold'], 40)
        self.assertEqual(thresholds['current_month'], 3)

    def test_monthly_levels_list_shape(self):
        monthly = [{'month': 7, 'min_stock': 3, 'max_stock': 9}]
        thresholds = calculate_thresholds(self._class('monthly', monthly=monthly), month=7)

        self.assertEqual(thresholds['min_threshold'], 3)
        self.assertEqual(thresholds['optimal_threshold'], 9)

    def test_empty_month_falls_back_to_overall(self):
        monthly = {'3': {'minStock': 0, 'maxStock': 0}}
        thresholds = calculate_thresholds(self._class(StockManagementType.MONTHLY, monthly=monthly), month=3)

        self.assertEqual(thresholds['source'], ThresholdSource.OVERALL)
        self.assertEqual(thresholds['min_threshold'], 5)

    def test_no_class_is_unconfigured(self):
        thresholds = calculate_thresholds(None, month=1)
        self.assertFalse(thresholds['is_configured'])
        self.assertEqual(thresholds['optimal_threshold'], 0)

    def test_sku_overrides_win(self):
        config = resolve_reorder_config(self._sku(2, 8, self._class()), month=3)

        self.assertEqual(config.threshold_source, ThresholdSource.SKU)
        self.assertEqual((config.min_threshold, config.optimal_threshold), (2, 8))
        self.assertEqual(config.preferred_vendor_id, 'V-1')

    def test_partial_sku_override_uses_class(self):
        config = resolve_reorder_config(self._sku(2, None, self._class()), month=3)
        self.assertEqual(config.threshold_source, ThresholdSource.OVERALL)
        self.assertEqual(config.min_threshold, 5)


class TestClassification(unittest.TestCase):
    def test_classify_stock_levels(self):
        statuses = classify_stock_levels(
            available=[0, 10, 14, 30, 76, 20],
            min_thresholds=[10, 10, 10, 10, 10, 0],
            optimal_thresholds=[50, 50, 50, 50, 50, 0],
            low_band_pct=50,
            overstock_margin_pct=50
        )
        self.assertEqual(list(statuses), ['critical', 'critical', 'low', 'normal', 'overstocked', 'normal'])

    def test_overstock_boundary_is_exclusive(self):
        self.assertEqual(classify_stock_status(75, 10, 50), StockStatus.NORMAL)

    def test_negative_inputs_raise(self):
        with pytest.raises(InvalidQuantity):
            classify_stock_levels([-1], [10], [50])

    def test_status_percentage(self):
        self.assertEqual(calculate_status_percentage(5, 10, StockStatus.CRITICAL), 50)
        self.assertEqual(calculate_status_percentage(14, 10, StockStatus.LOW), 100)
        self.assertEqual(calculate_status_percentage(90, 10, StockStatus.OVERSTOCKED), 150)
        self.assertEqual(calculate_status_percentage(30, 10, StockStatus.NORMAL), 100)

    def test_summarize_statuses(self):
        summary = summarize_statuses(['low', 'low', 'critical'])
        self.assertEqual(summary, {'normal': 0, 'low': 2, 'critical': 1, 'overstocked': 0})


if __name__ == '__main__':
    unittest.main()
