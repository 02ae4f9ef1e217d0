# material_planning/services/planning_statistics.py
import logging
from collections import Counter
from typing import Dict, List, Optional

from material_planning.config import config
from material_planning.core.thresholds import (
    ReorderConfig, calculate_status_percentage, classify_stock_levels,
    resolve_reorder_config, summarize_statuses
)
from material_planning.db.interface import PlanningBackend
from material_planning.exceptions import ReportingError, ValidationError
from material_planning.models import ReorderStatus, StockStatus, ThresholdSource, TriggerType
from material_planning.utils.cache import TTLCache

logger = logging.getLogger(__name__)

SORT_FIELDS = (
    'sku_code', 'description', 'available_inventory', 'current_inventory',
    'min_threshold', 'optimal_threshold', 'status', 'status_percentage'
)

STATISTICS_KEY = 'planning_statistics'
REORDER_STATISTICS_KEY = 'reorder_statistics'


class PlanningStatistics:
    """Read-only projection of stock status over current inventory and configuration."""

    def __init__(
        self,
        backend: PlanningBackend,
        cache: Optional[TTLCache] = None,
        low_band_pct: Optional[float] = None,
        overstock_margin_pct: Optional[float] = None
    ):
        """Initialize the projection.

        Args:
            backend: Planning backend to read SKUs, inventory and history from
            cache: Optional cache owned by the caller; results are stored in it
                and the caller invalidates it after mutations
            low_band_pct: Width of the low band above min, in percent of min
            overstock_margin_pct: Margin above optimal before a SKU counts as
                overstocked, in percent of optimal
        """
        planning_config = config.planning_config
        self.backend = backend
        self.cache = cache
        self.low_band_pct = low_band_pct if low_band_pct is not None else planning_config['low_band_pct']
        self.overstock_margin_pct = (
            overstock_margin_pct if overstock_margin_pct is not None
            else planning_config['overstock_margin_pct']
        )
        self.default_page_size = planning_config['default_page_size']

    def _cached(self, key: str, compute):
        if self.cache is None:
            return compute()
        return self.cache.get_or_compute(key, compute)

    def _resolve_config(self, sku, month: int) -> ReorderConfig:
        try:
            return resolve_reorder_config(sku, month)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid thresholds for SKU {sku.sku_code}: {e.message}")
            return ReorderConfig(
                sku_id=sku.id,
                min_threshold=0,
                optimal_threshold=0,
                auto_reorder_enabled=bool(sku.auto_reorder_enabled),
                preferred_vendor_id=sku.preferred_vendor_id,
                threshold_source=ThresholdSource.OVERALL,
                is_configured=False
            )

    def build_items(self) -> List[Dict]:
        """One planning row per active SKU, with inventory, thresholds and status."""
        skus = self.backend.list_active_skus()
        if not skus:
            return []

        inventory = {}
        for row in self.backend.list_inventory_rows():
            totals = inventory.setdefault(row.sku_id, {'total': 0, 'reserved': 0, 'available': 0})
            totals['total'] += row.total_quantity or 0
            totals['reserved'] += row.reserved_quantity or 0
            totals['available'] += row.available_quantity or 0

        month = self.backend.current_month()
        configs = [self._resolve_config(sku, month) for sku in skus]
        available = [inventory.get(sku.id, {}).get('available', 0) for sku in skus]

        statuses = classify_stock_levels(
            available,
            [c.min_threshold for c in configs],
            [c.optimal_threshold for c in configs],
            self.low_band_pct,
            self.overstock_margin_pct
        )

        items = []
        for sku, reorder_config, status_value in zip(skus, configs, statuses):
            totals = inventory.get(sku.id, {'total': 0, 'reserved': 0, 'available': 0})
            status = StockStatus(str(status_value))
            items.append({
                'id': sku.id,
                'sku_code': sku.sku_code,
                'description': sku.description,
                'class_id': sku.class_id,
                'current_inventory': totals['total'],
                'reserved_inventory': totals['reserved'],
                'available_inventory': totals['available'],
                'min_threshold': reorder_config.min_threshold,
                'optimal_threshold': reorder_config.optimal_threshold,
                'threshold_source': reorder_config.threshold_source.value,
                'is_configured': reorder_config.is_configured,
                'status': status.value,
                'status_percentage': calculate_status_percentage(
                    totals['available'], reorder_config.min_threshold, status
                ),
                'auto_reorder_enabled': reorder_config.auto_reorder_enabled,
                'preferred_vendor_id': reorder_config.preferred_vendor_id,
                'last_updated': sku.updated_at
            })

        return items

    def get_statistics(self) -> Dict:
        """Counts of SKUs per stock status and per threshold source."""
        return self._cached(STATISTICS_KEY, self._compute_statistics)

    def _compute_statistics(self) -> Dict:
        items = self.build_items()
        status_counts = summarize_statuses([item['status'] for item in items])

        source_counts = Counter()
        for item in items:
            if not item['is_configured']:
                source_counts['none'] += 1
            else:
                source_counts[item['threshold_source']] += 1

        statistics = {
            'total_skus': len(items),
            'normal_count': status_counts[StockStatus.NORMAL.value],
            'low_count': status_counts[StockStatus.LOW.value],
            'critical_count': status_counts[StockStatus.CRITICAL.value],
            'overstocked_count': status_counts[StockStatus.OVERSTOCKED.value],
            'overall_threshold_count': source_counts[ThresholdSource.OVERALL.value],
            'monthly_threshold_count': source_counts[ThresholdSource.MONTHLY.value],
            'sku_threshold_count': source_counts[ThresholdSource.SKU.value],
            'no_threshold_count': source_counts['none']
        }
        logger.debug(f"Computed planning statistics: {statistics}")
        return statistics

    def get_planning_data(
        self,
        query: Optional[str] = None,
        status_filter: Optional[str] = None,
        threshold_source_filter: Optional[str] = None,
        class_filter: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
        sort_by: str = 'sku_code',
        sort_order: str = 'asc'
    ) -> Dict:
        """Paginated planning rows.

        Args:
            query: Case-insensitive match on SKU code or description
            status_filter: Stock status to keep ('all' or None keeps everything)
            threshold_source_filter: Threshold source to keep ('all' or None keeps everything)
            class_filter: Class ID to keep
            page: 1-based page number
            limit: Page size (defaults to the PLANNING config)
            sort_by: Row field to sort by
            sort_order: 'asc' or 'desc'

        Returns:
            Dictionary with items, total_count, page, limit, has_next_page
            and has_previous_page

        Raises:
            ReportingError: If paging or sorting parameters are invalid
        """
        limit = limit or self.default_page_size
        if page < 1 or limit < 1:
            raise ReportingError(f"Invalid page ({page}) or limit ({limit})")
        if sort_by not in SORT_FIELDS:
            raise ReportingError(f"Cannot sort by {sort_by}", details={'allowed': list(SORT_FIELDS)})
        if sort_order not in ('asc', 'desc'):
            raise ReportingError(f"Invalid sort order: {sort_order}")

        items = self.build_items()

        if query:
            needle = query.lower()
            items = [
                item for item in items
                if needle in (item['sku_code'] or '').lower() or needle in (item['description'] or '').lower()
            ]

        if class_filter:
            items = [item for item in items if item['class_id'] == class_filter]

        if status_filter and status_filter != 'all':
            items = [item for item in items if item['status'] == status_filter]

        if threshold_source_filter and threshold_source_filter != 'all':
            items = [item for item in items if item['threshold_source'] == threshold_source_filter]

        items.sort(
            key=lambda item: (item[sort_by] is None, item[sort_by] if item[sort_by] is not None else 0),
            reverse=sort_order == 'desc'
        )

        total_count = len(items)
        offset = (page - 1) * limit

        return {
            'items': items[offset:offset + limit],
            'total_count': total_count,
            'page': page,
            'limit': limit,
            'has_next_page': offset + limit < total_count,
            'has_previous_page': page > 1
        }

    def get_reorder_statistics(self) -> Dict:
        """Counts of trigger records by status and by trigger type."""
        return self._cached(REORDER_STATISTICS_KEY, self._compute_reorder_statistics)

    def _compute_reorder_statistics(self) -> Dict:
        records = self.backend.list_trigger_records()
        by_status = Counter(record.status.value for record in records)
        by_type = Counter(record.trigger_type.value for record in records)

        return {
            'total_records': len(records),
            'pending_count': by_status[ReorderStatus.PENDING.value],
            'po_created_count': by_status[ReorderStatus.PO_CREATED.value],
            'failed_count': by_status[ReorderStatus.FAILED.value],
            'by_trigger_type': {trigger_type.value: by_type[trigger_type.value] for trigger_type in TriggerType},
            'last_trigger_at': max((record.trigger_timestamp for record in records), default=None)
        }
