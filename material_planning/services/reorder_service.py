# material_planning/services/reorder_service.py
import logging
from typing import Dict, List, Optional

from material_planning.config import config
from material_planning.core.thresholds import (
    TriggerDecision, calculate_reorder_quantity, evaluate,
    resolve_reorder_config, validate_quantity
)
from material_planning.db.interface import PlanningBackend
from material_planning.exceptions import (
    DuplicateTriggerSkipped, MaterialPlanningError, NotFoundError, ValidationError
)
from material_planning.models import ReorderHistory, TriggerType
from material_planning.services.planning_statistics import PlanningStatistics
from material_planning.services.reorder_processor import PO_CREATED, ReorderProcessor
from material_planning.services.trigger_queue import ReorderTriggerQueue
from material_planning.utils.cache import TTLCache
from material_planning.utils.validation import validate_reorder_settings

logger = logging.getLogger(__name__)

NO_VENDOR_SELECTED = "Vendor must be selected before creating reorder"
SKU_NOT_FOUND = "SKU not found"
NO_QUANTITY_NEEDED = "No reorder quantity needed"
ALREADY_PENDING = "A reorder for this SKU is already pending. Process or resolve it before creating another."


class ReorderService:
    """Entry point for automatic and manual reordering used by the UI and batch layers."""

    def __init__(
        self,
        backend: PlanningBackend,
        queue: Optional[ReorderTriggerQueue] = None,
        processor: Optional[ReorderProcessor] = None,
        cache: Optional[TTLCache] = None,
        statistics: Optional[PlanningStatistics] = None,
        minimum_order_quantity: Optional[int] = None
    ):
        """Initialize the reorder service.

        Args:
            backend: Planning backend
            queue: Trigger queue (built over the backend by default)
            processor: Reorder processor (built over the queue by default)
            cache: Statistics cache, invalidated after every mutation
            statistics: Statistics projection (built over the cache by default)
            minimum_order_quantity: Floor for non-zero reorder quantities
        """
        self.backend = backend
        self.queue = queue or ReorderTriggerQueue(backend)
        self.processor = processor or ReorderProcessor(backend, self.queue)
        self.cache = cache if cache is not None else TTLCache(config.planning_config['statistics_ttl_seconds'])
        self.statistics = statistics or PlanningStatistics(backend, self.cache)

        if minimum_order_quantity is None:
            minimum_order_quantity = config.reorder_config['minimum_order_quantity']
        self.minimum_order_quantity = minimum_order_quantity

    def invalidate_statistics(self):
        self.cache.invalidate()

    def manual_reorder(self, sku_id: str, vendor_id: Optional[str], quantity: Optional[int] = None) -> Dict:
        """Create a purchase order for a SKU on operator request.

        No threshold breach is required. The quantity defaults to what is
        needed to reach the optimal level.

        Args:
            sku_id: SKU to reorder
            vendor_id: Vendor selected by the operator
            quantity: Explicit quantity to order

        Returns:
            Dictionary with success, po_id, error and reorder_history_id
        """
        result = {'success': False, 'po_id': None, 'error': None, 'reorder_history_id': None}

        if not vendor_id:
            result['error'] = NO_VENDOR_SELECTED
            return result

        try:
            sku = self.backend.get_sku(sku_id)
            if sku is None:
                result['error'] = SKU_NOT_FOUND
                return result

            reorder_config = resolve_reorder_config(sku, self.backend.current_month())
            available = self.backend.get_available_quantity(sku_id)

            if quantity is None:
                quantity = calculate_reorder_quantity(
                    available, reorder_config.optimal_threshold, self.minimum_order_quantity
                )
            else:
                quantity = validate_quantity(quantity)

            if quantity <= 0:
                result['error'] = NO_QUANTITY_NEEDED
                return result

            decision = TriggerDecision(
                sku_id=sku_id,
                inventory_level=available,
                min_threshold=reorder_config.min_threshold,
                optimal_threshold=reorder_config.optimal_threshold,
                reorder_quantity=quantity
            )

            try:
                record = self.queue.enqueue(
                    sku_id, TriggerType.MANUAL, decision,
                    vendor_id=vendor_id,
                    notes=f"Manual reorder for SKU {sku.sku_code}"
                )
            except DuplicateTriggerSkipped:
                result['error'] = ALREADY_PENDING
                return result

            result['reorder_history_id'] = record.id
            outcome = self.processor.process_record(record)

        except MaterialPlanningError as e:
            logger.error(f"Manual reorder for SKU {sku_id} failed: {e.message}")
            result['error'] = e.message
            return result
        finally:
            self.invalidate_statistics()

        if outcome['status'] == PO_CREATED:
            result['success'] = True
            result['po_id'] = outcome['po_id']
        else:
            result['error'] = outcome['error'] or "Reorder could not be processed"

        return result

    def process_auto_reorder(self) -> Dict:
        """Sweep auto-reorder SKUs, queue triggers for shortages, then process the queue.

        Returns:
            Dictionary with success, processed_count, created_pos, errors,
            triggered_count and skipped_count
        """
        skus = self.backend.list_auto_reorder_skus()
        quantities = self.backend.get_available_quantities([sku.id for sku in skus])
        month = self.backend.current_month()
        logger.info(f"Evaluating {len(skus)} SKUs with auto reorder enabled")

        triggered_count = 0
        skipped_count = 0
        errors: List[Dict] = []

        for sku in skus:
            try:
                reorder_config = resolve_reorder_config(sku, month)
                decision = evaluate(sku.id, quantities.get(sku.id, 0), reorder_config, self.minimum_order_quantity)
                if decision is None or not decision.actionable:
                    continue

                self.queue.enqueue(
                    sku.id, TriggerType.AUTO_SCHEDULE, decision,
                    vendor_id=reorder_config.preferred_vendor_id
                )
                triggered_count += 1
            except DuplicateTriggerSkipped:
                skipped_count += 1
            except MaterialPlanningError as e:
                logger.error(f"Error evaluating SKU {sku.sku_code}: {e.message}")
                errors.append({'record_id': None, 'sku_id': sku.id, 'error': e.message})

        processing = self.processor.process_pending()
        errors.extend(processing['errors'])
        self.invalidate_statistics()

        logger.info(
            f"Auto reorder complete: {triggered_count} triggered, {skipped_count} skipped, "
            f"{len(processing['created_po_ids'])} purchase orders created, {len(errors)} errors"
        )

        return {
            'success': len(errors) == 0,
            'processed_count': processing['processed_count'],
            'created_pos': processing['created_po_ids'],
            'errors': errors,
            'triggered_count': triggered_count,
            'skipped_count': skipped_count + processing['skipped_count']
        }

    def process_pending_reorders(self) -> Dict:
        """Process every pending trigger record."""
        try:
            return self.processor.process_pending()
        finally:
            self.invalidate_statistics()

    def fail_stale_reorders(self) -> List[str]:
        """Fail pending records left claimed by a run that never finished them."""
        try:
            return self.queue.fail_stale_claims()
        finally:
            self.invalidate_statistics()

    def update_auto_reorder_settings(
        self,
        sku_id: str,
        enabled: bool,
        preferred_vendor_id: Optional[str] = None,
        min_threshold: Optional[int] = None,
        optimal_threshold: Optional[int] = None
    ) -> None:
        """Persist reorder configuration of a SKU.

        Omitted optional values leave the stored ones untouched.

        Raises:
            NotFoundError: If the SKU does not exist
            ValidationError: If the values are invalid
        """
        values = {'auto_reorder_enabled': enabled}
        if preferred_vendor_id is not None:
            values['preferred_vendor_id'] = preferred_vendor_id
        if min_threshold is not None:
            values['min_threshold'] = min_threshold
        if optimal_threshold is not None:
            values['optimal_threshold'] = optimal_threshold

        errors = validate_reorder_settings(values)
        if errors:
            raise ValidationError(f"Invalid reorder settings for SKU {sku_id}", details=errors)

        sku = self.backend.get_sku(sku_id)
        if sku is None:
            raise NotFoundError(f"SKU {sku_id} not found", details={'sku_id': sku_id})

        effective_min = values.get('min_threshold', sku.min_threshold)
        effective_optimal = values.get('optimal_threshold', sku.optimal_threshold)
        if effective_min is not None and effective_optimal is not None and effective_min > effective_optimal:
            raise ValidationError(
                f"min_threshold ({effective_min}) cannot exceed optimal_threshold ({effective_optimal})",
                details={'sku_id': sku_id}
            )

        self.backend.update_sku_reorder_config(sku_id, values)
        self.invalidate_statistics()
        logger.info(f"Updated reorder settings for SKU {sku_id}: {values}")

    def get_reorder_statistics(self) -> Dict:
        return self.statistics.get_reorder_statistics()

    def get_planning_statistics(self) -> Dict:
        return self.statistics.get_statistics()

    def get_planning_data(self, **params) -> Dict:
        """Paginated planning rows; see PlanningStatistics.get_planning_data."""
        return self.statistics.get_planning_data(**params)

    def get_reorder_history_for_sku(self, sku_id: str) -> List[ReorderHistory]:
        return self.queue.history_for_sku(sku_id)

    def get_pending_reorders(self) -> List[ReorderHistory]:
        return self.queue.list_pending()

    def has_pending_reorder(self, sku_id: str) -> bool:
        return self.queue.has_pending(sku_id)
