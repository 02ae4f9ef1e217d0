# material_planning/services/reorder_processor.py
import logging
from typing import Dict, List, Optional

from material_planning.db.interface import PlanningBackend
from material_planning.exceptions import (
    NoVendorConfigured, PurchaseOrderCreationFailed, ValidationError
)
from material_planning.logging_setup import log_exception
from material_planning.models import ReorderHistory, ReorderStatus, Sku
from material_planning.services.trigger_queue import ReorderTriggerQueue

logger = logging.getLogger(__name__)

# Outcomes of processing a single record
PO_CREATED = 'po_created'
FAILED = 'failed'
SKIPPED = 'skipped'

# Errors that fail a record with its message in notes
RECORD_FAILURES = (NoVendorConfigured, PurchaseOrderCreationFailed, ValidationError)


class ReorderProcessor:
    """Turns pending trigger records into purchase orders."""

    def __init__(self, backend: PlanningBackend, queue: Optional[ReorderTriggerQueue] = None):
        """Initialize the processor.

        Args:
            backend: Planning backend used for SKU lookups and PO creation
            queue: Trigger queue (a new one over the same backend by default)
        """
        self.backend = backend
        self.queue = queue or ReorderTriggerQueue(backend)

    def resolve_vendor(self, record: ReorderHistory, sku: Optional[Sku] = None) -> str:
        """Vendor for a record: the one chosen at trigger time, else the SKU's preferred vendor.

        Raises:
            NoVendorConfigured: If neither is set
        """
        if record.vendor_id:
            return record.vendor_id

        if sku is None:
            sku = self.backend.get_sku(record.sku_id)

        if sku is not None and sku.preferred_vendor_id:
            return sku.preferred_vendor_id

        raise NoVendorConfigured(
            f"no vendor configured for SKU {record.sku_id}",
            details={'sku_id': record.sku_id, 'record_id': record.id}
        )

    def process_record(self, record: ReorderHistory) -> Dict:
        """Claim a pending record and create its purchase order.

        Returns:
            Dictionary with status ('po_created', 'failed' or 'skipped'),
            po_id and error
        """
        claim_token = self.queue.claim(record.id)
        if claim_token is None:
            logger.info(f"Skipping trigger record {record.id}: already claimed or resolved")
            return {'status': SKIPPED, 'po_id': None, 'error': None}

        try:
            if record.reorder_quantity <= 0:
                raise ValidationError("No reorder quantity needed")

            sku = self.backend.get_sku(record.sku_id)
            vendor_id = self.resolve_vendor(record, sku)
            sku_code = sku.sku_code if sku is not None else record.sku_id

            po_id = self.backend.create_purchase_order(
                record.sku_id,
                record.reorder_quantity,
                vendor_id,
                record.trigger_type,
                notes=(
                    f"Reorder for SKU {sku_code} (Current: {record.inventory_level}, "
                    f"Min: {record.min_threshold}, Optimal: {record.optimal_threshold})"
                )
            )
        except RECORD_FAILURES as e:
            logger.warning(f"Reorder {record.id} for SKU {record.sku_id} failed: {e.message}")
            self.queue.transition(record.id, ReorderStatus.FAILED, claim_token=claim_token, notes=e.message)
            return {'status': FAILED, 'po_id': None, 'error': e.message}
        except Exception as e:
            log_exception('reorder', e, "Unexpected error processing reorder", record_id=record.id, sku_id=record.sku_id)
            self._fail_quietly(record, claim_token, str(e))
            return {'status': FAILED, 'po_id': None, 'error': str(e)}

        applied = self.queue.transition(
            record.id,
            ReorderStatus.PO_CREATED,
            claim_token=claim_token,
            purchase_order_id=po_id,
            vendor_id=vendor_id,
            notes=f"PO created successfully: {po_id}"
        )
        if not applied:
            error = f"Purchase order {po_id} was created but reorder {record.id} was no longer claimed by this run"
            logger.error(error)
            return {'status': FAILED, 'po_id': po_id, 'error': error}

        return {'status': PO_CREATED, 'po_id': po_id, 'error': None}

    def _fail_quietly(self, record: ReorderHistory, claim_token: str, error: str):
        """Mark a record failed after an unexpected error, logging if that fails too."""
        try:
            self.queue.transition(record.id, ReorderStatus.FAILED, claim_token=claim_token, notes=error)
        except Exception as e:
            # Record stays claimed until fail_stale_claims picks it up
            log_exception('reorder', e, "Could not mark reorder as failed", record_id=record.id, sku_id=record.sku_id)

    def process_pending(self) -> Dict:
        """Process all pending trigger records, oldest first.

        A failure on one record never aborts the others.

        Returns:
            Dictionary with processed_count, success_count, error_count,
            skipped_count, created_po_ids, errors, success and message
        """
        records = self.queue.list_pending()
        logger.info(f"Processing {len(records)} pending reorders")

        created_po_ids: List[str] = []
        errors: List[Dict] = []
        skipped_count = 0

        for record in records:
            outcome = self.process_record(record)

            if outcome['status'] == PO_CREATED:
                created_po_ids.append(outcome['po_id'])
            elif outcome['status'] == FAILED:
                errors.append({
                    'record_id': record.id,
                    'sku_id': record.sku_id,
                    'error': outcome['error']
                })
            else:
                skipped_count += 1

        processed_count = len(created_po_ids) + len(errors)
        message = (
            f"Processed {processed_count} pending reorders: {len(created_po_ids)} purchase orders created, "
            f"{len(errors)} failed, {skipped_count} skipped"
        )
        logger.info(message)

        return {
            'processed_count': processed_count,
            'success_count': len(created_po_ids),
            'error_count': len(errors),
            'skipped_count': skipped_count,
            'created_po_ids': created_po_ids,
            'errors': errors,
            'success': len(errors) == 0,
            'message': message
        }
