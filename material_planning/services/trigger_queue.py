# material_planning/services/trigger_queue.py
import logging
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from material_planning.config import config
from material_planning.core.thresholds import TriggerDecision
from material_planning.db.interface import PlanningBackend
from material_planning.exceptions import DuplicateTriggerSkipped, ValidationError
from material_planning.models import ReorderHistory, ReorderStatus, TriggerType
from material_planning.utils.validation import validate_trigger_record

logger = logging.getLogger(__name__)

# Terminal states have no outgoing transitions
ALLOWED_TRANSITIONS: Dict[ReorderStatus, Set[ReorderStatus]] = {
    ReorderStatus.PENDING: {ReorderStatus.PO_CREATED, ReorderStatus.FAILED},
    ReorderStatus.PO_CREATED: set(),
    ReorderStatus.FAILED: set()
}


class ReorderTriggerQueue:
    """Persistent queue of reorder trigger records (reorder_history).

    Every record moves pending -> po_created | failed exactly once. All
    status changes are conditional updates on the backend, so concurrent
    sweeps, manual runs and reactors can share the table safely.
    """

    def __init__(self, backend: PlanningBackend, claim_timeout_seconds: Optional[int] = None):
        """Initialize the trigger queue.

        Args:
            backend: Planning backend holding the reorder_history table
            claim_timeout_seconds: Age after which a claimed, still pending record
                counts as abandoned (defaults to the REORDER config)
        """
        self.backend = backend
        if claim_timeout_seconds is None:
            claim_timeout_seconds = config.reorder_config['claim_timeout_seconds']
        self.claim_timeout_seconds = claim_timeout_seconds

    def enqueue(
        self,
        sku_id: str,
        trigger_type: TriggerType,
        decision: TriggerDecision,
        vendor_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> ReorderHistory:
        """Insert a pending trigger record for a SKU.

        Args:
            sku_id: SKU the record is for
            trigger_type: What produced the trigger
            decision: Evaluator decision (or manual snapshot) to record
            vendor_id: Vendor chosen at trigger time, if any
            notes: Free-form notes

        Returns:
            The inserted record

        Raises:
            DuplicateTriggerSkipped: If the SKU already has a pending record
            ValidationError: If the snapshot is invalid
        """
        if self.backend.has_pending_trigger(sku_id):
            logger.info(f"Skipping {trigger_type.value} trigger for SKU {sku_id}: reorder already pending")
            raise DuplicateTriggerSkipped(
                f"Pending reorder already exists for SKU {sku_id}",
                details={'sku_id': sku_id}
            )

        record = ReorderHistory(
            id=str(uuid.uuid4()),
            sku_id=sku_id,
            trigger_type=trigger_type,
            trigger_timestamp=datetime.now(),
            inventory_level=decision.inventory_level,
            min_threshold=decision.min_threshold,
            optimal_threshold=decision.optimal_threshold,
            reorder_quantity=decision.reorder_quantity,
            vendor_id=vendor_id,
            status=ReorderStatus.PENDING,
            notes=notes
        )

        errors = validate_trigger_record(record)
        if errors:
            raise ValidationError(f"Invalid trigger record for SKU {sku_id}", details=errors)

        try:
            record = self.backend.insert_trigger_record(record)
        except DuplicateTriggerSkipped:
            # Lost the race against a concurrent insert
            logger.info(f"Skipping {trigger_type.value} trigger for SKU {sku_id}: concurrent insert won")
            raise

        logger.info(
            f"Queued {trigger_type.value} reorder {record.id} for SKU {sku_id}: "
            f"level={decision.inventory_level}, min={decision.min_threshold}, "
            f"optimal={decision.optimal_threshold}, quantity={decision.reorder_quantity}"
        )
        return record

    def claim(self, record_id: str, claim_token: Optional[str] = None) -> Optional[str]:
        """Claim a pending record for processing.

        Returns:
            The claim token, or None if the record is terminal or already
            claimed by another processor
        """
        claim_token = claim_token or str(uuid.uuid4())

        if self.backend.claim_trigger_record(record_id, claim_token):
            return claim_token

        logger.debug(f"Could not claim trigger record {record_id}")
        return None

    def transition(
        self,
        record_id: str,
        to_status: ReorderStatus,
        claim_token: Optional[str] = None,
        **fields
    ) -> bool:
        """Move a record out of pending.

        Args:
            record_id: Trigger record ID
            to_status: po_created or failed
            claim_token: Token from claim(); the update only applies while it
                still owns the record
            **fields: purchase_order_id, vendor_id and/or notes

        Returns:
            True if applied, False if the record was no longer pending (no-op)

        Raises:
            ValidationError: If to_status is not reachable from pending
        """
        if to_status not in ALLOWED_TRANSITIONS[ReorderStatus.PENDING]:
            raise ValidationError(f"Cannot transition a trigger record to {to_status.value}")

        applied = self.backend.transition_trigger_record(record_id, to_status, fields, claim_token)
        if applied:
            logger.info(f"Trigger record {record_id} -> {to_status.value}")
        else:
            logger.warning(f"Trigger record {record_id} was not pending; transition to {to_status.value} ignored")

        return applied

    def list_pending(self) -> List[ReorderHistory]:
        """Pending records, oldest trigger first."""
        return self.backend.list_pending_trigger_records()

    def history_for_sku(self, sku_id: str) -> List[ReorderHistory]:
        """All records of a SKU, newest trigger first."""
        return self.backend.list_trigger_records(sku_id)

    def has_pending(self, sku_id: str) -> bool:
        return self.backend.has_pending_trigger(sku_id)

    def fail_stale_claims(self) -> List[str]:
        """Fail records whose claim is older than claim_timeout_seconds.

        Operator recovery for runs that died mid-record. Records are failed,
        never released, and a late transition from the old owner is a no-op.

        Returns:
            IDs of the failed records
        """
        stale_before = datetime.now() - timedelta(seconds=self.claim_timeout_seconds)
        record_ids = self.backend.fail_stale_claims(
            stale_before,
            f"Claim expired after {self.claim_timeout_seconds}s; check purchase orders before reordering"
        )

        for record_id in record_ids:
            logger.warning(f"Trigger record {record_id} failed: claim expired")
        return record_ids
