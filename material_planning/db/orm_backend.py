# material_planning/db/orm_backend.py
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from material_planning.db.interface import (
    PlanningBackend, validate_config_values, validate_transition_fields
)
from material_planning.exceptions import (
    DatabaseError, DuplicateTriggerSkipped, NotFoundError, PurchaseOrderCreationFailed
)
from material_planning.models import (
    PurchaseOrder, PurchaseOrderItem, ReorderHistory, ReorderSource, ReorderStatus,
    Sku, TriggerType, Vendor, WarehouseInventory
)
from material_planning.utils.po_numbers import next_po_number

logger = logging.getLogger(__name__)

# Attempts at allocating a free PO number when concurrent writers collide
PO_NUMBER_ATTEMPTS = 3


class SqlAlchemyBackend(PlanningBackend):
    """PlanningBackend over a SQLAlchemy session factory (PostgreSQL or SQLite)."""

    def __init__(self, session_factory, month_provider: Optional[Callable[[], int]] = None):
        """Initialize with a session factory.

        Args:
            session_factory: Callable returning a new Session; it should be
                configured with expire_on_commit=False so returned models stay
                readable after their session closes
            month_provider: Optional callable returning the planning month
        """
        self.session_factory = session_factory
        self._month_provider = month_provider

    @contextmanager
    def session_scope(self) -> Session:
        """Provide a transactional scope around a series of operations."""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get_sku(self, sku_id: str) -> Optional[Sku]:
        try:
            with self.session_scope() as session:
                return session.get(Sku, sku_id)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Error getting SKU {sku_id}: {str(e)}")

    def list_active_skus(self) -> List[Sku]:
        try:
            with self.session_scope() as session:
                return session.query(Sku).filter(Sku.status == 'active').order_by(Sku.sku_code).all()
        except SQLAlchemyError as e:
            raise DatabaseError(f"Error listing SKUs: {str(e)}")

    def list_auto_reorder_skus(self) -> List[Sku]:
        try:
            with self.session_scope() as session:
                return session.query(Sku).filter(
                    Sku.status == 'active',
                    Sku.auto_reorder_enabled.is_(True)
                ).order_by(Sku.sku_code).all()
        except SQLAlchemyError as e:
            raise DatabaseError(f"Error listing auto reorder SKUs: {str(e)}")

    def update_sku_reorder_config(self, sku_id: str, values: Dict[str, Any]) -> None:
        data = validate_config_values(values)
        try:
            with self.session_scope() as session:
                sku = session.get(Sku, sku_id)
                if sku is None:
                    raise NotFoundError(f"SKU {sku_id} not found", details={'sku_id': sku_id})

                for key, value in data.items():
                    setattr(sku, key, value)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Error updating reorder configuration for SKU {sku_id}: {str(e)}")

    def get_available_quantity(self, sku_id: str, warehouse_id: Optional[str] = None) -> int:
        try:
            with self.session_scope() as session:
                query = session.query(
                    func.coalesce(func.sum(WarehouseInventory.available_quantity), 0)
                ).filter(WarehouseInventory.sku_id == sku_id)

                if warehouse_id is not None:
                    query = query.filter(WarehouseInventory.warehouse_id == warehouse_id)

                return int(query.scalar() or 0)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Error getting available quantity for SKU {sku_id}: {str(e)}")

    def get_available_quantities(self, sku_ids: List[str]) -> Dict[str, int]:
        quantities = {sku_id: 0 for sku_id in sku_ids}
        if not sku_ids:
            return quantities

        try:
            with self.session_scope() as session:
                rows = session.query(
                    WarehouseInventory.sku_id,
                    func.coalesce(func.sum(WarehouseInventory.available_quantity), 0)
                ).filter(
                    WarehouseInventory.sku_id.in_(list(sku_ids))
                ).group_by(WarehouseInventory.sku_id).all()
        except SQLAlchemyError as e:
            raise DatabaseError(f"Error getting available quantities: {str(e)}")

        for sku_id, available in rows:
            quantities[sku_id] = int(available or 0)
        return quantities

    def list_inventory_rows(self) -> List[WarehouseInventory]:
        try:
            with self.session_scope() as session:
                return session.query(WarehouseInventory).all()
        except SQLAlchemyError as e:
            raise DatabaseError(f"Error listing inventory: {str(e)}")

    def create_purchase_order(
        self,
        sku_id: str,
        quantity: int,
        vendor_id: str,
        trigger_type: TriggerType,
        notes: Optional[str] = None
    ) -> str:
        for attempt in range(1, PO_NUMBER_ATTEMPTS + 1):
            try:
                with self.session_scope() as session:
                    return self._create_purchase_order(session, sku_id, quantity, vendor_id, trigger_type, notes)
            except IntegrityError as e:
                # Another writer took the same PO number; the header and item
                # rolled back together
                logger.warning(f"PO number collision on attempt {attempt} for SKU {sku_id}: {str(e)}")
            except SQLAlchemyError as e:
                raise PurchaseOrderCreationFailed(f"Failed to create purchase order: {str(e)}")

        raise PurchaseOrderCreationFailed(
            f"Failed to allocate a purchase order number after {PO_NUMBER_ATTEMPTS} attempts"
        )

    def _create_purchase_order(self, session, sku_id, quantity, vendor_id, trigger_type, notes) -> str:
        sku = session.get(Sku, sku_id)
        if sku is None:
            raise PurchaseOrderCreationFailed(f"SKU {sku_id} not found")

        if session.get(Vendor, vendor_id) is None:
            raise PurchaseOrderCreationFailed(f"Vendor {vendor_id} not found")

        unit_price = sku.cost_price or 0
        if unit_price <= 0:
            raise PurchaseOrderCreationFailed("SKU cost price not found")

        latest = session.query(PurchaseOrder.po_number).order_by(
            PurchaseOrder.created_at.desc(),
            PurchaseOrder.po_number.desc()
        ).first()

        manual = trigger_type == TriggerType.MANUAL
        purchase_order = PurchaseOrder(
            po_number=next_po_number(latest[0] if latest else None),
            vendor_id=vendor_id,
            total_amount=quantity * unit_price,
            notes=notes,
            status='draft',
            auto_generated=not manual,
            reorder_source=ReorderSource.MANUAL if manual else ReorderSource.AUTO_REORDER,
            reorder_trigger_type=trigger_type,
            related_sku_ids=[sku_id]
        )
        purchase_order.items.append(PurchaseOrderItem(
            sku_id=sku_id,
            size_id=sku.size_id,
            quantity=quantity,
            unit_price=unit_price,
            total_price=quantity * unit_price
        ))

        session.add(purchase_order)
        session.flush()

        logger.info(f"Created purchase order {purchase_order.po_number} for SKU {sku_id} ({quantity} units)")
        return purchase_order.id

    def insert_trigger_record(self, record: ReorderHistory) -> ReorderHistory:
        if record.status is None:
            record.status = ReorderStatus.PENDING

        try:
            with self.session_scope() as session:
                session.add(record)
                session.flush()
        except IntegrityError as e:
            # The partial unique index rejects a second pending record
            if self.has_pending_trigger(record.sku_id):
                raise DuplicateTriggerSkipped(
                    f"Pending reorder already exists for SKU {record.sku_id}",
                    details={'sku_id': record.sku_id}
                )
            raise DatabaseError(f"Error inserting trigger record for SKU {record.sku_id}: {str(e)}")
        except SQLAlchemyError as e:
            raise DatabaseError(f"Error inserting trigger record for SKU {record.sku_id}: {str(e)}")

        return record

    def has_pending_trigger(self, sku_id: str) -> bool:
        try:
            with self.session_scope() as session:
                return session.query(ReorderHistory.id).filter(
                    ReorderHistory.sku_id == sku_id,
                    ReorderHistory.status == ReorderStatus.PENDING
                ).first() is not None
        except SQLAlchemyError as e:
            raise DatabaseError(f"Error checking pending reorders for SKU {sku_id}: {str(e)}")

    def list_pending_trigger_records(self) -> List[ReorderHistory]:
        try:
            with self.session_scope() as session:
                return session.query(ReorderHistory).filter(
                    ReorderHistory.status == ReorderStatus.PENDING
                ).order_by(ReorderHistory.trigger_timestamp.asc()).all()
        except SQLAlchemyError as e:
            raise DatabaseError(f"Error listing pending reorders: {str(e)}")

    def list_trigger_records(self, sku_id: Optional[str] = None) -> List[ReorderHistory]:
        try:
            with self.session_scope() as session:
                query = session.query(ReorderHistory)
                if sku_id is not None:
                    query = query.filter(ReorderHistory.sku_id == sku_id)
                return query.order_by(ReorderHistory.trigger_timestamp.desc()).all()
        except SQLAlchemyError as e:
            raise DatabaseError(f"Error listing reorder history: {str(e)}")

    def claim_trigger_record(self, record_id: str, claim_token: str) -> bool:
        try:
            with self.session_scope() as session:
                updated = session.query(ReorderHistory).filter(
                    ReorderHistory.id == record_id,
                    ReorderHistory.status == ReorderStatus.PENDING,
                    ReorderHistory.claim_token.is_(None)
                ).update(
                    {'claim_token': claim_token, 'claimed_at': datetime.now()},
                    synchronize_session=False
                )
                return updated == 1
        except SQLAlchemyError as e:
            raise DatabaseError(f"Error claiming trigger record {record_id}: {str(e)}")

    def fail_stale_claims(self, stale_before: datetime, notes: str) -> List[str]:
        try:
            with self.session_scope() as session:
                stale = session.query(ReorderHistory.id).filter(
                    ReorderHistory.status == ReorderStatus.PENDING,
                    ReorderHistory.claimed_at < stale_before
                ).all()
                record_ids = [row.id for row in stale]

                failed = []
                for record_id in record_ids:
                    # Re-check per row so a transition that lands meanwhile wins
                    updated = session.query(ReorderHistory).filter(
                        ReorderHistory.id == record_id,
                        ReorderHistory.status == ReorderStatus.PENDING,
                        ReorderHistory.claimed_at < stale_before
                    ).update(
                        {'status': ReorderStatus.FAILED, 'notes': notes, 'updated_at': datetime.now()},
                        synchronize_session=False
                    )
                    if updated == 1:
                        failed.append(record_id)
                return failed
        except SQLAlchemyError as e:
            raise DatabaseError(f"Error failing stale reorder claims: {str(e)}")

    def transition_trigger_record(
        self,
        record_id: str,
        to_status: ReorderStatus,
        fields: Dict[str, Any],
        claim_token: Optional[str] = None
    ) -> bool:
        data = validate_transition_fields(fields)
        data['status'] = to_status
        data['updated_at'] = datetime.now()

        try:
            with self.session_scope() as session:
                query = session.query(ReorderHistory).filter(
                    ReorderHistory.id == record_id,
                    ReorderHistory.status == ReorderStatus.PENDING
                )
                if claim_token is not None:
                    query = query.filter(ReorderHistory.claim_token == claim_token)

                return query.update(data, synchronize_session=False) == 1
        except SQLAlchemyError as e:
            raise DatabaseError(f"Error updating trigger record {record_id}: {str(e)}")
