# material_planning/db/interface.py
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Type

from postgrest.exceptions import APIError

from material_planning.core.thresholds import resolve_reorder_config, ReorderConfig, get_current_month
from material_planning.exceptions import (
    DatabaseError, DuplicateTriggerSkipped, NotFoundError,
    PurchaseOrderCreationFailed, ValidationError
)
from material_planning.models import (
    Base, ProductClass, ReorderHistory, ReorderSource, ReorderStatus, Sku,
    TriggerType, WarehouseInventory
)
from material_planning.utils.po_numbers import next_po_number

# Columns an operator may change through the settings operation
SKU_CONFIG_FIELDS = ('auto_reorder_enabled', 'preferred_vendor_id', 'min_threshold', 'optimal_threshold')

# Fields a status transition may set alongside the status itself
TRANSITION_FIELDS = ('purchase_order_id', 'vendor_id', 'notes')

UNIQUE_VIOLATION = '23505'


class PlanningBackend(ABC):
    """Collaborator operations the reorder core needs from the hosted backend."""

    @abstractmethod
    def get_sku(self, sku_id: str) -> Optional[Sku]:
        """Get a SKU (with its class threshold profile) by ID."""
        pass

    @abstractmethod
    def list_active_skus(self) -> List[Sku]:
        """List all active SKUs ordered by SKU code."""
        pass

    @abstractmethod
    def list_auto_reorder_skus(self) -> List[Sku]:
        """List active SKUs with auto reorder enabled."""
        pass

    @abstractmethod
    def update_sku_reorder_config(self, sku_id: str, values: Dict[str, Any]) -> None:
        """Persist reorder configuration fields for a SKU."""
        pass

    @abstractmethod
    def get_available_quantity(self, sku_id: str, warehouse_id: Optional[str] = None) -> int:
        """Available quantity for a SKU, summed over warehouses unless one is given."""
        pass

    @abstractmethod
    def get_available_quantities(self, sku_ids: List[str]) -> Dict[str, int]:
        """Available quantity per SKU (SKUs without inventory rows map to 0)."""
        pass

    @abstractmethod
    def list_inventory_rows(self) -> List[WarehouseInventory]:
        """All warehouse x SKU inventory rows."""
        pass

    @abstractmethod
    def create_purchase_order(
        self,
        sku_id: str,
        quantity: int,
        vendor_id: str,
        trigger_type: TriggerType,
        notes: Optional[str] = None
    ) -> str:
        """Create a draft purchase order for one SKU.

        Returns:
            ID of the created purchase order

        Raises:
            PurchaseOrderCreationFailed: On vendor, stock or validation errors
        """
        pass

    @abstractmethod
    def insert_trigger_record(self, record: ReorderHistory) -> ReorderHistory:
        """Insert a pending trigger record.

        Raises:
            DuplicateTriggerSkipped: If a pending record already exists for the SKU
        """
        pass

    @abstractmethod
    def has_pending_trigger(self, sku_id: str) -> bool:
        pass

    @abstractmethod
    def list_pending_trigger_records(self) -> List[ReorderHistory]:
        """Pending trigger records, oldest trigger first."""
        pass

    @abstractmethod
    def list_trigger_records(self, sku_id: Optional[str] = None) -> List[ReorderHistory]:
        """Trigger records (optionally for one SKU), newest trigger first."""
        pass

    @abstractmethod
    def claim_trigger_record(self, record_id: str, claim_token: str) -> bool:
        """Atomically claim a pending record that nobody has claimed yet.

        A claim is never taken over; see fail_stale_claims.

        Returns:
            True if this caller now owns the record
        """
        pass

    @abstractmethod
    def fail_stale_claims(self, stale_before: datetime, notes: str) -> List[str]:
        """Mark pending records claimed before stale_before as failed.

        Returns:
            IDs of the records that were failed
        """
        pass

    @abstractmethod
    def transition_trigger_record(
        self,
        record_id: str,
        to_status: ReorderStatus,
        fields: Dict[str, Any],
        claim_token: Optional[str] = None
    ) -> bool:
        """Conditionally move a record out of pending.

        The update only applies while the record is pending (and, when a
        claim token is given, still owned by that token).

        Returns:
            True if the transition was applied
        """
        pass

    def get_sku_reorder_config(self, sku_id: str) -> ReorderConfig:
        """Resolve the effective reorder configuration of a SKU.

        Raises:
            NotFoundError: If the SKU does not exist
        """
        sku = self.get_sku(sku_id)
        if sku is None:
            raise NotFoundError(f"SKU {sku_id} not found", details={'sku_id': sku_id})

        return resolve_reorder_config(sku, self.current_month())

    def current_month(self) -> int:
        month_provider = getattr(self, '_month_provider', None)
        return month_provider() if month_provider else get_current_month()


def validate_config_values(values: Dict[str, Any]) -> Dict[str, Any]:
    """Reject unknown configuration fields."""
    unknown = set(values) - set(SKU_CONFIG_FIELDS)
    if unknown:
        raise ValidationError(
            f"Unknown reorder configuration fields: {', '.join(sorted(unknown))}",
            details={'fields': sorted(unknown)}
        )
    return dict(values)


def validate_transition_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(fields) - set(TRANSITION_FIELDS)
    if unknown:
        raise ValidationError(f"Fields cannot be set on transition: {', '.join(sorted(unknown))}")
    return dict(fields)


def model_to_dict(instance: Base) -> Dict[str, Any]:
    """Convert model instance to dictionary."""
    result = {}
    for column in instance.__table__.columns:
        value = getattr(instance, column.name)
        if hasattr(value, 'value'):  # Handle enums
            value = value.value
        if isinstance(value, datetime):
            value = value.isoformat()
        result[column.name] = value
    return result


def dict_to_model(model_class: Type[Base], data: Dict[str, Any]) -> Base:
    """Convert dictionary to model instance."""
    instance = model_class()
    for column in instance.__table__.columns:
        if column.name in data:
            setattr(instance, column.name, data[column.name])
    return instance


def parse_timestamp(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace('Z', '+00:00'))


class SupabaseBackend(PlanningBackend):
    """PlanningBackend over the Supabase (PostgREST) client."""

    SKU_COLUMNS = (
        'id, sku_code, description, status, class_id, size_id, cost_price, '
        'auto_reorder_enabled, preferred_vendor_id, min_threshold, optimal_threshold, '
        'class:classes(id, name, stock_management_type, overall_min_stock, '
        'overall_max_stock, monthly_stock_levels)'
    )

    def __init__(self, client, month_provider: Optional[Callable[[], int]] = None):
        """Initialize with Supabase client."""
        self.client = client
        self._month_provider = month_provider

    def _execute(self, query, action: str):
        """Run a PostgREST query and return its rows."""
        try:
            result = query.execute()
        except APIError as e:
            raise DatabaseError(f"Supabase {action} error: {e.message}", code=e.code)

        if hasattr(result, 'error') and result.error:
            raise DatabaseError(f"Supabase {action} error: {result.error}")

        return result.data if result.data else []

    def _sku_from_row(self, row: Dict[str, Any]) -> Sku:
        sku = dict_to_model(Sku, row)
        class_row = row.get('class')
        if class_row:
            sku.product_class = dict_to_model(ProductClass, class_row)
        return sku

    def _record_from_row(self, row: Dict[str, Any]) -> ReorderHistory:
        record = dict_to_model(ReorderHistory, row)
        record.status = ReorderStatus.from_string(row['status'])
        record.trigger_type = TriggerType.from_string(row['trigger_type'])
        for name in ('trigger_timestamp', 'claimed_at', 'created_at', 'updated_at'):
            setattr(record, name, parse_timestamp(row.get(name)))
        return record

    def get_sku(self, sku_id: str) -> Optional[Sku]:
        rows = self._execute(
            self.client.table('skus').select(self.SKU_COLUMNS).eq('id', sku_id).limit(1),
            'query'
        )
        return self._sku_from_row(rows[0]) if rows else None

    def list_active_skus(self) -> List[Sku]:
        rows = self._execute(
            self.client.table('skus').select(self.SKU_COLUMNS).eq('status', 'active').order('sku_code'),
            'query'
        )
        return [self._sku_from_row(row) for row in rows]

    def list_auto_reorder_skus(self) -> List[Sku]:
        rows = self._execute(
            self.client.table('skus')
            .select(self.SKU_COLUMNS)
            .eq('status', 'active')
            .eq('auto_reorder_enabled', True)
            .order('sku_code'),
            'query'
        )
        return [self._sku_from_row(row) for row in rows]

    def update_sku_reorder_config(self, sku_id: str, values: Dict[str, Any]) -> None:
        data = validate_config_values(values)
        rows = self._execute(self.client.table('skus').update(data).eq('id', sku_id), 'update')
        if not rows:
            raise NotFoundError(f"SKU {sku_id} not found", details={'sku_id': sku_id})

    def get_available_quantity(self, sku_id: str, warehouse_id: Optional[str] = None) -> int:
        query = self.client.table('warehouse_inventory').select('available_quantity').eq('sku_id', sku_id)
        if warehouse_id is not None:
            query = query.eq('warehouse_id', warehouse_id)

        rows = self._execute(query, 'query')
        return sum(row.get('available_quantity') or 0 for row in rows)

    def get_available_quantities(self, sku_ids: List[str]) -> Dict[str, int]:
        quantities = {sku_id: 0 for sku_id in sku_ids}
        if not sku_ids:
            return quantities

        rows = self._execute(
            self.client.table('warehouse_inventory')
            .select('sku_id, available_quantity')
            .in_('sku_id', list(sku_ids)),
            'query'
        )
        for row in rows:
            quantities[row['sku_id']] = quantities.get(row['sku_id'], 0) + (row.get('available_quantity') or 0)
        return quantities

    def list_inventory_rows(self) -> List[WarehouseInventory]:
        rows = self._execute(
            self.client.table('warehouse_inventory').select(
                'id, warehouse_id, sku_id, total_quantity, reserved_quantity, available_quantity'
            ),
            'query'
        )
        return [dict_to_model(WarehouseInventory, row) for row in rows]

    def _latest_po_number(self) -> Optional[str]:
        rows = self._execute(
            self.client.table('purchase_orders')
            .select('po_number')
            .order('created_at', desc=True)
            .limit(1),
            'query'
        )
        return rows[0]['po_number'] if rows else None

    def create_purchase_order(
        self,
        sku_id: str,
        quantity: int,
        vendor_id: str,
        trigger_type: TriggerType,
        notes: Optional[str] = None
    ) -> str:
        try:
            sku = self.get_sku(sku_id)
            if sku is None:
                raise PurchaseOrderCreationFailed(f"SKU {sku_id} not found")

            unit_price = sku.cost_price or 0
            if unit_price <= 0:
                raise PurchaseOrderCreationFailed("SKU cost price not found")

            po_rows = self._execute(
                self.client.table('purchase_orders').insert({
                    'po_number': next_po_number(self._latest_po_number()),
                    'vendor_id': vendor_id,
                    'total_amount': quantity * unit_price,
                    'notes': notes,
                    'status': 'draft',
                    'auto_generated': trigger_type != TriggerType.MANUAL,
                    'reorder_source': (
                        ReorderSource.MANUAL.value if trigger_type == TriggerType.MANUAL
                        else ReorderSource.AUTO_REORDER.value
                    ),
                    'reorder_trigger_type': trigger_type.value,
                    'related_sku_ids': [sku_id]
                }),
                'insert'
            )
        except DatabaseError as e:
            raise PurchaseOrderCreationFailed(f"Failed to create purchase order: {e.message}")

        if not po_rows:
            raise PurchaseOrderCreationFailed("Failed to create purchase order")

        po_id = po_rows[0]['id']
        try:
            self._execute(
                self.client.table('purchase_order_items').insert({
                    'purchase_order_id': po_id,
                    'sku_id': sku_id,
                    'size_id': sku.size_id,
                    'quantity': quantity,
                    'unit_price': unit_price,
                    'total_price': quantity * unit_price
                }),
                'insert'
            )
        except DatabaseError as e:
            # Remove the orphaned header row
            self._execute(self.client.table('purchase_orders').delete().eq('id', po_id), 'delete')
            raise PurchaseOrderCreationFailed(f"Failed to create purchase order items: {e.message}")

        return po_id

    def insert_trigger_record(self, record: ReorderHistory) -> ReorderHistory:
        if record.id is None:
            record.id = str(uuid.uuid4())
        if record.trigger_timestamp is None:
            record.trigger_timestamp = datetime.now()
        if record.status is None:
            record.status = ReorderStatus.PENDING

        data = {key: value for key, value in model_to_dict(record).items() if value is not None}
        try:
            result = self.client.table('reorder_history').insert(data).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateTriggerSkipped(
                    f"Pending reorder already exists for SKU {record.sku_id}",
                    details={'sku_id': record.sku_id}
                )
            raise DatabaseError(f"Supabase insert error: {e.message}", code=e.code)

        return self._record_from_row(result.data[0]) if result.data else record

    def has_pending_trigger(self, sku_id: str) -> bool:
        rows = self._execute(
            self.client.table('reorder_history')
            .select('id')
            .eq('sku_id', sku_id)
            .eq('status', ReorderStatus.PENDING.value)
            .limit(1),
            'query'
        )
        return len(rows) > 0

    def list_pending_trigger_records(self) -> List[ReorderHistory]:
        rows = self._execute(
            self.client.table('reorder_history')
            .select('*')
            .eq('status', ReorderStatus.PENDING.value)
            .order('trigger_timestamp'),
            'query'
        )
        return [self._record_from_row(row) for row in rows]

    def list_trigger_records(self, sku_id: Optional[str] = None) -> List[ReorderHistory]:
        query = self.client.table('reorder_history').select('*')
        if sku_id is not None:
            query = query.eq('sku_id', sku_id)

        rows = self._execute(query.order('trigger_timestamp', desc=True), 'query')
        return [self._record_from_row(row) for row in rows]

    def claim_trigger_record(self, record_id: str, claim_token: str) -> bool:
        rows = self._execute(
            self.client.table('reorder_history')
            .update({'claim_token': claim_token, 'claimed_at': datetime.now().isoformat()})
            .eq('id', record_id)
            .eq('status', ReorderStatus.PENDING.value)
            .is_('claim_token', 'null'),
            'update'
        )
        return len(rows) == 1

    def fail_stale_claims(self, stale_before: datetime, notes: str) -> List[str]:
        rows = self._execute(
            self.client.table('reorder_history')
            .update({
                'status': ReorderStatus.FAILED.value,
                'notes': notes,
                'updated_at': datetime.now().isoformat()
            })
            .eq('status', ReorderStatus.PENDING.value)
            .lt('claimed_at', stale_before.isoformat()),
            'update'
        )
        return [row['id'] for row in rows]

    def transition_trigger_record(
        self,
        record_id: str,
        to_status: ReorderStatus,
        fields: Dict[str, Any],
        claim_token: Optional[str] = None
    ) -> bool:
        data = validate_transition_fields(fields)
        data['status'] = to_status.value
        data['updated_at'] = datetime.now().isoformat()

        query = (
            self.client.table('reorder_history')
            .update(data)
            .eq('id', record_id)
            .eq('status', ReorderStatus.PENDING.value)
        )
        if claim_token is not None:
            query = query.eq('claim_token', claim_token)

        rows = self._execute(query, 'update')
        return len(rows) == 1
