# material_planning/models.py
import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Boolean, ForeignKey, Text, Enum, Index, JSON, text
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid():
    return str(uuid.uuid4())


def _enum_column(enum_class, name, **kwargs):
    """Enum column persisted by value ('pending'), matching the hosted schema."""
    return Column(
        Enum(
            enum_class,
            name=name,
            native_enum=False,
            length=32,
            values_callable=lambda members: [member.value for member in members]
        ),
        **kwargs
    )


class TriggerType(enum.Enum):
    """What produced a reorder trigger record.

    Values:
        MANUAL ('manual'): Operator override from the planning screen
        AUTO_SCHEDULE ('auto_schedule'): Scheduled auto reorder sweep
        INVENTORY_CHANGE ('inventory_change'): Live inventory decrease
    """
    MANUAL = 'manual'
    AUTO_SCHEDULE = 'auto_schedule'
    INVENTORY_CHANGE = 'inventory_change'

    def __str__(self):
        """Return the string value of the enum."""
        return self.value

    @classmethod
    def from_string(cls, value: str) -> 'TriggerType':
        """Create a TriggerType from its string value.

        Raises:
            ValueError if the string value is not valid
        """
        try:
            return cls(value)
        except ValueError:
            valid = ', '.join(member.value for member in cls)
            raise ValueError(f"Invalid trigger type: {value}. Valid values are: {valid}")


class ReorderStatus(enum.Enum):
    """Trigger record state machine: pending -> po_created | failed."""
    PENDING = 'pending'
    PO_CREATED = 'po_created'
    FAILED = 'failed'

    def __str__(self):
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self is not ReorderStatus.PENDING

    @classmethod
    def from_string(cls, value: str) -> 'ReorderStatus':
        try:
            return cls(value)
        except ValueError:
            valid = ', '.join(member.value for member in cls)
            raise ValueError(f"Invalid reorder status: {value}. Valid values are: {valid}")


class StockStatus(enum.Enum):
    NORMAL = 'normal'
    LOW = 'low'
    CRITICAL = 'critical'
    OVERSTOCKED = 'overstocked'

    def __str__(self):
        return self.value


class StockManagementType(enum.Enum):
    OVERALL = 'overall'
    MONTHLY = 'monthly'


class ThresholdSource(enum.Enum):
    SKU = 'sku'
    OVERALL = 'overall'
    MONTHLY = 'monthly'

    def __str__(self):
        return self.value


class ReorderSource(enum.Enum):
    MANUAL = 'manual'
    AUTO_REORDER = 'auto_reorder'


class Vendor(Base):
    __tablename__ = 'vendors'

    id = Column(String(36), primary_key=True, default=_uuid)
    code = Column(String(50))
    name = Column(String(255), nullable=False)
    status = Column(String(20), default='active')


class ProductClass(Base):
    __tablename__ = 'classes'

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    status = Column(String(20), default='active')

    # Threshold profile shared by every SKU of the class
    stock_management_type = _enum_column(
        StockManagementType, 'stock_management_type', default=StockManagementType.OVERALL
    )
    overall_min_stock = Column(Integer, default=0)
    overall_max_stock = Column(Integer, default=0)
    monthly_stock_levels = Column(JSON)

    skus = relationship("Sku", back_populates="product_class")


class Sku(Base):
    __tablename__ = 'skus'

    id = Column(String(36), primary_key=True, default=_uuid)
    sku_code = Column(String(100), nullable=False, unique=True)
    description = Column(Text)
    status = Column(String(20), default='active')
    class_id = Column(String(36), ForeignKey('classes.id'))
    size_id = Column(String(36))
    cost_price = Column(Float, default=0.0)

    # Reorder configuration
    auto_reorder_enabled = Column(Boolean, default=False)
    preferred_vendor_id = Column(String(36), ForeignKey('vendors.id'))
    min_threshold = Column(Integer)
    optimal_threshold = Column(Integer)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    product_class = relationship("ProductClass", back_populates="skus", lazy='joined')
    inventory = relationship("WarehouseInventory", back_populates="sku")


class WarehouseInventory(Base):
    __tablename__ = 'warehouse_inventory'

    id = Column(String(36), primary_key=True, default=_uuid)
    warehouse_id = Column(String(36), nullable=False)
    sku_id = Column(String(36), ForeignKey('skus.id'), nullable=False)
    total_quantity = Column(Integer, default=0)
    reserved_quantity = Column(Integer, default=0)
    available_quantity = Column(Integer, default=0)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    sku = relationship("Sku", back_populates="inventory")

    __table_args__ = (
        Index('ix_warehouse_inventory_sku_warehouse', 'sku_id', 'warehouse_id', unique=True),
    )


class PurchaseOrder(Base):
    __tablename__ = 'purchase_orders'

    id = Column(String(36), primary_key=True, default=_uuid)
    po_number = Column(String(50), nullable=False, unique=True)
    vendor_id = Column(String(36), ForeignKey('vendors.id'), nullable=False)
    total_amount = Column(Float, default=0.0)
    notes = Column(Text)
    status = Column(String(20), default='draft')
    auto_generated = Column(Boolean, default=False)
    reorder_source = _enum_column(ReorderSource, 'reorder_source', default=ReorderSource.MANUAL)
    reorder_trigger_type = _enum_column(TriggerType, 'reorder_trigger_type', default=TriggerType.MANUAL)
    related_sku_ids = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.now)

    items = relationship("PurchaseOrderItem", back_populates="purchase_order", cascade="all, delete-orphan")


class PurchaseOrderItem(Base):
    __tablename__ = 'purchase_order_items'

    id = Column(String(36), primary_key=True, default=_uuid)
    purchase_order_id = Column(String(36), ForeignKey('purchase_orders.id'), nullable=False)
    sku_id = Column(String(36), ForeignKey('skus.id'), nullable=False)
    size_id = Column(String(36))
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)

    purchase_order = relationship("PurchaseOrder", back_populates="items")


class ReorderHistory(Base):
    """One reorder decision episode: audit trail and workflow row."""
    __tablename__ = 'reorder_history'

    id = Column(String(36), primary_key=True, default=_uuid)
    sku_id = Column(String(36), ForeignKey('skus.id'), nullable=False)
    trigger_type = _enum_column(TriggerType, 'trigger_type', nullable=False)
    trigger_timestamp = Column(DateTime, nullable=False, default=datetime.now)

    # Snapshot at trigger time, never updated
    inventory_level = Column(Integer, nullable=False)
    min_threshold = Column(Integer, nullable=False)
    optimal_threshold = Column(Integer, nullable=False)
    reorder_quantity = Column(Integer, nullable=False)

    vendor_id = Column(String(36), ForeignKey('vendors.id'))
    purchase_order_id = Column(String(36), ForeignKey('purchase_orders.id'))
    status = _enum_column(ReorderStatus, 'reorder_status', nullable=False, default=ReorderStatus.PENDING)
    notes = Column(Text)

    # Claim-then-act bookkeeping for concurrent processors
    claim_token = Column(String(36))
    claimed_at = Column(DateTime)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        Index('ix_reorder_history_status_timestamp', 'status', 'trigger_timestamp'),
        Index('ix_reorder_history_sku', 'sku_id'),
        # At most one pending record per SKU
        Index(
            'uq_reorder_history_pending_sku', 'sku_id',
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'")
        ),
    )

    def to_dict(self):
        """Convert the record to a plain dictionary."""
        return {
            'id': self.id,
            'sku_id': self.sku_id,
            'trigger_type': self.trigger_type.value if self.trigger_type else None,
            'trigger_timestamp': self.trigger_timestamp,
            'inventory_level': self.inventory_level,
            'min_threshold': self.min_threshold,
            'optimal_threshold': self.optimal_threshold,
            'reorder_quantity': self.reorder_quantity,
            'vendor_id': self.vendor_id,
            'purchase_order_id': self.purchase_order_id,
            'status': self.status.value if self.status else None,
            'notes': self.notes
        }
