"""
Shared fixtures: an in-memory SQLite planning backend and seed helpers.
"""
import uuid

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from material_planning.db.orm_backend import SqlAlchemyBackend
from material_planning.models import (
    Base, ProductClass, StockManagementType, Sku, Vendor, WarehouseInventory
)


def make_backend(month=3):
    """Create a SqlAlchemyBackend over a fresh in-memory database.

    Returns:
        Tuple of (backend, session_factory)
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    return SqlAlchemyBackend(session_factory, month_provider=lambda: month), session_factory


def add_vendor(session_factory, name='Acme Supplies'):
    vendor = Vendor(id=str(uuid.uuid4()), code=name[:3].upper(), name=name)
    with session_factory() as session:
        session.add(vendor)
        session.commit()
    return vendor


def add_class(session_factory, min_stock=0, max_stock=0, monthly_levels=None):
    product_class = ProductClass(
        id=str(uuid.uuid4()),
        name='Fabrics',
        stock_management_type=StockManagementType.MONTHLY if monthly_levels else StockManagementType.OVERALL,
        overall_min_stock=min_stock,
        overall_max_stock=max_stock,
        monthly_stock_levels=monthly_levels
    )
    with session_factory() as session:
        session.add(product_class)
        session.commit()
    return product_class


def add_sku(
    session_factory,
    sku_code=None,
    min_threshold=10,
    optimal_threshold=50,
    auto_reorder_enabled=True,
    preferred_vendor_id=None,
    cost_price=2.5,
    class_id=None,
    available=None,
    warehouse_id='WH-1'
):
    """Add a SKU and, when available is given, one inventory row for it."""
    sku = Sku(
        id=str(uuid.uuid4()),
        sku_code=sku_code or f"SKU-{uuid.uuid4().hex[:6]}",
        description='Test SKU',
        status='active',
        class_id=class_id,
        cost_price=cost_price,
        auto_reorder_enabled=auto_reorder_enabled,
        preferred_vendor_id=preferred_vendor_id,
        min_threshold=min_threshold,
        optimal_threshold=optimal_threshold
    )
    with session_factory() as session:
        session.add(sku)
        if available is not None:
            session.add(WarehouseInventory(
                warehouse_id=warehouse_id,
                sku_id=sku.id,
                total_quantity=available,
                reserved_quantity=0,
                available_quantity=available
            ))
        session.commit()
    return sku


def set_available(session_factory, sku_id, available, warehouse_id='WH-1'):
    with session_factory() as session:
        row = session.query(WarehouseInventory).filter_by(sku_id=sku_id, warehouse_id=warehouse_id).one()
        row.available_quantity = available
        row.total_quantity = available + (row.reserved_quantity or 0)
        session.commit()
