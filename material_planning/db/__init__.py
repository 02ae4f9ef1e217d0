# material_planning/db/__init__.py
from .connection import DatabaseConnection, db
from .interface import PlanningBackend, SupabaseBackend
from .orm_backend import SqlAlchemyBackend

from material_planning.exceptions import DatabaseError
from material_planning.models import Base


def get_backend() -> PlanningBackend:
    """Get the planning backend for the configured database type."""
    if db.db_type == "supabase":
        return SupabaseBackend(db.get_supabase())

    return SqlAlchemyBackend(db.session_factory)


def create_all_tables():
    """Create all tables (SQL backends only)."""
    if db.db_type == "supabase":
        raise DatabaseError("create_all_tables is only available for SQL backends")

    Base.metadata.create_all(bind=db.engine)


def drop_all_tables():
    """Drop all tables (SQL backends only)."""
    if db.db_type == "supabase":
        raise DatabaseError("drop_all_tables is only available for SQL backends")

    Base.metadata.drop_all(bind=db.engine)


__all__ = [
    'db',
    'get_backend',
    'create_all_tables',
    'drop_all_tables',
    'DatabaseConnection',
    'PlanningBackend',
    'SupabaseBackend',
    'SqlAlchemyBackend'
]
