# material_planning/db/connection.py
import os
from typing import Any, Dict, Literal

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from supabase import Client, create_client

from material_planning.config import config
from material_planning.exceptions import ConfigError, DatabaseError

DatabaseType = Literal["postgresql", "sqlite", "supabase"]


class DatabaseConfig:
    """Configuration for database connections."""

    @staticmethod
    def get_db_type() -> DatabaseType:
        """Get database type from configuration."""
        db_type = config.get('DATABASE', 'type', default='postgresql').lower()
        # Remove any comments from the value
        return db_type.split('#')[0].strip()

    @staticmethod
    def get_postgresql_config() -> Dict[str, Any]:
        """Get PostgreSQL connection configuration."""
        return {
            'pool_size': config.get_int('DATABASE', 'pool_size', default=10),
            'max_overflow': config.get_int('DATABASE', 'max_overflow', default=20),
            'pool_timeout': config.get_int('DATABASE', 'pool_timeout', default=30),
            'pool_recycle': config.get_int('DATABASE', 'pool_recycle', default=1800),
            'echo': config.get_boolean('DATABASE', 'echo', default=False)
        }

    @staticmethod
    def get_supabase_config() -> Dict[str, str]:
        """Get Supabase connection configuration."""
        # Environment variables win over the config file
        if os.getenv('SUPABASE_URL') and os.getenv('SUPABASE_KEY'):
            return {
                'url': os.getenv('SUPABASE_URL'),
                'key': os.getenv('SUPABASE_KEY')
            }

        return {
            'url': config.get('SUPABASE', 'url', default=''),
            'key': config.get('SUPABASE', 'key', default='')
        }


class DatabaseConnection:
    """Unified database connection handler for PostgreSQL, SQLite and Supabase.

    The connection is opened on first use so that importing the package never
    touches the network.
    """

    _instance = None
    _engine = None
    _SessionLocal = None
    _supabase = None
    _db_type: DatabaseType = None

    def __new__(cls):
        """Ensure singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def _ensure_initialized(self):
        if self._db_type is None:
            self._initialize_connection()

    def _initialize_connection(self):
        """Initialize the database connection based on type."""
        db_type = DatabaseConfig.get_db_type()

        if db_type == "supabase":
            self._initialize_supabase()
        elif db_type in ("postgresql", "sqlite"):
            self._initialize_sql(db_type)
        else:
            raise ConfigError(f"Unknown database type: {db_type}", details={'type': db_type})

        self._db_type = db_type

    def _initialize_sql(self, db_type: str):
        """Initialize a SQLAlchemy engine and session factory."""
        try:
            if db_type == "sqlite":
                self._engine = create_engine(
                    config.get_db_url(),
                    connect_args={"check_same_thread": False},
                    echo=config.get_boolean('DATABASE', 'echo', default=False)
                )
            else:
                pg_config = DatabaseConfig.get_postgresql_config()
                self._engine = create_engine(config.get_db_url(), **pg_config)

            self._SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
                bind=self._engine
            )

            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))

        except Exception as e:
            raise DatabaseError(f"Failed to initialize {db_type} connection: {str(e)}")

    def _initialize_supabase(self):
        """Initialize Supabase connection."""
        supabase_config = DatabaseConfig.get_supabase_config()
        if not supabase_config['url'] or not supabase_config['key']:
            raise ConfigError("Supabase URL and key must be provided")

        try:
            self._supabase = create_client(supabase_config['url'], supabase_config['key'])
        except Exception as e:
            raise DatabaseError(f"Failed to initialize Supabase connection: {str(e)}")

    @property
    def session_factory(self):
        self._ensure_initialized()
        if self._db_type == "supabase":
            raise DatabaseError("session_factory is only available for SQL connections")

        return self._SessionLocal

    def get_supabase(self) -> Client:
        """Get Supabase client (Supabase only)."""
        self._ensure_initialized()
        if self._db_type != "supabase":
            raise DatabaseError("get_supabase is only available for Supabase connections")

        return self._supabase

    @property
    def engine(self):
        """Get SQLAlchemy engine (SQL backends only)."""
        self._ensure_initialized()
        if self._db_type == "supabase":
            raise DatabaseError("engine is only available for SQL connections")

        return self._engine

    @property
    def db_type(self) -> DatabaseType:
        """Get current database type."""
        self._ensure_initialized()
        return self._db_type


# Singleton instance
db = DatabaseConnection()

