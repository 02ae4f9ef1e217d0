# material_planning/scripts/setup_db.py
import argparse
import sys
from pathlib import Path

from material_planning.db import create_all_tables, db, drop_all_tables
from material_planning.logging_setup import get_logger

logger = get_logger('db_setup')

MIGRATION_SQL = Path(__file__).parent / 'reorder_history.sql'


def setup_database(drop_existing=False):
    """Set up the database schema.

    Args:
        drop_existing: If True, drop existing tables before creating new ones

    Returns:
        True if setup was successful, False otherwise
    """
    try:
        db_type = db.db_type
        logger.info(f"Database type: {db_type}")

        if db_type in ("postgresql", "sqlite"):
            if drop_existing:
                logger.info("Dropping all existing tables...")
                drop_all_tables()
                logger.info("All tables dropped successfully.")

            logger.info("Creating database tables...")
            create_all_tables()
            logger.info("Database tables created successfully.")

        else:  # Supabase
            logger.info("Using Supabase. Tables must be created via SQL migrations.")
            logger.info(f"Apply {MIGRATION_SQL} for the reorder_history claim columns and pending index.")

        return True
    except Exception as e:
        logger.error(f"Error setting up database: {str(e)}")
        logger.exception(e)
        return False


def main():
    parser = argparse.ArgumentParser(description='Set up the Material Planning database')
    parser.add_argument('--drop', action='store_true', help='Drop existing tables first')
    args = parser.parse_args()

    sys.exit(0 if setup_database(drop_existing=args.drop) else 1)


if __name__ == '__main__':
    main()
