#!/usr/bin/env python
# run_auto_reorder.py - Script to run the scheduled auto reorder job

import sys
import logging
import argparse

from material_planning.batch.auto_reorder_job import run_auto_reorder_job
from material_planning.logging_setup import get_logger


def main():
    """Run the auto reorder job."""
    parser = argparse.ArgumentParser(description='Run the Material Planning auto reorder job')
    parser.add_argument('--pending-only', action='store_true', help='Only process pending reorders')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')

    args = parser.parse_args()

    logger = get_logger('auto_reorder_runner')
    logger.setLevel(logging.DEBUG if args.verbose else logging.INFO)

    logger.info("Starting auto reorder job runner...")

    try:
        results = run_auto_reorder_job(pending_only=args.pending_only)

        if results.get('success', False):
            logger.info("Auto reorder job completed successfully")
            logger.info(f"Duration: {results.get('duration')}")
        elif results.get('failed_step'):
            logger.error(f"Auto reorder job aborted in step {results['failed_step']}: {results['error']}")
        else:
            logger.error("Auto reorder job finished with record errors")

        for process_name, process_result in results.get('processes', {}).items():
            logger.info(f"Process '{process_name}': {process_result.get('success', False)}")

            if process_result.get('created_pos') or process_result.get('created_po_ids'):
                created = process_result.get('created_pos') or process_result.get('created_po_ids')
                logger.info(f"  Purchase orders created: {len(created)}")

            for error in process_result.get('errors', []):
                logger.warning(f"  SKU {error['sku_id']}: {error['error']}")

        return 0 if results.get('success', False) else 1

    except Exception as e:
        logger.exception(f"Error running auto reorder job: {str(e)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
