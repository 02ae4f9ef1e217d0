# material_planning/batch/auto_reorder_job.py
import logging
from datetime import datetime
from typing import Dict, Optional

from material_planning.db import get_backend
from material_planning.db.interface import PlanningBackend
from material_planning.exceptions import BatchProcessError
from material_planning.logging_setup import get_logger, logger as log_manager
from material_planning.services.reorder_service import ReorderService

# Initialize logger
logger = get_logger('auto_reorder_job')
logger.setLevel(logging.INFO)


def open_reorder_service(backend: Optional[PlanningBackend] = None) -> ReorderService:
    """Build the reorder service over the given or configured backend.

    Raises:
        BatchProcessError: If the backend cannot be opened
    """
    try:
        return ReorderService(backend or get_backend())
    except Exception as e:
        raise BatchProcessError(f"Could not open planning backend: {str(e)}", details={'step': 'setup'}) from e


def run_auto_reorder_sweep(service: ReorderService) -> Dict:
    """Evaluate auto-reorder SKUs and process the resulting queue.

    Raises:
        BatchProcessError: If the sweep aborts as a whole
    """
    logger.info("Running auto reorder sweep")
    try:
        return service.process_auto_reorder()
    except Exception as e:
        raise BatchProcessError(f"Auto reorder sweep failed: {str(e)}", details={'step': 'auto_reorder'}) from e


def process_pending_reorders(service: ReorderService) -> Dict:
    """Process trigger records left pending by earlier runs or the reactor.

    Raises:
        BatchProcessError: If processing aborts as a whole
    """
    logger.info("Processing pending reorders")
    try:
        return service.process_pending_reorders()
    except Exception as e:
        raise BatchProcessError(
            f"Processing pending reorders failed: {str(e)}", details={'step': 'process_pending'}
        ) from e


def run_auto_reorder_job(pending_only: bool = False, backend: Optional[PlanningBackend] = None) -> Dict:
    """Run the scheduled auto reorder job.

    Per-record failures are reported in the step results; a failure that
    aborts a step ends the run with error and failed_step set.

    Args:
        pending_only: Skip the threshold sweep and only process pending records
        backend: Planning backend (the configured one by default)

    Returns:
        Dictionary with job results
    """
    job_logger = logging.getLogger('batch')
    log_info = log_manager.batch_start_log('auto_reorder', {'pending_only': pending_only})

    start_time = datetime.now()
    results = {
        'start_time': start_time,
        'end_time': None,
        'duration': None,
        'processes': {}
    }
    error = None

    try:
        service = open_reorder_service(backend)

        if not pending_only:
            job_logger.info("# Step 1: Auto reorder sweep")
            results['processes']['auto_reorder'] = run_auto_reorder_sweep(service)

        job_logger.info("# Step 2: Process pending reorders")
        results['processes']['process_pending'] = process_pending_reorders(service)

    except BatchProcessError as e:
        job_logger.error(f"Error during auto reorder job: {e.message}", exc_info=True)
        error = e
        results['error'] = e.message
        results['failed_step'] = e.details['step']

    results['end_time'] = datetime.now()
    results['duration'] = results['end_time'] - start_time
    results['success'] = error is None and all(
        process.get('success', False) for process in results['processes'].values()
    )
    results['summary'] = log_manager.batch_end_log(log_info, processes=results['processes'], error=error)
    return results


if __name__ == "__main__":
    run_auto_reorder_job()
