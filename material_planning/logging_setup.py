# material_planning/logging_setup.py
import logging
import logging.handlers
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from material_planning.config import config

# Counters copied from reorder step results into run summaries
RESULT_COUNT_KEYS = ('triggered_count', 'processed_count', 'success_count', 'error_count', 'skipped_count')


class Logger:
    """Logging manager for the Material Planning reorder service.

    Module loggers (services, backends) propagate to the root logger, which
    writes material_planning.log. Named loggers handed out by get_logger
    (jobs, CLI, error reports) write a file of their own.
    """

    _instance = None
    _loggers = {}

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(Logger, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._log_config = config.log_config
        self._log_dir = Path(self._log_config['directory'])
        self._log_dir.mkdir(parents=True, exist_ok=True)
        self._formatter = logging.Formatter(self._log_config['format'])

        root_logger = logging.getLogger()
        root_logger.setLevel(self.level)
        self._attach_handlers(root_logger, 'material_planning')

        self._initialized = True

    @property
    def level(self):
        return getattr(logging, self._log_config['level'].upper(), logging.INFO)

    def _attach_handlers(self, target: logging.Logger, file_name: str):
        """Replace the handlers of a logger with a rotating file and optional console."""
        for handler in target.handlers[:]:
            target.removeHandler(handler)

        file_handler = logging.handlers.RotatingFileHandler(
            self._log_dir / f"{file_name}.log",
            maxBytes=self._log_config['max_size_mb'] * 1024 * 1024,
            backupCount=self._log_config['backup_count']
        )
        file_handler.setFormatter(self._formatter)
        target.addHandler(file_handler)

        if self._log_config['console_output']:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(self._formatter)
            target.addHandler(console_handler)

    def get_logger(self, name):
        """Get a logger with its own log file.

        Args:
            name: Name of the logger (also the log file name)

        Returns:
            Configured logger instance
        """
        if name in self._loggers:
            return self._loggers[name]

        logger = logging.getLogger(name)
        logger.setLevel(self.level)
        self._attach_handlers(logger, name)
        logger.propagate = False

        self._loggers[name] = logger
        return logger

    def log_exception(self, logger_name, exception, message=None, record_id=None, sku_id=None):
        """Log an exception with its traceback and the reorder it interrupted.

        Args:
            logger_name: Logger name
            exception: Exception object
            message: Optional message to include
            record_id: Trigger record being processed, if any
            sku_id: SKU being processed, if any
        """
        text = f"{message}: {exception}" if message else str(exception)

        context = ' '.join(
            f"{key}={value}" for key, value in (('record', record_id), ('sku', sku_id)) if value
        )
        if context:
            text = f"[{context}] {text}"

        details = getattr(exception, 'details', None)
        if details:
            text = f"{text} (details: {details})"

        self.get_logger(logger_name).error(
            text, exc_info=(type(exception), exception, exception.__traceback__)
        )

    def batch_start_log(self, process_name, options=None):
        """Log the start of a reorder run.

        Returns:
            Dictionary to hand back to batch_end_log
        """
        log_info = {
            'process_name': process_name,
            'start_time': datetime.now(),
            'options': options or {}
        }
        self.get_logger('batch').info(f"Starting reorder run {process_name} with options {log_info['options']}")
        return log_info

    def batch_end_log(self, log_info: Dict, processes: Optional[Dict[str, Dict]] = None, error=None) -> Dict:
        """Log the outcome of a reorder run.

        Each step result is reduced to its counters and created purchase
        orders, and every per-record error is logged as a warning.

        Args:
            log_info: Dictionary returned by batch_start_log
            processes: Step results keyed by step name, shaped like the
                processor and sweep results
            error: BatchProcessError that aborted the run, if any

        Returns:
            Summary with process_name, success, duration, steps and created_po_ids
        """
        batch_logger = self.get_logger('batch')
        processes = processes or {}
        process_name = log_info['process_name']

        summary = {
            'process_name': process_name,
            'success': error is None and all(result.get('success', False) for result in processes.values()),
            'duration': datetime.now() - log_info['start_time'],
            'steps': {},
            'created_po_ids': []
        }

        for step, result in processes.items():
            created = result.get('created_po_ids', result.get('created_pos', []))
            counts = {key: result[key] for key in RESULT_COUNT_KEYS if key in result}
            counts['created_po_count'] = len(created)

            summary['steps'][step] = counts
            summary['created_po_ids'].extend(created)
            batch_logger.info(f"{process_name}/{step}: {counts}")

            for failure in result.get('errors', []):
                batch_logger.warning(
                    f"{process_name}/{step}: reorder {failure.get('record_id') or '-'} "
                    f"for SKU {failure['sku_id']} failed: {failure['error']}"
                )

        if error is not None:
            summary['error'] = error.message
            batch_logger.error(f"Reorder run {process_name} aborted: {error.message}")
        elif summary['success']:
            batch_logger.info(f"Reorder run {process_name} completed")
        else:
            batch_logger.error(f"Reorder run {process_name} finished with record errors")

        batch_logger.info(
            f"Reorder run {process_name}: {len(summary['created_po_ids'])} purchase orders, "
            f"duration {summary['duration']}"
        )
        return summary


# Global logger instance
logger = Logger()


def get_logger(name):
    """Get a logger with the specified name."""
    return logger.get_logger(name)


def log_exception(logger_name, exception, message=None, record_id=None, sku_id=None):
    """Log an exception with stack trace and reorder context."""
    logger.log_exception(logger_name, exception, message, record_id=record_id, sku_id=sku_id)
