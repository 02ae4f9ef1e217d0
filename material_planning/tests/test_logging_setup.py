"""
Tests for reorder-run logging helpers.
"""
import unittest
from datetime import datetime, timedelta

from material_planning.exceptions import BatchProcessError, PurchaseOrderCreationFailed
from material_planning.logging_setup import logger as log_manager


class TestBatchLogging(unittest.TestCase):
    def setUp(self):
        # Handlers are attached once; assertLogs swaps them afterwards
        log_manager.get_logger('batch')
        self.log_info = {
            'process_name': 'auto_reorder',
            'start_time': datetime.now() - timedelta(seconds=3),
            'options': {'pending_only': False}
        }

    def test_start_log_records_options(self):
        with self.assertLogs('batch', level='INFO') as logs:
            log_info = log_manager.batch_start_log('auto_reorder', {'pending_only': True})

        self.assertEqual(log_info['options'], {'pending_only': True})
        self.assertIn("pending_only", logs.output[0])

    def test_end_log_summarises_reorder_results(self):
        processes = {
            'auto_reorder': {
                'success': True, 'processed_count': 2, 'triggered_count': 2, 'skipped_count': 1,
                'created_pos': ['PO-ID-1', 'PO-ID-2'], 'errors': []
            },
            'process_pending': {
                'success': False, 'processed_count': 1, 'success_count': 0, 'error_count': 1,
                'skipped_count': 0, 'created_po_ids': [],
                'errors': [{'record_id': 'R-9', 'sku_id': 'SKU-9', 'error': 'no vendor configured for SKU SKU-9'}]
            }
        }

        with self.assertLogs('batch', level='INFO') as logs:
            summary = log_manager.batch_end_log(self.log_info, processes=processes)

        self.assertFalse(summary['success'])
        self.assertEqual(summary['created_po_ids'], ['PO-ID-1', 'PO-ID-2'])
        self.assertEqual(summary['steps']['auto_reorder'], {
            'triggered_count': 2, 'processed_count': 2, 'skipped_count': 1, 'created_po_count': 2
        })
        self.assertEqual(summary['steps']['process_pending']['error_count'], 1)
        self.assertGreaterEqual(summary['duration'], timedelta(seconds=3))

        warnings = [line for line in logs.output if line.startswith('WARNING')]
        self.assertEqual(len(warnings), 1)
        self.assertIn('reorder R-9 for SKU SKU-9 failed', warnings[0])

    def test_end_log_reports_aborted_run(self):
        error = BatchProcessError("Auto reorder sweep failed: timeout", details={'step': 'auto_reorder'})

        with self.assertLogs('batch', level='ERROR') as logs:
            summary = log_manager.batch_end_log(self.log_info, error=error)

        self.assertFalse(summary['success'])
        self.assertEqual(summary['error'], 'Auto reorder sweep failed: timeout')
        self.assertEqual(summary['steps'], {})
        self.assertIn('aborted', logs.output[0])


class TestLogException(unittest.TestCase):
    def setUp(self):
        log_manager.get_logger('reorder')

    def test_context_and_details_are_logged(self):
        try:
            raise PurchaseOrderCreationFailed("Vendor V-1 not found", details={'vendor_id': 'V-1'})
        except PurchaseOrderCreationFailed as e:
            error = e

        with self.assertLogs('reorder', level='ERROR') as logs:
            log_manager.log_exception(
                'reorder', error, "Unexpected error processing reorder", record_id='R-1', sku_id='SKU-1'
            )

        self.assertEqual(len(logs.records), 1)
        message = logs.records[0].getMessage()
        self.assertTrue(message.startswith('[record=R-1 sku=SKU-1] Unexpected error processing reorder'))
        self.assertIn("{'vendor_id': 'V-1'}", message)
        self.assertIsNotNone(logs.records[0].exc_info)

    def test_without_context(self):
        with self.assertLogs('reorder', level='ERROR') as logs:
            log_manager.log_exception('reorder', RuntimeError('boom'))

        self.assertEqual(logs.records[0].getMessage(), 'boom')


if __name__ == '__main__':
    unittest.main()
