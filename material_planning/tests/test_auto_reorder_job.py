"""
Tests for the scheduled auto reorder job and the command line interface.
"""
import unittest
from unittest.mock import MagicMock, patch

from material_planning import main as cli
from material_planning.batch.auto_reorder_job import run_auto_reorder_job
from material_planning.core.thresholds import TriggerDecision
from material_planning.exceptions import BatchProcessError, DatabaseError
from material_planning.models import ReorderStatus, TriggerType
from material_planning.services.reorder_service import ReorderService
from material_planning.services.trigger_queue import ReorderTriggerQueue
from material_planning.tests.factories import add_sku, add_vendor, make_backend


@patch('material_planning.batch.auto_reorder_job.log_manager')
class TestAutoReorderJob(unittest.TestCase):
    def setUp(self):
        """Set up test fixtures."""
        self.backend, self.session_factory = make_backend()
        self.vendor = add_vendor(self.session_factory)
        self.low = add_sku(self.session_factory, available=5, preferred_vendor_id=self.vendor.id)
        self.healthy = add_sku(self.session_factory, available=40, preferred_vendor_id=self.vendor.id)

    def test_full_run_sweeps_then_processes(self, log_manager):
        results = run_auto_reorder_job(backend=self.backend)

        self.assertTrue(results['success'])
        self.assertEqual(list(results['processes']), ['auto_reorder', 'process_pending'])
        self.assertEqual(len(results['processes']['auto_reorder']['created_pos']), 1)
        self.assertEqual(results['processes']['process_pending']['processed_count'], 0)
        self.assertIsNotNone(results['duration'])
        log_manager.batch_end_log.assert_called_once()

        records = self.backend.list_trigger_records(self.low.id)
        self.assertEqual(records[0].status, ReorderStatus.PO_CREATED)
        self.assertEqual(self.backend.list_trigger_records(self.healthy.id), [])

    def test_pending_only_skips_sweep(self, log_manager):
        results = run_auto_reorder_job(pending_only=True, backend=self.backend)

        self.assertTrue(results['success'])
        self.assertNotIn('auto_reorder', results['processes'])
        self.assertEqual(self.backend.list_trigger_records(), [])

    def test_backend_failure_is_reported(self, log_manager):
        backend = MagicMock()
        backend.list_auto_reorder_skus.side_effect = RuntimeError("connection reset")

        results = run_auto_reorder_job(backend=backend)

        self.assertFalse(results['success'])
        self.assertEqual(results['error'], 'Auto reorder sweep failed: connection reset')
        self.assertEqual(results['failed_step'], 'auto_reorder')
        self.assertEqual(results['processes'], {})

        args, kwargs = log_manager.batch_end_log.call_args
        self.assertEqual(args, (log_manager.batch_start_log.return_value,))
        self.assertEqual(kwargs['processes'], {})
        self.assertIsInstance(kwargs['error'], BatchProcessError)

    def test_backend_setup_failure_is_reported(self, log_manager):
        with patch('material_planning.batch.auto_reorder_job.get_backend',
                   side_effect=DatabaseError("Supabase URL and key must be provided")):
            results = run_auto_reorder_job()

        self.assertFalse(results['success'])
        self.assertEqual(results['failed_step'], 'setup')
        self.assertIn('Supabase URL and key must be provided', results['error'])


class TestCommandLine(unittest.TestCase):
    def setUp(self):
        self.backend, self.session_factory = make_backend()
        self.vendor = add_vendor(self.session_factory)
        self.sku = add_sku(self.session_factory, available=5)
        patcher = patch.object(cli, '_reorder_service', side_effect=lambda: ReorderService(self.backend))
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_manual_reorder_command(self):
        with patch('builtins.print'):
            self.assertEqual(cli.main(['manual-reorder', self.sku.id, self.vendor.id]), 0)

        records = self.backend.list_trigger_records(self.sku.id)
        self.assertEqual(records[0].status, ReorderStatus.PO_CREATED)
        self.assertEqual(records[0].reorder_quantity, 45)

    def test_manual_reorder_command_reports_failure(self):
        with patch('builtins.print') as mock_print:
            self.assertEqual(cli.main(['manual-reorder', 'missing-sku', self.vendor.id]), 1)

        self.assertIn('Manual reorder failed', mock_print.call_args[0][0])

    def test_settings_and_pending_commands(self):
        with patch('builtins.print'):
            self.assertEqual(cli.main(['settings', self.sku.id, '--disable']), 0)
            self.assertEqual(cli.main(['pending']), 0)

        self.assertFalse(self.backend.get_sku_reorder_config(self.sku.id).auto_reorder_enabled)

    def test_invalid_settings_exit_code(self):
        with patch('builtins.print'):
            self.assertEqual(cli.main(['settings', self.sku.id, '--enable', '--min', '60', '--optimal', '20']), 1)

    def test_expire_claims_command(self):
        service = ReorderService(self.backend)
        record = service.queue.enqueue(self.sku.id, TriggerType.MANUAL, TriggerDecision(self.sku.id, 5, 10, 50, 45))
        service.queue.claim(record.id)
        expiring = ReorderService(self.backend, queue=ReorderTriggerQueue(self.backend, claim_timeout_seconds=-1))

        with patch.object(cli, '_reorder_service', return_value=expiring), patch('builtins.print'):
            self.assertEqual(cli.main(['expire-claims']), 0)

        self.assertEqual(self.backend.list_trigger_records(self.sku.id)[0].status, ReorderStatus.FAILED)
        self.assertFalse(service.has_pending_reorder(self.sku.id))

    def test_no_command_prints_help(self):
        with patch('sys.stdout'):
            self.assertEqual(cli.main([]), 1)


if __name__ == '__main__':
    unittest.main()
