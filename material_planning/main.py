import argparse
import sys
import time

from tabulate import tabulate

from material_planning.config import config
from material_planning.db import get_backend
from material_planning.exceptions import MaterialPlanningError
from material_planning.logging_setup import get_logger

log = get_logger('cli')


def init_application():
    """Initialize application components."""
    log.info("Material Planning reorder service initialized")
    log.info(f"Using database type: {config.get('DATABASE', 'type')}")
    return get_backend()


def _reorder_service():
    from material_planning.services.reorder_service import ReorderService
    return ReorderService(init_application())


def _print_errors(errors):
    if errors:
        print("\nErrors:")
        print(tabulate(
            [[error.get('record_id') or '', error['sku_id'], error['error']] for error in errors],
            headers=['Record ID', 'SKU ID', 'Error']
        ))


def setup_db(args):
    """Create (and optionally drop) the planning tables."""
    from material_planning.scripts.setup_db import setup_database

    return 0 if setup_database(drop_existing=args.drop) else 1


def sweep(args):
    """Run the auto reorder sweep."""
    results = _reorder_service().process_auto_reorder()

    print(tabulate([
        ['Triggered', results['triggered_count']],
        ['Skipped (already pending)', results['skipped_count']],
        ['Processed', results['processed_count']],
        ['Purchase orders created', len(results['created_pos'])],
        ['Errors', len(results['errors'])]
    ], headers=['Auto reorder', 'Count']))
    _print_errors(results['errors'])

    return 0 if results['success'] else 1


def process_pending(args):
    """Process pending trigger records."""
    results = _reorder_service().process_pending_reorders()

    print(results['message'])
    if results['created_po_ids']:
        print(tabulate([[po_id] for po_id in results['created_po_ids']], headers=['Purchase Order ID']))
    _print_errors(results['errors'])

    return 0 if results['success'] else 1


def expire_claims(args):
    """Fail pending reorders whose claim has expired."""
    record_ids = _reorder_service().fail_stale_reorders()
    if not record_ids:
        print("No expired reorder claims")
        return 0

    print(tabulate([[record_id] for record_id in record_ids], headers=['Failed Reorder ID']))
    print("\nCheck purchase orders for these SKUs before reordering them again.")
    return 0


def manual_reorder(args):
    """Create a purchase order for a SKU on request."""
    result = _reorder_service().manual_reorder(args.sku_id, args.vendor_id, args.quantity)

    if result['success']:
        print(f"Purchase order {result['po_id']} created (reorder {result['reorder_history_id']})")
        return 0

    print(f"Manual reorder failed: {result['error']}")
    return 1


def settings(args):
    """Update reorder settings of a SKU."""
    _reorder_service().update_auto_reorder_settings(
        args.sku_id,
        args.enable,
        preferred_vendor_id=args.vendor,
        min_threshold=args.min,
        optimal_threshold=args.optimal
    )
    print(f"Auto reorder {'enabled' if args.enable else 'disabled'} for SKU {args.sku_id}")
    return 0


def stats(args):
    """Show planning and reorder statistics."""
    service = _reorder_service()
    planning = service.get_planning_statistics()
    reorders = service.get_reorder_statistics()

    print("\nStock status:")
    print(tabulate([[key, value] for key, value in planning.items()], headers=['Metric', 'Value']))

    print("\nReorder history:")
    rows = [[key, value] for key, value in reorders.items() if key != 'by_trigger_type']
    rows.extend([f"trigger_type: {name}", count] for name, count in reorders['by_trigger_type'].items())
    print(tabulate(rows, headers=['Metric', 'Value']))

    if args.items:
        data = service.get_planning_data(
            query=args.query,
            status_filter=args.status,
            page=args.page,
            limit=args.limit
        )
        print(f"\nPlanning data (page {data['page']}, {data['total_count']} SKUs):")
        print(tabulate(
            [[
                item['sku_code'], item['available_inventory'], item['min_threshold'],
                item['optimal_threshold'], item['threshold_source'], item['status'],
                item['status_percentage']
            ] for item in data['items']],
            headers=['SKU', 'Available', 'Min', 'Optimal', 'Source', 'Status', '%']
        ))

    return 0


def _print_records(records):
    print(tabulate(
        [[
            record.id, record.sku_id, record.trigger_type.value, record.trigger_timestamp,
            record.inventory_level, record.reorder_quantity, record.status.value,
            record.purchase_order_id or '', record.notes or ''
        ] for record in records],
        headers=['ID', 'SKU ID', 'Trigger', 'Triggered At', 'Level', 'Quantity', 'Status', 'PO ID', 'Notes']
    ))


def history(args):
    """Show the reorder history of a SKU."""
    records = _reorder_service().get_reorder_history_for_sku(args.sku_id)
    if not records:
        print(f"No reorder history for SKU {args.sku_id}")
        return 0

    _print_records(records)
    return 0


def pending(args):
    """Show pending trigger records."""
    records = _reorder_service().get_pending_reorders()
    if not records:
        print("No pending reorders")
        return 0

    _print_records(records)
    print(f"\nTotal pending: {len(records)}")
    return 0


def watch(args):
    """React to inventory decreases until interrupted or the feed is lost."""
    from material_planning.services.change_feed import PollingInventoryChangeFeed
    from material_planning.services.inventory_reactor import InventoryChangeReactor

    backend = init_application()
    interval = args.interval or config.reorder_config['poll_interval_seconds']
    reactor = InventoryChangeReactor(backend, PollingInventoryChangeFeed(backend, interval))
    reactor.start()
    print(f"Watching inventory changes every {interval}s (Ctrl+C to stop)")

    try:
        while reactor.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        reactor.stop()
        return 0

    log.critical(f"Inventory watch stopped: {reactor.last_error}")
    reactor.stop(wait=False)
    return 2


def main(argv=None):
    """Main entry point for the command line interface."""
    parser = argparse.ArgumentParser(description='Material Planning reorder CLI')
    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    setup_parser = subparsers.add_parser('setup-db', help='Create database tables')
    setup_parser.add_argument('--drop', action='store_true', help='Drop existing tables first')

    subparsers.add_parser('sweep', help='Run the auto reorder sweep')
    subparsers.add_parser('process-pending', help='Process pending reorders')
    subparsers.add_parser('expire-claims', help='Fail pending reorders whose claim has expired')

    manual_parser = subparsers.add_parser('manual-reorder', help='Create a manual reorder')
    manual_parser.add_argument('sku_id', help='SKU ID')
    manual_parser.add_argument('vendor_id', help='Vendor ID')
    manual_parser.add_argument('--quantity', type=int, help='Quantity to order (defaults to optimal - available)')

    settings_parser = subparsers.add_parser('settings', help='Update auto reorder settings of a SKU')
    settings_parser.add_argument('sku_id', help='SKU ID')
    toggle = settings_parser.add_mutually_exclusive_group(required=True)
    toggle.add_argument('--enable', dest='enable', action='store_true', help='Enable auto reorder')
    toggle.add_argument('--disable', dest='enable', action='store_false', help='Disable auto reorder')
    settings_parser.add_argument('--vendor', help='Preferred vendor ID')
    settings_parser.add_argument('--min', type=int, help='SKU-level minimum threshold')
    settings_parser.add_argument('--optimal', type=int, help='SKU-level optimal threshold')

    stats_parser = subparsers.add_parser('stats', help='Show planning statistics')
    stats_parser.add_argument('--items', action='store_true', help='Also list planning rows')
    stats_parser.add_argument('--query', help='Filter rows by SKU code or description')
    stats_parser.add_argument('--status', help='Filter rows by stock status')
    stats_parser.add_argument('--page', type=int, default=1, help='Page number')
    stats_parser.add_argument('--limit', type=int, help='Rows per page')

    history_parser = subparsers.add_parser('history', help='Show reorder history of a SKU')
    history_parser.add_argument('sku_id', help='SKU ID')

    subparsers.add_parser('pending', help='Show pending reorders')

    watch_parser = subparsers.add_parser('watch', help='React to inventory decreases')
    watch_parser.add_argument('--interval', type=float, help='Polling interval in seconds')

    args = parser.parse_args(argv)

    commands = {
        'setup-db': setup_db,
        'sweep': sweep,
        'process-pending': process_pending,
        'expire-claims': expire_claims,
        'manual-reorder': manual_reorder,
        'settings': settings,
        'stats': stats,
        'history': history,
        'pending': pending,
        'watch': watch
    }

    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 1

    try:
        return command(args)
    except MaterialPlanningError as e:
        log.error(f"{args.command} failed: {str(e)}")
        print(f"Error: {e.message}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
