# =============================================================================
# main.py - CLI entry point
# =============================================================================

import argparse
import logging
import sys
from pathlib import Path

from core.ad_client import ActiveDirectoryClient
from core.exceptions import InputFileError
from core.graph_client import GraphDirectoryClient
from core.models import CountryFallback, OverwritePolicy
from core.reconciler import AttributeReconciler, immutable_identifier
from core.sync_processor import DirectorySyncProcessor
from utils.config import Config


def setup_logging(level: str = "INFO") -> str:
    """Setup logging configuration with both console and file output"""
    from datetime import datetime

    # Create logs directory if it doesn't exist
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    # Generate date-stamped filename
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_filename = log_dir / f"directory_attribute_sync_{timestamp}.log"

    # Create formatter
    formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Get root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers
    root_logger.handlers.clear()

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper()))
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler
    file_handler = logging.FileHandler(log_filename, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)  # Always log DEBUG to file
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Log the setup
    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized - Console: {level.upper()}, File: DEBUG")
    logger.info(f"Log file: {log_filename}")

    return str(log_filename)


def handle_sync(args, config):
    """Run the CSV driven attribute sync"""
    logger = logging.getLogger(__name__)

    if not config.validate_graph_config():
        logger.error(f"Missing required environment variables: {config.get_missing_graph_vars()}")
        sys.exit(1)

    reconciler = AttributeReconciler(
        overwrite_policy=OverwritePolicy(args.overwrite_policy or config.overwrite_policy.value),
        country_fallback=CountryFallback(args.country_fallback or config.country_fallback.value),
        clear_missing_manager=args.clear_missing_manager or config.clear_missing_manager
    )
    logger.info(
        f"Overwrite policy: {reconciler.overwrite_policy.value}, "
        f"country fallback: {reconciler.country_fallback.value}, "
        f"clear missing manager: {reconciler.clear_missing_manager}"
    )

    push_immutable_id = args.push_immutable_id or config.push_immutable_id
    if push_immutable_id:
        logger.warning("Immutable id push enabled: cloud users will be hard-linked to on-premises accounts")

    with GraphDirectoryClient(
            config.graph_tenant_id, config.graph_client_id,
            config.graph_client_secret, timeout=config.call_timeout
    ) as cloud_client, ActiveDirectoryClient(
            config.ad_server, config.ad_username,
            config.ad_password, config.base_dn, timeout=config.call_timeout
    ) as ad_client:
        if not ad_client.connection:
            logger.error("Could not connect to Active Directory")
            sys.exit(1)

        processor = DirectorySyncProcessor(
            cloud_client, ad_client, reconciler,
            max_workers=args.workers or config.max_workers,
            export_snapshots=config.export_snapshots and not args.no_snapshots,
            push_immutable_id=push_immutable_id,
            dry_run=args.dry_run
        )
        stats = processor.process_users(args.input_csv, delimiter=args.delimiter,
                                        report_csv=args.report)

        logger.info("Processing completed")
        logger.info(f"Final success rate: {stats.success_rate:.1f}%")


def handle_immutable_id(args, config):
    """Print the immutable identifier of an on-premises account"""
    logger = logging.getLogger(__name__)

    with ActiveDirectoryClient(
            config.ad_server, config.ad_username,
            config.ad_password, config.base_dn, timeout=config.call_timeout
    ) as ad_client:
        if not ad_client.connection:
            logger.error("Could not connect to Active Directory")
            sys.exit(1)

        local = ad_client.query_user_by_upn(args.principal_name)
        if local is None:
            logger.error(f"User {args.principal_name} not found in AD")
            sys.exit(1)

        print(immutable_identifier(local))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Cloud to on-premises directory attribute sync")
    subparsers = parser.add_subparsers(dest='command', help='Command')

    sync_parser = subparsers.add_parser('sync', help='Sync attributes for the users listed in a CSV')
    sync_parser.add_argument('input_csv', help='Input CSV with UserPrincipalName and Country columns')
    sync_parser.add_argument('--delimiter', default=',', help='CSV delimiter')
    sync_parser.add_argument('--report', help='Output CSV file with one result line per row')
    sync_parser.add_argument('--workers', type=int, help='Rows processed concurrently')
    sync_parser.add_argument('--overwrite-policy', choices=[p.value for p in OverwritePolicy],
                             help='Whether empty cloud values clear on-premises attributes')
    sync_parser.add_argument('--country-fallback', choices=[f.value for f in CountryFallback],
                             help='What to do with unrecognized country names')
    sync_parser.add_argument('--clear-missing-manager', action='store_true',
                             help='Clear the on-premises manager when the cloud user has none')
    sync_parser.add_argument('--no-snapshots', action='store_true',
                             help='Do not write user/manager JSON snapshots')
    sync_parser.add_argument('--push-immutable-id', action='store_true',
                             help='Write the derived immutable id to the cloud user (dangerous)')
    sync_parser.add_argument('--dry-run', action='store_true', help='Compute changes without writing')

    id_parser = subparsers.add_parser('immutable-id', help='Print the immutable id of an AD user')
    id_parser.add_argument('principal_name', help='userPrincipalName of the on-premises account')

    # Global arguments
    parser.add_argument('--log-level', default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level')
    return parser


def main():
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    # Load configuration
    config = Config()
    if not config.validate_ad_config():
        missing_vars = config.get_missing_ad_vars()
        logger.error(f"Missing required environment variables: {missing_vars}")
        sys.exit(1)

    try:
        if args.command == 'sync':
            handle_sync(args, config)
        elif args.command == 'immutable-id':
            handle_immutable_id(args, config)
        else:
            logger.error(f"Unknown command: {args.command}")
            sys.exit(1)

    except InputFileError as e:
        logger.error(f"Cannot read input: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Processing failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
