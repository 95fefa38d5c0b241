"""Command line entry point for the chargEV check-in synchronization."""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace

from prometheus_client import start_http_server

from plugsync.config import SyncConfig
from plugsync.errors import SyncError
from plugsync.logging_utils import JSONFormatter, log_error
from plugsync.plugins import FluentdAuditPlugin, PrometheusMetricsPlugin
from plugsync.sync import CheckInsSyncManager, SyncOptions


def setup_logging(level: str = "INFO", log_file: str | None = None):
    """Configure JSON logging for the application."""
    json_formatter = JSONFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(json_formatter)
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(json_formatter)
        handlers.append(file_handler)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers = handlers

    # Suppress verbose logging from dependencies
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def parse_fluentd_endpoint(parser: argparse.ArgumentParser, endpoint: str) -> tuple[str, int]:
    if ":" not in endpoint:
        parser.error("--fluentd-endpoint must be in host:port format (e.g., localhost:24224)")
    host, port_str = endpoint.rsplit(":", 1)
    if not host:
        parser.error("--fluentd-endpoint host cannot be empty")
    try:
        return host, int(port_str)
    except ValueError:
        parser.error(f"Invalid port in --fluentd-endpoint: {endpoint}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="plugsync - synchronize chargEV check-ins with the record store"
    )
    parser.add_argument(
        "--download",
        action="store_true",
        help="Download new events from chargEV DB into the record store (default)",
    )
    parser.add_argument(
        "--upload",
        action="store_true",
        help="Upload check-ins created in the record store to chargEV DB",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute everything but write nothing",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of records to process per direction (default: unlimited)",
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help="Purge previously synchronized records and synchronize everything from scratch",
    )
    parser.add_argument("--verbose", action="store_true", help="Log resume positions")
    parser.add_argument(
        "--db",
        default=None,
        help="Path to SQLite record store (default: PLUGSYNC_DB or plugsync.db)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write JSON logs to this file",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Port for Prometheus metrics HTTP server (default: disabled)",
    )
    parser.add_argument(
        "--fluentd-endpoint",
        default=None,
        help="Fluentd endpoint in host:port format (e.g., localhost:24224). If provided, enables Fluentd audit logging.",
    )
    parser.add_argument(
        "--fluentd-tag",
        default="plugsync",
        help="Tag prefix for Fluentd events (default: plugsync)",
    )
    return parser


async def main(argv: list[str] | None = None) -> int:
    """Run the requested sync directions and return the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.limit is not None and args.limit < 0:
        parser.error("--limit must not be negative")

    fluentd_endpoint = None
    if args.fluentd_endpoint:
        fluentd_endpoint = parse_fluentd_endpoint(parser, args.fluentd_endpoint)

    setup_logging(args.log_level, args.log_file)
    logger = logging.getLogger(__name__)

    config = SyncConfig.from_env()
    if args.db:
        config = replace(config, db_path=args.db)

    download = args.download or not args.upload
    logger.info(
        "Sync starting",
        extra={
            "event_type": "sync_startup",
            "event_data": {
                "database": config.db_path,
                "download": download,
                "upload": args.upload,
                "dry_run": args.dry_run,
                "limit": args.limit,
                "init": args.init,
                "fluentd_enabled": fluentd_endpoint is not None,
            },
        },
    )

    plugins = []
    if args.metrics_port:
        start_http_server(args.metrics_port)
        plugins.append(PrometheusMetricsPlugin())
    if fluentd_endpoint:
        host, port = fluentd_endpoint
        plugins.append(FluentdAuditPlugin(tag_prefix=args.fluentd_tag, host=host, port=port))

    options = SyncOptions(
        dry_run=args.dry_run,
        limit=args.limit,
        verbose=args.verbose,
        init=args.init,
    )
    manager = await CheckInsSyncManager.from_config(config, options, plugins)
    try:
        await manager.initialize()
        summaries = await manager.run(download=download, upload=args.upload)
    except SyncError as e:
        log_error(logger, "sync_error", f"Sync aborted: {e}", exc_info=e)
        raise
    finally:
        stats = manager.stats()
        await manager.close()

    print(f"GoingElectric API requests: {stats['registry_requests']}")
    for summary in summaries:
        print(
            f"{summary.direction}: processed {summary.processed}, accepted {summary.accepted}, "
            f"skipped {summary.total_skipped}, failed {summary.failed}, conflicts {summary.conflicts}"
        )

    return 1 if any(summary.conflicts for summary in summaries) else 0


def run():
    """Entry point for console script."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(130)
    except SyncError as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run()
