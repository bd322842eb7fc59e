"""Main entry point for the opportunity notifier service."""

import argparse
import json
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv

from opportunity_notifier.config.environment import EnvironmentConfig
from opportunity_notifier.config.exceptions import ConfigurationError
from opportunity_notifier.config.loader import load_config
from opportunity_notifier.config.models import AppConfig
from opportunity_notifier.logging import configure_logging, get_logger
from opportunity_notifier.notifications.service import DispatchSender
from opportunity_notifier.notifications.telegram_client import TelegramClient
from opportunity_notifier.persistence.database import close_database, init_database
from opportunity_notifier.persistence.exceptions import DatabaseConnectionError
from opportunity_notifier.pipeline import NotificationPipeline
from opportunity_notifier.scheduler import SchedulerService
from opportunity_notifier.sources.catalog import CatalogSource
from opportunity_notifier.sources.eligibility import CatalogEligibilityChecker
from opportunity_notifier.sources.exceptions import OpportunityNotFoundError, SourceError

logger = get_logger(__name__, component="cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="opportunity-notifier",
        description="Opportunity notifier - delay-gated alerts for newly published bounties, projects and grants",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml if present)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--manual-run",
        action="store_true",
        help="Run a single tick immediately and exit",
    )
    mode.add_argument(
        "--trigger",
        metavar="OPPORTUNITY_ID",
        default=None,
        help="Notify eligible recipients about one opportunity now, ignoring the visibility window",
    )
    mode.add_argument(
        "--stats",
        action="store_true",
        help="Print recipient and delivery counters as JSON and exit",
    )
    return parser


def build_pipeline(app_config: AppConfig, env_config: EnvironmentConfig) -> NotificationPipeline:
    """
    Wire the catalog source, eligibility checker, channel client and sender.

    The owned store must already be initialised.
    """
    source = CatalogSource.from_url(
        env_config.catalog_database_url,
        base_url=app_config.catalog.listing_base_url,
        query_timeout_seconds=app_config.catalog.query_timeout_seconds,
    )
    client = TelegramClient(
        token=env_config.telegram_bot_token,
        api_base_url=app_config.telegram.api_base_url,
        timeout=app_config.telegram.request_timeout,
        disable_link_preview=app_config.telegram.disable_link_preview,
    )
    sender = DispatchSender(client, utm_source=app_config.catalog.utm_source)

    return NotificationPipeline(
        source=source,
        sender=sender,
        settings=app_config.notifications,
        checker=CatalogEligibilityChecker(source.engine),
    )


def run_daemon(pipeline: NotificationPipeline, interval_seconds: int) -> int:
    """Run ticks on the schedule until SIGINT or SIGTERM.

    Returns only after an in-flight tick has finished, so its ledger writes
    land before the caller closes the stores.
    """
    shutdown_event = threading.Event()
    scheduler_service = SchedulerService(
        tick_callable=pipeline.run_once,
        interval_seconds=interval_seconds,
        shutdown_event=shutdown_event,
    )

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler_service.start()
    logger.info(
        "Scheduler started. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started"},
    )

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info(
            "Keyboard interrupt received, shutting down",
            extra={"event": "service.keyboard_interrupt"},
        )
    scheduler_service.shutdown(wait=True)
    return 0


def run_manual(pipeline: NotificationPipeline) -> int:
    logger.info("Executing manual tick", extra={"event": "service.manual_run.starting"})
    result = pipeline.run_once()
    logger.info(
        f"Manual tick completed: "
        f"{result.opportunities_processed} opportunities, "
        f"{result.total_eligible} eligible, "
        f"{result.total_sent} sent, "
        f"{result.total_failed} failed",
        extra={
            "event": "service.manual_run.completed",
            "duration_seconds": round(result.duration_seconds, 3),
            "had_errors": result.had_errors,
        },
    )
    return 1 if result.had_errors else 0


def run_trigger(pipeline: NotificationPipeline, opportunity_id: str) -> int:
    try:
        stats = pipeline.trigger_opportunity(opportunity_id)
    except OpportunityNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except SourceError as e:
        print(f"Catalog error: {e}", file=sys.stderr)
        return 1

    print(
        f"Opportunity {stats.opportunity_id}: "
        f"{stats.eligible_count} eligible, {stats.sent_count} sent, "
        f"{stats.failed_count} failed, {stats.unreachable_count} unreachable"
    )
    return 1 if stats.had_errors else 0


def run_stats(pipeline: NotificationPipeline) -> int:
    stats = pipeline.get_stats()
    print(json.dumps(stats.model_dump(), indent=2))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for the opportunity notifier.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)
    load_dotenv()

    pipeline = None
    try:
        app_config, env_config = load_config(args.config)

        log_level = args.log_level or app_config.logging.level
        configure_logging(
            level=log_level,
            format_type=app_config.logging.format,
            environment=app_config.logging.environment,
        )

        logger.info(
            "Opportunity notifier starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": log_level,
                "poll_interval_seconds": app_config.notifications.poll_interval_seconds,
                "delay_hours": app_config.notifications.delay_hours,
                "window_minutes": app_config.notifications.window_minutes,
            },
        )

        init_database(env_config.database_url)
        pipeline = build_pipeline(app_config, env_config)

        if args.stats:
            return run_stats(pipeline)
        if args.trigger:
            return run_trigger(pipeline, args.trigger)
        if args.manual_run:
            return run_manual(pipeline)
        return run_daemon(pipeline, app_config.notifications.poll_interval_seconds)

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        return 1
    except DatabaseConnectionError as e:
        print(f"Database Error: {e}", file=sys.stderr)
        logger.error(
            f"Database unavailable: {e}",
            extra={"event": "service.startup.failed", "error_type": type(e).__name__},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={
                "event": "service.fatal",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1
    finally:
        if pipeline is not None:
            pipeline.close()
        close_database()
        logger.info(
            "Opportunity notifier stopped",
            extra={
                "event": "service.stopping",
                "uptime_seconds": round(time.time() - start_time, 2),
            },
        )


if __name__ == "__main__":
    sys.exit(main())
