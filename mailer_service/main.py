"""Main entry point for the mailer service.

Without a command flag the service runs as a daemon: the retry sweep and the
retention cleanup run on their configured intervals until SIGINT/SIGTERM.
One-shot commands (--send, --sweep-once, --stats, --cleanup, --health) do
their work, print JSON to stdout and exit. Logs go to stderr.
"""

import argparse
import json
import os
import signal
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

from dotenv import load_dotenv

from mailer_service.config.environment import EnvironmentConfig
from mailer_service.config.exceptions import ConfigurationError
from mailer_service.config.loader import load_config
from mailer_service.config.models import AppConfig
from mailer_service.logging import get_logger
from mailer_service.logging.config import configure_logging
from mailer_service.notifications import (
    Dispatcher,
    NotificationGateway,
    RetrySweep,
    SMTPClient,
    SMTPMailer,
    build_default_dispatcher,
)
from mailer_service.persistence.database import close_database, init_database
from mailer_service.scheduler import CLEANUP_JOB_ID, RETRY_SWEEP_JOB_ID, SchedulerService
from mailer_service.tracking import TrackingService

logger = get_logger(__name__, component="cli")


@dataclass
class Runtime:
    """Wired service objects shared by every command."""

    app_config: AppConfig
    env_config: EnvironmentConfig
    tracking: TrackingService
    dispatcher: Dispatcher
    gateway: NotificationGateway
    retry_sweep: RetrySweep

    def cleanup(self) -> int:
        return self.tracking.cleanup_old_records(self.app_config.tracking.retention_days)


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and resolve the effective log level.

    Log level priority: CLI > LOG_LEVEL environment variable > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level

    return app_config, env_config


def build_runtime(app_config: AppConfig, env_config: EnvironmentConfig) -> Runtime:
    """Initialize the database and wire tracking, transport and dispatch.

    Raises:
        HandlerRegistrationError: If the handlers do not cover every event
    """
    init_database(env_config.database_url)

    tracking = TrackingService(
        max_retries=app_config.tracking.max_retries,
        sender_name=env_config.smtp_sender_name,
        sender_email=env_config.smtp_from,
    )
    mailer = SMTPMailer(
        env_config,
        client=SMTPClient(timeout=app_config.email.timeout_seconds),
        use_tls=app_config.email.use_tls,
        provider=app_config.email.provider,
    )
    dispatcher = build_default_dispatcher(tracking, mailer)

    return Runtime(
        app_config=app_config,
        env_config=env_config,
        tracking=tracking,
        dispatcher=dispatcher,
        gateway=NotificationGateway(dispatcher),
        retry_sweep=RetrySweep(tracking, dispatcher, batch_size=app_config.retry.batch_size),
    )


def build_scheduler(runtime: Runtime, shutdown_event: threading.Event) -> SchedulerService:
    """Scheduler with the retry sweep (when enabled) and the retention cleanup."""
    app_config = runtime.app_config
    scheduler_service = SchedulerService(shutdown_event=shutdown_event)

    if app_config.retry.enabled:
        scheduler_service.add_job(
            RETRY_SWEEP_JOB_ID,
            "Retry failed deliveries",
            runtime.retry_sweep.run_once,
            app_config.retry.sweep_interval_seconds,
            run_immediately=True,
        )

    scheduler_service.add_job(
        CLEANUP_JOB_ID,
        "Delete expired delivery records",
        runtime.cleanup,
        app_config.tracking.cleanup_interval_seconds,
    )
    return scheduler_service


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mailer-service",
        description="Mailer service - event notification dispatch with delivery tracking",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml if present)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )

    commands = parser.add_mutually_exclusive_group()
    commands.add_argument("--send", metavar="EVENT", help="Send one notification and exit")
    commands.add_argument("--sweep-once", action="store_true", help="Run one retry sweep and exit")
    commands.add_argument("--stats", action="store_true", help="Print delivery statistics and exit")
    commands.add_argument("--cleanup", action="store_true", help="Run one retention cleanup and exit")
    commands.add_argument("--health", action="store_true", help="Print the health payload and exit")

    parser.add_argument("--to", metavar="ADDRESS", help="Recipient address for --send")
    parser.add_argument("--data", metavar="JSON", default=None, help="JSON object payload for --send")
    parser.add_argument("--days", type=int, default=30, help="Window for daily stats (default: 30)")
    return parser


def parse_send_data(raw: Optional[str]) -> Dict[str, Any]:
    """Parse the --data JSON object.

    Raises:
        ValueError: If the value is not a JSON object
    """
    if raw is None or not raw.strip():
        return {}
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("--data must be a JSON object")
    return data


def collect_stats(tracking: TrackingService, days: int) -> Dict[str, Any]:
    return {
        "status": tracking.get_stats().model_dump(),
        "events": [item.model_dump(mode="json") for item in tracking.get_event_stats()],
        "daily": [item.model_dump(mode="json") for item in tracking.get_daily_stats(days)],
    }


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def run_daemon(runtime: Runtime, start_time: float) -> int:
    shutdown_event = threading.Event()
    scheduler_service = build_scheduler(runtime, shutdown_event)

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        scheduler_service.shutdown(wait=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler_service.start()
    logger.info("Scheduler started. Press Ctrl+C to stop", extra={"event": "service.daemon_mode.started"})

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down", extra={"event": "service.keyboard_interrupt"})
        scheduler_service.shutdown(wait=False)

    logger.info(
        "Mailer service stopped",
        extra={"event": "service.stopping", "uptime_seconds": round(time.time() - start_time, 2)},
    )
    return 0


def run_command(args: argparse.Namespace, runtime: Runtime) -> int:
    """Execute a one-shot command. Returns the process exit code."""
    if args.send:
        ack = runtime.gateway.send(args.send, args.to, parse_send_data(args.data))
        _print_json(ack)
        return 0 if ack["success"] else 1

    if args.sweep_once:
        result = runtime.retry_sweep.run_once()
        _print_json(result.to_dict())
        return 0

    if args.stats:
        _print_json(collect_stats(runtime.tracking, args.days))
        return 0

    if args.cleanup:
        _print_json({"deleted": runtime.cleanup()})
        return 0

    if args.health:
        _print_json(runtime.gateway.health())
        return 0

    raise ValueError("No one-shot command selected")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for the mailer service.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.send and not args.to:
        parser.error("--send requires --to ADDRESS")
    if args.days < 1:
        parser.error("--days must be at least 1")

    one_shot = bool(args.send or args.sweep_once or args.stats or args.cleanup or args.health)

    load_dotenv()

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=os.environ.get("ENVIRONMENT", "local"),
            stream=sys.stderr,
        )
        logger.info(
            "Mailer service starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "one_shot": one_shot,
            },
        )

        runtime = build_runtime(app_config, env_config)
        try:
            if one_shot:
                return run_command(args, runtime)
            return run_daemon(runtime, start_time)
        finally:
            close_database()

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            exc_info=True,
            extra={"event": "service.failed", "error_type": type(e).__name__},
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
