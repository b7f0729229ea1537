"""Main entry point for the grooming notification service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import asyncio
import os
import signal
import sys
import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from notifier.config.environment import EnvironmentConfig
from notifier.config.exceptions import ConfigurationError
from notifier.config.loader import load_config
from notifier.config.models import AppConfig
from notifier.logging import get_logger
from notifier.logging.config import configure_logging
from notifier.notifications.service import NotificationService
from notifier.notifications.templates import TemplateEngine
from notifier.persistence import (
    DEFAULT_TEMPLATES_PATH,
    SqlCustomerPreferencesRepository,
    SqlDeliveryLogger,
    SqlNotificationSettingsRepository,
    SqlTemplateRepository,
    close_database,
    init_database,
    seed_defaults,
)
from notifier.providers import build_providers
from notifier.scheduler import RetryScheduler, SchedulerService

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and resolve the effective log level.

    Log level priority: CLI > environment > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def build_service(
    app_config: AppConfig, env_config: EnvironmentConfig
) -> NotificationService:
    """Wire providers and SQL repositories into a NotificationService."""
    email_provider, sms_provider = build_providers(env_config)
    return NotificationService(
        email_provider=email_provider,
        sms_provider=sms_provider,
        template_repository=SqlTemplateRepository(),
        settings_repository=SqlNotificationSettingsRepository(),
        delivery_logger=SqlDeliveryLogger(),
        preferences_repository=SqlCustomerPreferencesRepository(),
        retry_config=app_config.retry,
        batch_config=app_config.batch,
        business_context=app_config.business,
    )


async def run_process_retries(service: NotificationService) -> int:
    """Run one retry sweep. Returns 1 if any retry failed."""
    logger.info("Executing retry sweep", extra={"event": "service.retry_sweep.starting"})
    results = await service.process_retries()
    summary = RetryScheduler.summarize(results)

    logger.info(
        f"Retry sweep finished: {summary.processed} processed, "
        f"{summary.succeeded} succeeded, {summary.failed} failed",
        extra={
            "event": "service.retry_sweep.completed",
            "processed": summary.processed,
            "succeeded": summary.succeeded,
            "failed": summary.failed,
        },
    )
    return 1 if summary.has_failures() else 0


async def run_validate_templates(
    template_repository: SqlTemplateRepository,
    engine: Optional[TemplateEngine] = None,
) -> int:
    """Validate every stored template against its declared variables.

    Returns:
        1 if any template is invalid, 0 otherwise
    """
    engine = engine or TemplateEngine()
    templates = await template_repository.list_templates(active_only=False)
    invalid: List[str] = []

    for template in templates:
        # Required variables may live in any part, so the parts are checked together.
        sources = [template.subject_template, template.html_template, template.text_template]
        result = engine.validate("\n".join(s for s in sources if s), template.variables)

        for warning in result.warnings:
            logger.warning(
                f"Template '{template.id}': {warning}",
                extra={"event": "template.validation.warning", "template_id": template.id},
            )
        if not result.valid:
            invalid.append(template.id)
            for error in result.errors:
                logger.error(
                    f"Template '{template.id}': {error}",
                    extra={"event": "template.validation.error", "template_id": template.id},
                )

    logger.info(
        f"Validated {len(templates)} templates, {len(invalid)} invalid",
        extra={
            "event": "template.validation.completed",
            "template_count": len(templates),
            "invalid_count": len(invalid),
        },
    )
    return 1 if invalid else 0


async def run_daemon(service: NotificationService, app_config: AppConfig) -> int:
    """Run the retry scheduler until SIGINT or SIGTERM."""
    if not app_config.scheduler.enabled:
        logger.warning(
            "Retry scheduler is disabled in configuration; nothing to run",
            extra={"event": "service.daemon_mode.disabled"},
        )
        return 0

    shutdown_event = asyncio.Event()
    scheduler_service = SchedulerService(
        retry_callable=service.process_retries,
        interval_seconds=app_config.scheduler.retry_interval_seconds,
        shutdown_event=shutdown_event,
    )

    loop = asyncio.get_running_loop()

    def handle_signal(signum: int) -> None:
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        scheduler_service.shutdown(wait=False)

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, handle_signal, signum)

    scheduler_service.start()
    logger.info(
        "Scheduler started. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started"},
    )

    try:
        await shutdown_event.wait()
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)
        if scheduler_service.is_running():
            scheduler_service.shutdown(wait=False)

    return 0


async def run(args: argparse.Namespace, app_config: AppConfig, env_config: EnvironmentConfig) -> int:
    """Initialize the database and dispatch to the selected mode."""
    await init_database(env_config.database_url)
    try:
        if args.seed_defaults is not None:
            templates, settings = await seed_defaults(
                SqlTemplateRepository(),
                SqlNotificationSettingsRepository(),
                args.seed_defaults,
            )
            logger.info(
                f"Seeded {templates} templates and {settings} notification settings",
                extra={"event": "service.seed.completed"},
            )
            return 0

        if args.validate_templates:
            return await run_validate_templates(SqlTemplateRepository())

        service = build_service(app_config, env_config)
        if args.process_retries:
            return await run_process_retries(service)
        return await run_daemon(service, app_config)
    finally:
        await close_database()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Grooming Notifier - transactional email and SMS delivery with retries"
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
        "--process-retries",
        action="store_true",
        help="Run a single retry sweep and exit (exit code 1 if any retry failed)",
    )
    mode.add_argument(
        "--validate-templates",
        action="store_true",
        help="Validate stored templates against their declared variables and exit",
    )
    mode.add_argument(
        "--seed-defaults",
        nargs="?",
        type=Path,
        const=DEFAULT_TEMPLATES_PATH,
        default=None,
        metavar="PATH",
        help="Load templates and notification settings from YAML and exit "
        "(default: the packaged defaults)",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for the notifier CLI.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        environment = os.environ.get("ENVIRONMENT", "local")
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=environment,
        )

        logger.info(
            "Grooming Notifier starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "retry_interval_seconds": app_config.scheduler.retry_interval_seconds,
                "max_retries": app_config.retry.max_retries,
            },
        )

        exit_code = asyncio.run(run(args, app_config, env_config))

        logger.info(
            "Grooming Notifier stopped",
            extra={
                "event": "service.stopping",
                "uptime_seconds": round(time.time() - start_time, 2),
                "exit_code": exit_code,
            },
        )
        return exit_code

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
