"""Main application entry point for the metrics relay."""

import argparse
import asyncio
import logging
import os
import signal
import sys
import time
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config.loader import ConfigLoader
from .config.models import RelaySystemConfig
from .workflow import RelayWorkflow
from .utils.logger import setup_logger
from .utils.metrics import TickResult
from .utils.status import SchedulerState

EXECUTOR_LOGGER = "apscheduler.executors.default"


class CancelledJobFilter(logging.Filter):
    """Drops executor errors for ticks cancelled by a shutdown."""

    def filter(self, record: logging.LogRecord) -> bool:
        exc = record.exc_info[1] if record.exc_info else None
        return not isinstance(exc, asyncio.CancelledError)


_cancelled_job_filter = CancelledJobFilter()


class RelayApp:
    """
    Main relay application.

    Runs a relay tick on a fixed interval until a termination signal arrives.
    A tick never raises into the scheduler: every error is logged and the
    next tick runs at the normal interval.
    """

    def __init__(
        self,
        config_path: str = "config/config.yaml",
        log_level: str = "INFO",
        config: Optional[RelaySystemConfig] = None
    ):
        """
        Initialize relay application.

        Args:
            config_path: Path to configuration file
            log_level: Logging level for the application logger
            config: Already-loaded configuration (skips config_path)
        """
        self.config_path = config_path
        self.logger = setup_logger("metrics_relay", log_level)
        self.scheduler = None
        self.workflow = None
        self.state = SchedulerState.STOPPED
        self._stop_event: Optional[asyncio.Event] = None
        self._current_tick: Optional[asyncio.Task] = None

        self.logger.info("=" * 60)
        self.logger.info("Metrics Relay")
        self.logger.info("=" * 60)

        self.config = config or self._load_config()

        self.logger.info("Initializing relay workflow...")
        self.workflow = RelayWorkflow(self.config, self.logger)
        self.logger.info(
            f"Application initialized with {len(self.config.sources)} source(s)"
        )

    def _load_config(self) -> RelaySystemConfig:
        """
        Load and validate configuration.

        Returns:
            RelaySystemConfig: Loaded configuration

        Raises:
            SystemExit: If configuration is invalid
        """
        try:
            self.logger.info(f"Loading configuration from {self.config_path}")
            config = ConfigLoader.load_from_file(self.config_path)
            self.logger.info("Configuration loaded successfully")
            return config

        except FileNotFoundError:
            self.logger.error(
                f"Configuration file not found: {self.config_path}\n"
                "Please create config/config.yaml from config/config.example.yaml"
            )
            sys.exit(1)

        except Exception as e:
            self.logger.error(
                f"Failed to load configuration: {e}",
                exc_info=True
            )
            sys.exit(1)

    async def run_relay_cycle(self) -> Optional[TickResult]:
        """
        Execute one tick: collection cycle, then relay push.

        Returns:
            TickResult, or None if the tick failed unexpectedly
        """
        try:
            self.logger.info("Starting relay cycle")
            start_time = time.time()

            self._current_tick = asyncio.current_task()
            result = await self.workflow.run()

            duration = time.time() - start_time
            self.logger.info(
                "Relay cycle completed",
                extra={
                    "duration_s": round(duration, 2),
                    "sources_succeeded": result.report.succeeded,
                    "sources_failed": result.report.failed,
                    "pushed": result.pushed,
                    "push_skipped": result.push_skipped
                }
            )
            return result

        except asyncio.CancelledError:
            self.logger.info("Relay cycle cancelled")
            raise

        except Exception as e:
            self.logger.error(
                "Relay cycle failed",
                exc_info=True,
                extra={
                    "error_type": type(e).__name__,
                    "error_message": str(e)
                }
            )
            return None

    def _request_stop(self, signum: int) -> None:
        """Signal handler: stop the scheduler loop."""
        signal_name = signal.Signals(signum).name
        self.logger.info(f"Received {signal_name}, initiating graceful shutdown...")
        if self._stop_event is not None:
            self._stop_event.set()

    def stop(self) -> None:
        """Request shutdown from code (same path as SIGTERM)."""
        if self._stop_event is not None:
            self._stop_event.set()

    async def serve(self) -> None:
        """
        Run relay ticks on a fixed interval with APScheduler.

        The first tick runs immediately. Runs until SIGTERM/SIGINT or stop();
        shutdown cancels the in-flight tick instead of waiting for timeouts.
        """
        interval = self.config.schedule.interval_seconds
        self._stop_event = asyncio.Event()

        loop = asyncio.get_running_loop()
        for signum in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(signum, self._request_stop, signum)

        # Shutdown cancels the in-flight tick; the executor would report it as a job error
        logging.getLogger(EXECUTOR_LOGGER).addFilter(_cancelled_job_filter)

        self.scheduler = AsyncIOScheduler(event_loop=loop)
        self.scheduler.add_job(
            self.run_relay_cycle,
            trigger=IntervalTrigger(seconds=interval),
            id='relay_cycle',
            name='Metrics Relay Cycle',
            max_instances=1,  # Prevent overlapping ticks
            coalesce=True,
            misfire_grace_time=max(1, int(interval)),
            next_run_time=datetime.now()
        )

        self.scheduler.start()
        self.state = SchedulerState.RUNNING
        self.logger.info(f"Scheduler started with interval {interval}s")

        try:
            await self._stop_event.wait()
        finally:
            if self.scheduler.running:
                self.scheduler.shutdown(wait=False)
            if self._current_tick is not None and not self._current_tick.done():
                self._current_tick.cancel()
                await asyncio.gather(self._current_tick, return_exceptions=True)
            for signum in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(signum)
            await self.workflow.aclose()
            self.state = SchedulerState.STOPPED
            self.logger.info("Scheduler stopped")

    async def run_once(self) -> Optional[TickResult]:
        """Run a single tick and release the HTTP client."""
        try:
            return await self.run_relay_cycle()
        finally:
            await self.workflow.aclose()


def main():
    """
    CLI entry point.

    Parses command-line arguments and starts the relay.
    """
    parser = argparse.ArgumentParser(
        description='Scrape broker and host metrics and relay them to a Pushgateway',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with scheduler (default)
  python -m metrics_relay.main

  # Run one cycle and exit (useful for testing)
  python -m metrics_relay.main --run-once

  # Use custom config file
  python -m metrics_relay.main --config /path/to/config.yaml
        """
    )

    parser.add_argument(
        '--config',
        default=os.getenv('RELAY_CONFIG', 'config/config.yaml'),
        help='Path to configuration file (default: RELAY_CONFIG env var or config/config.yaml)'
    )

    parser.add_argument(
        '--run-once',
        action='store_true',
        help='Run one relay cycle and exit (no scheduler)'
    )

    parser.add_argument(
        '--log-level',
        default=os.getenv('LOG_LEVEL', 'INFO'),
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: INFO or LOG_LEVEL env var)'
    )

    args = parser.parse_args()

    logging.getLogger().setLevel(args.log_level)

    try:
        app = RelayApp(config_path=args.config, log_level=args.log_level)
    except Exception as e:
        logging.error(f"Application startup failed: {e}", exc_info=True)
        sys.exit(1)

    if args.run_once:
        result = asyncio.run(app.run_once())
        sys.exit(0 if result is not None and result.pushed else 1)

    asyncio.run(app.serve())


if __name__ == '__main__':
    main()
