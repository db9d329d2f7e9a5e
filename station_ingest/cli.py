"""CLI entry point for the station ingester."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from typing import Optional, Sequence

from .common.config import get_settings
from .domain.errors import ConfigError
from .service import IngestService

logger = logging.getLogger(__name__)

STATS_INTERVAL_SECONDS = 60.0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Ingest station telemetry from MQTT into the relational store",
    )
    p.add_argument("--env-file", help="dotenv file to load (default: .env, or INGEST_ENV_FILE)")
    p.add_argument("--log-level", help="override LOG_LEVEL")
    p.add_argument("--no-preload", action="store_true", help="start with an empty entity cache")
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.env_file:
        os.environ["INGEST_ENV_FILE"] = args.env_file
    if args.no_preload:
        os.environ["PRELOAD_CACHE"] = "false"

    try:
        settings = get_settings()
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    logger.info("Station ingester starting")
    logger.info(
        "Config: mqtt=%s:%d topic=%s batch_size=%d interval=%.1fs workers=%d",
        settings.mqtt_host, settings.mqtt_port, settings.mqtt_topic,
        settings.batch_size, settings.batch_interval_seconds, settings.ingest_workers,
    )

    service = IngestService(settings)
    shutdown = threading.Event()

    def _request_shutdown(signum, frame):
        logger.info("Received %s, shutting down", signal.Signals(signum).name)
        shutdown.set()

    signal.signal(signal.SIGINT, _request_shutdown)
    signal.signal(signal.SIGTERM, _request_shutdown)

    if not service.start():
        logger.error("Startup failed")
        return 1

    while not shutdown.wait(STATS_INTERVAL_SECONDS):
        logger.info("Stats: %s", service.stats)

    service.stop()
    logger.info("Processing finished. Exiting.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
