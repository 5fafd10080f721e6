"""Command-line entry point: serve configured metrics over HTTP."""
import argparse
import logging
import sys
import threading
import signal

import structlog

from openmetrics_client.config import load_config
from openmetrics_client.engine import MetricsEngine, run_engine_thread
from openmetrics_client.server import ControlAPI


TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def build_formatter(log_format: str) -> logging.Formatter:
    """Formatter for the given log format: one JSON object per line, or pipe-separated text."""
    if log_format == "json":
        return structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso", utc=True),
            ],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(sort_keys=True),
            ],
        )
    return logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def setup_logging(log_level: str, log_format: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(build_formatter(log_format))
    logging.basicConfig(level=level, handlers=[handler])

    # Reduce noise from some libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def main(argv=None):
    """Main function."""
    parser = argparse.ArgumentParser(
        description="OpenMetrics client - serve instrumented metrics for scraping"
    )
    parser.add_argument(
        "--config",
        "-c",
        required=True,
        help="Path to configuration YAML file"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single tick, print the exposition and exit"
    )

    args = parser.parse_args(argv)

    # Load configuration
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config.global_.log_level, config.global_.log_format)
    logger = logging.getLogger(__name__)

    logger.info(f"Configuration loaded from: {args.config}")
    logger.info(f"Tick interval: {config.global_.tick_interval_s}s")
    logger.info(f"Metrics configured: {len(config.metrics)}")

    try:
        engine = MetricsEngine(config)
    except Exception as e:
        logger.error(f"Failed to initialize engine: {e}", exc_info=True)
        sys.exit(1)

    if args.once:
        engine.tick()
        sys.stdout.write(engine.render())
        engine.stop()
        return

    control_api = ControlAPI(engine)

    # Start engine in separate thread
    engine_thread = threading.Thread(
        target=run_engine_thread,
        args=(engine,),
        daemon=True
    )
    engine_thread.start()
    logger.info("Metrics engine started")

    # Setup signal handlers
    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        engine.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if not config.server.enabled:
        logger.info("HTTP server disabled; running engine only")
        engine_thread.join()
        return

    # Run control API (blocking)
    logger.info(f"Serving metrics on {config.server.bind_address}:{config.server.port}/metrics")
    try:
        control_api.run(
            host=config.server.bind_address,
            port=config.server.port
        )
    except Exception as e:
        logger.error(f"Control API error: {e}", exc_info=True)
        engine.stop()
        sys.exit(1)


if __name__ == "__main__":
    main()
