"""
Prometheus metrics server for the event ledger.

Starts an HTTP server exposing ledger metrics at /metrics, for processes
that embed the repository but have no HTTP surface of their own.

Usage:
    python -m event_ledger.metrics_server --port 9090
"""

import argparse
import time

from event_ledger.kernel.config import LedgerSettings
from event_ledger.kernel.logging import configure_logging, get_logger
from event_ledger.kernel.metrics import start_metrics_server

logger = get_logger(__name__)


def build_parser(settings: LedgerSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Event Ledger Metrics Server")
    parser.add_argument(
        "--port",
        type=int,
        default=9090,
        help="Port to listen on (default: 9090)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=f"Logging level (default: {settings.log_level})",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=settings.json_logs,
        help="Output logs in JSON format",
    )
    return parser


def main() -> None:
    """Start the exporter and keep the process alive until interrupted."""
    args = build_parser(LedgerSettings.from_env()).parse_args()

    configure_logging(json_output=args.json_logs, log_level=args.log_level)

    logger.info("Starting Prometheus metrics server", port=args.port)
    start_metrics_server(args.port)
    logger.info("Metrics available", url=f"http://0.0.0.0:{args.port}/metrics")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Metrics server stopped")


if __name__ == "__main__":
    main()
