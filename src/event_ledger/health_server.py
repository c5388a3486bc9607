"""
Health check HTTP server for liveness and readiness probes.

Reports whether the SQLite ledger database is reachable and how much it holds.
"""

import sqlite3
from pathlib import Path
from typing import Any

from flask import Flask, jsonify

from event_ledger import __version__
from event_ledger.kernel.logging import get_logger

logger = get_logger(__name__)

app = Flask(__name__)

# Set by initialize_health_server()
_db_path: Path | None = None


def initialize_health_server(db_path: str | Path) -> None:
    """
    Point the health server at a ledger database.

    Args:
        db_path: Path to SQLite database
    """
    global _db_path
    _db_path = Path(db_path)
    logger.info("Health server initialized", db_path=str(_db_path))


def _query_counts(db_path: Path) -> tuple[int, int]:
    """(record count, stream count) read with a short lock timeout"""
    conn = sqlite3.connect(str(db_path), timeout=1.0)
    try:
        records = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
        streams = conn.execute("SELECT COUNT(DISTINCT stream_id) FROM events").fetchone()[0]
        return records, streams
    finally:
        conn.close()


@app.route("/health/live", methods=["GET"])
def liveness() -> tuple[Any, int]:
    """Liveness probe - the process is up."""
    return jsonify({"status": "alive", "service": "event-ledger"}), 200


@app.route("/health/ready", methods=["GET"])
def readiness() -> tuple[Any, int]:
    """
    Readiness probe - the ledger database exists and answers a query.

    Returns:
        JSON response with 200 if ready, 503 if not
    """
    if _db_path is None:
        logger.error("Readiness check failed: DB path not initialized")
        return jsonify({"status": "not_ready", "reason": "database_path_not_initialized"}), 503

    if not _db_path.exists():
        logger.error("Readiness check failed: DB file does not exist", db_path=str(_db_path))
        return (
            jsonify(
                {
                    "status": "not_ready",
                    "reason": "database_file_not_found",
                    "db_path": str(_db_path),
                }
            ),
            503,
        )

    try:
        record_count, _ = _query_counts(_db_path)
    except sqlite3.Error as e:
        logger.error("Readiness check failed: DB error", error=str(e))
        return (
            jsonify(
                {
                    "status": "not_ready",
                    "reason": "database_error",
                    "error": str(e),
                }
            ),
            503,
        )

    logger.debug("Readiness check passed", record_count=record_count)
    return jsonify({"status": "ready", "database": "accessible", "record_count": record_count}), 200


@app.route("/health", methods=["GET"])
def detailed_health() -> tuple[Any, int]:
    """Detailed health check with record and stream counts."""
    health_data: dict[str, Any] = {
        "status": "healthy",
        "service": "event-ledger",
        "version": __version__,
    }

    if _db_path and _db_path.exists():
        try:
            record_count, stream_count = _query_counts(_db_path)
            health_data["database"] = {
                "status": "healthy",
                "path": str(_db_path),
                "record_count": record_count,
                "stream_count": stream_count,
            }
        except sqlite3.Error as e:
            logger.error("Database health check failed", error=str(e))
            health_data["database"] = {"status": "unhealthy", "error": str(e)}
            health_data["status"] = "degraded"
    else:
        health_data["database"] = {"status": "not_initialized"}
        health_data["status"] = "degraded"

    status_code = 200 if health_data["status"] == "healthy" else 503
    return jsonify(health_data), status_code


def run_health_server(port: int = 8080, debug: bool = False) -> None:
    """
    Run the health check server.

    Args:
        port: Port to listen on (default: 8080)
        debug: Enable Flask debug mode (default: False)
    """
    logger.info("Starting health check server", port=port)
    app.run(host="0.0.0.0", port=port, debug=debug)


if __name__ == "__main__":
    from event_ledger.kernel.config import LedgerSettings

    initialize_health_server(LedgerSettings.from_env().db_path)
    run_health_server(port=8080)
