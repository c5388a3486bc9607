"""
Ledger settings

Everything a deployment tunes lives here. Settings are plain values: the
backend client is built once by the caller from them and injected, never
rebuilt per call.
"""

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

ENV_PREFIX = "EVENT_LEDGER_"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LedgerSettings(BaseModel):
    """Storage and logging parameters for a ledger deployment"""

    db_path: Path = Field(
        default=Path(".ledger.db"),
        description="SQLite database file used by the SQLite backend and the CLI",
    )

    table_name: str = Field(
        default="events",
        min_length=1,
        description="DynamoDB table holding event records",
    )

    index_name: str = Field(
        default="allEvents",
        min_length=1,
        description="Secondary index keyed by (marker, timestamp)",
    )

    marker: str = Field(
        default="allEvents",
        min_length=1,
        description="Constant secondary-index partition value shared by every record",
    )

    page_size: int = Field(
        default=100,
        ge=1,
        description="Records fetched per backend round trip while iterating results",
    )

    log_level: LogLevel = Field(default="INFO")

    json_logs: bool = Field(
        default=False,
        description="Render logs as JSON lines instead of console output",
    )

    model_config = {"frozen": True}

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "LedgerSettings":
        """
        Build settings from EVENT_LEDGER_* variables, e.g. EVENT_LEDGER_PAGE_SIZE=50

        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            if name == "json_logs":
                values[name] = raw.strip().lower() in ("1", "true", "yes", "on")
            elif name == "log_level":
                values[name] = raw.strip().upper()
            else:
                values[name] = raw
        return cls(**values)
