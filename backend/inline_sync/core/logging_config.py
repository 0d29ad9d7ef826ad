"""
Logging configuration.

- Standard library only
- Console (readable text) plus an optional CSV file for analysis
- CSV file rotates daily and keeps 30 days
- Sync context travels as `extra` and gets its own columns:

    logger.info("Fetched 12 items", extra={"job_id": "prices", "caller_id": "user-1"})
"""

import csv
import io
import logging
import os
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

# Per-record context columns; records without them get ""
CONTEXT_FIELDS = ("job_id", "caller_id", "error")
CSV_FIELDS = ("timestamp", "level", "module", "message") + CONTEXT_FIELDS

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(job_tag)s%(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

BACKUP_DAYS = 30


def _csv_line(values) -> str:
    output = io.StringIO()
    csv.writer(output, quoting=csv.QUOTE_MINIMAL).writerow(values)
    return output.getvalue().rstrip("\r\n")


class SyncContextFilter(logging.Filter):
    """Fill missing context attributes so every formatter can rely on them."""

    def filter(self, record):
        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, "")
        record.job_tag = f"[{record.job_id}] " if record.job_id else ""
        return True


class CsvFormatter(logging.Formatter):
    """One CSV row per record; quoting of commas and quotes is left to csv."""

    def format(self, record):
        row = [
            self.formatTime(record, self.datefmt),
            record.levelname,
            record.name,
            record.getMessage(),
        ]
        row.extend(getattr(record, name, "") for name in CONTEXT_FIELDS)
        return _csv_line(row)


class CsvRotatingFileHandler(TimedRotatingFileHandler):
    """TimedRotatingFileHandler that starts every new file with the CSV header."""

    def _open(self):
        needs_header = not os.path.exists(self.baseFilename) or os.path.getsize(self.baseFilename) == 0
        stream = super()._open()
        if needs_header:
            stream.write(_csv_line(CSV_FIELDS) + "\n")
            stream.flush()
        return stream


def setup_logging(level: int | str = logging.INFO, log_dir: Path | None = None) -> None:
    """
    Configure the root logger once per process.

    Called from create_app(); later calls are no-ops, so building several
    apps (as the tests do) never duplicates handlers. log_dir=None keeps
    console output only.
    """
    root_logger = logging.getLogger()
    if getattr(root_logger, "_inline_sync_configured", False):
        return

    root_logger.setLevel(level)
    context_filter = SyncContextFilter()

    console_handler = logging.StreamHandler()
    console_handler.addFilter(context_filter)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))
    root_logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        # e.g. inline_sync_2025_12_19.csv, rolled over at midnight
        today = datetime.now().strftime("%Y_%m_%d")
        csv_handler = CsvRotatingFileHandler(
            filename=log_dir / f"inline_sync_{today}.csv",
            when="midnight",
            interval=1,
            backupCount=BACKUP_DAYS,
            encoding="utf-8",
        )
        csv_handler.addFilter(context_filter)
        csv_handler.setFormatter(CsvFormatter(datefmt=DATE_FORMAT))
        root_logger.addHandler(csv_handler)

    root_logger._inline_sync_configured = True

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
