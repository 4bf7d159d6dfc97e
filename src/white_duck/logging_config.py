"""Logging setup: console on stderr plus a rotating file under the log directory."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def setup_logging(level: str = "INFO", log_dir: Optional[str] = "logs") -> None:
    """
    Configure the root logger once per process.

    stdout is left alone because the stdio tool transport owns it.

    Args:
        level: Root log level name
        log_dir: Directory for the rotating log file; None disables file logging
    """
    global _configured
    if _configured:
        return

    root = logging.getLogger()
    root.setLevel(level.upper())
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_dir:
        try:
            path = Path(log_dir)
            path.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                path / "white_duck.log", maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
        except OSError as e:
            root.warning(f"File logging disabled, cannot write to {log_dir}: {e}")

    # uvicorn access lines are noisy at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    _configured = True


def mask_secret(value: Optional[str]) -> str:
    """Mask a credential for log output (first four and last two characters)."""
    if not value:
        return ""
    if len(value) <= 6:
        return "***"
    return value[:4] + "…" + value[-2:]
