"""Logging setup for sysdeck."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def setup_logging(
    level: int | str = logging.INFO,
    log_file: str | Path | None = None,
    console: bool = True,
    logger: logging.Logger | None = None,
) -> None:
    """
    Configure a logger, the root one by default. Adds nothing if it already has handlers.

    Args:
        level: Logging level for the logger and its handlers.
        log_file: Optional path of a rotating log file.
        console: Whether to also log to stderr.
        logger: Logger to configure. The root logger by default.
    """
    root = logger if logger is not None else logging.getLogger()
    root.setLevel(level)

    if root.handlers:
        return

    fmt = logging.Formatter(LOG_FORMAT)

    if console:
        ch = logging.StreamHandler()
        ch.setLevel(level)
        ch.setFormatter(fmt)
        root.addHandler(ch)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(str(log_path), maxBytes=2_000_000, backupCount=3, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(fmt)
        root.addHandler(fh)

    if not root.handlers:
        root.addHandler(logging.NullHandler())
