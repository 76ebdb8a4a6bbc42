"""Logging setup for the scholar-digest CLI.

Call ``setup_logging`` once from ``cli.main()`` to configure the
``"scholardigest"`` package logger with timestamps and optional file output.
All other modules obtain a child logger via ``logging.getLogger(__name__)``
and let records propagate here.
"""

import logging
import sys
from pathlib import Path

_FMT = "%(asctime)s  %(levelname)-7s [%(threadName)s] %(message)s"
_DATE = "%H:%M:%S"


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Configure the ``scholardigest`` logger for a CLI session.

    Args:
        verbose:  If True, set level to DEBUG (store requests, cache writes).
                  Default level is INFO.
        log_file: If provided, also write records to this file.  Batch runs
                  keep their per-job failures here.  Parent directories are
                  created automatically.

    Calling this function again replaces the previous handlers.
    """
    logger = logging.getLogger("scholardigest")
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False

    fmt = logging.Formatter(_FMT, datefmt=_DATE)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(fmt)
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(fmt)
        logger.addHandler(fh)
