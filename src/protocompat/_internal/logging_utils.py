"""Split-stream logging setup for the command line."""

import logging
import sys
from typing import Optional, TextIO


class _MaxLevelFilter(logging.Filter):
    def __init__(self, max_level: int) -> None:
        super().__init__()
        self._max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno <= self._max_level


def level_for(verbose: bool = False, quiet: bool = False) -> int:
    """Map CLI verbosity flags to a root log level; quiet wins."""
    if quiet:
        return logging.ERROR
    if verbose:
        return logging.DEBUG
    return logging.WARNING


def configure_split_stream_logging(
    *,
    level: int = logging.WARNING,
    stderr_level: int = logging.WARNING,
    info_stream: Optional[TextIO] = None,
    formatter: Optional[logging.Formatter] = None,
) -> None:
    """Configure root logging:

    - DEBUG/INFO go to `info_stream` (stdout unless the report itself owns stdout)
    - WARNING/ERROR/CRITICAL go to stderr

    Reports written to stdout stay parseable because callers pass
    `info_stream=sys.stderr` for machine-readable formats.
    """
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    if formatter is None:
        formatter = logging.Formatter("%(name)s - %(levelname)s - %(message)s")
    if info_stream is None:
        info_stream = sys.stdout

    if stderr_level < logging.DEBUG:
        stderr_level = logging.DEBUG

    info_handler = logging.StreamHandler(stream=info_stream)
    info_handler.setLevel(logging.DEBUG)
    info_handler.addFilter(_MaxLevelFilter(stderr_level - 1))
    info_handler.setFormatter(formatter)

    stderr_handler = logging.StreamHandler(stream=sys.stderr)
    stderr_handler.setLevel(stderr_level)
    stderr_handler.setFormatter(formatter)

    root.addHandler(info_handler)
    root.addHandler(stderr_handler)
