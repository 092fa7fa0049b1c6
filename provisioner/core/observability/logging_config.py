"""
Logging configuration for the provisioner CLI.

Called once by main.py; every module logs through
``logging.getLogger(__name__)``.

Two sinks:

    console   stderr. At the default level it carries only problems the
              run summary does not already print. Records logged with
              ``extra=REPORTED`` (step warnings, the abort reason, a
              failed precondition) end up in the summary, so they are
              dropped here. With -v/--debug the console shows the whole
              step timeline, reported records included.
    run log   PROVISIONER_LOG_FILE, optional. Gets every record at its
              own level (PROVISIONER_LOG_FILE_LEVEL) with full detail.

Levels:  CLI flag  >  PROVISIONER_LOG_LEVEL  >  WARNING
"""

from __future__ import annotations

import logging
import sys

# Pass as ``extra=REPORTED`` for records the CLI summary also shows.
REPORTED = {"reported": True}

_PACKAGE_PREFIX = "provisioner."

_FMT_MINIMAL = "%(message)s"
_FMT_VERBOSE = "%(asctime)s [%(shortname)s] %(message)s"
_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(shortname)s:%(lineno)d  %(message)s"
_DATEFMT_CONSOLE = "%H:%M:%S"

_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"


class _ShortNameFormatter(logging.Formatter):
    """Console formatter: ``provisioner.core.engine.executor`` → ``core.engine.executor``."""

    def format(self, record: logging.LogRecord) -> str:
        name = record.name
        record.shortname = name[len(_PACKAGE_PREFIX):] if name.startswith(_PACKAGE_PREFIX) else name
        return super().format(record)


class _SkipReported(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return not getattr(record, "reported", False)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure the console handler and the optional run log.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Path of the run log, appended to.
        log_file_level: Level for the run log. Defaults to ``level``.
    """
    numeric_level = _parse_level(level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    if numeric_level <= logging.DEBUG:
        console.setFormatter(_ShortNameFormatter(_FMT_DEBUG, datefmt=_DATEFMT_CONSOLE))
    elif numeric_level <= logging.INFO:
        console.setFormatter(_ShortNameFormatter(_FMT_VERBOSE, datefmt=_DATEFMT_CONSOLE))
    else:
        console.setFormatter(logging.Formatter(_FMT_MINIMAL))
        console.addFilter(_SkipReported())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)

    effective_level = numeric_level
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective_level = min(effective_level, file_level)

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(fh)

    root.setLevel(effective_level)
    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Level name to its numeric value; unknown names fall back to WARNING."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
