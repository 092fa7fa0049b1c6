"""
Shell profile editing — marked config blocks and backups.

A package's environment lives in one delimited block per marker::

    # >>> provisioner: PYENV_ROOT >>>
    export PYENV_ROOT="$HOME/.pyenv"
    ...
    # <<< provisioner: PYENV_ROOT <<<

Presence is decided by the marker string anywhere in the file, so a
hand-written ``export PYENV_ROOT=...`` also counts as configured and is
never duplicated.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from provisioner.core.models.plan import ConfigBlock

logger = logging.getLogger(__name__)


@dataclass
class ConfigureResult:
    """Outcome of one ConfigureEnv application."""

    status: str                    # "appended" | "skipped"
    file: Path
    backup: Path | None = None
    warning: str | None = None


def read_profile(path: Path) -> str | None:
    """Read a profile. None if it does not exist; OSError propagates."""
    if not path.exists():
        return None
    with open(path, encoding="utf-8", errors="surrogateescape", newline="") as f:
        return f.read()


def has_marker(path: Path, markers: list[str]) -> bool:
    """Whether any marker occurs in the file. Missing file → False."""
    text = read_profile(path)
    if text is None:
        return False
    return any(m in text for m in markers)


def backup_file(
    path: Path,
    suffix_format: str = ".backup.%Y%m%d_%H%M%S",
    now: datetime | None = None,
) -> Path:
    """Copy ``path`` next to itself with a timestamped suffix.

    The copy is byte-identical (``shutil.copy2``). Never overwrites an
    earlier backup: a counter is appended on collision.

    Raises:
        FileNotFoundError: The file does not exist.
        OSError: The copy could not be written.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Nothing to back up: {path}")

    stamp = (now or datetime.now()).strftime(suffix_format)
    dest = path.with_name(path.name + stamp)
    counter = 1
    while dest.exists():
        dest = path.with_name(f"{path.name}{stamp}.{counter}")
        counter += 1

    shutil.copy2(path, dest)
    logger.info("Backed up %s → %s", path, dest)
    return dest


def _write_atomic(path: Path, text: str) -> None:
    """Replace a file's content without leaving it half-written."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape", newline="") as f:
            f.write(text)
        if path.exists():
            shutil.copymode(path, tmp)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def append_block(path: Path, block: ConfigBlock) -> str:
    """Append ``block`` unless its marker is already present.

    Returns:
        "appended" or "skipped".
    """
    text = read_profile(path) or ""
    if block.marker in text:
        return "skipped"

    if text and not text.endswith("\n"):
        text += "\n"
    if text:
        text += "\n"
    _write_atomic(path, text + block.render())
    logger.info("Added %s block to %s", block.marker, path)
    return "appended"


def strip_block(path: Path, marker: str) -> int:
    """Remove every copy of a marker's block, and stray lines naming it.

    A begin line without a matching end line does not open a block: only
    the lines naming the marker are removed there, the rest is kept.

    Returns:
        Number of lines removed (0 when the file is absent or clean).
    """
    text = read_profile(path)
    if text is None:
        return 0

    bounds = ConfigBlock(marker=marker, body="")
    lines = text.splitlines(keepends=True)
    kept: list[str] = []
    removed = 0
    i = 0
    while i < len(lines):
        if lines[i].strip() == bounds.begin_line:
            end = next(
                (j for j in range(i + 1, len(lines)) if lines[j].strip() == bounds.end_line),
                None,
            )
            if end is not None:
                removed += end - i + 1
                i = end + 1
                continue
            logger.warning("Unterminated %s block in %s; keeping the lines after it", marker, path)
        if marker in lines[i]:
            removed += 1
        else:
            kept.append(lines[i])
        i += 1

    if removed:
        _write_atomic(path, "".join(kept))
        logger.info("Removed %d %s lines from %s", removed, marker, path)
    return removed


def configure_env(
    path: Path,
    block: ConfigBlock,
    suffix_format: str = ".backup.%Y%m%d_%H%M%S",
) -> ConfigureResult:
    """Idempotently install ``block`` into ``path``, backing up first.

    A failed backup is reported as a warning and does not stop the edit.
    """
    text = read_profile(path) or ""
    if block.marker in text:
        return ConfigureResult(status="skipped", file=path)

    backup: Path | None = None
    warning: str | None = None
    if path.is_file():
        try:
            backup = backup_file(path, suffix_format)
        except OSError as e:
            warning = f"Backup of {path} failed: {e}"

    status = append_block(path, block)
    return ConfigureResult(status=status, file=path, backup=backup, warning=warning)
