"""
Subprocess runner — the single place ``subprocess.run`` is called.

Every adapter goes through ``run_command`` so sudo handling, timeouts,
environment overrides and output trimming behave the same for apt,
git, curl and vendor installers.

Sudo rules:
- Already root: no prefix.
- Otherwise plain ``sudo``, which asks on the controlling terminal.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from typing import Any

logger = logging.getLogger(__name__)

_OUTPUT_TAIL = 4000


def _is_root() -> bool:
    return os.geteuid() == 0


def run_command(
    cmd: list[str] | str,
    *,
    sudo: bool = False,
    timeout: int = 300,
    env_overrides: dict[str, str] | None = None,
    cwd: str | None = None,
) -> dict[str, Any]:
    """Run one external command to completion.

    Args:
        cmd: argv list, or a shell string (run through ``sh -c``).
        sudo: Whether the command needs root.
        timeout: Seconds before the command is killed.
        env_overrides: Extra environment variables.
        cwd: Working directory.

    Returns:
        ``{"ok": True, "stdout": ..., "returncode": 0, "elapsed_ms": N}``
        or ``{"ok": False, "error": ..., "returncode": N | None, ...}``.
    """
    argv = ["sh", "-c", cmd] if isinstance(cmd, str) else list(cmd)

    if sudo and not _is_root():
        argv = ["sudo", *argv]

    env = os.environ.copy()
    if env_overrides:
        for key, value in env_overrides.items():
            env[key] = os.path.expandvars(value)

    logger.debug("Running: %s (cwd=%s, sudo=%s)", cmd, cwd, sudo)
    start = time.monotonic()
    try:
        result = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired:
        return {"ok": False, "returncode": None, "error": f"Command timed out ({timeout}s)"}
    except FileNotFoundError as e:
        return {"ok": False, "returncode": 127, "error": f"Command not found: {e.filename}"}
    except OSError as e:
        logger.exception("Subprocess error: %s", cmd)
        return {"ok": False, "returncode": None, "error": str(e)}

    elapsed_ms = int((time.monotonic() - start) * 1000)
    stdout = result.stdout[-_OUTPUT_TAIL:] if result.stdout else ""
    stderr = result.stderr[-_OUTPUT_TAIL:] if result.stderr else ""

    if result.returncode == 0:
        return {
            "ok": True,
            "returncode": 0,
            "stdout": stdout,
            "stderr": stderr,
            "elapsed_ms": elapsed_ms,
        }

    return {
        "ok": False,
        "returncode": result.returncode,
        "error": f"Command failed (exit {result.returncode})",
        "stdout": stdout,
        "stderr": stderr,
        "elapsed_ms": elapsed_ms,
    }
