"""
Shell command adapter — run an arbitrary command.

Used for vendor steps that are not apt, git or a download: enabling a
systemd unit, adding the user to a group, running ``sdkmanager``.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Receipt

logger = logging.getLogger(__name__)


class ShellCommandAdapter(Adapter):
    """Execute shell commands and capture output.

    Action params:
        command (str): Shell string, run through ``sh -c``.
        argv (list[str]): Alternative to ``command``, run without a shell.
        cwd (str): Working directory (default: inherited).
        env (dict): Extra environment variables.
        ignore_errors (bool): Report failure as ok (for best-effort commands).
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        params = context.action.params
        if not params.get("command") and not params.get("argv"):
            return False, "Missing required param: 'command' or 'argv'"

        cwd = context.working_dir
        if cwd and not Path(cwd).expanduser().is_dir():
            return False, f"Working directory does not exist: {cwd}"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        params = context.action.params
        cmd = params.get("argv") or params["command"]
        cwd = context.working_dir
        receipt = self._run(
            context,
            cmd,
            env=params.get("env"),
            cwd=str(Path(cwd).expanduser()) if cwd else None,
        )
        if receipt.failed and params.get("ignore_errors"):
            logger.info("Ignoring failure of %s: %s", context.action.id, receipt.error)
            return Receipt.success(
                adapter=self.name,
                action_id=context.action.id,
                output=receipt.error or "",
                exit_status=receipt.exit_status,
                metadata={**receipt.metadata, "ignored_error": True},
            )
        return receipt
