"""
Filesystem adapter — removes purge targets.

User-owned paths (``~/.pyenv``, ``~/.nvm``) are removed in-process.
Paths that need escalation (``sudo=True`` on the action, e.g.
``/opt/android-studio``) go through ``rm -rf`` via the shared runner.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Receipt
from provisioner.core.models.recipe import expand_path

logger = logging.getLogger(__name__)


class FilesystemAdapter(Adapter):
    """Path removal with receipts.

    Action params:
        operation (str): 'remove'.
        path (str): Target path (``~`` and ``$VARS`` expanded).
    """

    @property
    def name(self) -> str:
        return "filesystem"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.action.params.get("operation", "")
        if operation != "remove":
            return False, f"Unknown operation '{operation}'. Valid: remove"
        if not context.action.params.get("path"):
            return False, "Missing required param: 'path'"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        target = Path(expand_path(context.action.params["path"]))
        try:
            return self._remove(context, target)
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Filesystem error: {e}",
                metadata={"path": str(target)},
            )

    def _remove(self, ctx: ExecutionContext, target: Path) -> Receipt:
        if not target.exists() and not target.is_symlink():
            return Receipt.skip(
                adapter=self.name,
                action_id=ctx.action.id,
                reason=f"Not present: {target}",
                metadata={"path": str(target)},
            )
        if ctx.action.sudo:
            return self._run(ctx, ["rm", "-rf", "--", str(target)])
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        else:
            target.unlink()
        logger.info("Removed %s", target)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Removed {target}",
            metadata={"path": str(target)},
        )
