"""
Git adapter — clone or update a repository checkout.

``clone`` is idempotent: an existing checkout at the destination is
pulled instead of re-cloned, and a non-git directory there is an error
rather than something to overwrite.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Receipt
from provisioner.core.models.recipe import expand_path

logger = logging.getLogger(__name__)


class GitAdapter(Adapter):
    """Git clone/pull.

    Action params:
        operation (str): 'clone' (default) or 'pull'.
        url (str): Repository URL (clone).
        dest (str): Checkout directory.
        branch (str): Optional branch or tag.
        depth (int): Optional shallow-clone depth.
        remote (str): Remote for pull (default: origin).
    """

    @property
    def name(self) -> str:
        return "git"

    def is_available(self) -> bool:
        return shutil.which("git") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        params = context.action.params
        operation = params.get("operation", "clone")
        if operation not in ("clone", "pull"):
            return False, f"Unknown operation '{operation}'. Valid: clone, pull"
        if not params.get("dest"):
            return False, "Missing required param: 'dest'"
        if operation == "clone" and not params.get("url"):
            return False, "Missing required param: 'url' for clone"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        params = context.action.params
        dest = Path(expand_path(params["dest"]))

        if params.get("operation", "clone") == "pull" or (dest / ".git").is_dir():
            return self._pull(context, dest)

        if dest.exists() and any(dest.iterdir()):
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Destination exists and is not a git checkout: {dest}",
            )
        return self._clone(context, dest)

    def _clone(self, ctx: ExecutionContext, dest: Path) -> Receipt:
        params = ctx.action.params
        cmd = ["git", "clone"]
        if params.get("depth"):
            cmd += ["--depth", str(params["depth"])]
        if params.get("branch"):
            cmd += ["--branch", str(params["branch"])]
        cmd += [params["url"], str(dest)]
        logger.info("Cloning %s into %s", params["url"], dest)
        return self._run(ctx, cmd)

    def _pull(self, ctx: ExecutionContext, dest: Path) -> Receipt:
        if not (dest / ".git").is_dir():
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"Not a git checkout: {dest}",
            )
        remote = ctx.action.params.get("remote", "origin")
        cmd = ["git", "-C", str(dest), "pull", "--ff-only", remote]
        if ctx.action.params.get("branch"):
            cmd.append(str(ctx.action.params["branch"]))
        logger.info("Updating checkout %s", dest)
        return self._run(ctx, cmd)
