"""
APT adapter — Debian package manager operations.

Mutating operations (update, install, purge, add_architecture) always
run escalated. ``is_package_installed`` is the read-only dpkg query the
prober uses for its package-manager signal.
"""

from __future__ import annotations

import logging
import shutil
import subprocess

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Receipt

logger = logging.getLogger(__name__)

_APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}
_VALID_OPS = {"update", "install", "purge", "autoremove", "add_architecture"}


def is_package_installed(pkg: str, timeout: int = 10) -> tuple[bool, str | None]:
    """Check a dpkg record for one package.

    Returns:
        ``(installed, problem)``. ``problem`` is a description when the
        query itself could not run; the package then counts as absent.
    """
    try:
        r = subprocess.run(
            ["dpkg-query", "-W", "-f=${Status}", pkg],
            capture_output=True, text=True, timeout=timeout,
        )
        return "install ok installed" in r.stdout, None
    except FileNotFoundError:
        return False, "dpkg-query not found"
    except subprocess.TimeoutExpired:
        return False, f"dpkg-query timed out after {timeout}s"
    except OSError as e:
        return False, str(e)


class AptAdapter(Adapter):
    """apt-get operations.

    Action params:
        operation (str): 'update', 'install', 'purge', 'autoremove',
            or 'add_architecture'.
        packages (list[str]): Package names (install, purge).
        architecture (str): Foreign architecture (add_architecture).
    """

    @property
    def name(self) -> str:
        return "apt"

    def is_available(self) -> bool:
        return shutil.which("apt-get") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        params = context.action.params
        operation = params.get("operation", "install")
        if operation not in _VALID_OPS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(_VALID_OPS))}"
        if operation in ("install", "purge") and not params.get("packages"):
            return False, f"Missing required param: 'packages' for {operation}"
        if operation == "add_architecture" and not params.get("architecture"):
            return False, "Missing required param: 'architecture'"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        params = context.action.params
        operation = params.get("operation", "install")
        packages = list(params.get("packages", []))

        if operation == "update":
            cmd = ["apt-get", "update"]
        elif operation == "install":
            cmd = ["apt-get", "install", "-y", *packages]
        elif operation == "purge":
            installed = [p for p in packages if is_package_installed(p)[0]]
            if not installed:
                return Receipt.skip(
                    adapter=self.name,
                    action_id=context.action.id,
                    reason=f"None installed: {', '.join(packages)}",
                )
            cmd = ["apt-get", "purge", "-y", *installed]
        elif operation == "autoremove":
            cmd = ["apt-get", "autoremove", "-y"]
        else:
            cmd = ["dpkg", "--add-architecture", params["architecture"]]

        logger.info("apt %s %s", operation, " ".join(packages))
        return self._run(context, cmd, sudo=True, env=_APT_ENV)
