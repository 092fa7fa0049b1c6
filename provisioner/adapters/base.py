"""
Adapter base — the protocol contract between the executor and tools.

The executor only talks to external tools (apt, git, curl, tar, vendor
installers, the filesystem) through adapters, and only through this
protocol.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from provisioner.adapters.shell.runner import run_command
from provisioner.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Everything an adapter needs to execute an action."""

    action: Action
    dry_run: bool = False
    timeout: int = 1800
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def working_dir(self) -> str | None:
        """Working directory requested by the action, if any."""
        cwd = self.params.get("cwd")
        return str(cwd) if cwd else None


class Adapter(ABC):
    """Abstract base class for all adapters.

    Adapters perform external side effects and return receipts.
    They NEVER raise exceptions — failures are captured in the Receipt.

    To create a new adapter:
        1. Subclass Adapter
        2. Implement name, is_available, validate, execute
        3. Register it in the AdapterRegistry
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'apt', 'git', 'download')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying tool is installed. Never raises."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Validate that the action can be executed.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Execute the action and return a receipt. MUST never raise."""

    def _run(
        self,
        context: ExecutionContext,
        cmd: list[str] | str,
        *,
        sudo: bool | None = None,
        env: dict[str, str] | None = None,
        cwd: str | None = None,
    ) -> Receipt:
        """Run one command through the shared runner and wrap the result."""
        result = run_command(
            cmd,
            sudo=context.action.sudo if sudo is None else sudo,
            timeout=context.timeout,
            env_overrides=env,
            cwd=cwd or context.working_dir,
        )
        command = cmd if isinstance(cmd, str) else " ".join(cmd)
        if result["ok"]:
            return Receipt.success(
                adapter=self.name,
                action_id=context.action.id,
                output=result.get("stdout", "").strip(),
                exit_status=0,
                duration_ms=result.get("elapsed_ms", 0),
                metadata={"command": command},
            )
        stderr = result.get("stderr", "").strip()
        return Receipt.failure(
            adapter=self.name,
            action_id=context.action.id,
            error=f"{result['error']}: {stderr}" if stderr else result["error"],
            exit_status=result.get("returncode"),
            duration_ms=result.get("elapsed_ms", 0),
            metadata={"command": command, "stdout": result.get("stdout", "")},
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
