"""
Step executor — runs a ReconciliationPlan strictly in order.

Each step kind carries its own failure policy:

    backup         best-effort, failure is a warning
    purge          best-effort per target, never aborts
    install        fatal, after retries and fallback sources
    configure_env  idempotent (marker present → skip), backup before append
    verify         never aborts, unmet postconditions become warnings;
                   unmet required ones also fail the run

External tools are only reached through the adapter registry. Profile
edits and backups are done in-process by the profile service.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.config.loader import ProvisionerConfig
from provisioner.core.errors import StepFailure
from provisioner.core.models.action import Action, Receipt
from provisioner.core.models.plan import (
    MUTATING_KINDS,
    BackupStep,
    ConfigureEnvStep,
    InstallStep,
    PurgeStep,
    PurgeTarget,
    ReconciliationPlan,
    VerifyStep,
)
from provisioner.core.models.recipe import Postcondition
from provisioner.core.observability.logging_config import REPORTED
from provisioner.core.services import profile
from provisioner.core.services.prober import check_postconditions

logger = logging.getLogger(__name__)


@dataclass
class StepResult:
    """Outcome of one plan step."""

    index: int
    kind: str
    name: str
    status: str = "ok"          # ok | skipped | warning | failed
    detail: str = ""
    attempts: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "kind": self.kind,
            "name": self.name,
            "status": self.status,
            "detail": self.detail,
            "attempts": self.attempts,
        }


@dataclass
class ExecutionReport:
    """Result of executing a plan."""

    package_name: str = ""
    dry_run: bool = False
    steps: list[StepResult] = field(default_factory=list)
    receipts: list[Receipt] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    aborted: bool = False
    failed_step: str | None = None
    exit_status: int | None = None
    error: str | None = None
    verification_failed: list[str] = field(default_factory=list)

    @property
    def mutations(self) -> int:
        """Mutating steps that actually ran (dry runs never count)."""
        if self.dry_run:
            return 0
        return sum(
            1 for s in self.steps
            if s.kind in MUTATING_KINDS and s.status not in ("skipped", "failed")
        )

    @property
    def status(self) -> str:
        if self.aborted or self.verification_failed:
            return "failed"
        if self.warnings:
            return "warning"
        return "ok"

    def to_dict(self) -> dict[str, Any]:
        return {
            "package": self.package_name,
            "dry_run": self.dry_run,
            "status": self.status,
            "aborted": self.aborted,
            "failed_step": self.failed_step,
            "exit_status": self.exit_status,
            "error": self.error,
            "verification_failed": list(self.verification_failed),
            "steps": [s.to_dict() for s in self.steps],
            "warnings": list(self.warnings),
            "notes": list(self.notes),
            "receipts": [r.model_dump(mode="json") for r in self.receipts],
        }


class _StepRunner:
    """Per-run state shared by the step handlers."""

    def __init__(
        self,
        registry: AdapterRegistry,
        report: ExecutionReport,
        config: ProvisionerConfig,
        dry_run: bool,
        sleep: Callable[[float], None],
        verifier: Callable[[list[Postcondition]], list[Postcondition]],
    ):
        self.registry = registry
        self.report = report
        self.config = config
        self.dry_run = dry_run
        self.sleep = sleep
        self.verifier = verifier

    def _execute(self, action: Action) -> Receipt:
        receipt = self.registry.execute_action(
            action, dry_run=self.dry_run, timeout=self.config.command_timeout,
        )
        self.report.receipts.append(receipt)
        return receipt

    def _warn(self, result: StepResult, message: str) -> None:
        result.status = "warning"
        self.report.warnings.append(message)
        logger.warning(message, extra=REPORTED)

    # ── Backup ───────────────────────────────────────────────────

    def backup(self, step: BackupStep, result: StepResult) -> None:
        path = Path(step.file)
        if self.dry_run:
            result.status = "skipped"
            result.detail = f"[dry-run] Would back up {path}"
            return
        try:
            if not path.is_file():
                result.status = "skipped"
                result.detail = f"Not present: {path}"
                return
            dest = profile.backup_file(path, self.config.backup_suffix)
        except OSError as e:
            self._warn(result, f"Backup of {path} failed: {e}")
            return
        result.detail = f"Backed up to {dest}"
        self.report.notes.append(f"Backup: {dest}")

    # ── Purge ────────────────────────────────────────────────────

    def _purge_action(self, target: PurgeTarget, n: int) -> Action:
        if target.kind == "command":
            return Action(
                id=f"purge:command:{n}",
                name=f"run {target.value}",
                adapter="shell",
                params={"command": target.value, "ignore_errors": True},
                sudo=target.sudo,
            )
        if target.kind == "system_package":
            return Action(
                id=f"purge:system_package:{target.value}",
                name=f"purge {target.value}",
                adapter="apt",
                params={"operation": "purge", "packages": [target.value]},
                sudo=True,
            )
        return Action(
            id=f"purge:path:{target.value}",
            name=f"remove {target.value}",
            adapter="filesystem",
            params={"operation": "remove", "path": target.value},
            sudo=target.sudo,
        )

    def _strip_profile(self, target: PurgeTarget, result: StepResult) -> None:
        path = Path(target.file or "")
        if self.dry_run:
            self.report.notes.append(f"[dry-run] Would remove {target.label}")
            return
        try:
            removed = profile.strip_block(path, target.value)
        except OSError as e:
            self._warn(result, f"Purge of {target.label} failed: {e}")
            return
        if removed:
            self.report.notes.append(f"Removed {target.label}")

    def purge(self, step: PurgeStep, result: StepResult) -> None:
        packages_purged = False
        for n, target in enumerate(step.targets):
            if target.kind == "profile_block":
                self._strip_profile(target, result)
                continue

            receipt = self._execute(self._purge_action(target, n))
            if receipt.failed:
                self._warn(result, f"Purge of {target.label} failed: {receipt.error}")
            elif receipt.status == "skipped":
                self.report.notes.append(receipt.output or f"Skipped {target.label}")
            elif target.kind == "system_package":
                packages_purged = True

        if packages_purged:
            receipt = self._execute(
                Action(
                    id="purge:autoremove",
                    name="apt autoremove",
                    adapter="apt",
                    params={"operation": "autoremove"},
                    sudo=True,
                )
            )
            if receipt.failed:
                self._warn(result, f"apt autoremove failed: {receipt.error}")

        if self.dry_run:
            result.status = "skipped"
            result.detail = f"[dry-run] Would purge {len(step.targets)} targets"
        elif result.status != "warning":
            result.detail = f"Purged {len(step.targets)} targets"

    # ── Install ──────────────────────────────────────────────────

    def install(self, step: InstallStep, result: StepResult) -> None:
        comp = step.component
        policy = step.retry
        sources: list[dict[str, Any]] = [{}, *policy.fallback_sources]
        last: Receipt | None = None

        for source_no, override in enumerate(sources):
            action = Action(
                id=f"install:{comp.name}",
                name=comp.description or f"install {comp.name}",
                adapter=comp.adapter,
                params={**comp.params, **override},
                sudo=comp.sudo,
            )
            if source_no:
                logger.info(
                    "Trying fallback source %d/%d for %s",
                    source_no, len(policy.fallback_sources), comp.name,
                )

            for attempt in range(1, policy.max_attempts + 1):
                result.attempts += 1
                last = self._execute(action)
                if not last.failed:
                    result.status = "skipped" if last.status == "skipped" else "ok"
                    result.detail = last.output
                    if source_no:
                        self.report.notes.append(
                            f"{comp.name} installed from fallback source {source_no}"
                        )
                    return
                logger.warning(
                    "Install of %s failed (attempt %d/%d): %s",
                    comp.name, attempt, policy.max_attempts, last.error,
                )
                if attempt < policy.max_attempts:
                    self.sleep(policy.delay_for(attempt))

        assert last is not None
        raise StepFailure(
            "install",
            step.name,
            last.error or "unknown error",
            exit_status=last.exit_status,
        )

    # ── ConfigureEnv ─────────────────────────────────────────────

    def configure_env(self, step: ConfigureEnvStep, result: StepResult) -> None:
        path = Path(step.file)
        marker = step.block.marker
        if self.dry_run:
            try:
                present = profile.has_marker(path, [marker])
            except OSError:
                present = False
            result.status = "skipped"
            result.detail = (
                f"{marker} already configured in {path}" if present
                else f"[dry-run] Would add {marker} block to {path}"
            )
            return

        try:
            outcome = profile.configure_env(path, step.block, self.config.backup_suffix)
        except OSError as e:
            raise StepFailure("configure_env", step.name, str(e)) from e

        if outcome.warning:
            self._warn(result, outcome.warning)
        if outcome.status == "skipped":
            result.status = "skipped"
            result.detail = f"{marker} already configured in {path}"
            self.report.notes.append(result.detail)
            return
        result.detail = f"Added {marker} block to {path}"
        if outcome.backup:
            self.report.notes.append(f"Backup: {outcome.backup}")

    # ── Verify ───────────────────────────────────────────────────

    def verify(self, step: VerifyStep, result: StepResult) -> None:
        if self.dry_run:
            result.status = "skipped"
            result.detail = "[dry-run] Postconditions not checked"
            return
        unmet = self.verifier(step.postconditions)
        for pc in unmet:
            self._warn(result, f"Postcondition not met: {pc.label}")
            if pc.required:
                self.report.verification_failed.append(pc.label)
        if self.report.verification_failed:
            result.status = "failed"
            result.detail = "Required postconditions not met"
        if not unmet:
            result.detail = f"{len(step.postconditions)} postconditions hold"


def execute_plan(
    plan: ReconciliationPlan,
    registry: AdapterRegistry,
    *,
    config: ProvisionerConfig | None = None,
    dry_run: bool = False,
    sleep: Callable[[float], None] = time.sleep,
    verifier: Callable[[list[Postcondition]], list[Postcondition]] = check_postconditions,
) -> ExecutionReport:
    """Execute every step of ``plan`` in order.

    Args:
        plan: The plan to run.
        registry: Adapter registry for dispatch.
        config: Tool settings (timeouts, backup suffix).
        dry_run: Validate and report, change nothing.
        sleep: Backoff sleeper (tests pass a recorder).
        verifier: Postcondition checker.

    Returns:
        ExecutionReport. A fatal step failure sets ``aborted`` and stops
        the plan; unmet required postconditions land in
        ``verification_failed``. Nothing is raised.
    """
    config = config or ProvisionerConfig()
    report = ExecutionReport(package_name=plan.package_name, dry_run=dry_run)
    runner = _StepRunner(registry, report, config, dry_run, sleep, verifier)

    handlers: dict[str, Callable[[Any, StepResult], None]] = {
        "backup": runner.backup,
        "purge": runner.purge,
        "install": runner.install,
        "configure_env": runner.configure_env,
        "verify": runner.verify,
    }

    for index, step in enumerate(plan.steps):
        result = StepResult(index=index, kind=step.kind, name=step.name)
        report.steps.append(result)
        logger.info("[%d/%d] %s", index + 1, len(plan.steps), step.name)
        try:
            handlers[step.kind](step, result)
        except StepFailure as e:
            result.status = "failed"
            result.detail = e.message
            report.aborted = True
            report.failed_step = step.name
            report.exit_status = e.exit_status
            report.error = str(e)
            logger.error("✗ %s", e, extra=REPORTED)
            break

        marker = {"ok": "✓", "skipped": "⊘", "warning": "⚠", "failed": "✗"}.get(result.status, "?")
        logger.info("%s %s → %s", marker, step.name, result.status)

    return report
