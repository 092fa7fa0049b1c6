"""
Reconcile use case — the full provisioning run for one package.

    recipe → preconditions → probe → start confirmation → decision
           → execute → probe again → result

Every prompt happens before the first mutation. Fatal problems are
returned on the result rather than raised, so the CLI only has to map
``exit_code``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from provisioner.adapters.registry import AdapterRegistry, default_registry
from provisioner.core.config.loader import ConfigError, ProvisionerConfig
from provisioner.core.config.recipe_loader import get_recipe
from provisioner.core.engine.executor import ExecutionReport, execute_plan
from provisioner.core.errors import PreconditionError, UserCancelled
from provisioner.core.models.plan import ReconciliationPlan
from provisioner.core.models.recipe import PackageRecipe
from provisioner.core.models.state import InstallState
from provisioner.core.observability.logging_config import REPORTED
from provisioner.core.services.planner import Operator, decide
from provisioner.core.services.preconditions import check_preconditions
from provisioner.core.services.prober import probe_recipe

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Result of one reconcile run."""

    package: str
    recipe: PackageRecipe | None = None
    before: InstallState | None = None
    after: InstallState | None = None
    plan: ReconciliationPlan | None = None
    report: ExecutionReport | None = None
    warnings: list[str] = field(default_factory=list)
    cancelled: bool = False
    cancel_reason: str = ""
    error: str | None = None
    error_kind: str | None = None    # config | precondition | install | verification

    @property
    def exit_code(self) -> int:
        if self.error:
            return 1
        if self.report and (self.report.aborted or self.report.verification_failed):
            return 1
        return 0

    @property
    def run_warnings(self) -> list[str]:
        """Warnings raised after the decision: execution, then the post-check."""
        warnings: list[str] = []
        if self.report:
            warnings += self.report.warnings
        if self.after:
            warnings += [f"Probe degraded: {d}" for d in self.after.degraded]
        return warnings

    @property
    def all_warnings(self) -> list[str]:
        """Precondition and probe warnings followed by the run warnings."""
        return self.warnings + self.run_warnings

    def to_dict(self) -> dict:
        result: dict = {"package": self.package, "exit_code": self.exit_code}
        if self.error:
            result["error"] = self.error
        if self.error_kind:
            result["error_kind"] = self.error_kind
        if self.cancelled:
            result["cancelled"] = True
            result["reason"] = self.cancel_reason
        if self.before:
            result["before"] = self.before.to_dict()
        if self.plan:
            result["plan"] = self.plan.to_dict()
        if self.report:
            result["report"] = self.report.to_dict()
        if self.after:
            result["after"] = self.after.to_dict()
        result["warnings"] = self.all_warnings
        return result


def run_reconcile(
    name: str,
    operator: Operator,
    *,
    config: ProvisionerConfig | None = None,
    recipes_dir: Path | None = None,
    registry: AdapterRegistry | None = None,
    dry_run: bool = False,
    skip_network_check: bool = False,
    sleep: Callable[[float], None] = time.sleep,
    prober: Callable[[PackageRecipe, ProvisionerConfig], InstallState] = probe_recipe,
    precheck: Callable[..., list[str]] = check_preconditions,
) -> ReconcileResult:
    """Bring one package to its declared state.

    Args:
        name: Recipe name.
        operator: Answers the start, menu and purge prompts.
        config: Tool settings. Defaults when None.
        recipes_dir: Extra recipes directory (overrides built-ins by name).
        registry: Adapter registry. The real adapters when None.
        dry_run: Plan and report, change nothing.
        skip_network_check: Do not probe network connectivity.
        sleep: Backoff sleeper for install retries.
        prober: State prober (tests substitute canned states).
        precheck: Precondition checker.

    Returns:
        ReconcileResult. ``exit_code`` is 0 on success or cancel, 1 when
        a step aborted or a required postcondition is unmet.
    """
    config = config or ProvisionerConfig()
    result = ReconcileResult(package=name)

    # ── Recipe ───────────────────────────────────────────────────
    if recipes_dir is None and config.recipes_dir:
        recipes_dir = Path(config.recipes_dir).expanduser()
    try:
        recipe = get_recipe(name, recipes_dir)
    except ConfigError as e:
        result.error = str(e)
        result.error_kind = "config"
        return result
    result.recipe = recipe

    # ── Preconditions ────────────────────────────────────────────
    try:
        result.warnings += precheck(
            recipe.preconditions, config, skip_network=skip_network_check,
        )
    except PreconditionError as e:
        result.error = e.message
        result.error_kind = "precondition"
        logger.error("Precondition %s failed: %s", e.check, e.message, extra=REPORTED)
        return result

    # ── Probe + decide ───────────────────────────────────────────
    before = prober(recipe, config)
    result.before = before
    result.warnings += [f"Probe degraded: {d}" for d in before.degraded]

    try:
        if not operator.confirm_start(name, before):
            raise UserCancelled("cancelled")
        plan = decide(
            recipe, before, operator,
            confirmation_phrase=config.confirmation_phrase,
        )
    except UserCancelled as e:
        result.cancelled = True
        result.cancel_reason = e.reason
        logger.info("Run for %s %s", name, e.reason)
        return result
    result.plan = plan

    # ── Execute ──────────────────────────────────────────────────
    if registry is None:
        registry = default_registry()
    report = execute_plan(
        plan, registry, config=config, dry_run=dry_run, sleep=sleep,
    )
    result.report = report
    if report.aborted:
        result.error_kind = "install"
    elif report.verification_failed:
        result.error_kind = "verification"

    # ── Post-check ───────────────────────────────────────────────
    if not dry_run:
        result.after = prober(recipe, config)

    return result
