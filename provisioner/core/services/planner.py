"""
Reconciliation planner — from an InstallState and a decision to a plan.

``build_plan`` is a pure function of (recipe, state, choice, phrase).
``decide`` drives the interactive part through an ``Operator``: the
``[1-4]`` menu for a detected install and the confirmation phrase for
a purge. Both prompts come before any mutation.
"""

from __future__ import annotations

import logging
from typing import Protocol

from provisioner.core.errors import UserCancelled
from provisioner.core.models.plan import (
    BackupStep,
    Choice,
    ConfigBlock,
    ConfigureEnvStep,
    InstallStep,
    PurgeStep,
    PurgeTarget,
    ReconciliationPlan,
    Step,
    VerifyStep,
)
from provisioner.core.models.recipe import ComponentSpec, ConfigBlockSpec, PackageRecipe, expand_path
from provisioner.core.models.state import Condition, InstallState

logger = logging.getLogger(__name__)

MENU_TEXT = """\
An existing installation was detected. What would you like to do?
  1) Keep the current installation and exit
  2) Repair / update (fill in what is missing)
  3) Purge everything and reinstall
  4) Cancel"""


class Operator(Protocol):
    """The person (or script) answering prompts."""

    def confirm_start(self, package: str, state: InstallState) -> bool:
        """Free-text go/no-go before anything else happens."""

    def select(self, menu: str) -> str:
        """Return the raw answer to the ``[1-4]`` menu."""

    def read_phrase(self, expected: str) -> str:
        """Return the raw answer to the purge confirmation prompt."""

    def notify(self, message: str) -> None:
        """Show a message (invalid input, cancellations)."""


class ScriptedOperator:
    """Operator fed from fixed answers (``--yes`` runs and tests).

    Once ``selections`` is exhausted the run is cancelled instead of
    guessing a choice.
    """

    def __init__(
        self,
        selections: list[str] | None = None,
        phrase: str = "",
        start: bool = True,
    ):
        self.selections = list(selections or [])
        self.phrase = phrase
        self.start = start
        self.prompts: list[str] = []
        self.messages: list[str] = []

    def confirm_start(self, package: str, state: InstallState) -> bool:
        self.prompts.append("start")
        return self.start

    def select(self, menu: str) -> str:
        self.prompts.append("menu")
        if not self.selections:
            raise UserCancelled("cancelled: no menu selection given")
        return self.selections.pop(0)

    def read_phrase(self, expected: str) -> str:
        self.prompts.append("phrase")
        return self.phrase

    def notify(self, message: str) -> None:
        self.messages.append(message)


# ── Pure planning ───────────────────────────────────────────────


def _install_steps(components: list[ComponentSpec]) -> list[Step]:
    return [InstallStep(component=c, retry=c.retry) for c in components]


def _configure_steps(blocks: list[ConfigBlockSpec]) -> list[Step]:
    return [
        ConfigureEnvStep(
            file=expand_path(b.file),
            block=ConfigBlock(marker=b.marker, body=b.body, title=b.title),
        )
        for b in blocks
    ]


def _purge_targets(recipe: PackageRecipe, state: InstallState) -> list[PurgeTarget]:
    """Everything a purge touches, in removal order."""
    spec = recipe.purge
    targets = [PurgeTarget(kind="command", value=c, sudo=True) for c in spec.commands]
    targets += [PurgeTarget(kind="system_package", value=p, sudo=True) for p in spec.system_packages]
    targets += [PurgeTarget(kind="path", value=p) for p in spec.paths]
    targets += [PurgeTarget(kind="path", value=p, sudo=True) for p in spec.system_paths]
    for path, marked in state.shell_config_markers.items():
        if marked:
            targets += [
                PurgeTarget(kind="profile_block", value=m, file=path)
                for m in recipe.all_markers
            ]
    return targets


def phrase_matches(answer: str | None, expected: str) -> bool:
    """Exact, case-sensitive match after stripping surrounding whitespace."""
    return answer is not None and answer.strip() == expected


def build_plan(
    recipe: PackageRecipe,
    state: InstallState,
    choice: Choice | None = None,
    phrase: str | None = None,
    *,
    confirmation_phrase: str = "CONFIRM",
) -> ReconciliationPlan | None:
    """Build the plan for one run.

    Returns:
        The plan, or None when the run is cancelled (``Cancel``, or a
        purge without the exact confirmation phrase).

    Raises:
        ValueError: A detected install but no choice.
    """
    condition = state.condition
    verify = VerifyStep(postconditions=recipe.postconditions)

    if condition == Condition.FRESH:
        return ReconciliationPlan(
            package_name=recipe.name,
            condition=condition,
            steps=[
                *_install_steps(recipe.components),
                *_configure_steps(recipe.config_blocks),
                verify,
            ],
        )

    if choice is None:
        raise ValueError(f"{recipe.name} is installed; a choice is required")

    if choice == Choice.CANCEL:
        return None

    if choice == Choice.KEEP_EXIT:
        steps: list[Step] = []

    elif choice == Choice.REPAIR_UPDATE:
        missing = set(state.missing_components)
        missing_blocks = set(state.missing_config_blocks)
        steps = _install_steps([c for c in recipe.components if c.name in missing])
        steps += _configure_steps([b for b in recipe.config_blocks if b.key in missing_blocks])

    else:
        if not phrase_matches(phrase, confirmation_phrase):
            return None
        steps = [
            BackupStep(file=path)
            for path, marked in state.shell_config_markers.items()
            if marked
        ]
        steps.append(PurgeStep(targets=_purge_targets(recipe, state)))
        steps += _install_steps(recipe.components)
        steps += _configure_steps(recipe.config_blocks)

    return ReconciliationPlan(
        package_name=recipe.name,
        condition=condition,
        choice=choice,
        steps=[*steps, verify],
    )


# ── Interactive driver ──────────────────────────────────────────


def ask_choice(operator: Operator) -> Choice:
    """Show the menu until a valid answer comes back."""
    while True:
        answer = operator.select(MENU_TEXT)
        choice = Choice.from_menu(answer)
        if choice is not None:
            return choice
        operator.notify(f"Invalid option {answer.strip()!r}. Please choose 1-4.")


def decide(
    recipe: PackageRecipe,
    state: InstallState,
    operator: Operator,
    *,
    confirmation_phrase: str = "CONFIRM",
) -> ReconciliationPlan:
    """Run the decision prompts and return the plan.

    Raises:
        UserCancelled: Cancel was chosen, or the purge phrase did not match.
    """
    if state.condition == Condition.FRESH:
        plan = build_plan(recipe, state, confirmation_phrase=confirmation_phrase)
        assert plan is not None
        return plan

    choice = ask_choice(operator)
    logger.info("Operator chose %s for %s", choice.value, recipe.name)

    phrase = None
    if choice == Choice.PURGE_REINSTALL:
        phrase = operator.read_phrase(confirmation_phrase)
        if not phrase_matches(phrase, confirmation_phrase):
            raise UserCancelled("cancelled: confirmation phrase did not match")

    plan = build_plan(
        recipe, state, choice, phrase, confirmation_phrase=confirmation_phrase,
    )
    if plan is None:
        raise UserCancelled("cancelled")
    return plan
