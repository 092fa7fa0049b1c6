"""
Click-backed operator — the interactive prompts of an install run.

A ``--choice`` or ``--phrase`` given on the command line answers the
corresponding prompt once; everything else is asked on the terminal.
"""

from __future__ import annotations

import click

from provisioner.core.models.plan import Choice
from provisioner.core.models.state import Condition, InstallState


def describe_state(state: InstallState) -> None:
    """Print what the prober found."""
    if not state.detected:
        click.secho(f"   No existing {state.package_name} installation found", fg="white")
        return

    label = {
        Condition.DETECTED_INTACT: ("complete", "green"),
        Condition.DETECTED_PARTIAL: ("incomplete", "yellow"),
    }[state.condition]
    click.secho(f"   {state.package_name} is installed ({label[0]})", fg=label[1], bold=True)
    if state.binary.found:
        version = f" {state.reported_version}" if state.reported_version else ""
        click.echo(f"     ✓ {state.binary.name}{version} → {state.binary.path}")
    for path in state.directories_found:
        click.echo(f"     ✓ {path}")
    for pkg in state.packages_found:
        click.echo(f"     ✓ package {pkg}")
    for path, marked in state.shell_config_markers.items():
        if marked:
            click.echo(f"     ✓ configured in {path}")
    for name in state.missing_components:
        click.secho(f"     ✗ missing component {name}", fg="yellow")
    for key in state.missing_config_blocks:
        click.secho(f"     ✗ missing profile block {key}", fg="yellow")


class ClickOperator:
    """Operator that asks on the terminal."""

    def __init__(
        self,
        choice: Choice | None = None,
        phrase: str | None = None,
        assume_yes: bool = False,
        show_state: bool = True,
    ):
        self._choice = choice
        self._phrase = phrase
        self._assume_yes = assume_yes
        self._show_state = show_state

    def confirm_start(self, package: str, state: InstallState) -> bool:
        if self._show_state:
            click.secho(f"\n📦 {package}", fg="cyan", bold=True)
            describe_state(state)
            click.echo()
        if self._assume_yes:
            return True
        answer = click.prompt(
            "Do you want to continue? (y/N)", default="", show_default=False,
        )
        return answer.strip().lower() in ("y", "yes")

    def select(self, menu: str) -> str:
        if self._choice is not None:
            preset, self._choice = self._choice, None
            return preset.menu_key
        click.echo(menu)
        return click.prompt("Enter your choice [1-4]", default="", show_default=False)

    def read_phrase(self, expected: str) -> str:
        if self._phrase is not None:
            preset, self._phrase = self._phrase, None
            return preset
        click.secho(
            "⚠️  This removes the installation, its data and its shell configuration.",
            fg="red",
            bold=True,
        )
        return click.prompt(f"Type '{expected}' to proceed", default="", show_default=False)

    def notify(self, message: str) -> None:
        click.secho(f"⚠️  {message}", fg="yellow")
