"""
Provisioner — CLI entrypoint.

Usage:
    provisioner --help
    provisioner list
    provisioner detect pyenv
    provisioner install nodejs
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from provisioner import __version__
from provisioner.core.observability.logging_config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="provisioner")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to config.yml (default: $PROVISIONER_CONFIG or ~/.config/provisioner/config.yml).",
)
@click.option(
    "--recipes-dir",
    type=click.Path(exists=False, file_okay=False),
    default=None,
    help="Extra recipes directory; overrides built-in recipes by name.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    recipes_dir: str | None,
) -> None:
    """Provisioner — idempotent developer-environment installs for Debian hosts."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["recipes_dir"] = Path(recipes_dir) if recipes_dir else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("PROVISIONER_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("PROVISIONER_LOG_FILE"),
        log_file_level=os.environ.get("PROVISIONER_LOG_FILE_LEVEL"),
    )


def _load_settings(ctx: click.Context):
    """Load config.yml or exit 1 with the error."""
    from provisioner.core.config.loader import ConfigError, load_config

    try:
        return load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


def _recipes_dir(ctx: click.Context, settings) -> Path | None:
    if ctx.obj.get("recipes_dir"):
        return ctx.obj["recipes_dir"]
    if settings.recipes_dir:
        return Path(settings.recipes_dir).expanduser()
    return None


@cli.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_recipes(ctx: click.Context, as_json: bool) -> None:
    """List the packages that can be provisioned."""
    from provisioner.core.config.recipe_loader import discover_recipes

    settings = _load_settings(ctx)
    recipes = discover_recipes(_recipes_dir(ctx, settings))

    if as_json:
        click.echo(json.dumps(
            [{"name": r.name, "description": r.description} for r in recipes.values()],
            indent=2,
        ))
        return

    if not recipes:
        click.secho("No recipes found.", fg="yellow")
        return

    click.secho(f"\n📦 Packages ({len(recipes)})", fg="cyan", bold=True)
    for name in sorted(recipes):
        desc = f"  — {recipes[name].description}" if recipes[name].description else ""
        click.echo(f"   • {name}{desc}")
    click.echo()


@cli.command()
@click.argument("name")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def detect(ctx: click.Context, name: str, as_json: bool) -> None:
    """Probe the host for an existing installation of NAME (read-only)."""
    from provisioner.core.use_cases.detect import run_detect
    from provisioner.ui.cli.prompts import describe_state

    settings = _load_settings(ctx)
    result = run_detect(name, config=settings, recipes_dir=_recipes_dir(ctx, settings))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    state = result.state
    assert state is not None
    click.secho(f"\n🔍 {name}", fg="cyan", bold=True)
    describe_state(state)
    if ctx.obj.get("verbose"):
        for d in state.directories:
            icon = "✓" if d.exists else "·"
            click.echo(f"     {icon} {d.path}")
    for d in state.degraded:
        click.secho(f"   ⚠️  Could not read {d}", fg="yellow")
    click.echo()


def _print_report(ctx: click.Context, result) -> None:
    report = result.report
    plan = result.plan

    if plan is not None and not ctx.obj.get("quiet"):
        mode = "[dry-run] " if report.dry_run else ""
        choice = f" ({plan.choice.value})" if plan.choice else ""
        click.secho(
            f"\n⚡ {mode}{plan.package_name}{choice}: {len(plan.steps)} steps",
            fg="cyan",
            bold=True,
        )

    for step in report.steps:
        detail = f"  {step.detail}" if step.detail and ctx.obj.get("verbose") else ""
        if step.status == "ok":
            click.secho(f"   ✓ {step.name}", fg="green", nl=False)
        elif step.status == "failed":
            click.secho(f"   ✗ {step.name}", fg="red", nl=False)
            detail = f"  {step.detail}"
        elif step.status == "warning":
            click.secho(f"   ⚠ {step.name}", fg="yellow", nl=False)
        else:
            click.secho(f"   ⊘ {step.name}", fg="yellow", nl=False)
            detail = f"  ({step.detail})" if step.detail else ""
        click.echo(detail)

    if report.notes and not ctx.obj.get("quiet"):
        click.echo()
        for note in report.notes:
            click.echo(f"   ℹ {note}")


@cli.command()
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Skip the start confirmation.")
@click.option(
    "--choice",
    type=click.Choice(["keep", "repair", "reinstall", "cancel"]),
    default=None,
    help="Answer the existing-installation menu.",
)
@click.option("--phrase", default=None, help="Purge confirmation phrase (for --choice reinstall).")
@click.option("--dry-run", is_flag=True, help="Plan and report, change nothing.")
@click.option("--skip-network-check", is_flag=True, help="Do not probe network connectivity.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(
    ctx: click.Context,
    name: str,
    yes: bool,
    choice: str | None,
    phrase: str | None,
    dry_run: bool,
    skip_network_check: bool,
    as_json: bool,
) -> None:
    """Install, repair or reinstall NAME.

    Examples:

        provisioner install pyenv

        provisioner install nodejs --yes --choice repair

        provisioner install docker --choice reinstall --phrase CONFIRM
    """
    from provisioner.core.models.plan import Choice
    from provisioner.core.use_cases.reconcile import run_reconcile
    from provisioner.ui.cli.prompts import ClickOperator

    settings = _load_settings(ctx)
    operator = ClickOperator(
        choice=Choice(choice) if choice else None,
        phrase=phrase,
        assume_yes=yes,
        show_state=not as_json,
    )

    result = run_reconcile(
        name,
        operator,
        config=settings,
        recipes_dir=_recipes_dir(ctx, settings),
        dry_run=dry_run,
        skip_network_check=skip_network_check,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error and result.report is None:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    for warn in result.warnings:
        click.secho(f"⚠️  {warn}", fg="yellow")

    if result.cancelled:
        click.secho(f"⊘ {result.cancel_reason}", fg="yellow")
        sys.exit(0)

    report = result.report
    assert report is not None
    _print_report(ctx, result)

    click.echo()
    if report.aborted:
        click.secho(f"❌ {report.error}", fg="red", bold=True)
        if report.exit_status is not None:
            click.echo(f"   exit status: {report.exit_status}")
        sys.exit(1)

    if result.run_warnings:
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.run_warnings:
            click.echo(f"   • {warn}")
        click.echo()

    if report.verification_failed:
        click.secho(f"❌ {name} verification failed", fg="red", bold=True)
        for label in report.verification_failed:
            click.echo(f"   • {label}")
        sys.exit(1)

    if dry_run:
        click.secho("✅ Dry run complete, nothing changed", fg="green", bold=True)
    elif result.plan and result.plan.mutating_steps == 0:
        click.secho(f"✅ {name} left as is", fg="green", bold=True)
    else:
        click.secho(f"✅ {name} is ready", fg="green", bold=True)
        after = result.after
        if after and after.reported_version:
            click.echo(f"   version: {after.reported_version}")
        if result.recipe and result.recipe.usage and not ctx.obj.get("quiet"):
            click.echo()
            for line in result.recipe.usage:
                click.echo(f"   {line}")
        if result.recipe and result.recipe.config_blocks:
            click.echo()
            click.echo("   Open a new terminal (or source your shell profile) to pick up the changes.")
    click.echo()


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
