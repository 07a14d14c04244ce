"""
appforge.cli - Command Line Interface
=====================================

This module provides the command-line interface for appforge using Typer.
All real work happens in the engine modules; the CLI collects the user's
choices, calls :func:`appforge.generator.generate` or
:func:`appforge.generator.plan`, and hands the result to
:mod:`appforge.reporting`.

Architecture
------------
The CLI is structured around Typer's app pattern:

    app (main entry point)
    ├── new       - Generate a new app project
    ├── features  - List the feature catalog and presets
    └── plan      - Preview resolution and setup checklist (dry run)

Commands are designed to be both interactive (with prompts) and
scriptable (with flags). The --yes flag skips all prompts for CI usage,
and --programmatic switches ``new`` to JSON on stdin and stdout.

Usage Examples
--------------
Interactive mode (prompts for missing options):
    $ appforge new Ledger

Non-interactive mode (all options specified):
    $ appforge new Ledger --org com.acme --features firebase,push --yes

Automation:
    $ echo '{"projectName": "Ledger", ...}' | appforge new --programmatic

See Also
--------
- generator.py: Generation pipeline
- reporting.py: Rich output for results and errors
- programmatic.py: JSON mode
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Annotated

import questionary
import typer
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from appforge import __version__
from appforge.catalog import FeatureCatalog, load_builtin_catalog
from appforge.errors import AppForgeError, CatalogError
from appforge.generator import generate, plan as plan_selection
from appforge.models import FeatureCategory
from appforge.programmatic import run_programmatic
from appforge.reporting import render_catalog, render_error, render_plan, render_result


# =============================================================================
# CLI Application Setup
# =============================================================================

# Create the main Typer application
app = typer.Typer(
    name="appforge",
    help="Generate an iOS app project from a selection of features.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=True,
)

# Console for rich output
console = Console()

DEFAULT_ORG = "com.example"


def configure_logging(verbose: bool) -> None:
    """Send engine log records to stderr through Rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


# =============================================================================
# Version Callback
# =============================================================================

def version_callback(value: bool) -> None:
    """
    Display version information and exit.

    Parameters
    ----------
    value : bool
        True if --version was passed.
    """
    if value:
        console.print(Panel(
            f"[bold green]appforge[/] version [cyan]{__version__}[/]\n\n"
            f"[dim]Feature-driven iOS app generator[/]",
            border_style="green",
        ))
        raise typer.Exit()


# =============================================================================
# Selection Parsing
# =============================================================================

def parse_feature_list(value: str | None) -> list[str] | None:
    """
    Split a comma-separated ``--features`` value.

    ``none`` (alone) means an explicitly empty selection. Returns None when
    the option was not given at all.

    Examples
    --------
    >>> parse_feature_list("firebase, push")
    ['firebase', 'push']
    >>> parse_feature_list("none")
    []
    """
    if value is None:
        return None
    items = [item.strip() for item in value.split(",") if item.strip()]
    if [item.lower() for item in items] == ["none"]:
        return []
    return items


def build_selection(
    catalog: FeatureCatalog,
    features: list[str] | None,
    preset: str | None,
) -> list[str]:
    """
    Combine a preset and explicit features into one selection.

    Raises
    ------
    CatalogError
        If the preset is unknown.
    """
    selection: list[str] = []
    if preset:
        selection.extend(catalog.preset(preset).features)
    for feature_id in features or []:
        if feature_id not in selection:
            selection.append(feature_id)
    return selection


# =============================================================================
# Interactive Prompts
# =============================================================================

def prompt_project_name() -> str:
    """
    Prompt for the app name.

    Returns
    -------
    str
        The entered name.
    """
    result = questionary.text(
        "App name (letters, numbers, underscores):",
        default="MyApp",
    ).ask()

    if result is None:
        raise typer.Abort()

    return result


def prompt_organization() -> str:
    """
    Prompt for the reverse-domain organization identifier.

    Returns
    -------
    str
        Organization identifier (e.g. ``com.acme``).
    """
    result = questionary.text(
        "Organization identifier:",
        default=DEFAULT_ORG,
    ).ask()

    if result is None:
        raise typer.Abort()

    return result


def prompt_preset(catalog: FeatureCatalog) -> str | None:
    """
    Offer the catalog's presets plus a custom selection.

    Returns
    -------
    str | None
        Preset id, or None for a custom selection.
    """
    choices = [
        questionary.Choice(
            title=f"{preset.id:<10} - {preset.description}",
            value=preset.id,
        )
        for preset in catalog.presets
    ]
    choices.append(questionary.Choice(title="custom     - Pick features one by one", value=""))

    result = questionary.select(
        "Start from a preset?",
        choices=choices,
    ).ask()

    if result is None:
        raise typer.Abort()

    return result or None


def prompt_features(catalog: FeatureCatalog) -> list[str]:
    """
    Interactively pick optional features, grouped by category.

    Returns
    -------
    list[str]
        Selected feature ids.
    """
    choices: list[questionary.Choice | questionary.Separator] = []
    for category in FeatureCategory:
        manifests = [
            m for m in catalog if m.category == category and not m.always_included
        ]
        if not manifests:
            continue
        choices.append(questionary.Separator(f"── {category.value} ──"))
        choices.extend(
            questionary.Choice(title=f"{m.display_name} - {m.description}", value=m.id)
            for m in manifests
        )

    result = questionary.checkbox(
        "Include features:",
        choices=choices,
    ).ask()

    if result is None:
        raise typer.Abort()

    return result


# =============================================================================
# Main Application Callback
# =============================================================================

@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    [bold]appforge[/] - Feature-driven iOS app generator.

    Pick features; appforge adds what they depend on, refuses incompatible
    combinations, and writes the project with one setup checklist.

    [bold]Quick Start:[/]

        appforge new Ledger

    [bold]Non-interactive:[/]

        appforge new Ledger --org com.acme --preset standard --yes
    """


# =============================================================================
# New Command - Generate a Project
# =============================================================================

@app.command()
def new(
    name: Annotated[
        str | None,
        typer.Argument(
            help="Name of the app to generate",
        ),
    ] = None,
    org: Annotated[
        str | None,
        typer.Option(
            "--org",
            help="Reverse-domain organization identifier (e.g. com.acme)",
            envvar="APPFORGE_ORG",
        ),
    ] = None,
    features: Annotated[
        str | None,
        typer.Option(
            "--features",
            "-f",
            help="Comma-separated feature ids or aliases, or 'none'",
        ),
    ] = None,
    preset: Annotated[
        str | None,
        typer.Option(
            "--preset",
            "-p",
            help="Preset selection: minimal, standard, full",
        ),
    ] = None,
    output_dir: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Directory to generate into (default: ../NAME)",
            envvar="APPFORGE_OUTPUT_DIR",
        ),
    ] = None,
    no_git: Annotated[
        bool,
        typer.Option(
            "--no-git",
            help="Skip git initialization",
        ),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option(
            "--yes",
            "-y",
            help="Skip all prompts, use defaults",
        ),
    ] = False,
    programmatic: Annotated[
        bool,
        typer.Option(
            "--programmatic",
            help="Read a JSON request from stdin and write a JSON result to stdout",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Show debug logging",
        ),
    ] = False,
) -> None:
    """
    Generate a new app project.

    [bold]Examples:[/]

        # Interactive mode (prompts for missing options)
        appforge new Ledger

        # Scripted, with shorthand feature ids
        appforge new Ledger --org com.acme --features firebase,push --yes

        # Preset plus an extra feature
        appforge new Ledger --preset standard --features crashlytics --yes
    """
    configure_logging(verbose)

    if programmatic:
        result, exit_code = run_programmatic(sys.stdin.read())
        typer.echo(result.to_json())
        raise typer.Exit(exit_code)

    try:
        catalog = load_builtin_catalog()
    except CatalogError as e:
        rprint(f"[red]Error:[/] Failed to load feature catalog: {e}")
        raise typer.Exit(1)

    requested = parse_feature_list(features)
    should_prompt = not yes

    # Resolve name and organization
    if name is None:
        if not should_prompt:
            rprint("[red]Error:[/] NAME is required with --yes")
            raise typer.Exit(1)
        name = prompt_project_name()

    if org is None:
        org = prompt_organization() if should_prompt else DEFAULT_ORG

    # Resolve features
    if requested is None and preset is None and should_prompt:
        preset = prompt_preset(catalog)
        if preset is None:
            requested = prompt_features(catalog)

    try:
        selection = build_selection(catalog, requested, preset)
    except CatalogError as e:
        rprint(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    output = output_dir or Path.cwd().resolve().parent / name

    # Show the plan and confirm if in interactive mode
    if should_prompt:
        try:
            resolution, requirements = plan_selection(selection, catalog=catalog)
        except AppForgeError as e:
            render_error(e)
            raise typer.Exit(1)

        console.print()
        table = Table(title="Project Configuration", show_header=False)
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("Name", name)
        table.add_row("Organization", org)
        table.add_row("Output", str(output))
        table.add_row("Git", "no" if no_git else "yes")
        console.print(table)

        render_plan(resolution, requirements, catalog)

        if not questionary.confirm("Generate project with these settings?", default=True).ask():
            raise typer.Abort()

    try:
        result = generate(
            selection,
            name,
            org,
            output,
            catalog=catalog,
            init_git=not no_git,
        )
    except ValidationError as e:
        for error in e.errors():
            rprint(f"[red]Error:[/] {error['msg'].removeprefix('Value error, ')}")
        raise typer.Exit(1)
    except AppForgeError as e:
        render_error(e)
        raise typer.Exit(1)

    render_result(result, catalog)


# =============================================================================
# Features Command
# =============================================================================

@app.command()
def features() -> None:
    """
    List every feature in the catalog, with dependencies and aliases.

    [bold]Example:[/]

        appforge features
    """
    try:
        catalog = load_builtin_catalog()
    except CatalogError as e:
        rprint(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    render_catalog(catalog)


# =============================================================================
# Plan Command
# =============================================================================

@app.command()
def plan(
    selected: Annotated[
        str | None,
        typer.Argument(
            help="Comma-separated feature ids or aliases",
        ),
    ] = None,
    preset: Annotated[
        str | None,
        typer.Option(
            "--preset",
            "-p",
            help="Preset selection: minimal, standard, full",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Show debug logging",
        ),
    ] = False,
) -> None:
    """
    Preview which features a selection resolves to and what setup it needs.

    Nothing is written to disk.

    [bold]Examples:[/]

        appforge plan crashlytics,push
        appforge plan --preset full
    """
    configure_logging(verbose)

    try:
        catalog = load_builtin_catalog()
        selection = build_selection(catalog, parse_feature_list(selected), preset)
        resolution, requirements = plan_selection(selection, catalog=catalog)
    except AppForgeError as e:
        render_error(e)
        raise typer.Exit(1)

    render_plan(resolution, requirements, catalog)


if __name__ == "__main__":
    app()
