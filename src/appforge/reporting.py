"""
appforge.reporting - Terminal Output
====================================

Rich rendering of everything the CLI shows: the feature catalog, a
resolution plan, the post-generation setup checklist, and errors. The
engine never prints; it returns data and raises typed errors, and this
module turns both into terminal output.

Every function takes an optional ``out`` console so tests can capture output
with ``Console(record=True)`` or a ``StringIO`` file.

See Also
--------
- generator.py: Produces the :class:`GenerationResult` rendered here
- errors.py: The error attributes :func:`render_error` reads
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from appforge.catalog import FeatureCatalog
from appforge.errors import (
    AppendTargetMissingError,
    AppForgeError,
    DependencyCycleError,
    FeatureConflictError,
    FileConflictError,
    GenerationError,
    UnknownFeatureError,
    UnresolvedPlaceholderError,
)
from appforge.generator import GenerationResult
from appforge.merger import MergedRequirements
from appforge.resolver import Resolution


console = Console()

SECRETS_FILE = "Configurations/Secrets.xcconfig.local"


# =============================================================================
# Catalog
# =============================================================================

def render_catalog(catalog: FeatureCatalog, *, out: Console | None = None) -> None:
    """Print every feature in the catalog, followed by the presets."""
    out = out or console

    table = Table(title="Available Features", show_header=True)
    table.add_column("Feature", style="cyan")
    table.add_column("Category", style="dim")
    table.add_column("Description")
    table.add_column("Requires", style="green")
    table.add_column("Aliases", style="dim")

    for manifest in catalog:
        name = manifest.id
        if manifest.always_included:
            name += " [dim](always)[/]"
        table.add_row(
            name,
            manifest.category.value,
            manifest.description,
            ", ".join(manifest.dependencies),
            ", ".join(manifest.aliases),
        )

    out.print()
    out.print(table)

    if catalog.presets:
        preset_table = Table(title="Presets", show_header=True)
        preset_table.add_column("Preset", style="cyan")
        preset_table.add_column("Features", style="green")
        for preset in catalog.presets:
            preset_table.add_row(preset.id, ", ".join(preset.features))
        out.print()
        out.print(preset_table)


# =============================================================================
# Resolution and Checklists
# =============================================================================

def _origin(feature_id: str, resolution: Resolution) -> str:
    if feature_id in resolution.selected:
        return "[green]selected[/]"
    for added in resolution.added:
        if added.feature_id == feature_id:
            if added.required_by is None:
                return "[dim]always included[/]"
            return f"[yellow]added[/] (required by {added.required_by})"
    return ""


def render_resolution(
    resolution: Resolution,
    catalog: FeatureCatalog,
    *,
    out: Console | None = None,
) -> None:
    """Print the resolved features in order, noting why each is present."""
    out = out or console

    table = Table(title="Resolved Features", show_header=True)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Feature", style="cyan")
    table.add_column("Name")
    table.add_column("Why")

    for i, feature_id in enumerate(resolution.resolved, start=1):
        table.add_row(
            str(i),
            feature_id,
            catalog.get(feature_id).display_name,
            _origin(feature_id, resolution),
        )

    out.print(table)


def render_requirements(
    requirements: MergedRequirements,
    *,
    out: Console | None = None,
) -> None:
    """
    Print the setup checklist: credentials to obtain and build settings to
    fill in.
    """
    out = out or console

    if requirements.is_empty:
        out.print("[green]✓[/] No credentials or build settings required.")
        return

    if requirements.credentials:
        out.print()
        out.print("[bold]🔑 Credentials to obtain:[/]")
        for credential in requirements.credentials:
            line = f"  [ ] [cyan]{credential.name}[/]"
            if credential.source:
                line += f" [dim]from {credential.source}[/]"
            out.print(line)

    if requirements.build_settings:
        out.print()
        out.print(f"[bold]⚙️  Build settings for {SECRETS_FILE}:[/]")
        for setting in requirements.build_settings:
            line = f"  [ ] [cyan]{setting.key}[/]"
            if setting.description:
                line += f" [dim]{setting.description}[/]"
            out.print(line)


def render_plan(
    resolution: Resolution,
    requirements: MergedRequirements,
    catalog: FeatureCatalog,
    *,
    out: Console | None = None,
) -> None:
    """Print a dry-run preview: resolution table plus checklist."""
    out = out or console
    out.print()
    render_resolution(resolution, catalog, out=out)
    render_requirements(requirements, out=out)
    out.print()


def render_result(
    result: GenerationResult,
    catalog: FeatureCatalog,
    *,
    out: Console | None = None,
) -> None:
    """Print the outcome of a successful run and the user's next steps."""
    out = out or console
    config = result.config

    out.print()
    out.print(
        Panel(
            f"[bold blue]Generated project:[/] [green]{config.project_name}[/]\n"
            f"[dim]Bundle id: {config.bundle_identifier} | "
            f"Features: {len(result.resolved_feature_ids)} | "
            f"Files: {len(result.written_paths)}[/]",
            title="[bold]appforge[/]",
            border_style="blue",
        )
    )
    out.print()

    render_resolution(result.resolution, catalog, out=out)

    if result.rerun:
        out.print()
        out.print("[dim]Existing project regenerated in place.[/]")

    render_requirements(
        MergedRequirements(result.merged_credentials, result.merged_build_settings),
        out=out,
    )

    for warning in result.warnings:
        out.print(f"  [yellow]⚠[/] {warning}")

    steps = [f"  cd {config.output_directory}"]
    if result.merged_build_settings:
        steps.append(f"  cp {SECRETS_FILE}.example {SECRETS_FILE}")
    steps.append(f"  open {config.project_name}.xcodeproj")

    out.print()
    out.print(
        Panel(
            "[bold green]✨ Project generated successfully![/]\n\n"
            f"[dim]Location:[/] {config.output_directory}\n\n"
            "[bold]Next steps:[/]\n" + "\n".join(steps),
            title="[bold green]Success[/]",
            border_style="green",
        )
    )


# =============================================================================
# Errors
# =============================================================================

def describe_error(error: AppForgeError) -> str:
    """
    One-line, user-facing description of an engine error.

    A :class:`GenerationError` is unwrapped so the message names the
    features and paths involved rather than the pipeline stage.
    """
    cause = error.cause if isinstance(error, GenerationError) else error

    match cause:
        case UnknownFeatureError(referenced_by=None):
            return f"Unknown feature '{cause.feature_id}'. Run 'appforge features' to list them."
        case FeatureConflictError():
            return (
                f"'{cause.first}' and '{cause.second}' cannot be used together. "
                "Remove one of them from the selection."
            )
        case DependencyCycleError():
            return f"The catalog has a dependency cycle: {' -> '.join([*cause.path, cause.path[0]])}"
        case FileConflictError():
            return (
                f"'{cause.earlier_feature}' and '{cause.later_feature}' both write "
                f"'{cause.path}'."
            )
        case UnresolvedPlaceholderError():
            return (
                f"'{cause.path}' (feature '{cause.feature_id}') uses placeholders "
                f"with no value: {', '.join(cause.names)}"
            )
        case AppendTargetMissingError():
            return (
                f"Feature '{cause.feature_id}' extends '{cause.path}', "
                "which no earlier feature wrote."
            )
        case _:
            return str(cause)


def render_error(error: AppForgeError, *, out: Console | None = None) -> None:
    """Print an engine error in the CLI's ``Error:`` style."""
    out = out or console
    out.print(f"[red]Error:[/] {describe_error(error)}")
    if isinstance(error, GenerationError):
        out.print(f"[dim]Stage: {error.stage}[/]")
