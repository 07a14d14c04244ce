"""
appforge.generator - Generation Orchestrator
============================================

This module sequences the engine's stages into one generation run and
returns a :class:`GenerationResult` describing what was written and what
the user still has to supply.

Architecture
------------
The generator follows a pipeline pattern:

    1. Load the catalog (injected, or the built-in one)
    2. Resolve the selected features
    3. Merge credentials and build settings
    4. Prepare the output directory
    5. Materialize every feature's files, in resolved order
    6. Write the generation record (``.appforge.toml``)
    7. Optionally initialize a git repository

The pipeline is designed to be:
- **Fail-fast**: the first stage error stops the run, nothing is retried
- **Atomic-ish**: a failed run into a fresh directory removes its partial tree
- **Re-runnable**: generating again into a directory produced by an
  identical run rewrites the same files without duplicating appended
  fragments

Errors
------
Stage failures are raised as :class:`GenerationError`, which names the stage
and carries the original error as ``cause``. Invalid project names or
organization identifiers surface as Pydantic ``ValidationError`` before any
stage runs.

Usage Example
-------------
>>> from pathlib import Path
>>> from appforge.generator import generate
>>> result = generate(
...     ["push"],
...     project_name="Ledger",
...     organization_identifier="com.acme",
...     output_directory=Path("../Ledger"),
... )
>>> result.resolved_feature_ids
('app-core', 'firebase-analytics', 'push-notifications')
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

import tomlkit
from tomlkit.exceptions import TOMLKitError

from appforge import __version__
from appforge.catalog import FeatureCatalog, load_builtin_catalog
from appforge.errors import (
    AppForgeError,
    FileSystemError,
    GenerationError,
    OutputDirectoryError,
)
from appforge.materializer import TemplateMaterializer, WrittenFile, atomic_write_text
from appforge.merger import MergedRequirements, merge
from appforge.models import BuildSetting, Credential, GenerationConfig
from appforge.resolver import Resolution, resolve


logger = logging.getLogger(__name__)

RECORD_FILENAME = ".appforge.toml"


# =============================================================================
# Result Data Classes
# =============================================================================

@dataclass
class GenerationResult:
    """
    Result of a successful generation run.

    A failed run raises instead of returning, so a result is never a
    partial success.

    Attributes
    ----------
    config : GenerationConfig
        The run's configuration, including the resolved feature list.

    resolution : Resolution
        Resolver output, including features added on the user's behalf.

    written_paths : tuple[Path, ...]
        Paths (relative to the output directory) materialized from
        templates, in first-write order. Appends skipped because their
        marker was already present are not listed.

    merged_credentials : tuple[Credential, ...]
        Secrets the user must supply, de-duplicated.

    merged_build_settings : tuple[BuildSetting, ...]
        Configuration values the user must fill in, de-duplicated.

    files : list[WrittenFile]
        Per-operation write log.

    record_path : Path | None
        Location of the generation record.

    rerun : bool
        True when the output directory held an identical earlier run.

    warnings : list[str]
        Non-fatal issues (e.g. git initialization skipped).
    """

    config: GenerationConfig
    resolution: Resolution
    written_paths: tuple[Path, ...]
    merged_credentials: tuple[Credential, ...]
    merged_build_settings: tuple[BuildSetting, ...]
    files: list[WrittenFile] = field(default_factory=list)
    record_path: Path | None = None
    rerun: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def resolved_feature_ids(self) -> tuple[str, ...]:
        return self.config.resolved_feature_ids

    @property
    def project_path(self) -> Path:
        return self.config.output_directory


# =============================================================================
# Stage Helpers
# =============================================================================

@contextmanager
def _stage(name: str) -> Iterator[None]:
    """Wrap any engine error raised inside the block with the stage name."""
    try:
        yield
    except AppForgeError as e:
        logger.debug("Stage '%s' failed: %s", name, e)
        raise GenerationError(name, e) from e


def plan(
    selected_feature_ids: Iterable[str],
    *,
    catalog: FeatureCatalog | None = None,
) -> tuple[Resolution, MergedRequirements]:
    """
    Resolve and merge without touching the filesystem.

    Used by ``appforge plan`` to preview a selection.

    Raises
    ------
    GenerationError
        If resolution fails.
    """
    with _stage("load catalog"):
        catalog = catalog or load_builtin_catalog()
    with _stage("resolve"):
        resolution = resolve(selected_feature_ids, catalog)
    with _stage("merge"):
        requirements = merge(catalog.get(fid) for fid in resolution.resolved)
    return resolution, requirements


# =============================================================================
# Output Directory
# =============================================================================

def read_generation_record(output_directory: Path) -> dict | None:
    """
    Read the record left by an earlier run, if any.

    Returns
    -------
    dict | None
        The record as plain data, or None if there is no readable record.
    """
    record_path = output_directory / RECORD_FILENAME
    if not record_path.is_file():
        return None
    try:
        with record_path.open(encoding="utf-8") as f:
            return tomlkit.load(f).unwrap()
    except (OSError, TOMLKitError) as e:
        logger.warning("Ignoring unreadable generation record %s: %s", record_path, e)
        return None


def write_generation_record(config: GenerationConfig) -> Path:
    """
    Write ``.appforge.toml`` describing the run into the output directory.

    Raises
    ------
    FileSystemError
        If the file cannot be written.
    """
    doc = tomlkit.document()
    doc.add(tomlkit.comment("Written by appforge. Used to recognise re-runs; do not edit."))
    doc.add("generator_version", __version__)
    doc.add("project_name", config.project_name)
    doc.add("organization_identifier", config.organization_identifier)
    doc.add("selected", list(config.selected_feature_ids))
    doc.add("resolved", list(config.resolved_feature_ids))

    record_path = config.output_directory / RECORD_FILENAME
    try:
        atomic_write_text(record_path, tomlkit.dumps(doc))
    except OSError as e:
        raise FileSystemError(Path(RECORD_FILENAME), e) from e
    return record_path


def prepare_output_directory(config: GenerationConfig) -> str:
    """
    Make sure the output directory can receive this run.

    The directory must not exist, be empty, or hold the record of an earlier
    run with the same project name and resolved features.

    Returns
    -------
    str
        ``"created"`` if the directory was created, ``"empty"`` if it
        existed with no content, ``"rerun"`` if it holds an identical
        earlier run.

    Raises
    ------
    OutputDirectoryError
        If the directory holds unrelated content or a different project.
    FileSystemError
        If the directory cannot be created.
    """
    output_directory = config.output_directory

    if output_directory.exists() and not output_directory.is_dir():
        raise OutputDirectoryError(output_directory, "path exists and is not a directory")

    if not output_directory.exists():
        try:
            output_directory.mkdir(parents=True)
        except OSError as e:
            raise FileSystemError(output_directory, e) from e
        return "created"

    if not any(output_directory.iterdir()):
        return "empty"

    record = read_generation_record(output_directory)
    if record is None:
        raise OutputDirectoryError(
            output_directory,
            "directory is not empty. Choose a different path or remove the existing directory.",
        )

    if (
        record.get("project_name") != config.project_name
        or list(record.get("resolved", [])) != list(config.resolved_feature_ids)
    ):
        raise OutputDirectoryError(
            output_directory,
            f"it holds a different generated project ('{record.get('project_name')}' "
            f"with features {record.get('resolved', [])})",
        )

    logger.info("Re-running generation into %s", output_directory)
    return "rerun"


def _clean_directory(output_directory: Path, *, remove_root: bool) -> None:
    """Remove a partially generated tree after a failed run."""
    if remove_root:
        shutil.rmtree(output_directory, ignore_errors=True)
        return
    for child in output_directory.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child, ignore_errors=True)
        else:
            child.unlink(missing_ok=True)


# =============================================================================
# Git Initialization
# =============================================================================

def init_git_repository(project_dir: Path) -> bool:
    """
    Commit the generated tree to a fresh git repository.

    A directory that already has ``.git`` (a re-run) is left as it is and
    counts as success. Returns False when git is missing or any git
    command fails; the caller turns that into a warning.
    """
    if (project_dir / ".git").exists():
        return True

    try:
        subprocess.run(["git", "--version"], capture_output=True, check=True)
        subprocess.run(["git", "init"], cwd=project_dir, capture_output=True, check=True)
        subprocess.run(["git", "add", "-A"], cwd=project_dir, capture_output=True, check=True)
        subprocess.run(
            ["git", "commit", "-m", "Initial commit (generated by appforge)"],
            cwd=project_dir,
            capture_output=True,
            check=True,
            env={
                **os.environ,
                "GIT_AUTHOR_NAME": "appforge",
                "GIT_AUTHOR_EMAIL": "appforge@example.com",
                "GIT_COMMITTER_NAME": "appforge",
                "GIT_COMMITTER_EMAIL": "appforge@example.com",
            },
        )
        return True

    except (subprocess.CalledProcessError, FileNotFoundError):
        return False


# =============================================================================
# Main Generation Function
# =============================================================================

def generate(
    selected_feature_ids: Iterable[str],
    project_name: str,
    organization_identifier: str,
    output_directory: Path,
    *,
    catalog: FeatureCatalog | None = None,
    init_git: bool = False,
) -> GenerationResult:
    """
    Generate a project for the selected features.

    Parameters
    ----------
    selected_feature_ids : Iterable[str]
        The user's picks (ids or aliases).

    project_name : str
        App name, substituted into templates and output paths.

    organization_identifier : str
        Reverse-domain organization id (e.g. ``com.acme``).

    output_directory : Path
        Where the project is written. Must not exist, be empty, or hold an
        identical earlier run.

    catalog : FeatureCatalog | None
        Catalog to generate from. Defaults to the built-in catalog.

    init_git : bool, default=False
        If True, initialize a git repository after generation. Failure
        only adds a warning.

    Returns
    -------
    GenerationResult
        What was generated and what the user must still supply.

    Raises
    ------
    GenerationError
        If any stage fails; ``cause`` holds the stage's own error.
    pydantic.ValidationError
        If the project name or organization identifier is invalid.
    """
    selected = tuple(selected_feature_ids)
    config = GenerationConfig(
        project_name=project_name,
        organization_identifier=organization_identifier,
        output_directory=Path(output_directory),
        selected_feature_ids=selected,
    )

    with _stage("load catalog"):
        catalog = catalog or load_builtin_catalog()

    with _stage("resolve"):
        resolution = resolve(selected, catalog)
    config = config.with_resolution(resolution.resolved, selected=resolution.selected)
    manifests = [catalog.get(feature_id) for feature_id in resolution.resolved]
    logger.info("Resolved features: %s", ", ".join(resolution.resolved))

    with _stage("merge"):
        requirements = merge(manifests)

    with _stage("prepare output"):
        state = prepare_output_directory(config)

    try:
        with _stage("materialize"):
            report = TemplateMaterializer(
                catalog, config, config.output_directory
            ).materialize(manifests)
        with _stage("write record"):
            record_path = write_generation_record(config)
    except GenerationError:
        # A re-run directory already held a complete project; leave it alone.
        if state != "rerun":
            logger.info("Removing partial output in %s", config.output_directory)
            _clean_directory(config.output_directory, remove_root=state == "created")
        raise

    result = GenerationResult(
        config=config,
        resolution=resolution,
        written_paths=report.written_paths,
        merged_credentials=requirements.credentials,
        merged_build_settings=requirements.build_settings,
        files=report.files,
        record_path=record_path,
        rerun=state == "rerun",
    )

    if init_git and not init_git_repository(config.output_directory):
        result.warnings.append("Git initialization failed (git may not be installed)")

    return result
