"""
appforge.materializer - Writing the Project Tree
================================================

The materializer applies each resolved feature's file operations to the
output directory, feature by feature in resolver order and operation by
operation in declared order. Nothing runs concurrently: an append relies on
the file it extends having been written by an earlier feature, and conflict
detection relies on a fixed write order.

Operations
----------
copy
    Template bytes are written verbatim.

render
    The template is rendered with Jinja2. Every variable the template uses
    must have a value; missing ones are reported before anything is
    written.

append
    A fragment is added to an existing file unless the file already holds
    the rendered marker, so re-running generation never duplicates it.

Write Discipline
----------------
Two operations may not produce the same path in one run; a copy or render
onto a path written earlier raises :class:`FileConflictError`. Every file is
written to a temporary sibling and moved into place with ``os.replace``, so
a failure never leaves a half-written file behind. Any ``OSError`` stops the
run with :class:`FileSystemError`.

Template Context
----------------
Templates, fragments, and output paths share one context:

    project_name : str
    organization_identifier : str
    bundle_identifier : str
    resolved_features : list[str]
    feature_flags : dict[str, bool]
    generator_version : str
    year : int

plus the ``values`` declared on the individual render operation. Output
paths use ``str.format`` syntax (``{project_name}/App/...``); templates use
Jinja2 syntax (``{{ project_name }}``).
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath
from string import Formatter
from typing import Any, assert_never

from jinja2 import Environment, TemplateNotFound, TemplateSyntaxError, UndefinedError, meta

from appforge import __version__
from appforge.catalog import FeatureCatalog, load_builtin_catalog
from appforge.errors import (
    AppendTargetMissingError,
    CatalogError,
    FileConflictError,
    FileSystemError,
    TemplateMissingError,
    UnresolvedPlaceholderError,
)
from appforge.models import (
    AppendOperation,
    CopyOperation,
    FeatureManifest,
    GenerationConfig,
    RenderOperation,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Result Data Classes
# =============================================================================

@dataclass(frozen=True)
class WrittenFile:
    """
    One file touched by materialization.

    ``action`` is ``"copy"``, ``"render"``, ``"append"``, or
    ``"append-skipped"`` when the fragment's marker was already present.
    """

    path: Path
    feature_id: str
    action: str


@dataclass
class MaterializationReport:
    """Ordered record of every file the materializer produced or extended."""

    files: list[WrittenFile] = field(default_factory=list)

    @property
    def written_paths(self) -> tuple[Path, ...]:
        """Relative paths actually written, in first-write order, without duplicates."""
        return tuple(
            dict.fromkeys(f.path for f in self.files if f.action != "append-skipped")
        )

    def paths_for(self, feature_id: str) -> list[Path]:
        return [f.path for f in self.files if f.feature_id == feature_id]


# =============================================================================
# Atomic Writes
# =============================================================================

def _current_umask() -> int:
    # os.umask can only be read by setting it.
    mask = os.umask(0)
    os.umask(mask)
    return mask


def atomic_write_bytes(path: Path, data: bytes, *, mode_from: Path | None = None) -> None:
    """
    Write ``data`` to ``path`` via a temporary file in the same directory.

    Parameters
    ----------
    path : Path
        Destination file. Parent directories are created as needed.

    data : bytes
        File content.

    mode_from : Path | None
        If given, copy this file's permission bits onto the result.
        Otherwise an existing ``path`` keeps its mode and a new file gets
        ``0o666`` less the process umask, as ``open()`` would give it.

    Raises
    ------
    OSError
        If any step fails. The temporary file is removed first.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if mode_from is not None:
            shutil.copymode(mode_from, tmp_path)
        elif path.exists():
            shutil.copymode(path, tmp_path)
        else:
            os.chmod(tmp_path, 0o666 & ~_current_umask())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def atomic_write_text(path: Path, content: str) -> None:
    atomic_write_bytes(path, content.encode("utf-8"))


# =============================================================================
# Template Context
# =============================================================================

def build_context(
    config: GenerationConfig,
    catalog: FeatureCatalog,
    resolved: Iterable[str] | None = None,
) -> dict[str, Any]:
    """
    Build the placeholder context shared by templates and output paths.

    Parameters
    ----------
    config : GenerationConfig
        The run's configuration.

    catalog : FeatureCatalog
        Used to compute the on/off state of every feature flag.

    resolved : Iterable[str] | None
        Resolved feature ids; defaults to ``config.resolved_feature_ids``.
    """
    resolved_ids = list(resolved if resolved is not None else config.resolved_feature_ids)
    return {
        "project_name": config.project_name,
        "organization_identifier": config.organization_identifier,
        "bundle_identifier": config.bundle_identifier,
        "resolved_features": resolved_ids,
        "feature_flags": catalog.feature_flags(resolved_ids),
        "generator_version": __version__,
        "year": datetime.now(UTC).year,
    }


# =============================================================================
# Materializer
# =============================================================================

class TemplateMaterializer:
    """
    Applies file operations for one generation run.

    An instance tracks which feature wrote each path, so it must not be
    reused across runs.

    Parameters
    ----------
    catalog : FeatureCatalog
        Supplies the template root and Jinja2 environment.

    config : GenerationConfig
        The run's configuration.

    output_directory : Path
        Root of the generated project.
    """

    def __init__(
        self,
        catalog: FeatureCatalog,
        config: GenerationConfig,
        output_directory: Path,
    ) -> None:
        self.catalog = catalog
        self.config = config
        self.output_directory = Path(output_directory)
        self.env: Environment = catalog.create_jinja_env()
        self.report = MaterializationReport()
        self._owners: dict[Path, str] = {}
        self._context: dict[str, Any] = {}

    def materialize(self, features: Iterable[FeatureManifest]) -> MaterializationReport:
        """
        Apply every feature's operations in order.

        Raises
        ------
        MaterializationError
            On the first failing operation; nothing after it runs.
        """
        features = list(features)
        resolved = self.config.resolved_feature_ids or tuple(m.id for m in features)
        self._context = build_context(self.config, self.catalog, resolved)

        for manifest in features:
            for operation in manifest.file_operations:
                self._apply(manifest, operation)

        logger.info(
            "Materialized %d file(s) for %d feature(s) into %s",
            len(self.report.written_paths),
            len(features),
            self.output_directory,
        )
        return self.report

    def _apply(
        self,
        manifest: FeatureManifest,
        operation: CopyOperation | RenderOperation | AppendOperation,
    ) -> None:
        match operation:
            case CopyOperation():
                self._copy(manifest, operation)
            case RenderOperation():
                self._render(manifest, operation)
            case AppendOperation():
                self._append(manifest, operation)
            case _:
                assert_never(operation)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def _copy(self, manifest: FeatureManifest, op: CopyOperation) -> None:
        relative = self._claim(manifest.id, op.output, self._context)
        source = self.catalog.template_path(op.template)
        try:
            data = source.read_bytes()
        except FileNotFoundError:
            raise TemplateMissingError(op.template, manifest.id) from None
        except OSError as e:
            raise FileSystemError(source, e) from e

        self._write(relative, data, mode_from=source)
        self._record(relative, manifest.id, "copy")

    def _render(self, manifest: FeatureManifest, op: RenderOperation) -> None:
        context = {**self._context, **op.values}
        relative = self._claim(manifest.id, op.output, context)
        source = self._load_source(op.template, manifest.id)
        content = self._render_text(source, context, op.template, manifest.id, name=op.template)

        self._write(relative, content.encode("utf-8"))
        self._record(relative, manifest.id, "render")

    def _append(self, manifest: FeatureManifest, op: AppendOperation) -> None:
        relative = self._resolve_path(op.target, self._context, manifest.id)
        full_path = self.output_directory / relative

        if relative not in self._owners and not full_path.is_file():
            raise AppendTargetMissingError(relative, manifest.id)

        try:
            existing = full_path.read_text(encoding="utf-8")
        except OSError as e:
            raise FileSystemError(relative, e) from e

        marker = self._render_text(op.marker, self._context, op.target, manifest.id)
        if marker in existing:
            logger.debug("Marker '%s' already present in %s", marker, relative)
            self._record(relative, manifest.id, "append-skipped")
            return

        fragment = self._render_text(op.fragment, self._context, op.target, manifest.id)
        if not fragment.endswith("\n"):
            fragment += "\n"
        separator = "\n" if existing and not existing.endswith("\n") else ""

        self._write(relative, (existing + separator + fragment).encode("utf-8"))
        self._record(relative, manifest.id, "append")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _resolve_path(self, pattern: str, context: dict[str, Any], feature_id: str) -> Path:
        """Substitute ``{placeholder}`` fields in an output path."""
        names = {
            field_name.split(".")[0].split("[")[0]
            for _, field_name, _, _ in Formatter().parse(pattern)
            if field_name is not None
        }
        missing = [name for name in names if name not in context]
        if missing:
            raise UnresolvedPlaceholderError(pattern, feature_id, missing)

        resolved = PurePosixPath(pattern.format(**context))
        if resolved.is_absolute() or ".." in resolved.parts:
            raise UnresolvedPlaceholderError(pattern, feature_id, [str(resolved)])
        return Path(resolved)

    def _claim(self, feature_id: str, pattern: str, context: dict[str, Any]) -> Path:
        """Reserve an output path for a copy or render, failing on collisions."""
        relative = self._resolve_path(pattern, context, feature_id)
        if relative in self._owners:
            raise FileConflictError(relative, self._owners[relative], feature_id)
        self._owners[relative] = feature_id
        return relative

    def _load_source(self, template: str, feature_id: str) -> str:
        try:
            source, _, _ = self.env.loader.get_source(self.env, template)
        except TemplateNotFound:
            raise TemplateMissingError(template, feature_id) from None
        return source

    def _render_text(
        self,
        source: str,
        context: dict[str, Any],
        label: str,
        feature_id: str,
        *,
        name: str | None = None,
    ) -> str:
        try:
            ast = self.env.parse(source, name=name)
            undeclared = meta.find_undeclared_variables(ast)
            missing = sorted(undeclared - context.keys() - self.env.globals.keys())
            if missing:
                raise UnresolvedPlaceholderError(label, feature_id, missing)
            return self.env.from_string(source).render(**context)
        except TemplateSyntaxError as e:
            raise CatalogError(f"Template syntax error in '{label}': {e}") from e
        except UndefinedError as e:
            raise UnresolvedPlaceholderError(label, feature_id, [e.message or str(e)]) from e

    def _write(self, relative: Path, data: bytes, *, mode_from: Path | None = None) -> None:
        try:
            atomic_write_bytes(self.output_directory / relative, data, mode_from=mode_from)
        except OSError as e:
            raise FileSystemError(relative, e) from e

    def _record(self, relative: Path, feature_id: str, action: str) -> None:
        logger.debug("%-14s %s (%s)", action, relative, feature_id)
        self.report.files.append(WrittenFile(relative, feature_id, action))


def materialize(
    resolved_features: Iterable[FeatureManifest],
    config: GenerationConfig,
    output_directory: Path,
    *,
    catalog: FeatureCatalog | None = None,
) -> MaterializationReport:
    """
    Write the project tree for ``resolved_features``.

    Parameters
    ----------
    resolved_features : Iterable[FeatureManifest]
        Manifests in resolver order.

    config : GenerationConfig
        Supplies placeholder values.

    output_directory : Path
        Root of the generated project; created if missing.

    catalog : FeatureCatalog | None
        Catalog owning the templates. Defaults to the built-in catalog.

    Returns
    -------
    MaterializationReport
        Every file written, in order.
    """
    materializer = TemplateMaterializer(
        catalog or load_builtin_catalog(), config, output_directory
    )
    return materializer.materialize(resolved_features)
