"""
appforge.errors - Exception Taxonomy
====================================

Every failure the generation engine can report is a subclass of
:class:`AppForgeError`. Failures are detected locally and synchronously and
are never retried: they stem from catalog defects or user input, with the
single exception of :class:`FileSystemError`, whose retry policy belongs to
the caller.

Hierarchy
---------
::

    AppForgeError
    ├── CatalogError
    ├── ResolutionError
    │   ├── UnknownFeatureError
    │   ├── DependencyCycleError
    │   └── FeatureConflictError
    ├── MaterializationError
    │   ├── FileConflictError
    │   ├── UnresolvedPlaceholderError
    │   ├── TemplateMissingError
    │   ├── AppendTargetMissingError
    │   └── FileSystemError
    ├── OutputDirectoryError
    └── GenerationError

Each exception keeps the ids and paths involved as attributes so the
reporting layer can render them without parsing messages.
"""

from __future__ import annotations

from pathlib import Path


class AppForgeError(Exception):
    """Base class for all appforge errors."""


class CatalogError(AppForgeError):
    """The feature catalog data is malformed or inconsistent."""


# =============================================================================
# Resolution Errors
# =============================================================================

class ResolutionError(AppForgeError):
    """Base class for dependency resolution failures."""


class UnknownFeatureError(ResolutionError):
    """
    A feature id is not present in the catalog.

    Attributes
    ----------
    feature_id : str
        The id that could not be found.

    referenced_by : str | None
        The manifest whose ``dependencies`` or ``conflicts`` named the id,
        or None when the id came straight from the user's selection.
    """

    def __init__(self, feature_id: str, referenced_by: str | None = None) -> None:
        self.feature_id = feature_id
        self.referenced_by = referenced_by
        if referenced_by is None:
            msg = f"Unknown feature: '{feature_id}'"
        else:
            msg = f"Unknown feature '{feature_id}' referenced by '{referenced_by}'"
        super().__init__(msg)


class DependencyCycleError(ResolutionError):
    """
    The catalog's dependency graph contains a cycle.

    ``path`` lists the cycle starting at the node that was re-entered, so
    ``A -> B -> A`` is reported as ``["A", "B"]``.
    """

    def __init__(self, path: list[str]) -> None:
        self.path = list(path)
        chain = " -> ".join([*self.path, self.path[0]]) if self.path else ""
        super().__init__(f"Circular dependency detected: {chain}")


class FeatureConflictError(ResolutionError):
    """Two resolved features declare each other incompatible."""

    def __init__(self, first: str, second: str) -> None:
        self.first = first
        self.second = second
        super().__init__(f"Features '{first}' and '{second}' cannot be used together")


# =============================================================================
# Materialization Errors
# =============================================================================

class MaterializationError(AppForgeError):
    """Base class for failures while writing the project tree."""


class FileConflictError(MaterializationError):
    """Two features write the same output path without append semantics."""

    def __init__(self, path: Path, earlier_feature: str, later_feature: str) -> None:
        self.path = path
        self.earlier_feature = earlier_feature
        self.later_feature = later_feature
        super().__init__(
            f"'{path}' is written by both '{earlier_feature}' and '{later_feature}'"
        )


class UnresolvedPlaceholderError(MaterializationError):
    """A template or output path references a placeholder with no value."""

    def __init__(self, path: str, feature_id: str, names: list[str]) -> None:
        self.path = path
        self.feature_id = feature_id
        self.names = sorted(names)
        super().__init__(
            f"Unresolved placeholder(s) {', '.join(self.names)} in '{path}' "
            f"(feature '{feature_id}')"
        )


class TemplateMissingError(MaterializationError):
    """A manifest references a template file that does not exist."""

    def __init__(self, template: str, feature_id: str) -> None:
        self.template = template
        self.feature_id = feature_id
        super().__init__(f"Template '{template}' for feature '{feature_id}' not found")


class AppendTargetMissingError(MaterializationError):
    """An append operation targets a file that has not been written."""

    def __init__(self, path: Path, feature_id: str) -> None:
        self.path = path
        self.feature_id = feature_id
        super().__init__(
            f"Feature '{feature_id}' appends to '{path}', which does not exist"
        )


class FileSystemError(MaterializationError):
    """An underlying OS-level failure (permissions, disk space, ...)."""

    def __init__(self, path: Path, cause: OSError) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to write '{path}': {cause}")


# =============================================================================
# Orchestration Errors
# =============================================================================

class OutputDirectoryError(AppForgeError):
    """The output directory cannot be used for this run."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot generate into '{path}': {reason}")


class GenerationError(AppForgeError):
    """
    A pipeline stage failed.

    The orchestrator wraps the stage's own error without translating it;
    the original exception is available as ``cause`` (and ``__cause__``).
    """

    def __init__(self, stage: str, cause: AppForgeError) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage} failed: {cause}")
