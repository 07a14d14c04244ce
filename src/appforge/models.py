"""
appforge.models - Pydantic Models for Feature Manifests and Generation
======================================================================

This module defines the data models shared by every stage of the
generation engine. We use Pydantic for the same reasons throughout:

1. **Validation**: Catalog data and user input fail early with clear messages
2. **Immutability**: Catalog-owned models are frozen and never mutated
3. **Tagged unions**: File operations are a closed, discriminated union

Architecture Notes
------------------
The models are organized in a hierarchy:

    FeatureManifest (catalog-owned, frozen)
    ├── FeatureCategory (enum)
    ├── Credential
    ├── BuildSetting
    └── FileOperation (discriminated on ``kind``)
        ├── CopyOperation
        ├── RenderOperation
        └── AppendOperation

    Preset (catalog-owned, frozen)

    GenerationConfig (one per run, frozen)

Usage Example
-------------
>>> from appforge.models import GenerationConfig
>>> config = GenerationConfig(
...     project_name="Ledger",
...     organization_identifier="com.acme",
...     output_directory=Path("../Ledger"),
...     selected_feature_ids=("push-notifications",),
... )
>>> config.bundle_identifier
'com.acme.Ledger'
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)


FEATURE_ID_PATTERN = re.compile(r"^[^\s,]+$")
PROJECT_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
BUILD_SETTING_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]*$")
IDENTIFIER_SEGMENT_PATTERN = re.compile(r"^[A-Za-z0-9-]+$")


def _check_relative_path(v: str) -> str:
    """Reject absolute paths and parent-directory segments."""
    path = PurePosixPath(v)
    if not v or path.is_absolute() or ".." in path.parts:
        msg = f"Path '{v}' must be relative and stay inside the project"
        raise ValueError(msg)
    return v


def _check_unique_ids(values: tuple[str, ...], field_name: str) -> tuple[str, ...]:
    if len(set(values)) != len(values):
        msg = f"Duplicate ids in {field_name}: {list(values)}"
        raise ValueError(msg)
    return values


# =============================================================================
# Enumerations
# =============================================================================

class FeatureCategory(str, Enum):
    """
    Category grouping used when listing features.

    Categories are purely presentational; the resolver never looks at them.
    """

    CORE = "core"
    ANALYTICS = "analytics"
    MONETIZATION = "monetization"
    MODULE = "module"
    NOTIFICATIONS = "notifications"
    TESTING = "testing"


# =============================================================================
# External Setup Requirements
# =============================================================================

class Credential(BaseModel):
    """
    An external secret or configuration artifact the user supplies after
    generation (e.g. a ``GoogleService-Info.plist`` or an API key).

    Attributes
    ----------
    name : str
        Short name, also the de-duplication key across features.

    source : str
        Where the developer finds this credential.

    build_setting : str | None
        The build-setting key this credential is entered under, if any.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, description="Credential name")
    source: str = Field(default="", description="Where to obtain the credential")
    build_setting: str | None = Field(
        default=None,
        description="Build-setting key the credential is stored under",
    )


class BuildSetting(BaseModel):
    """A named configuration value the user must populate after generation."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(description="Build-setting key (e.g. REVENUECAT_API_KEY)")
    description: str = Field(default="", description="Human-readable description")
    default_value: str = Field(default="", description="Value used when none is supplied")

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        """Keys follow xcconfig conventions: upper snake case."""
        if not BUILD_SETTING_PATTERN.match(v):
            msg = f"Invalid build-setting key '{v}'. Use UPPER_SNAKE_CASE."
            raise ValueError(msg)
        return v


# =============================================================================
# File Operations (closed tagged union)
# =============================================================================

class CopyOperation(BaseModel):
    """Write a template file verbatim to ``output``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["copy"] = "copy"
    template: str = Field(description="Template path relative to the template root")
    output: str = Field(description="Output path relative to the project root")

    @field_validator("template", "output")
    @classmethod
    def validate_paths(cls, v: str) -> str:
        return _check_relative_path(v)


class RenderOperation(BaseModel):
    """Render a Jinja2 template and write the result to ``output``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["render"] = "render"
    template: str = Field(description="Template path relative to the template root")
    output: str = Field(description="Output path relative to the project root")
    values: dict[str, str] = Field(
        default_factory=dict,
        description="Feature-specific placeholder values",
    )

    @field_validator("template", "output")
    @classmethod
    def validate_paths(cls, v: str) -> str:
        return _check_relative_path(v)


class AppendOperation(BaseModel):
    """
    Append a fragment to a file written earlier in the run.

    The ``marker`` must appear verbatim in ``fragment``; it is how a
    re-run detects that the fragment was already applied. Both are rendered
    with the same context before the marker is looked up.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["append"] = "append"
    target: str = Field(description="Existing file, relative to the project root")
    fragment: str = Field(min_length=1, description="Text to append")
    marker: str = Field(min_length=1, description="Sentinel embedded in the fragment")

    @field_validator("target")
    @classmethod
    def validate_target(cls, v: str) -> str:
        return _check_relative_path(v)

    @model_validator(mode="after")
    def validate_marker_in_fragment(self) -> AppendOperation:
        if self.marker not in self.fragment:
            msg = f"Append marker '{self.marker}' does not occur in its fragment"
            raise ValueError(msg)
        return self


FileOperation = Annotated[
    CopyOperation | RenderOperation | AppendOperation,
    Field(discriminator="kind"),
]


# =============================================================================
# Feature Manifest
# =============================================================================

class FeatureManifest(BaseModel):
    """
    A feature's static declaration, owned by the catalog.

    Attributes
    ----------
    id : str
        Unique identifier used in CLI flags and dependency references.

    display_name : str
        Human-readable name shown in prompts and reports.

    description : str
        One-line description.

    category : FeatureCategory
        Presentational grouping.

    feature_flag : str | None
        Name of the ``FeatureFlags`` constant that switches this feature on
        in the generated app, if any.

    always_included : bool
        Whether the feature is part of every generated project regardless
        of selection.

    aliases : tuple[str, ...]
        CLI shorthand accepted in place of ``id``.

    dependencies : tuple[str, ...]
        Ids of features that must also be present.

    conflicts : tuple[str, ...]
        Ids of features that may not be present alongside this one.

    required_credentials : tuple[Credential, ...]
        Secrets the user must supply after generation, in display order.

    build_settings : tuple[BuildSetting, ...]
        Configuration keys the user must populate, in display order.

    file_operations : tuple[FileOperation, ...]
        Operations applied to the output tree, in declared order.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str = ""
    description: str = ""
    category: FeatureCategory = FeatureCategory.MODULE
    feature_flag: str | None = None
    always_included: bool = False
    aliases: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()
    conflicts: tuple[str, ...] = ()
    required_credentials: tuple[Credential, ...] = ()
    build_settings: tuple[BuildSetting, ...] = ()
    file_operations: tuple[FileOperation, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def default_display_name(cls, data: Any) -> Any:
        """Fall back to the id when no display name is declared."""
        if isinstance(data, dict) and not data.get("display_name") and "id" in data:
            data = {**data, "display_name": data["id"]}
        return data

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not FEATURE_ID_PATTERN.match(v):
            msg = (
                f"Invalid feature id '{v}'. Ids must be non-empty and contain "
                "no whitespace or commas."
            )
            raise ValueError(msg)
        return v

    @field_validator("dependencies", "conflicts", "aliases")
    @classmethod
    def validate_unique(cls, v: tuple[str, ...], info: ValidationInfo) -> tuple[str, ...]:
        return _check_unique_ids(v, info.field_name)

    @model_validator(mode="after")
    def validate_self_references(self) -> FeatureManifest:
        if self.id in self.dependencies:
            msg = f"Feature '{self.id}' cannot depend on itself"
            raise ValueError(msg)
        if self.id in self.conflicts:
            msg = f"Feature '{self.id}' cannot conflict with itself"
            raise ValueError(msg)
        overlap = set(self.dependencies) & set(self.conflicts)
        if overlap:
            msg = f"Feature '{self.id}' both depends on and conflicts with {sorted(overlap)}"
            raise ValueError(msg)
        return self


class Preset(BaseModel):
    """A named, curated feature selection offered by the CLI."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str = ""
    description: str = ""
    features: tuple[str, ...] = ()


# =============================================================================
# Generation Configuration
# =============================================================================

class GenerationConfig(BaseModel):
    """
    Configuration for a single generation run.

    Built once per invocation from the user's picks, then replaced (never
    mutated) by :meth:`with_resolution` once the resolver has computed the
    full feature list. The materializer consumes it exactly once.

    Examples
    --------
    >>> config = GenerationConfig(
    ...     project_name="Ledger",
    ...     organization_identifier="com.acme",
    ...     output_directory=Path("out/Ledger"),
    ... )
    >>> config.with_resolution(("app-core",)).resolved_feature_ids
    ('app-core',)
    """

    model_config = ConfigDict(frozen=True)

    project_name: str = Field(description="App name, used for placeholder substitution")
    organization_identifier: str = Field(description="Reverse-domain organization id")
    output_directory: Path = Field(description="Directory the project is written to")
    selected_feature_ids: tuple[str, ...] = Field(
        default=(),
        description="The user's direct picks",
    )
    resolved_feature_ids: tuple[str, ...] = Field(
        default=(),
        description="Transitive closure in dependency order",
    )

    @field_validator("project_name")
    @classmethod
    def validate_project_name(cls, v: str) -> str:
        """
        Project names become type and directory names in the generated app,
        so they must start with a letter and contain only letters, numbers,
        and underscores.
        """
        v = v.strip()
        if not PROJECT_NAME_PATTERN.match(v):
            msg = (
                f"Invalid project name '{v}'. Names must start with a letter and "
                "contain only letters, numbers, and underscores (e.g. MyApp)."
            )
            raise ValueError(msg)
        return v

    @field_validator("organization_identifier")
    @classmethod
    def validate_organization_identifier(cls, v: str) -> str:
        v = v.strip()
        segments = v.split(".")
        if len(segments) < 2 or not all(
            IDENTIFIER_SEGMENT_PATTERN.match(segment) for segment in segments
        ):
            msg = (
                f"Invalid organization identifier '{v}'. Use reverse-domain format "
                "(e.g. com.company); segments contain only letters, numbers, hyphens."
            )
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_resolution(self) -> GenerationConfig:
        resolved = self.resolved_feature_ids
        if not resolved:
            return self
        if len(set(resolved)) != len(resolved):
            msg = f"Resolved features contain duplicates: {list(resolved)}"
            raise ValueError(msg)
        missing = [fid for fid in self.selected_feature_ids if fid not in resolved]
        if missing:
            msg = f"Resolved features are missing selected features: {missing}"
            raise ValueError(msg)
        return self

    @property
    def bundle_identifier(self) -> str:
        """Bundle id of the generated app: ``<organization>.<project>``."""
        return f"{self.organization_identifier}.{self.project_name}"

    def with_resolution(
        self,
        resolved: tuple[str, ...] | list[str],
        *,
        selected: tuple[str, ...] | list[str] | None = None,
    ) -> GenerationConfig:
        """
        Return a copy carrying the resolver's ordered feature list.

        ``selected`` replaces the picks with their normalized form when
        the resolver mapped aliases to canonical ids.
        """
        return GenerationConfig(
            project_name=self.project_name,
            organization_identifier=self.organization_identifier,
            output_directory=self.output_directory,
            selected_feature_ids=tuple(
                self.selected_feature_ids if selected is None else selected
            ),
            resolved_feature_ids=tuple(resolved),
        )
