"""
appforge.programmatic - JSON Mode for Automation
================================================

``appforge new --programmatic`` reads one JSON object from stdin, runs a
generation, and writes one JSON object to stdout. No prompts or colours or
progress output are produced, so the mode is safe to drive from scripts
and other tools.

Input
-----
::

    {
      "projectName": "Ledger",
      "organizationIdentifier": "com.acme",
      "features": ["firebase", "push"],
      "preset": "standard",          # optional, merged before "features"
      "outputDir": "/tmp/Ledger"     # optional, default ../<projectName>
    }

Unknown fields are ignored. ``features`` may be omitted when ``preset`` is
given. Feature shorthand (``push``, ``firebase``) is accepted.

Output
------
::

    {
      "success": true,
      "projectName": "Ledger",
      "outputDir": "/tmp/Ledger",
      "resolvedFeatures": ["app-core", "firebase-analytics", ...],
      "filesWritten": ["README.md", ...],
      "credentials": [{"name": ..., "source": ..., "buildSetting": ...}],
      "buildSettings": [{"key": ..., "description": ..., "defaultValue": ...}],
      "error": null
    }

On failure ``success`` is false and ``error`` holds ``code``, ``message``,
and ``field`` (the input field at fault, or null).

Exit Codes
----------
- 0: project generated
- 1: invalid input values or a generation failure
- 2: stdin empty or not a JSON object of the expected shape
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from appforge.catalog import FeatureCatalog, load_builtin_catalog
from appforge.errors import (
    AppForgeError,
    CatalogError,
    DependencyCycleError,
    FeatureConflictError,
    FileConflictError,
    FileSystemError,
    GenerationError,
    OutputDirectoryError,
    UnknownFeatureError,
)
from appforge.generator import GenerationResult, generate
from appforge.models import GenerationConfig


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_BAD_INPUT = 2


# =============================================================================
# I/O Models
# =============================================================================

class ProgrammaticInput(BaseModel):
    """The JSON object accepted on stdin. Required fields are checked later."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    project_name: str | None = Field(default=None, alias="projectName")
    organization_identifier: str | None = Field(default=None, alias="organizationIdentifier")
    features: list[str] | None = None
    preset: str | None = None
    output_dir: str | None = Field(default=None, alias="outputDir")


class ProgrammaticError(BaseModel):
    """Machine-readable error payload."""

    code: str
    message: str
    field: str | None = None


class CredentialEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    source: str
    build_setting: str | None = Field(default=None, alias="buildSetting")


class BuildSettingEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str
    description: str
    default_value: str = Field(default="", alias="defaultValue")


class ProgrammaticResult(BaseModel):
    """The JSON object written to stdout."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    project_name: str | None = Field(default=None, alias="projectName")
    output_dir: str | None = Field(default=None, alias="outputDir")
    resolved_features: list[str] | None = Field(default=None, alias="resolvedFeatures")
    files_written: list[str] | None = Field(default=None, alias="filesWritten")
    credentials: list[CredentialEntry] | None = None
    build_settings: list[BuildSettingEntry] | None = Field(default=None, alias="buildSettings")
    error: ProgrammaticError | None = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class ProgrammaticFailure(Exception):
    """Raised internally to stop the run with a result and exit code."""

    def __init__(self, result: ProgrammaticResult, exit_code: int) -> None:
        self.result = result
        self.exit_code = exit_code
        super().__init__(result.error.message if result.error else "failure")


def _fail(
    code: str,
    message: str,
    field: str | None = None,
    *,
    exit_code: int = EXIT_FAILURE,
    project_name: str | None = None,
    output_dir: str | None = None,
) -> ProgrammaticFailure:
    return ProgrammaticFailure(
        ProgrammaticResult(
            success=False,
            project_name=project_name,
            output_dir=output_dir,
            error=ProgrammaticError(code=code, message=message, field=field),
        ),
        exit_code,
    )


# =============================================================================
# Steps
# =============================================================================

_FIELD_ALIASES = {
    "project_name": "projectName",
    "organization_identifier": "organizationIdentifier",
    "output_dir": "outputDir",
}


def parse_input(raw: str) -> ProgrammaticInput:
    """
    Parse stdin text into a :class:`ProgrammaticInput`.

    Raises
    ------
    ProgrammaticFailure
        ``STDIN_READ_ERROR`` for empty input, ``INVALID_JSON`` for anything
        that is not a JSON object of the expected shape (exit code 2).
    """
    if not raw.strip():
        raise _fail(
            "STDIN_READ_ERROR",
            "No input received on stdin. Pipe JSON input: "
            "echo '{...}' | appforge new --programmatic",
            exit_code=EXIT_BAD_INPUT,
        )

    try:
        return ProgrammaticInput.model_validate_json(raw)
    except ValidationError as e:
        first = e.errors()[0]
        loc = first["loc"][0] if first["loc"] else None
        field = _FIELD_ALIASES.get(str(loc), str(loc)) if loc is not None else None
        raise _fail(
            "INVALID_JSON",
            f"Could not parse JSON input: {first['msg']}",
            field,
            exit_code=EXIT_BAD_INPUT,
        ) from e


def _require(value: object, field: str) -> None:
    if value is None or value == "":
        raise _fail("MISSING_FIELD", f"Required field '{field}' is missing or null", field)


def _selection(data: ProgrammaticInput, catalog: FeatureCatalog) -> list[str]:
    """Preset features followed by explicit features, normalized and checked."""
    requested: list[str] = []
    if data.preset:
        try:
            requested.extend(catalog.preset(data.preset).features)
        except CatalogError as e:
            raise _fail("UNKNOWN_PRESET", str(e), "preset") from e
    requested.extend(data.features or [])

    selection: list[str] = []
    for raw in requested:
        feature_id = catalog.normalize(raw)
        if feature_id not in catalog:
            valid = ", ".join(catalog.ids)
            raise _fail(
                "INVALID_FEATURE_ID",
                f"Unknown feature ID '{raw}'. Valid features: {valid}",
                "features",
            )
        if feature_id not in selection:
            selection.append(feature_id)
    return selection


def _failure_for(error: AppForgeError, project_name: str, output_dir: str) -> ProgrammaticFailure:
    cause = error.cause if isinstance(error, GenerationError) else error
    context = {"project_name": project_name, "output_dir": output_dir}

    match cause:
        case OutputDirectoryError():
            return _fail("OUTPUT_DIR_EXISTS", str(cause), "outputDir", **context)
        case FeatureConflictError():
            return _fail("FEATURE_CONFLICT", str(cause), "features", **context)
        case UnknownFeatureError():
            return _fail("INVALID_FEATURE_ID", str(cause), "features", **context)
        case DependencyCycleError():
            return _fail("DEPENDENCY_CYCLE", str(cause), **context)
        case FileConflictError():
            return _fail("FILE_CONFLICT", str(cause), **context)
        case FileSystemError():
            return _fail("FILESYSTEM_FAILURE", str(cause), **context)
        case _:
            return _fail("GENERATION_FAILED", f"Generation failed: {cause}", **context)


def _success(result: GenerationResult) -> ProgrammaticResult:
    return ProgrammaticResult(
        success=True,
        project_name=result.config.project_name,
        output_dir=str(result.project_path),
        resolved_features=list(result.resolved_feature_ids),
        files_written=[path.as_posix() for path in result.written_paths],
        credentials=[
            CredentialEntry(name=c.name, source=c.source, build_setting=c.build_setting)
            for c in result.merged_credentials
        ],
        build_settings=[
            BuildSettingEntry(key=s.key, description=s.description, default_value=s.default_value)
            for s in result.merged_build_settings
        ],
    )


# =============================================================================
# Entry Point
# =============================================================================

def run_programmatic(
    raw: str,
    *,
    catalog: FeatureCatalog | None = None,
    cwd: Path | None = None,
) -> tuple[ProgrammaticResult, int]:
    """
    Run one programmatic generation.

    Parameters
    ----------
    raw : str
        Everything read from stdin.

    catalog : FeatureCatalog | None
        Catalog to generate from. Defaults to the built-in catalog.

    cwd : Path | None
        Base for the default output directory (``<cwd>/../<projectName>``).

    Returns
    -------
    tuple[ProgrammaticResult, int]
        The result to print and the process exit code.
    """
    try:
        data = parse_input(raw)

        _require(data.project_name, "projectName")
        _require(data.organization_identifier, "organizationIdentifier")
        if data.features is None and not data.preset:
            _require(None, "features")

        output_dir = (
            Path(data.output_dir)
            if data.output_dir
            else (cwd or Path.cwd()).resolve().parent / data.project_name
        )

        try:
            GenerationConfig(
                project_name=data.project_name,
                organization_identifier=data.organization_identifier,
                output_directory=output_dir,
            )
        except ValidationError as e:
            loc = e.errors()[0]["loc"][0]
            if loc == "project_name":
                raise _fail(
                    "INVALID_PROJECT_NAME",
                    "projectName must start with a letter and contain only letters, "
                    "numbers, and underscores (e.g. MyApp)",
                    "projectName",
                ) from e
            raise _fail(
                "INVALID_ORGANIZATION_ID",
                "organizationIdentifier must be reverse-domain format (e.g. com.company). "
                "Segments contain only letters, numbers, hyphens.",
                "organizationIdentifier",
            ) from e

        try:
            catalog = catalog or load_builtin_catalog()
        except CatalogError as e:
            raise _fail("CATALOG_LOAD_ERROR", f"Failed to load feature catalog: {e}") from e
        selection = _selection(data, catalog)

        try:
            result = generate(
                selection,
                data.project_name,
                data.organization_identifier,
                output_dir,
                catalog=catalog,
            )
        except AppForgeError as e:
            logger.debug("Programmatic generation failed", exc_info=True)
            raise _failure_for(e, data.project_name, str(output_dir)) from e

    except ProgrammaticFailure as failure:
        return failure.result, failure.exit_code

    return _success(result), EXIT_OK
