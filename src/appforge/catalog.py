"""
appforge.catalog - The Feature Catalog
======================================

The catalog is an immutable registry of :class:`FeatureManifest` objects,
loaded once per process and passed explicitly to the resolver and the
orchestrator. Tests build synthetic catalogs directly from manifests; the
CLI uses :func:`load_builtin_catalog`, which reads the ``catalog.toml`` file
shipped inside the package.

Catalog File Format
-------------------
::

    [[features]]
    id = "crashlytics"
    display_name = "Firebase Crashlytics"
    category = "analytics"
    feature_flag = "enableCrashlytics"
    dependencies = ["firebase-analytics"]

    [[features.required_credentials]]
    name = "GoogleService-Info.plist"
    source = "Firebase Console > Project settings"

    [[features.file_operations]]
    kind = "copy"
    template = "crashlytics/CrashlyticsService.swift"
    output = "{project_name}/Managers/Logs/CrashlyticsService.swift"

    [[presets]]
    id = "minimal"
    features = ["onboarding"]

Declaration order in the file is significant: it is the stable tie-break
key the resolver uses to order mutually independent features.
"""

from __future__ import annotations

import functools
import logging
import tomllib
from collections.abc import Iterable, Iterator
from pathlib import Path
from types import MappingProxyType

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape
from pydantic import ValidationError

from appforge.errors import CatalogError, UnknownFeatureError
from appforge.models import FeatureManifest, Preset


logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).parent
BUILTIN_CATALOG_PATH = PACKAGE_DIR / "catalog.toml"
BUILTIN_TEMPLATE_ROOT = PACKAGE_DIR / "templates"


class FeatureCatalog:
    """
    Read-only registry of feature manifests.

    Parameters
    ----------
    manifests : Iterable[FeatureManifest]
        Manifests in declaration order.

    template_root : Path
        Directory that manifest template paths are relative to.

    presets : Iterable[Preset]
        Named selections offered by the CLI.

    Raises
    ------
    CatalogError
        If two manifests share an id, or an alias collides with an id or
        another alias.
    """

    def __init__(
        self,
        manifests: Iterable[FeatureManifest],
        *,
        template_root: Path,
        presets: Iterable[Preset] = (),
    ) -> None:
        self._manifests = tuple(manifests)
        self._template_root = Path(template_root)

        index: dict[str, FeatureManifest] = {}
        for manifest in self._manifests:
            if manifest.id in index:
                raise CatalogError(f"Duplicate feature id '{manifest.id}' in catalog")
            index[manifest.id] = manifest

        aliases: dict[str, str] = {}
        for manifest in self._manifests:
            for alias in manifest.aliases:
                key = alias.lower()
                if alias in index or key in aliases:
                    raise CatalogError(
                        f"Alias '{alias}' of '{manifest.id}' collides with another id or alias"
                    )
                aliases[key] = manifest.id

        # Case-insensitive id lookup, only for ids that stay unique when folded.
        folded: dict[str, str | None] = {}
        for feature_id in index:
            key = feature_id.lower()
            folded[key] = None if key in folded else feature_id

        self._index = MappingProxyType(index)
        self._aliases = MappingProxyType(aliases)
        self._folded = MappingProxyType(
            {key: feature_id for key, feature_id in folded.items() if feature_id is not None}
        )
        self._positions = MappingProxyType(
            {manifest.id: i for i, manifest in enumerate(self._manifests)}
        )

        preset_index: dict[str, Preset] = {}
        for preset in presets:
            if preset.id in preset_index:
                raise CatalogError(f"Duplicate preset id '{preset.id}' in catalog")
            preset_index[preset.id] = preset
        self._presets = MappingProxyType(preset_index)

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def __contains__(self, feature_id: object) -> bool:
        return feature_id in self._index

    def __iter__(self) -> Iterator[FeatureManifest]:
        return iter(self._manifests)

    def __len__(self) -> int:
        return len(self._manifests)

    def __repr__(self) -> str:
        return f"FeatureCatalog({len(self)} features, template_root={self._template_root})"

    @property
    def ids(self) -> tuple[str, ...]:
        """All feature ids in declaration order."""
        return tuple(manifest.id for manifest in self._manifests)

    @property
    def template_root(self) -> Path:
        return self._template_root

    @property
    def always_included(self) -> tuple[str, ...]:
        """Ids of features flagged as part of every project."""
        return tuple(m.id for m in self._manifests if m.always_included)

    @property
    def presets(self) -> tuple[Preset, ...]:
        return tuple(self._presets.values())

    def get(self, feature_id: str) -> FeatureManifest:
        """
        Look up a manifest by id.

        Raises
        ------
        UnknownFeatureError
            If the id is not in the catalog.
        """
        try:
            return self._index[feature_id]
        except KeyError:
            raise UnknownFeatureError(feature_id) from None

    def position(self, feature_id: str) -> int:
        """Declaration index of a feature, used as the resolver's tie-break key."""
        try:
            return self._positions[feature_id]
        except KeyError:
            raise UnknownFeatureError(feature_id) from None

    def normalize(self, feature_id: str) -> str:
        """
        Map CLI shorthand to a canonical feature id.

        An exact id match is returned unchanged. Otherwise aliases and ids
        are matched case-insensitively; an id that is only unique up to case
        must be typed exactly. Unknown values are returned stripped so the
        resolver can report them.

        Examples
        --------
        >>> catalog.normalize("Push")
        'push-notifications'
        """
        value = feature_id.strip()
        if value in self._index:
            return value
        key = value.lower()
        return self._aliases.get(key) or self._folded.get(key, value)

    def preset(self, preset_id: str) -> Preset:
        try:
            return self._presets[preset_id.strip().lower()]
        except KeyError:
            valid = ", ".join(self._presets) or "none"
            raise CatalogError(f"Unknown preset '{preset_id}'. Valid presets: {valid}") from None

    def feature_flags(self, enabled: Iterable[str]) -> dict[str, bool]:
        """
        On/off state of every feature flag declared in the catalog.

        Parameters
        ----------
        enabled : Iterable[str]
            Resolved feature ids.

        Returns
        -------
        dict[str, bool]
            Flag name to enabled state, in declaration order.
        """
        enabled_ids = set(enabled)
        return {
            manifest.feature_flag: manifest.id in enabled_ids
            for manifest in self._manifests
            if manifest.feature_flag
        }

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    def template_path(self, template: str) -> Path:
        return self._template_root / template

    def create_jinja_env(self) -> Environment:
        """
        Create the Jinja2 environment used to render this catalog's templates.

        Autoescaping is disabled because the output is source code and
        configuration files, not HTML. ``StrictUndefined`` turns any
        placeholder without a value into an error instead of a blank.
        """
        return Environment(
            loader=FileSystemLoader(self._template_root),
            autoescape=select_autoescape([], default_for_string=False),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )


# =============================================================================
# Loading
# =============================================================================

def load_catalog(path: Path, template_root: Path | None = None) -> FeatureCatalog:
    """
    Load a catalog from a TOML file.

    Parameters
    ----------
    path : Path
        The catalog document.

    template_root : Path | None
        Template directory; defaults to a ``templates`` directory next to
        the catalog file.

    Raises
    ------
    CatalogError
        If the file cannot be read or fails validation.
    """
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise CatalogError(f"Cannot read catalog '{path}': {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise CatalogError(f"Malformed catalog '{path.name}': {e}") from e

    try:
        manifests = [FeatureManifest.model_validate(item) for item in data.get("features", [])]
        presets = [Preset.model_validate(item) for item in data.get("presets", [])]
    except ValidationError as e:
        raise CatalogError(f"Malformed manifest in '{path.name}': {e}") from e

    if not manifests:
        raise CatalogError(f"No feature manifests found in '{path.name}'")

    catalog = FeatureCatalog(
        manifests,
        template_root=template_root or path.parent / "templates",
        presets=presets,
    )
    logger.debug("Loaded %d features from %s", len(catalog), path)
    return catalog


@functools.cache
def load_builtin_catalog() -> FeatureCatalog:
    """Load the catalog shipped with appforge (cached for the process)."""
    return load_catalog(BUILTIN_CATALOG_PATH, BUILTIN_TEMPLATE_ROOT)
