"""
Tests for appforge.catalog
==========================

This module contains tests for the feature catalog: construction checks,
lookups, alias normalization, the TOML loader, and the built-in catalog
shipped with the package.

Test Organization
-----------------
- TestFeatureCatalog: Tests for catalog construction and lookups
- TestLoadCatalog: Tests for reading catalogs from TOML
- TestBuiltinCatalog: Tests for the packaged catalog and templates
"""

from pathlib import Path

import pytest

from appforge.catalog import FeatureCatalog, load_builtin_catalog, load_catalog
from appforge.errors import CatalogError, UnknownFeatureError
from appforge.models import AppendOperation, FeatureManifest, Preset


# =============================================================================
# FeatureCatalog Tests
# =============================================================================

class TestFeatureCatalog:
    """Tests for the FeatureCatalog class."""

    def test_preserves_declaration_order(self, catalog: FeatureCatalog) -> None:
        """Test that ids and positions follow declaration order."""
        assert catalog.ids == (
            "core", "analytics-core", "push", "provider-a", "provider-b", "standalone",
        )
        assert catalog.position("core") == 0
        assert catalog.position("push") == 2
        assert len(catalog) == 6

    def test_get_known_feature(self, catalog: FeatureCatalog) -> None:
        """Test looking up a manifest by id."""
        assert catalog.get("push").dependencies == ("analytics-core",)
        assert "push" in catalog
        assert "nope" not in catalog

    def test_get_unknown_feature_raises(self, catalog: FeatureCatalog) -> None:
        """Test that unknown ids raise UnknownFeatureError."""
        with pytest.raises(UnknownFeatureError) as exc_info:
            catalog.get("nope")

        assert exc_info.value.feature_id == "nope"
        assert exc_info.value.referenced_by is None

    def test_always_included(self, catalog: FeatureCatalog) -> None:
        """Test that always-included features come from manifest metadata."""
        assert catalog.always_included == ("core",)

    def test_normalize_alias_and_case(self, catalog: FeatureCatalog) -> None:
        """Test that aliases map to canonical ids, case-insensitively."""
        assert catalog.normalize("analytics") == "analytics-core"
        assert catalog.normalize(" Analytics ") == "analytics-core"
        assert catalog.normalize("PUSH") == "push"

    def test_normalize_leaves_unknown_ids(self, catalog: FeatureCatalog) -> None:
        """Test that unknown values pass through for the resolver to report."""
        assert catalog.normalize("nope") == "nope"

    def test_normalize_keeps_exact_ids(self, template_root: Path) -> None:
        """Test that ids differing only in case are kept apart."""
        catalog = FeatureCatalog(
            [FeatureManifest(id="A"), FeatureManifest(id="a"), FeatureManifest(id="Sync")],
            template_root=template_root,
        )

        assert catalog.normalize("A") == "A"
        assert catalog.normalize("a") == "a"
        assert catalog.normalize("sync") == "Sync"

    def test_feature_flags(self, catalog: FeatureCatalog) -> None:
        """Test flag states for every manifest that declares a flag."""
        assert catalog.feature_flags(["core", "analytics-core"]) == {
            "enableAnalytics": True,
            "enablePush": False,
        }

    def test_preset_lookup(self, catalog: FeatureCatalog) -> None:
        """Test that presets are found by id."""
        assert catalog.preset("Starter").features == ("push", "standalone")

    def test_unknown_preset_raises(self, catalog: FeatureCatalog) -> None:
        """Test that an unknown preset lists the valid ones."""
        with pytest.raises(CatalogError, match="starter"):
            catalog.preset("enterprise")

    def test_duplicate_ids_raise(self, template_root: Path) -> None:
        """Test that two manifests with one id are refused."""
        with pytest.raises(CatalogError, match="Duplicate feature id"):
            FeatureCatalog(
                [FeatureManifest(id="core"), FeatureManifest(id="core")],
                template_root=template_root,
            )

    def test_alias_colliding_with_id_raises(self, template_root: Path) -> None:
        """Test that an alias may not shadow another feature's id."""
        with pytest.raises(CatalogError, match="Alias 'push'"):
            FeatureCatalog(
                [
                    FeatureManifest(id="notifications", aliases=("push",)),
                    FeatureManifest(id="push"),
                ],
                template_root=template_root,
            )

    def test_duplicate_alias_raises(self, template_root: Path) -> None:
        """Test that two features cannot share an alias."""
        with pytest.raises(CatalogError):
            FeatureCatalog(
                [
                    FeatureManifest(id="a", aliases=("x",)),
                    FeatureManifest(id="b", aliases=("x",)),
                ],
                template_root=template_root,
            )

    def test_duplicate_preset_raises(self, template_root: Path) -> None:
        """Test that preset ids are unique."""
        with pytest.raises(CatalogError, match="Duplicate preset"):
            FeatureCatalog(
                [FeatureManifest(id="a")],
                template_root=template_root,
                presets=[Preset(id="p"), Preset(id="p")],
            )

    def test_jinja_env_is_strict(self, catalog: FeatureCatalog) -> None:
        """Test that the environment loads catalog templates without autoescaping."""
        env = catalog.create_jinja_env()

        rendered = env.get_template("core/README.md.j2").render(
            project_name="A&B", bundle_identifier="com.acme.AB"
        )

        assert rendered.startswith("# A&B")
        assert rendered.endswith("\n")


# =============================================================================
# load_catalog Tests
# =============================================================================

CATALOG_TOML = '''
[[features]]
id = "core"
always_included = true

[[features]]
id = "push-notifications"
aliases = ["push"]
dependencies = ["core"]

[[features.build_settings]]
key = "APNS_KEY_ID"

[[features.file_operations]]
kind = "append"
target = ".gitignore"
marker = "# push"
fragment = """
# push
*.p8
"""

[[presets]]
id = "minimal"
features = ["push"]
'''


class TestLoadCatalog:
    """Tests for load_catalog."""

    def test_loads_features_and_presets(self, tmp_path: Path) -> None:
        """Test parsing a TOML catalog into manifests and presets."""
        path = tmp_path / "catalog.toml"
        path.write_text(CATALOG_TOML, encoding="utf-8")

        catalog = load_catalog(path)

        assert catalog.ids == ("core", "push-notifications")
        assert catalog.template_root == tmp_path / "templates"
        assert catalog.normalize("push") == "push-notifications"
        op = catalog.get("push-notifications").file_operations[0]
        assert isinstance(op, AppendOperation)
        assert op.fragment == "# push\n*.p8\n"
        assert catalog.preset("minimal").features == ("push",)

    def test_explicit_template_root(self, tmp_path: Path) -> None:
        """Test that a given template root overrides the default."""
        path = tmp_path / "catalog.toml"
        path.write_text(CATALOG_TOML, encoding="utf-8")

        catalog = load_catalog(path, template_root=tmp_path / "elsewhere")

        assert catalog.template_root == tmp_path / "elsewhere"

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        """Test that an unreadable catalog raises CatalogError."""
        with pytest.raises(CatalogError, match="Cannot read catalog"):
            load_catalog(tmp_path / "missing.toml")

    def test_malformed_toml_raises(self, tmp_path: Path) -> None:
        """Test that invalid TOML raises CatalogError naming the file."""
        path = tmp_path / "broken.toml"
        path.write_text("[[features]\nid = ", encoding="utf-8")

        with pytest.raises(CatalogError, match="broken.toml"):
            load_catalog(path)

    def test_invalid_manifest_raises(self, tmp_path: Path) -> None:
        """Test that validation failures surface as CatalogError."""
        path = tmp_path / "catalog.toml"
        path.write_text('[[features]]\nid = "Bad Id"\n', encoding="utf-8")

        with pytest.raises(CatalogError, match="Malformed manifest"):
            load_catalog(path)

    def test_empty_catalog_raises(self, tmp_path: Path) -> None:
        """Test that a catalog must declare at least one feature."""
        path = tmp_path / "catalog.toml"
        path.write_text("", encoding="utf-8")

        with pytest.raises(CatalogError, match="No feature manifests"):
            load_catalog(path)


# =============================================================================
# Built-in Catalog Tests
# =============================================================================

@pytest.mark.integration
class TestBuiltinCatalog:
    """Tests for the catalog shipped with appforge."""

    def test_loads_once(self) -> None:
        """Test that the built-in catalog is cached per process."""
        assert load_builtin_catalog() is load_builtin_catalog()

    def test_expected_features(self) -> None:
        """Test that the starter kit's features are all present."""
        catalog = load_builtin_catalog()

        assert catalog.ids[0] == "app-core"
        assert catalog.always_included == ("app-core",)
        for feature_id in (
            "firebase-analytics", "mixpanel", "crashlytics", "revenuecat", "storekit",
            "onboarding", "push-notifications", "ab-testing", "image-upload",
        ):
            assert feature_id in catalog

    def test_cli_shorthand_aliases(self) -> None:
        """Test the shorthand accepted on the command line."""
        catalog = load_builtin_catalog()

        assert catalog.normalize("firebase") == "firebase-analytics"
        assert catalog.normalize("push") == "push-notifications"
        assert catalog.normalize("abtesting") == "ab-testing"
        assert catalog.normalize("imageupload") == "image-upload"

    def test_references_point_at_known_features(self) -> None:
        """Test that every dependency, conflict, and preset id exists."""
        catalog = load_builtin_catalog()

        for manifest in catalog:
            for other in (*manifest.dependencies, *manifest.conflicts):
                assert other in catalog, f"{manifest.id} -> {other}"
        for preset in catalog.presets:
            for feature_id in preset.features:
                assert feature_id in catalog, f"{preset.id} -> {feature_id}"

    def test_every_template_exists(self) -> None:
        """Test that every copy and render operation has a template file."""
        catalog = load_builtin_catalog()

        for manifest in catalog:
            for op in manifest.file_operations:
                if isinstance(op, AppendOperation):
                    continue
                assert catalog.template_path(op.template).is_file(), op.template

    def test_presets(self) -> None:
        """Test the three presets offered by the CLI."""
        catalog = load_builtin_catalog()

        assert [p.id for p in catalog.presets] == ["minimal", "standard", "full"]
