"""
pytest configuration and shared fixtures for appforge tests.

This module provides fixtures and configuration used across all test modules.
Fixtures defined here are automatically available to all tests.

Fixtures
--------
template_root : Path
    A temporary template directory for the sample catalog.

sample_manifests : list[FeatureManifest]
    A small feature graph: an always-included ``core``, an
    ``analytics-core`` that ``push`` depends on, and two mutually
    exclusive providers.

catalog : FeatureCatalog
    The sample manifests wrapped in a catalog.

config : GenerationConfig
    A config for a project named ``Ledger`` under ``tmp_path``.
"""

from pathlib import Path

import pytest

from appforge.catalog import FeatureCatalog
from appforge.models import (
    AppendOperation,
    BuildSetting,
    CopyOperation,
    Credential,
    FeatureManifest,
    GenerationConfig,
    Preset,
    RenderOperation,
)


SAMPLE_TEMPLATES = {
    "core/README.md.j2": "# {{ project_name }}\n\nBundle: {{ bundle_identifier }}\n",
    "core/gitignore": "build/\n",
    "analytics/Analytics.swift": "struct Analytics {}\n",
    "push/Push.swift.j2": "// {{ project_name }} push ({{ environment }})\n",
    "providers/Backend.swift.j2": "let backend = \"{{ provider }}\"\n",
    "broken/Broken.txt.j2": "host = {{ api_host }}\n",
}


@pytest.fixture
def template_root(tmp_path: Path) -> Path:
    """
    Write the sample templates into a temporary directory.

    Returns
    -------
    Path
        Root directory holding the template files.
    """
    root = tmp_path / "templates"
    for relative, content in SAMPLE_TEMPLATES.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def sample_manifests() -> list[FeatureManifest]:
    """Provide a small feature graph in declaration order."""
    google_plist = Credential(name="GoogleService-Info", source="Firebase Console")
    backend = Credential(name="BackendConfig", source="Backend dashboard")

    return [
        FeatureManifest(
            id="core",
            always_included=True,
            file_operations=(
                RenderOperation(template="core/README.md.j2", output="README.md"),
                CopyOperation(template="core/gitignore", output=".gitignore"),
            ),
        ),
        FeatureManifest(
            id="analytics-core",
            aliases=("analytics",),
            feature_flag="enableAnalytics",
            dependencies=("core",),
            required_credentials=(google_plist,),
            file_operations=(
                CopyOperation(
                    template="analytics/Analytics.swift",
                    output="{project_name}/Analytics.swift",
                ),
                AppendOperation(
                    target=".gitignore",
                    fragment="# analytics\nGoogleService-Info.plist\n",
                    marker="# analytics",
                ),
            ),
        ),
        FeatureManifest(
            id="push",
            feature_flag="enablePush",
            dependencies=("analytics-core",),
            required_credentials=(
                Credential(name="GoogleService-Info", source="Firebase Console (again)"),
                Credential(name="APNs Key", source="Apple Developer", build_setting="APNS_KEY_ID"),
            ),
            build_settings=(BuildSetting(key="APNS_KEY_ID", description="APNs key id"),),
            file_operations=(
                RenderOperation(
                    template="push/Push.swift.j2",
                    output="{project_name}/Push.swift",
                    values={"environment": "development"},
                ),
            ),
        ),
        FeatureManifest(
            id="provider-a",
            dependencies=("core",),
            conflicts=("provider-b",),
            required_credentials=(backend,),
            build_settings=(BuildSetting(key="BACKEND_URL", description="from provider-a"),),
            file_operations=(
                RenderOperation(
                    template="providers/Backend.swift.j2",
                    output="Backend.swift",
                    values={"provider": "a"},
                ),
            ),
        ),
        FeatureManifest(
            id="provider-b",
            dependencies=("core",),
            required_credentials=(backend,),
            build_settings=(BuildSetting(key="BACKEND_URL", description="from provider-b"),),
            file_operations=(
                RenderOperation(
                    template="providers/Backend.swift.j2",
                    output="Backend.swift",
                    values={"provider": "b"},
                ),
            ),
        ),
        FeatureManifest(
            id="standalone",
            dependencies=("core",),
        ),
    ]


@pytest.fixture
def catalog(sample_manifests: list[FeatureManifest], template_root: Path) -> FeatureCatalog:
    """Wrap the sample manifests in a catalog with one preset."""
    return FeatureCatalog(
        sample_manifests,
        template_root=template_root,
        presets=[Preset(id="starter", features=("push", "standalone"))],
    )


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    """Location for a generated project; not created up front."""
    return tmp_path / "out" / "Ledger"


@pytest.fixture
def config(output_dir: Path) -> GenerationConfig:
    """Create a basic generation config for a project named Ledger."""
    return GenerationConfig(
        project_name="Ledger",
        organization_identifier="com.acme",
        output_directory=output_dir,
    )


# =============================================================================
# pytest Configuration
# =============================================================================

def pytest_configure(config: pytest.Config) -> None:
    """
    Configure pytest with custom markers.

    This function is called by pytest during startup to register
    custom markers used in our test suite.
    """
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests that run against the built-in catalog"
    )
