"""
Tests for appforge.reporting
============================

This module contains tests for the Rich output of the CLI. Output is
captured with a recording console and checked as plain text.
"""

from pathlib import Path

import pytest
from rich.console import Console

from appforge.catalog import FeatureCatalog
from appforge.errors import (
    DependencyCycleError,
    FeatureConflictError,
    FileConflictError,
    GenerationError,
    UnknownFeatureError,
    UnresolvedPlaceholderError,
)
from appforge.generator import generate, plan
from appforge.merger import MergedRequirements
from appforge.reporting import (
    describe_error,
    render_catalog,
    render_error,
    render_plan,
    render_requirements,
    render_result,
)


@pytest.fixture
def out() -> Console:
    """Create a wide recording console."""
    return Console(record=True, width=160, color_system=None)


# =============================================================================
# Checklist Tests
# =============================================================================

class TestRenderRequirements:
    """Tests for the setup checklist."""

    def test_empty_checklist(self, out: Console) -> None:
        """Test the message shown when nothing needs setting up."""
        render_requirements(MergedRequirements(), out=out)

        assert "No credentials or build settings required" in out.export_text()

    def test_lists_each_entry_once(self, catalog: FeatureCatalog, out: Console) -> None:
        """Test that shared credentials are printed once."""
        _, requirements = plan(["push"], catalog=catalog)

        render_requirements(requirements, out=out)

        text = out.export_text()
        assert text.count("GoogleService-Info") == 1
        assert "APNs Key" in text
        assert "APNS_KEY_ID" in text
        assert "Configurations/Secrets.xcconfig.local" in text


# =============================================================================
# Plan and Result Tests
# =============================================================================

class TestRenderPlanAndResult:
    """Tests for plan and result output."""

    def test_plan_explains_additions(self, catalog: FeatureCatalog, out: Console) -> None:
        """Test that added features show why they were added."""
        resolution, requirements = plan(["push"], catalog=catalog)

        render_plan(resolution, requirements, catalog, out=out)

        text = out.export_text()
        assert "required by push" in text
        assert "always included" in text
        assert "selected" in text

    def test_result_summary(self, catalog: FeatureCatalog, out: Console, tmp_path: Path) -> None:
        """Test the success panel and next steps."""
        result = generate(["push"], "Ledger", "com.acme", tmp_path / "Ledger", catalog=catalog)

        render_result(result, catalog, out=out)

        text = out.export_text()
        assert "Generated project: Ledger" in text
        assert "com.acme.Ledger" in text
        assert "cp Configurations/Secrets.xcconfig.local.example" in text
        assert "open Ledger.xcodeproj" in text

    def test_catalog_table(self, catalog: FeatureCatalog, out: Console) -> None:
        """Test that every feature and preset is listed."""
        render_catalog(catalog, out=out)

        text = out.export_text()
        for feature_id in catalog.ids:
            assert feature_id in text
        assert "starter" in text


# =============================================================================
# Error Tests
# =============================================================================

class TestDescribeError:
    """Tests for user-facing error messages."""

    def test_unwraps_generation_error(self) -> None:
        """Test that the stage wrapper is looked through."""
        error = GenerationError("resolve", FeatureConflictError("revenuecat", "storekit"))

        message = describe_error(error)

        assert "'revenuecat' and 'storekit' cannot be used together" in message

    def test_unknown_feature(self) -> None:
        """Test the hint shown for a typo in the selection."""
        message = describe_error(UnknownFeatureError("pushh"))

        assert "pushh" in message
        assert "appforge features" in message

    def test_unknown_dependency_keeps_reference(self) -> None:
        """Test that catalog defects name the referencing manifest."""
        message = describe_error(UnknownFeatureError("ghost", referenced_by="push"))

        assert "referenced by 'push'" in message

    def test_cycle(self) -> None:
        """Test that cycles show the full path."""
        assert "a -> b -> a" in describe_error(DependencyCycleError(["a", "b"]))

    def test_file_conflict(self) -> None:
        """Test that both features and the path are named."""
        message = describe_error(FileConflictError(Path("README.md"), "core", "docs"))

        assert "'core' and 'docs'" in message
        assert "README.md" in message

    def test_unresolved_placeholder(self) -> None:
        """Test that missing placeholder names are listed."""
        message = describe_error(UnresolvedPlaceholderError("a.j2", "broken", ["api_host"]))

        assert "api_host" in message

    def test_render_error_shows_stage(self, out: Console) -> None:
        """Test the Error line and stage hint."""
        render_error(GenerationError("resolve", UnknownFeatureError("pushh")), out=out)

        text = out.export_text()
        assert text.startswith("Error:")
        assert "Stage: resolve" in text
