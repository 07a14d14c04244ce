"""
appforge test suite
===================

This package contains tests for appforge.

Test Modules
------------
- test_models.py: Tests for Pydantic manifest and configuration models
- test_catalog.py: Tests for the feature catalog and its TOML loader
- test_resolver.py: Tests for dependency resolution
- test_merger.py: Tests for credential and build-setting merging
- test_materializer.py: Tests for writing the project tree
- test_generator.py: Tests for the generation pipeline
- test_reporting.py: Tests for Rich output
- test_programmatic.py: Tests for JSON mode
- test_cli.py: Tests for command-line interface

Running Tests
-------------
    # Run all tests
    pytest

    # Run specific module
    pytest tests/test_resolver.py

    # Run specific test class
    pytest tests/test_resolver.py::TestResolveOrdering

    # Run specific test
    pytest tests/test_resolver.py::TestResolveOrdering::test_dependencies_come_first
"""
