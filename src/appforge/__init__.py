"""
appforge - Feature-Driven App Project Generator
===============================================

A CLI tool and library that generates an iOS app project from a selection
of optional features. Each feature declares its dependencies, conflicts,
external setup (credentials, build settings), and the files it contributes;
appforge resolves the selection, merges the setup checklist, and writes a
consistent project tree.

Features
--------
- **Dependency Resolution**: Picks pull in what they need, in a stable order
- **Conflict Detection**: Incompatible features are refused before any write
- **One Checklist**: Shared credentials and build settings are listed once
- **Safe Writes**: Atomic file writes, re-runnable generation, no partial trees
- **Scriptable**: Interactive prompts, flags, or JSON on stdin

Quick Start
-----------
```bash
# Create a new app interactively
appforge new Ledger

# Or with options
appforge new Ledger --org com.acme --features firebase,push --yes
```

Example
-------
>>> from appforge import generate
>>> result = generate(["push"], "Ledger", "com.acme", Path("../Ledger"))
>>> [c.name for c in result.merged_credentials]
['GoogleService-Info.plist', 'APNs Authentication Key']

Architecture
------------
The package is organized into these main modules:

- ``models``: Pydantic models for manifests, file operations, and run config
- ``errors``: Exception hierarchy shared by every stage
- ``catalog``: The feature registry and its bundled TOML data
- ``resolver``: Dependency closure, ordering, and conflict checks
- ``merger``: De-duplicated credentials and build settings
- ``materializer``: Applies file operations to the output directory
- ``generator``: Orchestrates one generation run
- ``reporting``: Rich rendering of results and errors
- ``programmatic``: JSON in, JSON out mode for automation
- ``cli``: Typer-based command line interface
"""

# =============================================================================
# Package Metadata
# =============================================================================
__version__ = "0.1.0"

# =============================================================================
# Public API Exports
# =============================================================================
# These are the main functions/classes users should interact with when using
# appforge as a library (as opposed to the CLI)

from appforge.catalog import FeatureCatalog, load_builtin_catalog, load_catalog
from appforge.errors import (
    AppForgeError,
    DependencyCycleError,
    FeatureConflictError,
    GenerationError,
    UnknownFeatureError,
)
from appforge.generator import GenerationResult, generate, plan
from appforge.materializer import materialize
from appforge.merger import MergedRequirements, merge
from appforge.models import FeatureManifest, GenerationConfig
from appforge.resolver import Resolution, resolve


__all__ = [
    # Version info
    "__version__",
    # Catalog
    "FeatureCatalog",
    "load_builtin_catalog",
    "load_catalog",
    # Models
    "FeatureManifest",
    "GenerationConfig",
    # Errors
    "AppForgeError",
    "DependencyCycleError",
    "FeatureConflictError",
    "GenerationError",
    "UnknownFeatureError",
    # Engine stages
    "MergedRequirements",
    "Resolution",
    "materialize",
    "merge",
    "resolve",
    # Orchestration
    "GenerationResult",
    "generate",
    "plan",
]
