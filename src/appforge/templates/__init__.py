"""
appforge.templates - Feature Template Files
===========================================

This package holds the files the built-in catalog's file operations read.
Each feature owns one directory named after its id; ``core/`` belongs to
the always-included ``app-core`` feature.

Template Naming Convention
--------------------------
- Files ending in ``.j2`` are rendered with Jinja2 (``render`` operations)
- Anything else is copied byte for byte (``copy`` operations)
- Output names come from the catalog, not from the template name

Template Context
----------------
Rendered templates, appended fragments, and output paths receive:

    project_name : str
        App name (e.g. ``Ledger``)

    organization_identifier : str
        Reverse-domain organization id (e.g. ``com.acme``)

    bundle_identifier : str
        ``<organization_identifier>.<project_name>``

    resolved_features : list[str]
        Every feature in the project, dependencies first

    feature_flags : dict[str, bool]
        State of every feature flag declared in the catalog

    generator_version : str
        Version of appforge for attribution

    year : int
        Current year

plus the ``values`` declared on the individual render operation.

See Also
--------
- catalog.toml: Which operations use which templates
- materializer.py: Module that renders and writes these templates
"""
