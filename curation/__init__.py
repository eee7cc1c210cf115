"""Collection curation workbench.

Compiles declarative collection rules into predicates over recipes,
merges them with manual overrides and reports publication readiness.
"""

__version__ = "0.1.0"
