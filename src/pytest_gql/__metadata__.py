"""Metadata for the project."""

from __future__ import annotations

import importlib.metadata

__all__ = ["__project__", "__version__"]

__version__ = importlib.metadata.version("pytest-gql")
"""Version of the project."""
__project__ = importlib.metadata.metadata("pytest-gql")["Name"]
"""Name of the project."""
