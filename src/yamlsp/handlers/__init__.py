"""handlers/__init__.py — re-export handler functions for convenience."""
from .diagnostics import get_diagnostics, get_schema_diagnostics

__all__ = ['get_diagnostics', 'get_schema_diagnostics']
