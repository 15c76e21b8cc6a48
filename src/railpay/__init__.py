"""Payment-rail orchestration and webhook reconciliation service."""

__version__ = "0.1.0"
