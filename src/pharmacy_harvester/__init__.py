"""Multi-source pharmacy harvesting, deduplication and reconciliation."""

__version__ = "0.1.0"
