"""Utility modules for the pharmacy harvester."""

from .api_usage_tracker import ApiCallTracker
from .retry import RetryPolicy

__all__ = ["ApiCallTracker", "RetryPolicy"]
