"""Candidate deduplication."""

from .engine import DedupStats, deduplicate, exact_dedupe, fuzzy_merge

__all__ = ["DedupStats", "deduplicate", "exact_dedupe", "fuzzy_merge"]
