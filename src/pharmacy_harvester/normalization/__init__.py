"""Candidate normalization: canonical shape, opening hours, names and phones."""

from .candidate import normalize_candidate, reliability_score
from .hours import classify_opening_hours
from .phone import extract_phones, normalize_phone
from .text import clamp, geokey, name_similarity, normalize_name

__all__ = [
    "clamp",
    "classify_opening_hours",
    "extract_phones",
    "geokey",
    "name_similarity",
    "normalize_candidate",
    "normalize_name",
    "normalize_phone",
    "reliability_score",
]
