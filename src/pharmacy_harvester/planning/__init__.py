"""Geo coverage planning: which queries to issue for a city run."""

from .coverage import CoveragePlanner, KW_CHAINS, KW_CORE, KW_QUAL, LANGS
from .hexgrid import H3Tessellator, Tessellator

__all__ = ["CoveragePlanner", "H3Tessellator", "KW_CHAINS", "KW_CORE", "KW_QUAL", "LANGS", "Tessellator"]
