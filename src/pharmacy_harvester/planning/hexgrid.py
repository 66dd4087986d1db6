"""Hexagonal tessellation of a polygon into search centroids."""
from abc import ABC, abstractmethod
from typing import List, Sequence, Tuple

import h3

LatLng = Tuple[float, float]


class Tessellator(ABC):
    """Covers a polygon with cells and returns one centroid per cell."""

    @abstractmethod
    def centroids(self, polygon: Sequence[LatLng]) -> List[LatLng]:
        """``polygon`` is a ring of (lat, lng) vertices; closing vertex optional."""


class H3Tessellator(Tessellator):
    """Uber H3 cells at a fixed resolution (6 is roughly 36 km² per cell)."""

    def __init__(self, resolution: int = 6):
        self.resolution = resolution

    def centroids(self, polygon: Sequence[LatLng]) -> List[LatLng]:
        ring = list(polygon)
        if len(ring) > 1 and ring[0] == ring[-1]:
            ring = ring[:-1]
        if len(ring) < 3:
            return []
        cells = h3.polygon_to_cells(h3.LatLngPoly(ring), self.resolution)
        return [h3.cell_to_latlng(cell) for cell in sorted(cells)]
