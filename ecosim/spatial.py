"""Coarse square grid used for local tree crowding.

Tree slot ``i`` sits in grid cell ``i``; the grid maps cells to (x, y)
coordinates on a square of side ``ceil(sqrt(n_cells))``. Cells beyond
``n_cells`` on the last row exist geometrically but hold no slot.

This is the only spatial structure in the model: deer and wolves occupy
abstract slots with no coordinates.
"""

from __future__ import annotations

import math

import numpy as np


class SpatialGrid:
    """Row-major 2D ↔ index mapping over ``n_cells`` cells."""

    def __init__(self, n_cells: int):
        self.n_cells = max(1, int(n_cells))
        self.side_length = int(math.ceil(math.sqrt(self.n_cells)))

    def __repr__(self) -> str:
        return f"SpatialGrid(n_cells={self.n_cells}, side_length={self.side_length})"

    def index_of(self, x: int, y: int) -> int:
        """Cell index for (x, y), or -1 if outside the grid."""
        if not (0 <= x < self.side_length and 0 <= y < self.side_length):
            return -1
        idx = y * self.side_length + x
        return idx if idx < self.n_cells else -1

    def window_indices(self, x: int, y: int, radius: int) -> np.ndarray:
        """Valid cell indices in the (2r+1)² square centred on (x, y).

        Cells are returned row by row (y, then x), clipped to the grid.
        """
        s = self.side_length
        x0, x1 = max(0, x - radius), min(s, x + radius + 1)
        y0, y1 = max(0, y - radius), min(s, y + radius + 1)
        origin = self.index_of(x0, y0) if x0 < x1 and y0 < y1 else -1
        if origin < 0:
            return np.empty(0, dtype=np.int64)
        rows, cols = np.mgrid[0:y1 - y0, 0:x1 - x0]
        idx = (origin + rows * s + cols).ravel()
        return idx[idx < self.n_cells]

    def interior_centres(self, radius: int):
        """Yield (x, y) for every cell whose full window fits the grid."""
        s = self.side_length
        for y in range(radius, s - radius):
            for x in range(radius, s - radius):
                yield x, y
