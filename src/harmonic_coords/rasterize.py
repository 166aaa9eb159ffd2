"""
Boundary rasterization.

Every voxel overlapped by a cage triangle becomes a BOUNDARY cell and gets
the barycentric coordinates of its centre written into the channels of the
triangle's three vertices. Overlapping contributions are not blended: the
last triangle to touch a (voxel, vertex) channel wins.
"""

import numpy as np
from typing import Tuple
import logging

from common.cage import Cage
from common.geometry import triangle_box_overlap_many, barycentric_many, triangle_bounds
from common.voxel import VoxelGrid

logger = logging.getLogger(__name__)


def candidate_cells(grid: VoxelGrid, triangle: np.ndarray) -> np.ndarray:
    """
    Cells inside a triangle's bounding box, padded by one cell, clipped to the grid.

    Returns:
        Mx3 int array of cell coordinates
    """
    lo, hi = triangle_bounds(triangle)
    dims = np.asarray(grid.dimensions)
    first = np.clip(grid.world_to_grid(lo) - 1, 0, dims - 1)
    last = np.clip(grid.world_to_grid(hi) + 1, 0, dims - 1)

    xs, ys, zs = (np.arange(first[i], last[i] + 1) for i in range(3))
    X, Y, Z = np.meshgrid(xs, ys, zs, indexing="ij")
    return np.stack([X, Y, Z], axis=-1).reshape(-1, 3)


def rasterize_triangle(
    grid: VoxelGrid,
    vertex_indices: np.ndarray,
    triangle: np.ndarray
) -> int:
    """
    Mark and weight every voxel overlapping one triangle.

    Returns:
        Number of voxels written
    """
    cells = candidate_cells(grid, triangle)
    if len(cells) == 0:
        return 0

    centers = grid.grid_to_world(cells)
    extent = grid.cell_size / 2.0
    hits = triangle_box_overlap_many(centers, extent, triangle)
    if not hits.any():
        return 0

    cells = cells[hits]
    weights = barycentric_many(centers[hits], triangle).astype(np.float32)
    i0, i1, i2 = (int(i) for i in vertex_indices)

    for cell, w in zip(cells, weights):
        grid.mark_boundary(cell)
        slot = grid.get_slot(cell)
        slot[i0] = w[0]
        slot[i1] = w[1]
        slot[i2] = w[2]

    return len(cells)


def rasterize_boundary(grid: VoxelGrid, validate: bool = True) -> Tuple[int, int]:
    """
    Rasterize every cage face into the grid.

    The cage is validated first, so invalid geometry aborts the pass before
    any cell is touched.

    Args:
        grid: Freshly constructed grid (cells may already be BOUNDARY)
        validate: Skip only when the caller has already validated the cage

    Returns:
        Tuple of (boundary cell count, total voxel writes)
    """
    cage: Cage = grid.cage
    if validate:
        cage.validate()

    writes = 0
    n_triangles = 0
    for vertex_indices, triangle in cage.triangles():
        writes += rasterize_triangle(grid, vertex_indices, triangle)
        n_triangles += 1

    n_boundary = grid.counts()["boundary"]
    logger.info(f"Rasterized {n_triangles} triangles: {n_boundary} boundary cells "
                f"({writes} voxel writes)")
    if n_boundary == 0:
        logger.warning("No voxel intersects the cage surface")
    return n_boundary, writes
