"""
Region classification by flood fill.

Cells connected to the outside of the grid through uninitialized cells
(6-connectivity) are EXTERIOR; boundary cells are walls. Whatever stays
uninitialized afterwards is enclosed by the cage and becomes INTERIOR.
"""

import numpy as np
from typing import Dict, Iterable, List, Optional, Sequence
import logging

from common.voxel import VoxelGrid, CellState, Cell

logger = logging.getLogger(__name__)


def shell_seeds(grid: VoxelGrid) -> List[Cell]:
    """
    Uninitialized cells on the outer shell of the grid, corner first.

    The bounding box is the cage's own extent, so an uninitialized shell
    cell cannot be enclosed by the cage.
    """
    classification = grid.classification
    shell = np.zeros(grid.dimensions, dtype=bool)
    shell[0, :, :] = shell[-1, :, :] = True
    shell[:, 0, :] = shell[:, -1, :] = True
    shell[:, :, 0] = shell[:, :, -1] = True

    candidates = np.argwhere(shell & (classification == CellState.UNINITIALIZED))
    # argwhere is in index order, so (0, 0, 0) comes first when present;
    # reverse so it is popped first from the stack
    return [tuple(int(c) for c in cell) for cell in candidates[::-1]]


def fill_exterior(grid: VoxelGrid, seeds: Optional[Iterable[Sequence[int]]] = None) -> int:
    """
    Depth-first flood fill marking reachable uninitialized cells EXTERIOR.

    Args:
        grid: Grid with boundary cells already rasterized
        seeds: Start cells; defaults to the uninitialized shell cells

    Returns:
        Number of cells marked exterior

    Raises:
        IndexError: a seed lies outside the grid
    """
    if seeds is None:
        stack = shell_seeds(grid)
    else:
        stack = [tuple(int(c) for c in s) for s in seeds]
        for s in stack:
            if grid.index_of(s) is None:
                raise IndexError(f"Seed {s} is outside grid {grid.dimensions}")

    if not stack:
        logger.info("No exterior seed available: every shell cell is boundary")
        return 0

    marked = 0
    while stack:
        cell = stack.pop()
        if grid.state(cell) != CellState.UNINITIALIZED:
            continue
        grid.mark_exterior(cell)
        marked += 1
        for n in grid.neighbours(cell):
            if grid.state(n) == CellState.UNINITIALIZED:
                stack.append(n)

    logger.info(f"Flood fill: {marked} exterior cells")
    return marked


def mark_interior(grid: VoxelGrid) -> int:
    """Mark every remaining uninitialized cell INTERIOR with a zeroed slot."""
    remaining = grid.cells_in_state(CellState.UNINITIALIZED)
    for cell in remaining:
        grid.mark_interior(cell)
    logger.info(f"Interior: {len(remaining)} cells")
    return len(remaining)


def classify_regions(grid: VoxelGrid, seeds: Optional[Iterable[Sequence[int]]] = None) -> Dict[str, int]:
    """
    Exterior flood fill followed by interior marking.

    Returns:
        Per-state cell counts after classification
    """
    fill_exterior(grid, seeds)
    mark_interior(grid)
    counts = grid.counts()
    if counts["uninitialized"] != 0:
        raise RuntimeError(f"{counts['uninitialized']} cells left unclassified")
    if counts["interior"] == 0:
        logger.warning("Cage encloses no interior cells; increase the grid resolution")
    return counts
