"""
Tests for region classification (exterior flood fill + interior marking).
"""

import pytest
import numpy as np

from common.voxel import VoxelGrid, CellState, NO_SLOT
from harmonic_coords.rasterize import rasterize_boundary
from harmonic_coords.classify import fill_exterior, mark_interior, classify_regions, shell_seeds

from conftest import inside_frustum


@pytest.fixture
def rasterized_frustum(frustum):
    grid = VoxelGrid((8, 8, 8), frustum)
    rasterize_boundary(grid)
    return grid


# ============== Unit Cube Tests ==============

class TestUnitCube:
    def test_centre_is_interior(self, cube_grid):
        assert cube_grid.state((1, 1, 1)) == CellState.INTERIOR
        counts = cube_grid.counts()
        assert counts == {"uninitialized": 0, "exterior": 0, "boundary": 26, "interior": 1}

    def test_no_shell_seed(self, unit_cube):
        grid = VoxelGrid((3, 3, 3), unit_cube)
        rasterize_boundary(grid)
        assert shell_seeds(grid) == []
        assert fill_exterior(grid) == 0

    def test_interior_slot_zeroed(self, unit_cube):
        grid = VoxelGrid((3, 3, 3), unit_cube)
        rasterize_boundary(grid)
        mark_interior(grid)
        np.testing.assert_array_equal(grid.coordinates((1, 1, 1)), np.zeros(8, dtype=np.float32))


# ============== Frustum Tests ==============

class TestFrustum:
    """Frustum cage: the upper bounding-box corners lie outside the surface."""

    def test_fully_classified(self, frustum_grid):
        counts = frustum_grid.counts()
        assert counts["uninitialized"] == 0
        assert counts["exterior"] > 0
        assert counts["interior"] > 0
        assert sum(counts.values()) == 512

    def test_top_corner_is_exterior(self, frustum_grid):
        assert frustum_grid.state((0, 0, 7)) == CellState.EXTERIOR
        assert frustum_grid.state((7, 7, 7)) == CellState.EXTERIOR

    def test_exterior_cells_have_no_slot(self, frustum_grid):
        exterior = np.asarray(frustum_grid.states) == CellState.EXTERIOR
        assert np.all(np.asarray(frustum_grid.slots)[exterior] == NO_SLOT)
        n_slotted = frustum_grid.counts()["boundary"] + frustum_grid.counts()["interior"]
        assert len(frustum_grid.data) == n_slotted * frustum_grid.depth

    def test_interior_inside_cage(self, frustum_grid):
        for cell in frustum_grid.cells_in_state(CellState.INTERIOR):
            assert inside_frustum(frustum_grid.cell_center(cell))

    def test_interior_never_touches_exterior(self, frustum_grid):
        """Boundary cells wall off the interior under 6-connectivity."""
        for cell in frustum_grid.cells_in_state(CellState.INTERIOR):
            for n in frustum_grid.neighbours(cell):
                assert frustum_grid.state(n) != CellState.EXTERIOR

    def test_exterior_reachable_from_outside(self, frustum_grid):
        """Every exterior cell connects to the grid shell through exterior cells."""
        states = frustum_grid.classification
        dims = np.array(frustum_grid.dimensions)
        seen = set()
        stack = [tuple(c) for c in np.argwhere(states == CellState.EXTERIOR)
                 if np.any(c == 0) or np.any(c == dims - 1)]
        while stack:
            cell = stack.pop()
            if cell in seen:
                continue
            seen.add(cell)
            for n in frustum_grid.neighbours(cell):
                if states[n] == CellState.EXTERIOR:
                    stack.append(n)
        assert len(seen) == frustum_grid.counts()["exterior"]

    def test_seed_order_independent(self, frustum, frustum_grid):
        """A single corner seed reaches the same exterior as the full shell."""
        grid = VoxelGrid((8, 8, 8), frustum)
        rasterize_boundary(grid)
        classify_regions(grid, seeds=[(7, 0, 7)])
        np.testing.assert_array_equal(grid.classification, frustum_grid.classification)

    def test_seed_on_boundary_is_wall(self, rasterized_frustum):
        """Seeding from a boundary cell marks nothing."""
        assert rasterized_frustum.state((0, 0, 0)) == CellState.BOUNDARY
        assert fill_exterior(rasterized_frustum, seeds=[(0, 0, 0)]) == 0

    def test_seed_outside_grid(self, rasterized_frustum):
        with pytest.raises(IndexError):
            fill_exterior(rasterized_frustum, seeds=[(8, 0, 0)])

    def test_reclassify_is_noop(self, frustum_grid):
        before = frustum_grid.classification
        assert fill_exterior(frustum_grid) == 0
        assert mark_interior(frustum_grid) == 0
        np.testing.assert_array_equal(frustum_grid.classification, before)
