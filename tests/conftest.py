"""
Shared fixtures: small cages and pre-classified grids.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from common.cage import Cage, box_cage
from common.voxel import VoxelGrid
from harmonic_coords.rasterize import rasterize_boundary
from harmonic_coords.classify import classify_regions


def make_frustum(bottom: float = 1.0, top: float = 0.5, height: float = 1.0) -> Cage:
    """Square frustum: bottom square of side `bottom` at z=0, centred top square at z=height."""
    inset = (bottom - top) / 2.0
    vertices = np.array([
        [0.0, 0.0, 0.0], [bottom, 0.0, 0.0], [bottom, bottom, 0.0], [0.0, bottom, 0.0],
        [inset, inset, height], [bottom - inset, inset, height],
        [bottom - inset, bottom - inset, height], [inset, bottom - inset, height],
    ])
    # Same topology as the box cage
    return Cage(vertices=vertices, faces=box_cage().faces.copy())


def inside_frustum(point: np.ndarray, bottom: float = 1.0, top: float = 0.5, height: float = 1.0) -> bool:
    x, y, z = point
    if not 0.0 < z < height:
        return False
    inset = (bottom - top) / 2.0 * (z / height)
    return inset < x < bottom - inset and inset < y < bottom - inset


@pytest.fixture
def unit_cube():
    """Unit cube cage [0, 1]^3."""
    return box_cage()


@pytest.fixture
def frustum():
    """Frustum cage whose upper bounding-box corners are outside the surface."""
    return make_frustum()


@pytest.fixture
def cube_grid(unit_cube):
    """Unit cube on a 3x3x3 grid, rasterized and classified."""
    grid = VoxelGrid((3, 3, 3), unit_cube)
    rasterize_boundary(grid)
    classify_regions(grid)
    return grid


@pytest.fixture
def frustum_grid(frustum):
    """Frustum on an 8x8x8 grid, rasterized and classified."""
    grid = VoxelGrid((8, 8, 8), frustum)
    rasterize_boundary(grid)
    classify_regions(grid)
    return grid
