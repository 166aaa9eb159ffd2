"""
Geometry primitives for boundary rasterization.

Triangle/box overlap uses the separating axis theorem on the 13 candidate
axes (Akenine-Moller): 3 box face normals, the triangle normal and the 9
cross products of box axes with triangle edges. The test is vectorized over
many boxes of equal extent so a triangle can be checked against a whole
block of candidate voxels at once.

Barycentric coordinates use the dot-product form of Cramer's rule, which
projects points off the triangle plane onto it.
"""

import numpy as np
from typing import Tuple

_BOX_AXES = np.eye(3)


def separating_axes(triangle: np.ndarray) -> np.ndarray:
    """
    Candidate separating axes for a triangle against axis-aligned boxes.

    Args:
        triangle: 3x3 triangle vertices

    Returns:
        13x3 array: 9 edge x box-axis cross products, 3 box normals,
        triangle normal. Zero rows (parallel edges) never separate.
    """
    v0, v1, v2 = triangle
    edges = np.array([v1 - v0, v2 - v1, v0 - v2])
    cross = np.cross(_BOX_AXES[:, None, :], edges[None, :, :]).reshape(9, 3)
    normal = np.cross(edges[0], edges[1])
    return np.vstack([cross, _BOX_AXES, normal[None, :]])


def triangle_box_overlap_many(
    centers: np.ndarray,
    extent: np.ndarray,
    triangle: np.ndarray,
    tol: float = 1e-9
) -> np.ndarray:
    """
    Separating axis test of one triangle against many equal-sized boxes.

    Args:
        centers: Nx3 box centres
        extent: (3,) box half-extents
        triangle: 3x3 triangle vertices
        tol: Relative slack on the box radius so touching counts as overlap

    Returns:
        (N,) bool, True where no axis separates box and triangle
    """
    centers = np.atleast_2d(np.asarray(centers, dtype=np.float64))
    extent = np.asarray(extent, dtype=np.float64)
    triangle = np.asarray(triangle, dtype=np.float64)

    axes = separating_axes(triangle)                  # (13, 3)
    rel = triangle[None, :, :] - centers[:, None, :]  # (N, 3, 3)
    proj = rel @ axes.T                               # (N, 3, 13)

    # Box projection radius: sum_i e_i * |u_i . a|, with u_i the unit axes
    radius = np.abs(axes) @ extent                    # (13,)
    # Scales with the axis length like the projections; zero axes never separate
    slack = tol * float(np.max(extent)) * np.linalg.norm(axes, axis=1)

    gap = np.maximum(-proj.max(axis=1), proj.min(axis=1))  # (N, 13)
    separated = gap > radius + slack
    return ~separated.any(axis=1)


def triangle_box_overlap(
    center: np.ndarray,
    extent: np.ndarray,
    triangle: np.ndarray,
    tol: float = 1e-9
) -> bool:
    """Separating axis test of one triangle against one box."""
    return bool(triangle_box_overlap_many(center, extent, triangle, tol=tol)[0])


def barycentric_many(points: np.ndarray, triangle: np.ndarray) -> np.ndarray:
    """
    Barycentric coordinates of points with respect to a triangle.

    Points off the triangle plane are projected onto it. The caller must
    reject zero-area triangles; the 2x2 solve divides by their area.

    Args:
        points: Nx3 query points
        triangle: 3x3 vertices (a, b, c)

    Returns:
        Nx3 weights (u, v, w) for (a, b, c), each row summing to 1
    """
    points = np.atleast_2d(np.asarray(points, dtype=np.float64))
    a, b, c = np.asarray(triangle, dtype=np.float64)

    v0 = b - a
    v1 = c - a
    v2 = points - a
    d00 = v0 @ v0
    d01 = v0 @ v1
    d11 = v1 @ v1
    d20 = v2 @ v0
    d21 = v2 @ v1
    denom = d00 * d11 - d01 * d01

    v = (d11 * d20 - d01 * d21) / denom
    w = (d00 * d21 - d01 * d20) / denom
    u = 1.0 - v - w
    return np.column_stack([u, v, w])


def barycentric(point: np.ndarray, triangle: np.ndarray) -> np.ndarray:
    """Barycentric coordinates (u, v, w) of a single point."""
    return barycentric_many(point, triangle)[0]


def triangle_bounds(triangle: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Axis-aligned bounds (min, max) of a triangle."""
    triangle = np.asarray(triangle, dtype=np.float64)
    return triangle.min(axis=0), triangle.max(axis=0)
