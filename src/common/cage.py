"""
Cage data model.

A cage is a coarse closed surface made of planar quads. Vertex order is the
identity used by every coordinate vector: channel i of a voxel's vector is the
weight of cage vertex i.
"""

import numpy as np
from typing import Iterator, Tuple, Sequence, Optional
from dataclasses import dataclass
import logging

logger = logging.getLogger(__name__)

# Each quad is split along its (0, 2) diagonal
QUAD_TRIANGLES: Tuple[Tuple[int, int, int], ...] = ((0, 1, 2), (2, 3, 0))

# Triangles with less area than this fraction of the squared cage extent are degenerate
MIN_RELATIVE_AREA = 1e-12


class GeometryError(ValueError):
    """Raised when cage geometry violates the pipeline's preconditions."""


@dataclass
class Cage:
    """
    Closed quad surface driving the coordinate field.

    Attributes:
        vertices: Nx3 vertex positions
        faces: Fx4 vertex indices per quad, consistently wound
    """
    vertices: np.ndarray
    faces: np.ndarray

    def __post_init__(self):
        self.vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        faces = np.asarray(self.faces, dtype=np.int64)
        if faces.size == 0:
            faces = faces.reshape(0, 4)
        self.faces = faces

    @property
    def n_vertices(self) -> int:
        return len(self.vertices)

    @property
    def n_faces(self) -> int:
        return len(self.faces)

    @property
    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return (min_corner, max_corner) over all vertices."""
        if self.n_vertices == 0:
            raise GeometryError("Cage has no vertices")
        return self.vertices.min(axis=0), self.vertices.max(axis=0)

    def triangles(self) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
        """
        Iterate over the two triangles of every quad.

        Yields:
            Tuple of (vertex_indices (3,), positions (3, 3))
        """
        for quad in self.faces:
            for tri in QUAD_TRIANGLES:
                indices = quad[list(tri)]
                yield indices, self.vertices[indices]

    def triangle_array(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return (Tx3 indices, Tx3x3 positions) for all triangles."""
        if self.n_faces == 0:
            return np.empty((0, 3), dtype=np.int64), np.empty((0, 3, 3))
        indices = self.faces[:, np.array(QUAD_TRIANGLES)].reshape(-1, 3)
        return indices, self.vertices[indices]

    def validate(self) -> None:
        """
        Check every precondition of the coordinate pipeline.

        Raises:
            GeometryError: empty or undersized cage, malformed faces,
                out-of-range indices, zero-area triangles or a flat
                bounding box
        """
        if self.n_vertices == 0:
            raise GeometryError("Cage has no vertices")
        if self.n_vertices < 3:
            raise GeometryError(f"Cage needs at least 3 vertices, got {self.n_vertices}")
        if not np.all(np.isfinite(self.vertices)):
            raise GeometryError("Cage vertices contain non-finite values")

        if self.faces.ndim != 2 or self.faces.shape[1] != 4:
            raise GeometryError(f"Faces must be quads (Fx4), got shape {self.faces.shape}")

        if self.n_faces > 0:
            bad = (self.faces < 0) | (self.faces >= self.n_vertices)
            if bad.any():
                face_idx = int(np.argwhere(bad)[0][0])
                raise GeometryError(
                    f"Face {face_idx} references vertex outside [0, {self.n_vertices}): "
                    f"{self.faces[face_idx].tolist()}"
                )

            _, positions = self.triangle_array()
            areas = triangle_areas(positions)
            extent = float(np.ptp(self.vertices, axis=0).max())
            degenerate = np.flatnonzero(areas <= MIN_RELATIVE_AREA * extent ** 2)
            if len(degenerate) > 0:
                face_idx = int(degenerate[0] // 2)
                raise GeometryError(
                    f"Face {face_idx} has a zero-area triangle: {self.faces[face_idx].tolist()}"
                )

        lo, hi = self.bounds
        flat = np.flatnonzero(hi <= lo)
        if len(flat) > 0:
            axes = ", ".join("xyz"[i] for i in flat)
            raise GeometryError(f"Cage bounding box is degenerate along {axes}")


def triangle_areas(positions: np.ndarray) -> np.ndarray:
    """Areas of a Tx3x3 stack of triangles."""
    e1 = positions[:, 1] - positions[:, 0]
    e2 = positions[:, 2] - positions[:, 0]
    return 0.5 * np.linalg.norm(np.cross(e1, e2), axis=-1)


def box_cage(
    lo: Sequence[float] = (0.0, 0.0, 0.0),
    hi: Sequence[float] = (1.0, 1.0, 1.0)
) -> Cage:
    """
    Axis-aligned box cage: 8 vertices, 6 outward-wound quads.

    Vertex order is the usual hexahedron order, bottom ring (z = lo) then
    top ring (z = hi).
    """
    x0, y0, z0 = lo
    x1, y1, z1 = hi
    vertices = np.array([
        [x0, y0, z0], [x1, y0, z0], [x1, y1, z0], [x0, y1, z0],
        [x0, y0, z1], [x1, y0, z1], [x1, y1, z1], [x0, y1, z1],
    ], dtype=np.float64)
    faces = np.array([
        [0, 3, 2, 1],  # -Z
        [4, 5, 6, 7],  # +Z
        [0, 1, 5, 4],  # -Y
        [3, 7, 6, 2],  # +Y
        [0, 4, 7, 3],  # -X
        [1, 2, 6, 5],  # +X
    ], dtype=np.int64)
    return Cage(vertices=vertices, faces=faces)


def cage_from_arrays(
    vertices: Sequence[Sequence[float]],
    faces: Sequence[Sequence[int]],
    validate: bool = True,
    name: Optional[str] = None
) -> Cage:
    """Build a cage from plain nested lists, validating by default."""
    cage = Cage(vertices=np.asarray(vertices, dtype=np.float64),
                faces=np.asarray(faces, dtype=np.int64))
    if validate:
        cage.validate()
    logger.debug(f"Cage {name or ''}: {cage.n_vertices} vertices, {cage.n_faces} quads")
    return cage
