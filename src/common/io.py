"""
Data I/O utilities.

Cages are stored as JSON: {"vertices": [[x, y, z], ...], "faces": [[a, b, c, d], ...]}.
Coordinate fields are stored as compressed .npz archives holding the grid
layout, per-cell states and slots and the flat coordinate buffer, with a
JSON metadata sidecar.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np

from .cage import Cage, cage_from_arrays, QUAD_TRIANGLES
from .config import FieldMetadata
from .voxel import VoxelGrid

logger = logging.getLogger(__name__)

try:
    import trimesh
    TRIMESH_AVAILABLE = True
except ImportError:
    TRIMESH_AVAILABLE = False
    logger.warning("trimesh not available")

PathLike = Union[str, Path]


def load_cage(path: PathLike, validate: bool = True) -> Cage:
    """
    Load a quad cage from JSON.

    Args:
        path: Path to cage file
        validate: Run cage validation after loading

    Returns:
        Cage

    Raises:
        ValueError: file lacks "vertices" or "faces"
        GeometryError: cage fails validation
    """
    path = Path(path)
    with open(path) as f:
        data = json.load(f)

    missing = [k for k in ("vertices", "faces") if k not in data]
    if missing:
        raise ValueError(f"Cage file {path} is missing {', '.join(missing)}")

    cage = cage_from_arrays(data["vertices"], data["faces"], validate=validate, name=path.stem)
    logger.info(f"Loaded cage {path}: {cage.n_vertices} vertices, {cage.n_faces} quads")
    return cage


def save_cage(cage: Cage, path: PathLike) -> None:
    """Save a cage to JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump({
            "vertices": cage.vertices.tolist(),
            "faces": cage.faces.tolist()
        }, f, indent=2)
    logger.info(f"Saved cage: {path}")


def save_field(grid: VoxelGrid, path: PathLike, metadata: Optional[FieldMetadata] = None) -> Path:
    """
    Save a coordinate field to .npz with optional metadata sidecar.

    Args:
        grid: Classified (and usually relaxed) grid
        path: Output path (should end in .npz)
        metadata: FieldMetadata (saved as .json sidecar)

    Returns:
        Path of the written archive
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    np.savez_compressed(
        path,
        dimensions=np.asarray(grid.dimensions, dtype=np.int64),
        min=grid.min,
        max=grid.max,
        states=np.asarray(grid.states),
        slots=np.asarray(grid.slots),
        data=grid.data,
        vertices=grid.cage.vertices,
        faces=grid.cage.faces,
    )
    logger.info(f"Saved field: {path} ({grid.dimensions}, {len(grid.data)} weights)")

    if metadata is not None:
        meta_path = path.with_suffix('.json')
        metadata.save(meta_path)
        logger.info(f"Saved metadata: {meta_path}")

    return path


def load_field(path: PathLike) -> Tuple[VoxelGrid, Optional[FieldMetadata]]:
    """
    Load a coordinate field and its metadata sidecar.

    Returns:
        Tuple of (grid, metadata) - metadata may be None if not found
    """
    path = Path(path)
    with np.load(path) as archive:
        cage = Cage(vertices=archive["vertices"], faces=archive["faces"])
        grid = VoxelGrid.from_arrays(
            cage,
            dimensions=archive["dimensions"].tolist(),
            states=archive["states"],
            slots=archive["slots"],
            data=archive["data"],
        )

    meta_path = path.with_suffix('.json')
    metadata = None
    if meta_path.exists():
        with open(meta_path) as f:
            metadata = FieldMetadata.from_dict(json.load(f))

    return grid, metadata


def cage_to_trimesh(cage: Cage) -> "trimesh.Trimesh":
    """Triangulated cage as a trimesh, vertex order preserved."""
    if not TRIMESH_AVAILABLE:
        raise ImportError("trimesh required for cage meshes")
    triangles = cage.faces[:, np.array(QUAD_TRIANGLES)].reshape(-1, 3)
    return trimesh.Trimesh(vertices=cage.vertices, faces=triangles, process=False)


def export_cage_mesh(cage: Cage, path: PathLike) -> Path:
    """Export the triangulated cage (format from the file suffix, e.g. .glb, .obj)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    mesh = cage_to_trimesh(cage)
    mesh.export(str(path))
    logger.info(f"Exported cage mesh: {path} ({len(mesh.vertices)} verts, {len(mesh.faces)} tris)")
    return path
