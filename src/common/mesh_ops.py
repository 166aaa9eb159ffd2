"""
Cage mesh checks.

The flood fill only separates interior from exterior when the cage is
closed, so the pipeline inspects the triangulated cage before rasterizing.
"""

from typing import Dict, Any
import logging

from .cage import Cage
from .io import cage_to_trimesh

logger = logging.getLogger(__name__)


def compute_cage_stats(cage: Cage) -> Dict[str, Any]:
    """
    Compute cage statistics on its triangulation.

    Args:
        cage: Quad cage

    Returns:
        Dictionary of cage statistics
    """
    mesh = cage_to_trimesh(cage)
    bounds = mesh.bounds
    extents = mesh.extents

    return {
        "n_vertices": cage.n_vertices,
        "n_quads": cage.n_faces,
        "n_triangles": len(mesh.faces),
        "bounds": {
            "min": bounds[0].tolist(),
            "max": bounds[1].tolist()
        },
        "extents": extents.tolist(),
        "max_extent": float(max(extents)),
        "volume": float(abs(mesh.volume)) if mesh.is_watertight else None,
        "surface_area": float(mesh.area),
        "is_watertight": mesh.is_watertight,
        "is_winding_consistent": mesh.is_winding_consistent,
        "euler_number": mesh.euler_number
    }


def check_cage_closed(cage: Cage) -> bool:
    """Log cage statistics and warn when the cage is not watertight."""
    stats = compute_cage_stats(cage)
    logger.info(f"Cage: {stats['n_vertices']} vertices, {stats['n_quads']} quads, "
                f"area={stats['surface_area']:.4g}")
    if not stats["is_watertight"]:
        logger.warning("Cage is not watertight: exterior flood fill may leak into the interior")
    elif not stats["is_winding_consistent"]:
        logger.warning("Cage winding is inconsistent")
    return bool(stats["is_watertight"])
