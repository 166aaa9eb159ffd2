"""
Harmonic coordinate field pipeline.

Builds the voxel coordinate field for a quad cage:
1. Validate the cage and build a grid over its bounding box
2. Rasterize the cage surface into BOUNDARY cells (barycentric weights)
3. Flood fill EXTERIOR cells from the grid shell, mark the rest INTERIOR
4. Relax interior vectors until the mean change drops to tau

Every fatal condition is raised before the grid is returned, so callers
never see a partially classified grid.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Dict, Any
import logging

from common.cage import Cage
from common.config import Config, FieldMetadata, Solver
from common.mesh_ops import check_cage_closed
from common.voxel import VoxelGrid

from .rasterize import rasterize_boundary
from .classify import classify_regions
from .diffuse import relax_interior, DiffusionResult

logger = logging.getLogger(__name__)


@dataclass
class HarmonicField:
    """Finished coordinate field with solver outcome and run metadata."""
    grid: VoxelGrid
    result: DiffusionResult
    metadata: FieldMetadata

    @property
    def converged(self) -> bool:
        return self.result.converged

    def summary(self) -> Dict[str, Any]:
        return {
            "cage_id": self.metadata.cage_id,
            "dimensions": list(self.grid.dimensions),
            "counts": self.metadata.counts,
            **self.result.to_dict()
        }


def build_grid(cage: Cage, resolution: Sequence[int], validate: bool = True) -> VoxelGrid:
    """Rasterize and classify a grid around the cage (validated during rasterization)."""
    grid = VoxelGrid(resolution, cage)

    logger.info("\n=== Step 1: Boundary rasterization ===")
    rasterize_boundary(grid, validate=validate)

    logger.info("\n=== Step 2: Region classification ===")
    classify_regions(grid)
    return grid


def build_harmonic_coordinates(
    cage: Cage,
    config: Optional[Config] = None,
    *,
    resolution: Optional[Sequence[int]] = None,
    tau: Optional[float] = None,
    max_iterations: Optional[int] = None,
    solver: Optional[str] = None,
    cage_id: str = "cage",
    check_closed: bool = True
) -> HarmonicField:
    """
    Compute the harmonic coordinate field of a cage.

    Args:
        cage: Closed quad cage
        config: Configuration (uses defaults if None)
        resolution: Override for config.resolution (cells per axis)
        tau: Override for config.tau
        max_iterations: Override for config.max_iterations
        solver: Override for config.solver ("basic" or "sparse")
        cage_id: Name recorded in the metadata
        check_closed: Warn when the triangulated cage is not watertight

    Returns:
        HarmonicField; result.converged is False when the iteration cap was hit

    Raises:
        GeometryError: invalid cage
        ValueError: invalid parameters
    """
    config = (config or Config()).replace(
        resolution=tuple(resolution) if resolution is not None else None,
        tau=tau,
        max_iterations=max_iterations,
        solver=solver
    )

    logger.info("=" * 60)
    logger.info(f"Harmonic coordinates: {cage_id}")
    logger.info("=" * 60)
    logger.info(f"Cage: {cage.n_vertices} vertices, {cage.n_faces} quads; "
                f"grid {config.resolution}")

    cage.validate()
    if check_closed:
        check_cage_closed(cage)

    grid = build_grid(cage, config.resolution, validate=False)
    counts = grid.counts()

    logger.info("\n=== Step 3: Interior relaxation ===")
    result = relax_interior(
        grid,
        tau=config.tau,
        max_iterations=config.max_iterations,
        method=config.solver.value,
        log_every=config.log_every
    )

    lo, hi = grid.bounds
    metadata = FieldMetadata(
        cage_id=cage_id,
        n_cage_vertices=cage.n_vertices,
        n_cage_faces=cage.n_faces,
        dimensions=list(grid.dimensions),
        bounds_min=lo.tolist(),
        bounds_max=hi.tolist(),
        cell_size=grid.cell_size.tolist(),
        counts=counts,
        converged=result.converged,
        iterations=result.iterations,
        final_delta=result.delta,
        generation_params={
            "tau": config.tau,
            "max_iterations": config.max_iterations,
            "solver": Solver(config.solver).value,
            "buffer_size": int(len(grid.data))
        }
    )

    logger.info(f"\n=== Result ===")
    logger.info(f"Boundary: {counts['boundary']}, interior: {counts['interior']}, "
                f"exterior: {counts['exterior']}")
    logger.info(f"Converged: {result.converged} after {result.iterations} iterations")

    return HarmonicField(grid=grid, result=result, metadata=metadata)
