"""
Configuration and run metadata for coordinate field generation.

Grid resolution is given as cell counts per axis (X, Y, Z). Coordinates are
computed in the cage's own space; no normalization is applied.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Tuple, List
import json
from pathlib import Path


class Solver(Enum):
    """
    Relaxation update methods (identical results).

    BASIC: per-cell loop, reference implementation
    SPARSE: whole pass as one sparse matrix product (default)
    """
    BASIC = "basic"
    SPARSE = "sparse"


@dataclass
class FieldMetadata:
    """
    Metadata saved next to every coordinate field.

    Records the cage size, grid layout, classification counts and solver
    outcome so a field can be interpreted without rerunning the pipeline.
    """
    cage_id: str
    n_cage_vertices: int
    n_cage_faces: int
    dimensions: List[int]
    bounds_min: List[float]
    bounds_max: List[float]
    cell_size: List[float]
    counts: Dict[str, int]
    converged: bool
    iterations: int
    final_delta: float
    weighting: str = "barycentric"
    generation_params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cage_id": self.cage_id,
            "n_cage_vertices": self.n_cage_vertices,
            "n_cage_faces": self.n_cage_faces,
            "dimensions": self.dimensions,
            "bounds_min": self.bounds_min,
            "bounds_max": self.bounds_max,
            "cell_size": self.cell_size,
            "counts": self.counts,
            "converged": self.converged,
            "iterations": self.iterations,
            "final_delta": self.final_delta,
            "weighting": self.weighting,
            "generation_params": self.generation_params
        }

    def save(self, path: Path) -> None:
        """Save metadata to JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldMetadata":
        return cls(**data)


@dataclass
class Config:
    """
    Global configuration for coordinate field generation.

    tau is the convergence threshold on the mean absolute change per
    interior scalar between two relaxation passes.
    """

    # Voxel grid cell counts per axis
    resolution: Tuple[int, int, int] = (32, 32, 32)

    # Relaxation
    tau: float = 1e-6
    max_iterations: int = 10000
    solver: Solver = Solver.SPARSE

    # Debug progress interval (iterations)
    log_every: int = 100

    # Paths (relative to project root)
    output_dir: Path = field(default_factory=lambda: Path("outputs"))

    def __post_init__(self):
        self.resolution = tuple(int(r) for r in self.resolution)
        if len(self.resolution) != 3 or any(r <= 0 for r in self.resolution):
            raise ValueError(f"resolution must be 3 positive integers, got {self.resolution}")
        if self.tau < 0:
            raise ValueError(f"tau must be non-negative, got {self.tau}")
        if self.max_iterations < 0:
            raise ValueError(f"max_iterations must be non-negative, got {self.max_iterations}")
        self.solver = Solver(self.solver)
        self.output_dir = Path(self.output_dir)

    def get_output_path(self, cage_id: str) -> Path:
        """Path of the saved field for a cage."""
        return self.output_dir / "fields" / f"{cage_id}.npz"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resolution": list(self.resolution),
            "tau": self.tau,
            "max_iterations": self.max_iterations,
            "solver": self.solver.value,
            "log_every": self.log_every,
            "output_dir": str(self.output_dir)
        }

    @classmethod
    def from_json(cls, path: Path) -> "Config":
        """Load config from JSON file."""
        with open(path) as f:
            data = json.load(f)
        if "solver" in data:
            data["solver"] = Solver(data["solver"])
        if "resolution" in data:
            data["resolution"] = tuple(data["resolution"])
        if "output_dir" in data:
            data["output_dir"] = Path(data["output_dir"])
        return cls(**data)

    def replace(self, **overrides: Optional[Any]) -> "Config":
        """Copy with the non-None overrides applied."""
        data = self.to_dict()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return Config(**data)

    def save(self, path: Path) -> None:
        """Save config to JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


# Global default config
DEFAULT_CONFIG = Config()
