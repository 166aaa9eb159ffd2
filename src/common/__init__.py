"""
Common modules for cage coordinate field generation.

Unit model: all geometry stays in the cage's own coordinate space; the grid
spans exactly the cage's bounding box.
"""

from .config import Config, Solver, FieldMetadata
from .cage import Cage, GeometryError, box_cage
from .voxel import VoxelGrid, CellState, CellStateError, GridCell
from .io import load_cage, save_cage, save_field, load_field, export_cage_mesh
from .mesh_ops import compute_cage_stats, check_cage_closed

__all__ = [
    'Config', 'Solver', 'FieldMetadata',
    'Cage', 'GeometryError', 'box_cage',
    'VoxelGrid', 'CellState', 'CellStateError', 'GridCell',
    'load_cage', 'save_cage', 'save_field', 'load_field', 'export_cage_mesh',
    'compute_cage_stats', 'check_cage_closed',
]
