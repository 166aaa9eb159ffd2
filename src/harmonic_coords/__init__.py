"""
Harmonic coordinates: voxel coordinate fields for cage-based deformation.

Pipeline stages, in order:
- rasterize: cage surface -> BOUNDARY cells with barycentric weights
- classify: flood fill EXTERIOR, remaining cells INTERIOR
- diffuse: Jacobi relaxation of INTERIOR vectors
"""

from .rasterize import rasterize_boundary, rasterize_triangle
from .classify import fill_exterior, mark_interior, classify_regions
from .diffuse import relax_interior, solve_direct, DiffusionResult
from .build import build_harmonic_coordinates, build_grid, HarmonicField

__version__ = "1.0.0"

__all__ = [
    'rasterize_boundary', 'rasterize_triangle',
    'fill_exterior', 'mark_interior', 'classify_regions',
    'relax_interior', 'solve_direct', 'DiffusionResult',
    'build_harmonic_coordinates', 'build_grid', 'HarmonicField',
]
