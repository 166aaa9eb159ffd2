"""
Harmonic Cage - voxel harmonic coordinates for cage-based deformation.

Given a closed quad cage, builds a voxel grid over its bounding box,
classifies cells as exterior/boundary/interior and diffuses per-vertex
weights from the cage surface into the interior.

Usage:
    python src/run_all.py --unit-cube --resolution 16 16 16
    python src/run_all.py --cage cages/hand.json --tau 1e-7
"""

__version__ = "1.0.0"
