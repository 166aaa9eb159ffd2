"""
Voxel grid for cage coordinate fields.

The grid covers the cage's bounding box with X*Y*Z cells. Every cell carries
a classification state; boundary and interior cells also own a slot of
`depth` float32 weights (one per cage vertex) in a single flat buffer.

Storage is arena-style: a state code and a slot offset per cell, plus the
shared buffer. Slots are handed out in allocation order and the buffer only
ever grows.
"""

import numpy as np
from enum import IntEnum
from typing import Tuple, Optional, Dict, Sequence, NamedTuple
import logging

from .cage import Cage, GeometryError

logger = logging.getLogger(__name__)

Cell = Tuple[int, int, int]

# Unit steps to the 6 face neighbours
NEIGHBOUR_OFFSETS: Tuple[Cell, ...] = (
    (1, 0, 0), (0, 1, 0), (0, 0, 1),
    (-1, 0, 0), (0, -1, 0), (0, 0, -1),
)

NO_SLOT = -1


class CellState(IntEnum):
    """Classification of a voxel."""
    UNINITIALIZED = 0
    EXTERIOR = 1
    BOUNDARY = 2
    INTERIOR = 3


class CellStateError(RuntimeError):
    """Raised on an invalid transition or slot access for a cell's state."""


class GridCell(NamedTuple):
    """Tagged cell state; `slot` is the buffer offset for boundary/interior cells."""
    state: CellState
    slot: Optional[int] = None

    @property
    def has_slot(self) -> bool:
        return self.slot is not None


class VoxelGrid:
    """
    Regular grid over a cage's bounding box.

    Cells are addressed by integer (x, y, z) coordinates; the flat index is
    x*(Y*Z) + y*Z + z, i.e. numpy C order over shape (X, Y, Z).
    """

    def __init__(self, dimensions: Sequence[int], cage: Cage):
        dims = tuple(int(d) for d in dimensions)
        if len(dims) != 3 or any(d <= 0 for d in dims):
            raise ValueError(f"Grid dimensions must be 3 positive integers, got {tuple(dimensions)}")

        if cage.n_vertices == 0:
            raise GeometryError("Cannot build a grid around an empty cage")
        lo, hi = cage.bounds
        if np.any(hi <= lo):
            raise GeometryError(f"Degenerate cage bounding box: min={lo.tolist()}, max={hi.tolist()}")

        self.cage = cage
        self.dimensions: Cell = dims
        self.min = lo.astype(np.float64)
        self.max = hi.astype(np.float64)

        n_cells = dims[0] * dims[1] * dims[2]
        self._states = np.full(n_cells, CellState.UNINITIALIZED, dtype=np.int8)
        self._slots = np.full(n_cells, NO_SLOT, dtype=np.int64)
        self._data = np.zeros(0, dtype=np.float32)
        self._size = 0

        logger.debug(f"Voxel grid {dims}, bounds {self.min.tolist()} -> {self.max.tolist()}, "
                     f"depth={self.depth}")

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    @property
    def depth(self) -> int:
        """Length of every coordinate vector (number of cage vertices)."""
        return self.cage.n_vertices

    @property
    def n_cells(self) -> int:
        return len(self._states)

    @property
    def shape(self) -> Cell:
        return self.dimensions

    @property
    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return (min_corner, max_corner) in cage space."""
        return self.min.copy(), self.max.copy()

    @property
    def cell_size(self) -> np.ndarray:
        """Per-axis voxel extent."""
        return (self.max - self.min) / np.asarray(self.dimensions, dtype=np.float64)

    def cell_center(self, cell: Sequence[int]) -> np.ndarray:
        """Centre of a cell in cage space."""
        return self.grid_to_world(np.asarray(cell))

    def grid_to_world(self, cells: np.ndarray) -> np.ndarray:
        """Convert (..., 3) cell coordinates to their centres in cage space."""
        size = self.cell_size
        return self.min + np.asarray(cells, dtype=np.float64) * size + size / 2.0

    def world_to_grid(self, points: np.ndarray) -> np.ndarray:
        """Convert (..., 3) cage-space points to (unclamped) cell coordinates."""
        rel = (np.asarray(points, dtype=np.float64) - self.min) / self.cell_size
        return np.floor(rel).astype(np.int64)

    def cell_of_point(self, point: Sequence[float]) -> Optional[Cell]:
        """
        Cell containing a cage-space point, or None outside the grid.

        Points on the max faces of the bounding box belong to the last cell.
        """
        point = np.asarray(point, dtype=np.float64)
        if not np.all(np.isfinite(point)):
            return None
        if np.any(point < self.min) or np.any(point > self.max):
            return None
        cell = np.minimum(self.world_to_grid(point), np.asarray(self.dimensions) - 1)
        return tuple(int(c) for c in cell)

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def index_of(self, cell: Sequence[int]) -> Optional[int]:
        """Flat index of a cell, or None if any axis is out of bounds."""
        x, y, z = (int(c) for c in cell)
        nx, ny, nz = self.dimensions
        if not (0 <= x < nx and 0 <= y < ny and 0 <= z < nz):
            return None
        return x * ny * nz + y * nz + z

    def coord_of(self, index: int) -> Cell:
        """Inverse of index_of."""
        x, y, z = np.unravel_index(int(index), self.dimensions)
        return int(x), int(y), int(z)

    def neighbours(self, cell: Sequence[int]):
        """Yield in-grid face neighbours of a cell."""
        x, y, z = (int(c) for c in cell)
        for dx, dy, dz in NEIGHBOUR_OFFSETS:
            n = (x + dx, y + dy, z + dz)
            if self.index_of(n) is not None:
                yield n

    def _require_index(self, cell: Sequence[int]) -> int:
        index = self.index_of(cell)
        if index is None:
            raise IndexError(f"Cell {tuple(cell)} is outside grid {self.dimensions}")
        return index

    # ------------------------------------------------------------------
    # Coordinate buffer
    # ------------------------------------------------------------------

    @property
    def data(self) -> np.ndarray:
        """View of the allocated part of the coordinate buffer."""
        return self._data[:self._size]

    def slot_rows(self) -> np.ndarray:
        """Coordinate buffer viewed as (n_slots, depth); row r is slot r*depth."""
        return self.data.reshape(-1, self.depth)

    def _allocate_slot(self) -> int:
        offset = self._size
        needed = offset + self.depth
        if needed > len(self._data):
            capacity = max(needed, 2 * len(self._data), 64 * self.depth)
            grown = np.zeros(capacity, dtype=np.float32)
            grown[:offset] = self._data[:offset]
            self._data = grown
        self._data[offset:needed] = 0.0
        self._size = needed
        return offset

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def mark_boundary(self, cell: Sequence[int], depth: Optional[int] = None) -> int:
        """
        Classify a cell as boundary, allocating its slot on first call.

        Repeated calls on a boundary cell return the existing slot.

        Returns:
            Slot offset into the coordinate buffer

        Raises:
            CellStateError: cell is already exterior or interior
        """
        if depth is not None and depth != self.depth:
            raise ValueError(f"Slot depth {depth} does not match cage size {self.depth}")
        index = self._require_index(cell)
        state = self._states[index]
        if state == CellState.BOUNDARY:
            return int(self._slots[index])
        if state != CellState.UNINITIALIZED:
            raise CellStateError(
                f"Cannot mark {CellState(state).name} cell {tuple(cell)} as BOUNDARY"
            )
        slot = self._allocate_slot()
        self._slots[index] = slot
        self._states[index] = CellState.BOUNDARY
        return slot

    def mark_exterior(self, cell: Sequence[int]) -> None:
        """Classify an uninitialized cell as exterior (no slot)."""
        index = self._require_index(cell)
        state = self._states[index]
        if state == CellState.EXTERIOR:
            return
        if state != CellState.UNINITIALIZED:
            raise CellStateError(
                f"Cannot mark {CellState(state).name} cell {tuple(cell)} as EXTERIOR"
            )
        self._states[index] = CellState.EXTERIOR

    def mark_interior(self, cell: Sequence[int]) -> int:
        """Classify an uninitialized cell as interior with a zeroed slot."""
        index = self._require_index(cell)
        state = self._states[index]
        if state == CellState.INTERIOR:
            return int(self._slots[index])
        if state != CellState.UNINITIALIZED:
            raise CellStateError(
                f"Cannot mark {CellState(state).name} cell {tuple(cell)} as INTERIOR"
            )
        slot = self._allocate_slot()
        self._slots[index] = slot
        self._states[index] = CellState.INTERIOR
        return slot

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def state(self, cell: Sequence[int]) -> CellState:
        return CellState(self._states[self._require_index(cell)])

    def cell(self, cell: Sequence[int]) -> GridCell:
        """Tagged state of a cell."""
        index = self._require_index(cell)
        state = CellState(self._states[index])
        slot = int(self._slots[index])
        return GridCell(state, slot if slot != NO_SLOT else None)

    def get_slot(self, cell: Sequence[int]) -> np.ndarray:
        """
        Mutable view of a cell's coordinate vector.

        The view aliases the buffer until the next slot allocation.

        Raises:
            IndexError: cell outside the grid
            CellStateError: cell owns no slot
        """
        index = self._require_index(cell)
        slot = int(self._slots[index])
        if slot == NO_SLOT:
            raise CellStateError(
                f"Cell {tuple(cell)} is {CellState(self._states[index]).name} and has no coordinate slot"
            )
        return self._data[slot:slot + self.depth]

    def coordinates(self, cell: Sequence[int]) -> np.ndarray:
        """Copy of a boundary/interior cell's coordinate vector."""
        return self.get_slot(cell).copy()

    def coordinates_at(self, point: Sequence[float]) -> Optional[np.ndarray]:
        """
        Coordinate vector of the voxel containing a cage-space point.

        Returns None outside the grid or in an exterior/uninitialized cell.
        """
        cell = self.cell_of_point(point)
        if cell is None:
            return None
        if self.cell(cell).slot is None:
            return None
        return self.coordinates(cell)

    @property
    def states(self) -> np.ndarray:
        """Flat per-cell state codes (read-only view)."""
        view = self._states.view()
        view.flags.writeable = False
        return view

    @property
    def slots(self) -> np.ndarray:
        """Flat per-cell slot offsets, NO_SLOT where none (read-only view)."""
        view = self._slots.view()
        view.flags.writeable = False
        return view

    @property
    def classification(self) -> np.ndarray:
        """Per-cell states as an (X, Y, Z) array."""
        return self._states.reshape(self.dimensions).copy()

    def cells_in_state(self, state: CellState) -> np.ndarray:
        """Mx3 array of cell coordinates in the given state, in index order."""
        indices = np.flatnonzero(self._states == state)
        return np.column_stack(np.unravel_index(indices, self.dimensions)).astype(np.int64)

    def counts(self) -> Dict[str, int]:
        """Number of cells per state name."""
        tally = np.bincount(self._states.astype(np.int64), minlength=len(CellState))
        return {s.name.lower(): int(tally[s]) for s in CellState}

    @classmethod
    def from_arrays(
        cls,
        cage: Cage,
        dimensions: Sequence[int],
        states: np.ndarray,
        slots: np.ndarray,
        data: np.ndarray
    ) -> "VoxelGrid":
        """Rebuild a grid from saved state/slot/buffer arrays."""
        grid = cls(dimensions, cage)
        states = np.asarray(states, dtype=np.int8).ravel()
        slots = np.asarray(slots, dtype=np.int64).ravel()
        data = np.asarray(data, dtype=np.float32).ravel()
        if len(states) != grid.n_cells or len(slots) != grid.n_cells:
            raise ValueError(f"Saved arrays do not match grid of {grid.n_cells} cells")
        if len(data) % grid.depth != 0:
            raise ValueError(f"Buffer length {len(data)} is not a multiple of depth {grid.depth}")
        grid._states[:] = states
        grid._slots[:] = slots
        grid._data = data.copy()
        grid._size = len(data)
        return grid
