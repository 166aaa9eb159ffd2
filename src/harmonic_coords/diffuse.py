"""
Diffusion solver for interior coordinates.

Jacobi relaxation: each pass replaces every interior vector by the
unweighted mean of its in-grid face neighbours, read from a snapshot taken
at the start of the pass. Boundary vectors are fixed (Dirichlet) and never
written. Channels are independent, so this is `depth` scalar diffusions
sharing one classification mask.

Two update methods give the same result:
- basic: per-cell loop over neighbours
- sparse: the whole pass as one scipy.sparse averaging operator

`solve_direct` solves the fixed-point system outright and is used to check
the relaxation.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional
import logging

from scipy import sparse
from scipy.sparse.linalg import spsolve

from common.config import Solver
from common.voxel import VoxelGrid, CellState, NEIGHBOUR_OFFSETS, NO_SLOT

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10000


@dataclass
class DiffusionResult:
    """Outcome of a relaxation run; the field itself stays in the grid."""
    converged: bool
    iterations: int
    delta: float
    tau: float
    method: str
    history: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "converged": self.converged,
            "iterations": self.iterations,
            "delta": self.delta,
            "tau": self.tau,
            "method": self.method,
        }


class InteriorStencil:
    """
    Neighbour structure of the interior cells, in slot-row space.

    Row r of `grid.slot_rows()` is the slot at offset r*depth. For each
    interior cell this records its own row, the rows of its in-grid
    neighbours and the neighbour count (out-of-grid neighbours excluded;
    slotless neighbours are counted but add nothing).
    """

    def __init__(self, grid: VoxelGrid):
        self.depth = grid.depth
        self.n_rows = len(grid.data) // grid.depth

        interior = np.flatnonzero(grid.states == CellState.INTERIOR)
        cells = np.column_stack(np.unravel_index(interior, grid.dimensions))
        self.rows = grid.slots[interior] // grid.depth
        self.n_interior = len(interior)

        dims = np.asarray(grid.dimensions)
        counts = np.zeros(self.n_interior, dtype=np.int64)
        row_ids = []
        col_ids = []
        for offset in NEIGHBOUR_OFFSETS:
            n_cells = cells + np.asarray(offset)
            inside = np.all((n_cells >= 0) & (n_cells < dims), axis=1)
            counts += inside

            owner = np.flatnonzero(inside)
            n_index = np.ravel_multi_index(n_cells[inside].T, grid.dimensions)
            n_slots = grid.slots[n_index]
            has_slot = n_slots != NO_SLOT
            row_ids.append(owner[has_slot])
            col_ids.append(n_slots[has_slot] // grid.depth)

        self.counts = counts
        self.owner = np.concatenate(row_ids) if row_ids else np.empty(0, dtype=np.int64)
        self.neighbour_rows = np.concatenate(col_ids) if col_ids else np.empty(0, dtype=np.int64)

    def operator(self) -> sparse.csr_matrix:
        """(n_interior, n_rows) averaging matrix: new = A @ snapshot."""
        weights = 1.0 / self.counts[self.owner]
        return sparse.csr_matrix(
            (weights, (self.owner, self.neighbour_rows)),
            shape=(self.n_interior, self.n_rows)
        )

    def neighbour_lists(self) -> List[np.ndarray]:
        """Per interior cell, the slot rows of its neighbours."""
        order = np.argsort(self.owner, kind="stable")
        split_at = np.cumsum(np.bincount(self.owner, minlength=self.n_interior))[:-1]
        return np.split(self.neighbour_rows[order], split_at)


def _relax_basic(rows: np.ndarray, snapshot: np.ndarray, stencil: InteriorStencil,
                 neighbours: List[np.ndarray]) -> float:
    total = 0.0
    for i, row in enumerate(stencil.rows):
        cell_data = rows[row]
        cell_data[:] = 0.0
        for n_row in neighbours[i]:
            cell_data += snapshot[n_row]
        cell_data /= np.float32(stencil.counts[i])
        total += float(np.abs(cell_data - snapshot[row]).sum())
    return total / (stencil.n_interior * stencil.depth)


def _relax_sparse(rows: np.ndarray, snapshot: np.ndarray, stencil: InteriorStencil,
                  operator: sparse.csr_matrix) -> float:
    updated = np.asarray(operator @ snapshot, dtype=np.float32)
    delta = float(np.mean(np.abs(updated - snapshot[stencil.rows])))
    rows[stencil.rows] = updated
    return delta


def relax_interior(
    grid: VoxelGrid,
    tau: float = 1e-6,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    method: str = "sparse",
    log_every: int = 100
) -> DiffusionResult:
    """
    Relax interior coordinates until the mean absolute change is <= tau.

    Args:
        grid: Fully classified grid (no uninitialized cells)
        tau: Convergence threshold on the mean absolute per-scalar change
        max_iterations: Iteration cap; hitting it is reported, not raised
        method: "basic" or "sparse"
        log_every: Debug progress interval in iterations

    Returns:
        DiffusionResult with convergence flag, iteration count and the
        per-iteration change history
    """
    method = Solver(method).value
    if tau < 0:
        raise ValueError(f"tau must be non-negative, got {tau}")
    if max_iterations < 0:
        raise ValueError(f"max_iterations must be non-negative, got {max_iterations}")
    if grid.counts()["uninitialized"] > 0:
        raise RuntimeError("Grid must be fully classified before relaxation")

    stencil = InteriorStencil(grid)
    if stencil.n_interior == 0:
        logger.info("No interior cells to relax")
        return DiffusionResult(converged=True, iterations=0, delta=0.0, tau=tau, method=method)

    rows = grid.slot_rows()
    if method == Solver.SPARSE.value:
        operator = stencil.operator()

        def step(snapshot: np.ndarray) -> float:
            return _relax_sparse(rows, snapshot, stencil, operator)
    else:
        neighbours = stencil.neighbour_lists()

        def step(snapshot: np.ndarray) -> float:
            return _relax_basic(rows, snapshot, stencil, neighbours)

    logger.info(f"Relaxing {stencil.n_interior} interior cells x {stencil.depth} channels "
                f"(method={method}, tau={tau:g}, cap={max_iterations})")

    history: List[float] = []
    delta = float("inf")
    converged = False
    iterations = 0
    while iterations < max_iterations:
        snapshot = rows.copy()
        delta = step(snapshot)
        iterations += 1
        history.append(delta)

        if log_every and iterations % log_every == 0:
            logger.debug(f"  iteration {iterations}: delta={delta:.3e}")

        if delta <= tau:
            converged = True
            break

    if converged:
        logger.info(f"Converged after {iterations} iterations (delta={delta:.3e})")
    else:
        logger.warning(f"Did not converge within {max_iterations} iterations "
                       f"(delta={delta:.3e}, tau={tau:g})")

    return DiffusionResult(
        converged=converged,
        iterations=iterations,
        delta=delta if history else float("nan"),
        tau=tau,
        method=method,
        history=history
    )


def solve_direct(grid: VoxelGrid) -> Optional[np.ndarray]:
    """
    Solve the relaxation's fixed point with a sparse direct solver.

    Interior rows x satisfy x = A_ii x + A_ib b, where b are the fixed
    boundary rows. The solution is written into the grid.

    Returns:
        (n_interior, depth) interior vectors, or None without interior cells
    """
    if grid.counts()["uninitialized"] > 0:
        raise RuntimeError("Grid must be fully classified before solving")

    stencil = InteriorStencil(grid)
    if stencil.n_interior == 0:
        return None

    rows = grid.slot_rows()
    operator = stencil.operator().tocsc()

    is_interior_row = np.zeros(stencil.n_rows, dtype=bool)
    is_interior_row[stencil.rows] = True
    fixed_rows = np.flatnonzero(~is_interior_row)

    a_ii = operator[:, stencil.rows]
    a_ib = operator[:, fixed_rows]
    rhs = a_ib @ rows[fixed_rows].astype(np.float64)

    system = (sparse.identity(stencil.n_interior, format="csc") - a_ii).tocsc()
    solution = np.asarray(spsolve(system, rhs)).reshape(stencil.n_interior, stencil.depth)

    rows[stencil.rows] = solution.astype(np.float32)
    logger.info(f"Direct solve: {stencil.n_interior} interior cells")
    return solution
