#########################################################################################
##
##                                  SOLUTION PLAN
##                                    (plan.py)
##
##         Orders a square residual system into block lower-triangular form so
##         that small blocks can be solved one after another.
##
##                                  Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import connected_components, maximum_bipartite_matching


__all__ = ["SolutionBlock", "SolutionPlan", "jacobian_structure", "build_solution_plan"]


# DATA ==================================================================================

@dataclass(frozen=True)
class SolutionBlock:
    """Subset of equations and unknowns solved together.

    Indices refer to the unpermuted residual vector and parameter vector.
    """

    index: int
    equations: tuple[int, ...]
    unknowns: tuple[int, ...]


class SolutionPlan:
    """Ordered list of :class:`SolutionBlock`; earlier blocks never depend on
    unknowns of later ones."""

    def __init__(self, blocks, residual_names=None, parameter_names=None, decomposed=True):
        self.blocks = tuple(blocks)
        self.residual_names = None if residual_names is None else tuple(residual_names)
        self.parameter_names = None if parameter_names is None else tuple(parameter_names)
        self.decomposed = bool(decomposed)


    def __iter__(self):
        return iter(self.blocks)


    def __len__(self):
        return len(self.blocks)


    def __repr__(self):
        sizes = [len(b.unknowns) for b in self.blocks]
        return f"SolutionPlan(blocks={len(self.blocks)}, sizes={sizes})"


    def display(self) -> None:
        """Print equations and unknowns of every block."""
        for b in self.blocks:
            print(f"Solution Block {b.index}:")
            print("  equations:")
            for e in b.equations:
                label = self.residual_names[e] if self.residual_names else f"r{e}"
                print(f"    {e}: {label}")
            print("  unknowns:")
            for u in b.unknowns:
                label = self.parameter_names[u] if self.parameter_names else f"p{u}"
                print(f"    {u}: {label}")


# STRUCTURE =============================================================================

def jacobian_structure(jacobian, rtol=1e-8) -> np.ndarray:
    """Boolean incidence pattern of a numerical Jacobian.

    Entries below ``rtol`` times the largest magnitude are treated as
    structural zeros.
    """
    J = np.abs(np.asarray(jacobian, dtype=float))
    scale = J.max() if J.size else 0.0
    if scale == 0.0:
        return np.zeros(J.shape, dtype=bool)
    return J > rtol * scale


def _full_block(m, n):
    return [SolutionBlock(0, tuple(range(m)), tuple(range(n)))]


def build_solution_plan(structure, residual_names=None, parameter_names=None) -> SolutionPlan:
    """Block lower-triangular decomposition of a residual system.

    Uses a maximum bipartite matching of equations to unknowns and the
    strongly connected components of the resulting dependency graph. Systems
    that are not square or are structurally singular yield a single block
    containing the full problem.

    Parameters
    ----------
    structure : array_like of bool
        Incidence matrix, ``structure[i, j]`` true when equation ``i``
        depends on unknown ``j``.
    residual_names, parameter_names : sequence of str, optional
        Labels for display.

    Returns
    -------
    SolutionPlan
    """
    S = np.asarray(structure, dtype=bool)
    m, n = S.shape

    if m != n or m == 0:
        return SolutionPlan(_full_block(m, n), residual_names, parameter_names, decomposed=False)

    # row_of[j] is the equation matched to unknown j
    row_of = maximum_bipartite_matching(csr_matrix(S.astype(np.int8)), perm_type="row")
    if np.any(row_of < 0):
        return SolutionPlan(_full_block(m, n), residual_names, parameter_names, decomposed=False)

    # edge i -> k when equation i uses the unknown matched to equation k
    rows, cols = [], []
    for i, j in zip(*np.nonzero(S)):
        k = int(row_of[j])
        if k != i:
            rows.append(i)
            cols.append(k)
    graph = csr_matrix((np.ones(len(rows)), (rows, cols)), shape=(m, m))

    n_comp, labels = connected_components(graph, directed=True, connection="strong")

    members = [sorted(np.flatnonzero(labels == c).tolist()) for c in range(n_comp)]
    depends = [set() for _ in range(n_comp)]
    for i, k in zip(rows, cols):
        a, b = labels[i], labels[k]
        if a != b:
            depends[a].add(b)

    # dependencies first, ties by smallest equation index
    order, done = [], set()
    while len(order) < n_comp:
        ready = [c for c in range(n_comp) if c not in done and depends[c] <= done]
        c = min(ready, key=lambda c: members[c][0])
        order.append(c)
        done.add(c)

    col_of = {int(r): j for j, r in enumerate(row_of)}
    blocks = []
    for idx, c in enumerate(order):
        eqs = tuple(members[c])
        unk = tuple(sorted(col_of[e] for e in eqs))
        blocks.append(SolutionBlock(idx, eqs, unk))

    return SolutionPlan(blocks, residual_names, parameter_names, decomposed=True)
