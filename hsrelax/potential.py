from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla
from scipy.sparse.csgraph import connected_components

from .errors import SingularSystem
from .gradient import divergence
from .heat import normalize_in_01
from .laplacian import laplacian_entries, laplacian_for
from .mesh import PolyMesh

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

SOLVERS = ("normal", "lsqr")


def _check_anchored(mesh: PolyMesh, src: np.ndarray) -> None:
    # Every connected component needs a pinned vertex, otherwise the Laplacian
    # block leaves a free constant on it.
    ncomp, comp = connected_components(mesh.vertex_adjacency, directed=False)
    anchored = np.zeros(ncomp, dtype=bool)
    anchored[comp[src]] = True
    if not np.all(anchored):
        raise SingularSystem(
            f"{int(np.count_nonzero(~anchored))} of {ncomp} connected components hold no heat source"
        )


def assemble_system(
    mesh: PolyMesh,
    X: np.ndarray,
    sources: Sequence[int],
    *,
    constraint_weight: float = 0.1,
    weights: Optional[str] = None,
    G: Optional[sp.spmatrix] = None,
    verbose: bool = False,
) -> tuple[sp.csr_matrix, np.ndarray]:
    """Build the (n + k, n) constrained system and its right-hand side.

    The first ``n`` rows hold the Laplacian (negative semi-definite
    convention) with ``G^T X``, the transposed gradient applied to ``X``,
    on the right. Each of the ``k`` heat sources adds one row with
    ``constraint_weight`` in its column and a zero right-hand side.
    """
    n = mesh.num_verts
    src = np.asarray(sources, dtype=np.int64).ravel()
    k = src.shape[0]
    L = laplacian_entries(mesh, weights, verbose=verbose)
    div = divergence(mesh, X, G)
    C = sp.coo_matrix(
        (np.full(k, float(constraint_weight)), (np.arange(k), src)), shape=(k, n)
    )
    A = sp.vstack([L, C], format="csr")
    rhs = np.concatenate([div, np.zeros(k)])
    return A, rhs


def solve_least_squares(
    A: sp.spmatrix,
    b: np.ndarray,
    *,
    method: str = "normal",
    tol: float = 1e-10,
    iter_lim: Optional[int] = None,
) -> np.ndarray:
    """Least-squares solution of the rectangular sparse system ``A x = b``.

    ``method="normal"`` factorizes ``A^T A`` with SuperLU; ``method="lsqr"``
    runs scipy's LSQR.

    Raises
    ------
    SingularSystem
        When the factorization fails, LSQR does not converge, or the result
        is not finite.
    """
    A = sp.csr_matrix(A)
    if method == "normal":
        N = (A.T @ A).tocsc()
        try:
            solver = spla.factorized(N)
            x = solver(np.asarray(A.T @ b).ravel())
        except RuntimeError as e:
            raise SingularSystem(f"Normal equations are singular: {e}") from e
    elif method == "lsqr":
        if iter_lim is None:
            iter_lim = max(1000, 10 * A.shape[1])
        res = spla.lsqr(A, b, atol=tol, btol=tol, iter_lim=iter_lim)
        x, istop = res[0], res[1]
        # 0: b is zero, 1: exact solution, 2: least-squares solution
        if istop not in (0, 1, 2):
            raise SingularSystem(f"LSQR did not converge (istop={istop}, iterations={res[2]})")
    else:
        raise ValueError(f"Unknown least-squares method: {method}")
    if not np.all(np.isfinite(x)):
        raise SingularSystem("Least-squares solve produced non-finite values")
    return x


def reconstruct_potential(
    mesh: PolyMesh,
    X: np.ndarray,
    sources: Sequence[int],
    *,
    constraint_weight: float = 0.1,
    weights: Optional[str] = None,
    method: str = "normal",
    G: Optional[sp.spmatrix] = None,
    verbose: bool = False,
    log: Optional[logging.Logger] = None,
) -> tuple[np.ndarray, np.ndarray]:
    """Scalar potential whose gradient best matches ``X``.

    Solves ``-[L; C] phi = [div X; 0]`` in the least-squares sense, where the
    rows of ``C`` softly pin ``phi`` to 0 at the heat sources.

    Parameters
    ----------
    mesh : PolyMesh
    X : (m,3) float array
        Smoothed unit field.
    sources : sequence of int
        Heat source vertices.
    constraint_weight : float, default 0.1
        Penalty weight of the pinning rows. Higher values hold the zero level
        closer to the input interface but worsen conditioning. Negative values
        raise ``ValueError``; 0 raises ``SingularSystem`` since without the
        pinning rows the Laplacian leaves the constant undetermined.
    weights : {"cotangent", "uniform"}, optional
        Laplacian weights; by default cotangent on triangles and tetrahedra,
        uniform elsewhere.
    method : {"normal", "lsqr"}
        Least-squares solver.

    Returns
    -------
    raw : (n,) float array
        Potential whose zero level set is the relaxed boundary.
    normalized : (n,) float array
        ``raw`` rescaled into [0,1].
    """
    _log = log or logger
    src = np.unique(np.asarray(sources, dtype=np.int64))
    if constraint_weight < 0:
        raise ValueError(f"constraint_weight must be non-negative, got {constraint_weight}")
    if constraint_weight == 0:
        raise SingularSystem(
            "constraint_weight is 0: the Laplacian alone has a constant null space"
        )
    if src.size == 0:
        raise SingularSystem("No heat sources to anchor the potential")
    _check_anchored(mesh, src)

    scheme = weights or laplacian_for(mesh)
    A, rhs = assemble_system(
        mesh, X, src, constraint_weight=constraint_weight, weights=scheme, G=G, verbose=verbose
    )
    if verbose:
        _log.info(
            "Potential: %s weights, system %d x %d (nnz=%d), lambda=%.3g",
            scheme, A.shape[0], A.shape[1], A.nnz, constraint_weight,
        )
    raw = solve_least_squares(-A, rhs, method=method)
    return raw, normalize_in_01(raw, log=_log)
