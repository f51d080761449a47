from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .errors import NoInterface, SingularSystem
from .laplacian import laplacian_matrix, lumped_mass_matrix
from .mesh import PolyMesh

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def normalize_in_01(u: np.ndarray, *, log: Optional[logging.Logger] = None) -> np.ndarray:
    """Linearly rescale ``u`` so that its minimum is 0 and its maximum is 1.

    A constant field has no meaningful rescaling and maps to all zeros.
    """
    u = np.asarray(u, dtype=np.float64)
    if u.size == 0:
        return u.copy()
    lo = float(u.min())
    hi = float(u.max())
    span = hi - lo
    if not np.isfinite(span) or span <= 1e-15 * max(1.0, abs(hi), abs(lo)):
        (log or logger).warning("normalize_in_01: constant field (value %.6g), returning zeros", lo)
        return np.zeros_like(u)
    return (u - lo) / span


def heat_flow(
    mesh: PolyMesh,
    sources: Sequence[int],
    t: float,
    *,
    weights: str = "cotangent",
    verbose: bool = False,
    log: Optional[logging.Logger] = None,
) -> np.ndarray:
    """One implicit heat step from unit sources.

    Solves ``(M + t L) u = 0`` on the free vertices with ``u = 1`` held fixed at
    the source vertices, where ``M`` is the lumped mass matrix and ``L`` the
    Laplacian with the requested weights.

    Parameters
    ----------
    mesh : PolyMesh
    sources : sequence of int
        Vertex ids held at 1.
    t : float
        Diffusion time, > 0.
    weights : {"cotangent", "uniform"}
        Laplacian weighting scheme.

    Returns
    -------
    u : (n,) float array, raw (not normalized) heat values.
    """
    if t <= 0:
        raise ValueError("diffusion time t must be positive")
    _log = log or logger
    n = mesh.num_verts
    src = np.unique(np.asarray(sources, dtype=np.int64))
    if src.size and (src[0] < 0 or src[-1] >= n):
        raise ValueError("heat source index out of range")

    L = laplacian_matrix(mesh, weights, verbose=verbose)
    M = lumped_mass_matrix(mesh, verbose=verbose)
    A = (M + t * L).tocsr()

    u = np.zeros(n, dtype=np.float64)
    u[src] = 1.0
    free = np.setdiff1d(np.arange(n, dtype=np.int64), src, assume_unique=True)
    if free.size == 0:
        return u

    A_ff = A[free][:, free]
    rhs = -np.asarray(A[free][:, src] @ u[src]).ravel()
    try:
        solver = spla.factorized(sp.csc_matrix(A_ff))
        u[free] = solver(rhs)
    except RuntimeError as e:
        raise SingularSystem(f"Heat system could not be factorized: {e}") from e
    if not np.all(np.isfinite(u)):
        raise SingularSystem("Heat solve produced non-finite values")
    if verbose:
        _log.info("Heat flow: t=%.3g, %d sources, range [%.3g, %.3g]", t, src.size, u.min(), u.max())
    return u


def diffuse_from_interface(
    mesh: PolyMesh,
    sources: Sequence[int],
    *,
    time_scale: float = 1.0,
    verbose: bool = False,
    log: Optional[logging.Logger] = None,
) -> np.ndarray:
    """Heat distribution from the label interface, normalized into [0,1].

    The diffusion time is ``time_scale * h**2`` with ``h`` the average edge
    length, which keeps the diffusion horizon independent of the mesh scale.

    Raises
    ------
    NoInterface
        When ``sources`` is empty.
    """
    if len(sources) == 0:
        raise NoInterface("No vertex touches polys of both labels")
    if time_scale <= 0:
        raise ValueError("time_scale must be positive")
    t = float(time_scale) * mesh.edge_avg_length ** 2
    u = heat_flow(mesh, sources, t, weights="cotangent", verbose=verbose, log=log)
    return normalize_in_01(u, log=log)
