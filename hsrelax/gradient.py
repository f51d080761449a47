from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import scipy.sparse as sp

from .mesh import PolyMesh

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def simplex_gradients(V: np.ndarray, S: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Gradients of the barycentric hat functions on each simplex.

    Parameters
    ----------
    V : (n,3) float array
    S : (s,3) triangles or (s,4) tetrahedra

    Returns
    -------
    G : (s, d+1, 3)
        ``G[i, a]`` is the gradient of the hat function of local vertex ``a``
        on simplex ``i``. Zero on degenerate simplices.
    measure : (s,)
        Triangle areas or tetrahedron volumes.
    """
    if S.shape[1] == 3:
        vi, vj, vk = V[S[:, 0]], V[S[:, 1]], V[S[:, 2]]
        N = np.cross(vj - vi, vk - vi)
        dblA = np.linalg.norm(N, axis=1)
        ok = dblA > 0
        inv_denom2 = np.zeros_like(dblA)
        inv_denom2[ok] = 1.0 / (dblA[ok] ** 2)
        # grad phi_a = (N x e_a) / |N|^2, e_a the edge opposite a
        g0 = np.cross(N, vk - vj) * inv_denom2[:, None]
        g1 = np.cross(N, vi - vk) * inv_denom2[:, None]
        g2 = np.cross(N, vj - vi) * inv_denom2[:, None]
        return np.stack([g0, g1, g2], axis=1), 0.5 * dblA

    if S.shape[1] == 4:
        p0 = V[S[:, 0]]
        a = V[S[:, 1]] - p0
        b = V[S[:, 2]] - p0
        c = V[S[:, 3]] - p0
        det = np.einsum("ij,ij->i", a, np.cross(b, c))
        ok = det != 0
        inv_det = np.zeros_like(det)
        inv_det[ok] = 1.0 / det[ok]
        g1 = np.cross(b, c) * inv_det[:, None]
        g2 = np.cross(c, a) * inv_det[:, None]
        g3 = np.cross(a, b) * inv_det[:, None]
        g0 = -(g1 + g2 + g3)
        return np.stack([g0, g1, g2, g3], axis=1), np.abs(det) / 6.0

    raise ValueError("simplices must have 3 or 4 vertices")


def poly_measures(mesh: PolyMesh) -> np.ndarray:
    """Area (surfaces) or volume (volumes) of every poly."""
    S, owner = mesh.simplices
    _, meas = simplex_gradients(mesh.vertices, S)
    return np.bincount(owner, weights=meas, minlength=mesh.num_polys)


def gradient_matrix(mesh: PolyMesh, *, verbose: bool = False) -> sp.csr_matrix:
    """Sparse (3m, n) discrete gradient mapping vertex scalars to poly vectors.

    Rows ``3p, 3p+1, 3p+2`` hold the x, y, z components on poly ``p``. The
    gradient on a poly is the measure-weighted mean of the gradients on its
    simplices, so it is exact for triangles and tetrahedra and constant on
    any poly for linear input.
    """
    n, m = mesh.num_verts, mesh.num_polys
    S, owner = mesh.simplices
    grads, meas = simplex_gradients(mesh.vertices, S)
    total = np.bincount(owner, weights=meas, minlength=m)
    w = np.zeros_like(meas)
    ok = total[owner] > 0
    w[ok] = meas[ok] / total[owner][ok]
    if verbose and not np.all(total > 0):
        logger.warning("Gradient: %d degenerate polys get a zero gradient", int(np.count_nonzero(total <= 0)))

    d1 = S.shape[1]
    rows = 3 * owner[:, None, None] + np.arange(3)[None, None, :]
    rows = np.broadcast_to(rows, (S.shape[0], d1, 3))
    cols = np.broadcast_to(S[:, :, None], (S.shape[0], d1, 3))
    vals = grads * w[:, None, None]
    G = sp.coo_matrix((vals.ravel(), (rows.ravel(), cols.ravel())), shape=(3 * m, n)).tocsr()
    if verbose:
        logger.info("Gradient operator built: %d x %d, nnz=%d", G.shape[0], G.shape[1], G.nnz)
    return G


def gradient(mesh: PolyMesh, u: np.ndarray, G: Optional[sp.spmatrix] = None) -> np.ndarray:
    """Per-poly gradient ``(m,3)`` of the per-vertex scalar field ``u``."""
    u = np.asarray(u, dtype=np.float64).ravel()
    if u.shape[0] != mesh.num_verts:
        raise ValueError("u must have one value per vertex")
    if G is None:
        G = gradient_matrix(mesh)
    return np.asarray(G @ u).reshape(mesh.num_polys, 3)


def divergence(
    mesh: PolyMesh,
    X: np.ndarray,
    G: Optional[sp.spmatrix] = None,
    measures: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Per-vertex divergence of the per-poly field ``X``.

    Applies the transposed gradient to the field, ``div = G^T X``. This is
    the right-hand side used by the potential reconstruction. When
    ``measures`` is given the field is weighted by it first,
    ``div = G^T (A X)``, the weak divergence that pairs with the
    cotangent or stiffness Laplacian.
    """
    X = np.asarray(X, dtype=np.float64)
    if X.shape != (mesh.num_polys, 3):
        raise ValueError("X must have shape (num_polys, 3)")
    if G is None:
        G = gradient_matrix(mesh)
    if measures is not None:
        measures = np.asarray(measures, dtype=np.float64).ravel()
        if measures.shape[0] != mesh.num_polys:
            raise ValueError("measures must have one value per poly")
        X = measures[:, None] * X
    return np.asarray(G.T @ X.ravel())
