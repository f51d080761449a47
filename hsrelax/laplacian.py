from __future__ import annotations

import logging
from typing import Callable, Optional

import numpy as np
import scipy.sparse as sp

from .gradient import gradient_matrix, poly_measures
from .mesh import PolyMesh

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def _edge_lengths(V: np.ndarray, F: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    # edge lengths opposite to vertices 0,1,2
    a = np.linalg.norm(V[F[:, 1]] - V[F[:, 2]], axis=1)
    b = np.linalg.norm(V[F[:, 2]] - V[F[:, 0]], axis=1)
    c = np.linalg.norm(V[F[:, 0]] - V[F[:, 1]], axis=1)
    return a, b, c


def _cot_angles_from_edges(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    # Heron's formula for area
    s = 0.5 * (a + b + c)
    area = np.sqrt(np.maximum(s * (s - a) * (s - b) * (s - c), 1e-32))
    # cot(alpha) opposite edge a, etc. Using 4A in denominator (since |u x v| = 2A)
    cot_alpha = (b * b + c * c - a * a) / (4.0 * area)
    cot_beta = (c * c + a * a - b * b) / (4.0 * area)
    cot_gamma = (a * a + b * b - c * c) / (4.0 * area)
    return cot_alpha, cot_beta, cot_gamma


def cotangent_laplacian(V: np.ndarray, F: np.ndarray, *, verbose: bool = False) -> sp.csr_matrix:
    """Build symmetric cotangent Laplacian L for a triangle mesh.

    L(i,i) = -sum_{j!=i} L(i,j)
    L(i,j) = -(cot alpha + cot beta)/2 for edge (i,j).

    Parameters
    ----------
    V : (n,3) float array
    F : (m,3) int array (triangles)

    Returns
    -------
    L : (n,n) csr_matrix
    """
    n = V.shape[0]
    if verbose:
        logger.info("Building cotangent Laplacian for %d vertices, %d faces", n, F.shape[0])
    a, b, c = _edge_lengths(V, F)
    cot_a, cot_b, cot_c = _cot_angles_from_edges(a, b, c)

    i0, i1, i2 = F[:, 0], F[:, 1], F[:, 2]

    # edge (i1,i2) is opposite i0, and so on
    I = np.concatenate([i1, i2, i2, i0, i0, i1])
    J = np.concatenate([i2, i1, i0, i2, i1, i0])
    W = np.concatenate([cot_a, cot_a, cot_b, cot_b, cot_c, cot_c])

    C = sp.coo_matrix((W, (I, J)), shape=(n, n)).tocsr()

    L = -0.5 * C
    diag = -np.array(L.sum(axis=1)).ravel()
    L = L + sp.diags(diag, format="csr")
    if verbose:
        logger.info("Laplacian built: nnz=%d", L.nnz)
    return L


def stiffness_laplacian(
    mesh: PolyMesh,
    G: Optional[sp.spmatrix] = None,
    *,
    verbose: bool = False,
) -> sp.csr_matrix:
    """Stiffness matrix ``G^T A G`` of the discrete gradient.

    On tetrahedra this is the 3D cotangent Laplacian; on quads and hexahedra it
    is the stiffness of the simplex decomposition used by ``gradient_matrix``.
    """
    if G is None:
        G = gradient_matrix(mesh)
    A = sp.diags(np.repeat(poly_measures(mesh), 3), format="csr")
    L = (G.T @ A @ G).tocsr()
    L = 0.5 * (L + L.T)
    if verbose:
        logger.info("Stiffness Laplacian built for %s mesh: nnz=%d", mesh.element, L.nnz)
    return L.tocsr()


def uniform_laplacian(mesh: PolyMesh, *, verbose: bool = False) -> sp.csr_matrix:
    """Graph Laplacian with unit weight on every mesh edge."""
    A = mesh.vertex_adjacency
    deg = np.asarray(A.sum(axis=1)).ravel()
    L = (sp.diags(deg, format="csr") - A).tocsr()
    if verbose:
        logger.info("Uniform Laplacian built: nnz=%d", L.nnz)
    return L


def lumped_mass_matrix(mesh: PolyMesh, *, verbose: bool = False) -> sp.csr_matrix:
    """Lumped mass matrix: each poly gives an equal share of its measure to its vertices."""
    n = mesh.num_verts
    k = mesh.polys.shape[1]
    share = poly_measures(mesh) / float(k)
    Mdiag = np.zeros(n, dtype=float)
    for j in range(k):
        np.add.at(Mdiag, mesh.polys[:, j], share)
    M = sp.diags(Mdiag, format="csr")
    if verbose:
        logger.info("Mass matrix built: positive entries=%d", int(np.count_nonzero(Mdiag > 0)))
    return M


def _cotangent_weights(mesh: PolyMesh, *, verbose: bool = False) -> sp.csr_matrix:
    if mesh.element == "tri":
        return cotangent_laplacian(mesh.vertices, mesh.polys, verbose=verbose)
    return stiffness_laplacian(mesh, verbose=verbose)


# Weighting schemes, each returning the positive semi-definite Laplacian.
LAPLACIAN_WEIGHTS: dict[str, Callable[..., sp.csr_matrix]] = {
    "cotangent": _cotangent_weights,
    "uniform": uniform_laplacian,
}


def laplacian_for(mesh: PolyMesh) -> str:
    """Default weighting scheme for the mesh element type.

    Cotangent weights for triangles and tetrahedra, uniform weights otherwise.
    """
    return "cotangent" if mesh.is_simplicial else "uniform"


def laplacian_matrix(mesh: PolyMesh, weights: Optional[str] = None, *, verbose: bool = False) -> sp.csr_matrix:
    """Positive semi-definite Laplacian (positive diagonal) with the chosen weights."""
    scheme = weights or laplacian_for(mesh)
    try:
        build = LAPLACIAN_WEIGHTS[scheme]
    except KeyError:
        raise ValueError(f"Unknown laplacian weights: {scheme}") from None
    return build(mesh, verbose=verbose)


def laplacian_entries(mesh: PolyMesh, weights: Optional[str] = None, *, verbose: bool = False) -> sp.csr_matrix:
    """Laplacian in the negative semi-definite convention.

    Off-diagonal entries carry the positive edge weights and the diagonal holds
    minus their row sum.
    """
    return (-laplacian_matrix(mesh, weights, verbose=verbose)).tocsr()
