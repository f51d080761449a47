from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import scipy.sparse as sp

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def normalize_field(X: np.ndarray) -> np.ndarray:
    """Scale every row of ``X`` to unit length; zero rows stay zero."""
    X = np.asarray(X, dtype=np.float64)
    norms = np.linalg.norm(X, axis=1)
    out = np.zeros_like(X)
    nz = norms > 0
    out[nz] = X[nz] / norms[nz, None]
    return out


def flip_regions(X: np.ndarray, labels: np.ndarray) -> np.ndarray:
    """Negate the vectors of label-1 polys and renormalize the whole field.

    The heat gradient points towards the interface on both sides; after the
    flip it crosses the interface in one consistent direction, from label 0
    to label 1.
    """
    X = np.asarray(X, dtype=np.float64)
    labels = np.asarray(labels).ravel()
    if labels.shape[0] != X.shape[0]:
        raise ValueError("labels must have one entry per poly")
    out = X.copy()
    out[labels == 1] *= -1.0
    return normalize_field(out)


def smooth_field(
    X: np.ndarray,
    dual_adjacency: sp.spmatrix,
    passes: int = 5,
    *,
    verbose: bool = False,
    log: Optional[logging.Logger] = None,
) -> np.ndarray:
    """Local averaging of a unit vector field over the dual graph.

    Each pass replaces every vector by the mean of itself and its dual
    neighbours (divided by neighbour count + 1) and renormalizes it. A pass
    reads only the previous pass's field, so the result does not depend on
    poly order. The field is renormalized once more at the end.

    Parameters
    ----------
    X : (m,3) float array
    dual_adjacency : (m,m) sparse 0/1 matrix
        Polys sharing a facet; the diagonal is ignored.
    passes : int, default 5
        Number of sweeps. More passes remove more boundary detail.

    Returns
    -------
    (m,3) smoothed unit field.
    """
    if passes < 0:
        raise ValueError("passes must be >= 0")
    _log = log or logger
    X = np.asarray(X, dtype=np.float64)
    m = X.shape[0]
    D = sp.csr_matrix(dual_adjacency, dtype=np.float64)
    if D.shape != (m, m):
        raise ValueError("dual_adjacency must be (num_polys, num_polys)")
    D = (D - sp.diags(D.diagonal())).tocsr()
    D.eliminate_zeros()
    D.data[:] = 1.0
    S = (D + sp.identity(m, format="csr")).tocsr()
    count = np.asarray(S.sum(axis=1)).ravel()

    field = X.copy()
    for k in range(passes):
        field = normalize_field(np.asarray(S @ field) / count[:, None])
        if verbose and ((k + 1) % max(1, passes // 5) == 0 or k == passes - 1):
            _log.info("Smoothing: completed pass %d/%d", k + 1, passes)
    return normalize_field(field)
