from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import scipy.sparse as sp

from .errors import InvalidLabeling

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def validate_labeling(labels, num_polys: int) -> np.ndarray:
    """Check a bipartition labeling and return it as an int8 array.

    Parameters
    ----------
    labels : sequence of numbers
        One label per poly, in poly index order. Integral floats (e.g. values
        read back from a scalar field file) are accepted.
    num_polys : int
        Expected number of labels.

    Raises
    ------
    InvalidLabeling
        On a size mismatch, a missing (NaN / None) label, or a value outside {0, 1}.
    """
    try:
        arr = np.asarray(labels, dtype=np.float64).ravel()
    except (TypeError, ValueError) as e:
        raise InvalidLabeling(f"Labels are not numeric: {e}") from e
    if arr.shape[0] != num_polys:
        raise InvalidLabeling(f"Expected {num_polys} labels, got {arr.shape[0]}")
    missing = ~np.isfinite(arr)
    if np.any(missing):
        raise InvalidLabeling(f"Poly {int(np.flatnonzero(missing)[0])} has no label")
    bad = (arr != 0) & (arr != 1)
    if np.any(bad):
        pid = int(np.flatnonzero(bad)[0])
        raise InvalidLabeling(f"Poly {pid} has label {arr[pid]!r}, expected 0 or 1")
    return arr.astype(np.int8)


def find_heat_sources(
    incidence: sp.spmatrix,
    labels: np.ndarray,
    *,
    verbose: bool = False,
    log: Optional[logging.Logger] = None,
) -> np.ndarray:
    """Vertices incident to at least one poly of each label.

    Parameters
    ----------
    incidence : (n,m) sparse matrix
        Vertex-to-poly incidence; any nonzero entry (v,p) means v touches p.
    labels : (m,) array of 0/1
        Poly labels, already validated.

    Returns
    -------
    (k,) int64 array of vertex ids in ascending order, each listed once.
    """
    _log = log or logger
    labels = np.asarray(labels).ravel()
    inc = sp.csr_matrix(incidence, dtype=np.float64, copy=True)
    if inc.shape[1] != labels.shape[0]:
        raise InvalidLabeling(f"Expected {inc.shape[1]} labels, got {labels.shape[0]}")
    inc.data = (inc.data != 0).astype(np.float64)
    has_a = np.asarray(inc @ (labels == 0).astype(np.float64)).ravel() > 0
    has_b = np.asarray(inc @ (labels == 1).astype(np.float64)).ravel() > 0
    sources = np.flatnonzero(has_a & has_b).astype(np.int64)
    if verbose:
        _log.info("Interface: %d heat sources out of %d vertices", sources.shape[0], inc.shape[0])
    return sources
