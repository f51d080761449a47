from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

import logging
import numpy as np
import trimesh as tm

from .field import flip_regions, smooth_field
from .gradient import gradient, gradient_matrix
from .heat import diffuse_from_interface
from .interface import find_heat_sources, validate_labeling
from .laplacian import LAPLACIAN_WEIGHTS
from .mesh import PolyMesh, as_poly_mesh
from .potential import SOLVERS, reconstruct_potential

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass(frozen=True)
class RelaxationConfig:
    """Parameters of the relaxation.

    smoothing_passes : int, default 5
        Sweeps of the dual-graph averaging. More passes remove finer boundary detail.
    constraint_weight : float, default 0.1
        Weight of the rows pinning the potential to 0 at the heat sources.
        Higher values anchor the interface more tightly at the cost of conditioning.
        Must be non-negative; 0 is accepted here but the solve raises
        ``SingularSystem``.
    time_scale : float, default 1.0
        Heat diffusion time as a multiple of the squared average edge length.
    laplacian : {"cotangent", "uniform"} or None
        Laplacian weights for the potential; None picks by element type.
    solver : {"normal", "lsqr"}
        Least-squares method for the potential.
    """

    smoothing_passes: int = 5
    constraint_weight: float = 0.1
    time_scale: float = 1.0
    laplacian: Optional[str] = None
    solver: str = "normal"

    def __post_init__(self):
        if int(self.smoothing_passes) != self.smoothing_passes or self.smoothing_passes < 0:
            raise ValueError("smoothing_passes must be a non-negative integer")
        if self.constraint_weight < 0:
            raise ValueError("constraint_weight must be non-negative")
        if not self.time_scale > 0:
            raise ValueError("time_scale must be positive")
        if self.laplacian is not None and self.laplacian not in LAPLACIAN_WEIGHTS:
            raise ValueError(f"Unknown laplacian weights: {self.laplacian}")
        if self.solver not in SOLVERS:
            raise ValueError(f"Unknown solver: {self.solver}")


@dataclass
class RelaxationResult:
    heat_sources: np.ndarray  # (k,) interface vertices
    heat: np.ndarray  # (n,) heat field in [0,1]
    gradient: np.ndarray  # (m,3) heat gradient
    flipped: np.ndarray  # (m,3) unit field after the region flip
    smoothed: np.ndarray  # (m,3) unit field after smoothing
    raw_potential: np.ndarray  # (n,) potential, relaxed boundary at 0
    potential: np.ndarray  # (n,) potential in [0,1]
    interface_level: float  # value of the relaxed boundary in ``potential``, clamped to [0,1]


def _interface_level(raw: np.ndarray) -> float:
    # The soft pinning may leave every vertex on one side of 0; the level is
    # then clamped to the nearest end of the normalized range.
    lo, hi = float(raw.min()), float(raw.max())
    if hi - lo <= 0:
        return 0.0
    return float(np.clip((0.0 - lo) / (hi - lo), 0.0, 1.0))


def relax(
    mesh: Union[PolyMesh, tm.Trimesh],
    labels,
    *,
    config: Optional[RelaxationConfig] = None,
    verbose: bool = False,
    log: Optional[logging.Logger] = None,
) -> RelaxationResult:
    """Relax the boundary of a per-poly bipartition into a smooth scalar potential.

    The stages run strictly in order: interface detection, heat diffusion from
    the interface, gradient of the heat, flip of the label-1 vectors, dual-graph
    smoothing, and least-squares reconstruction of a potential pinned to 0 at
    the interface.

    Parameters
    ----------
    mesh : PolyMesh or trimesh.Trimesh
        Input mesh. For a Trimesh the raw potential is also stored in
        ``mesh.vertex_attributes["potential"]``.
    labels : sequence of int
        One label in {0, 1} per poly.
    config : RelaxationConfig, optional
        Algorithm parameters; defaults when omitted.
    verbose : bool, default False
        If True, log stage progress.
    log : logging.Logger, optional
        Custom logger. If None, use module logger.

    Returns
    -------
    RelaxationResult

    Raises
    ------
    InvalidLabeling, NoInterface, SingularSystem
    """
    cfg = config or RelaxationConfig()
    _log = log or logger
    pm = as_poly_mesh(mesh)
    if verbose:
        _log.info("Relax: %s mesh with %d vertices, %d polys", pm.element, pm.num_verts, pm.num_polys)

    lab = validate_labeling(labels, pm.num_polys)
    sources = find_heat_sources(pm.vertex_poly_incidence, lab, verbose=verbose, log=_log)

    heat = diffuse_from_interface(pm, sources, time_scale=cfg.time_scale, verbose=verbose, log=_log)
    G = gradient_matrix(pm, verbose=verbose)
    grad = gradient(pm, heat, G)

    flipped = flip_regions(grad, lab)
    smoothed = smooth_field(flipped, pm.dual_adjacency, cfg.smoothing_passes, verbose=verbose, log=_log)

    raw, phi = reconstruct_potential(
        pm,
        smoothed,
        sources,
        constraint_weight=cfg.constraint_weight,
        weights=cfg.laplacian,
        method=cfg.solver,
        G=G,
        verbose=verbose,
        log=_log,
    )

    if isinstance(mesh, tm.Trimesh):
        mesh.vertex_attributes["potential"] = raw.copy()

    level = _interface_level(raw)
    if verbose:
        _log.info("Relax: done, relaxed boundary at normalized level %.4f", level)
    return RelaxationResult(
        heat_sources=sources,
        heat=heat,
        gradient=grad,
        flipped=flipped,
        smoothed=smoothed,
        raw_potential=raw,
        potential=phi,
        interface_level=level,
    )


def labels_from_field(mesh: Union[PolyMesh, tm.Trimesh], field: np.ndarray, level: float = 0.5) -> np.ndarray:
    """Label each poly 1 when the mean of its vertex values exceeds ``level``, else 0."""
    pm = as_poly_mesh(mesh)
    field = np.asarray(field, dtype=np.float64).ravel()
    if field.shape[0] != pm.num_verts:
        raise ValueError("field must have one value per vertex")
    mean = field[pm.polys].mean(axis=1)
    return (mean > level).astype(np.int8)
