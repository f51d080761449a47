"""Plain-text input and output around the relaxation pipeline."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np
import trimesh

from .errors import InvalidLabeling
from .interface import validate_labeling
from .relax import RelaxationResult

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

PathLike = Union[str, Path]

# File names of the exported stages
RESULT_FILES = {
    "heat": "u.txt",
    "gradient": "u_gradient.txt",
    "flipped": "X.txt",
    "smoothed": "X_prime.txt",
    "potential": "res.txt",
}


def load_mesh(filepath: PathLike, file_format: Optional[str] = None) -> trimesh.Trimesh:
    """
    Load a triangle mesh from file (OBJ, OFF, PLY, STL, ...).

    Args:
        filepath: Path to mesh file
        file_format: Optional format specification (auto-detected if None)

    Returns:
        Loaded trimesh object, with vertex order preserved
    """
    try:
        if file_format:
            mesh = trimesh.load(str(filepath), file_type=file_format, process=False)
        else:
            mesh = trimesh.load(str(filepath), process=False)
    except Exception as e:
        raise ValueError(f"Failed to load mesh from {filepath}: {str(e)}") from e

    # Ensure we have a single mesh
    if isinstance(mesh, trimesh.Scene):
        geometries = list(mesh.geometry.values())
        if not geometries:
            raise ValueError("No geometry found in mesh scene")
        mesh = geometries[0]

    if not isinstance(mesh, trimesh.Trimesh):
        raise ValueError(f"Loaded object is not a mesh: {type(mesh)}")

    logger.info("Loaded mesh: %d vertices, %d faces", len(mesh.vertices), len(mesh.faces))
    return mesh


def load_labeling(filepath: PathLike, num_polys: Optional[int] = None) -> np.ndarray:
    """Read one label per line. Validated against ``num_polys`` when given."""
    values = []
    with open(filepath, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                values.append(float(line.split()[0]))
            except ValueError as e:
                raise InvalidLabeling(f"Bad label line {line!r} in {filepath}") from e
    labels = np.asarray(values, dtype=np.float64)
    if num_polys is None:
        num_polys = labels.shape[0]
    return validate_labeling(labels, num_polys)


def save_scalar_field(filepath: PathLike, values: np.ndarray) -> None:
    """One value per line."""
    np.savetxt(str(filepath), np.asarray(values, dtype=np.float64).ravel(), fmt="%.17g")


def save_vector_field(filepath: PathLike, vectors: np.ndarray) -> None:
    """One ``x y z`` row per poly."""
    np.savetxt(str(filepath), np.asarray(vectors, dtype=np.float64).reshape(-1, 3), fmt="%.17g")


def load_field(filepath: PathLike) -> np.ndarray:
    """Read back a field written by ``save_scalar_field`` or ``save_vector_field``."""
    return np.loadtxt(str(filepath), dtype=np.float64, ndmin=1)


def save_result(result: RelaxationResult, outdir: PathLike) -> dict[str, Path]:
    """Write every stage of ``result`` to ``outdir`` and return the paths by stage name."""
    out = Path(outdir)
    out.mkdir(parents=True, exist_ok=True)
    paths = {}
    for name, fname in RESULT_FILES.items():
        p = out / fname
        data = getattr(result, name)
        if data.ndim == 2:
            save_vector_field(p, data)
        else:
            save_scalar_field(p, data)
        paths[name] = p
        logger.debug("Wrote %s to %s", name, p)
    return paths
