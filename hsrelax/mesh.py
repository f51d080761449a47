"""
Mesh service used by the relaxation pipeline.

A ``PolyMesh`` holds vertex coordinates and a single-element-type poly array
(triangles, quads, tetrahedra or hexahedra) and exposes the adjacency the
pipeline consumes: vertex-to-poly incidence, poly-to-poly (dual) adjacency,
edges and the average edge length. Labels and per-vertex values are not
stored on the mesh; they live in arrays owned by the caller.
"""

from __future__ import annotations

import logging
from functools import cached_property
from typing import Optional, Sequence

import numpy as np
import scipy.sparse as sp
import trimesh

# Module-level logger
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


ELEMENT_ARITY = {"tri": 3, "quad": 4, "tet": 4, "hex": 8}
SURFACE_ELEMENTS = ("tri", "quad")
SIMPLEX_ELEMENTS = ("tri", "tet")

# Hexahedra use the bottom face 0-1-2-3 and the top face 4-5-6-7, with vertex
# 4 above vertex 0.
_EDGES = {
    "tri": [(0, 1), (1, 2), (2, 0)],
    "quad": [(0, 1), (1, 2), (2, 3), (3, 0)],
    "tet": [(0, 1), (0, 2), (0, 3), (1, 2), (1, 3), (2, 3)],
    "hex": [
        (0, 1), (1, 2), (2, 3), (3, 0),
        (4, 5), (5, 6), (6, 7), (7, 4),
        (0, 4), (1, 5), (2, 6), (3, 7),
    ],
}

# Facets shared by dual-adjacent polys: edges on surfaces, faces on volumes.
_FACETS = {
    "tri": _EDGES["tri"],
    "quad": _EDGES["quad"],
    "tet": [(0, 1, 2), (0, 1, 3), (0, 2, 3), (1, 2, 3)],
    "hex": [(0, 1, 2, 3), (4, 5, 6, 7), (0, 1, 5, 4), (1, 2, 6, 5), (2, 3, 7, 6), (3, 0, 4, 7)],
}

# Simplex decomposition used by the geometric operators. The hexahedron split
# is the 6-tet decomposition around the 0-6 diagonal, which is conforming on
# structured grids.
_SIMPLICES = {
    "tri": [(0, 1, 2)],
    "quad": [(0, 1, 2), (0, 2, 3)],
    "tet": [(0, 1, 2, 3)],
    "hex": [
        (0, 1, 2, 6),
        (0, 1, 5, 6),
        (0, 3, 2, 6),
        (0, 3, 7, 6),
        (0, 4, 5, 6),
        (0, 4, 7, 6),
    ],
}


def _infer_element(P: np.ndarray) -> str:
    k = P.shape[1]
    if k == 3:
        return "tri"
    if k == 8:
        return "hex"
    if k == 4:
        if P.shape[0] < 2:
            return "quad"
        # Face-connected tetrahedra share vertex triples; quads never do, planar
        # or not.
        tri = np.sort(P[:, _FACETS["tet"]], axis=2).reshape(-1, 3)
        _, counts = np.unique(tri, axis=0, return_counts=True)
        if np.any(counts > 1):
            return "tet"
        return "quad"
    raise ValueError(f"Cannot infer element type for polys with {k} vertices")


class PolyMesh:
    """Single-element-type polytopal mesh.

    Parameters
    ----------
    vertices : (n,3) or (n,2) float array
        Vertex positions. Planar input is lifted to z=0.
    polys : (m,k) int array
        Poly connectivity, ``k`` matching the element arity.
    element : {"tri", "quad", "tet", "hex"}, optional
        Element type. Inferred from the arity when omitted; four-vertex polys
        are tetrahedra when neighbouring polys share a triangular face and
        quads otherwise, so a single or face-disconnected tetrahedron needs
        ``element="tet"``.
    """

    def __init__(self, vertices, polys, element: Optional[str] = None):
        V = np.asarray(vertices, dtype=np.float64)
        P = np.asarray(polys)
        if V.ndim != 2 or V.shape[1] not in (2, 3):
            raise ValueError("vertices must have shape (n,3) or (n,2)")
        if V.shape[1] == 2:
            V = np.hstack([V, np.zeros((V.shape[0], 1))])
        if P.ndim != 2:
            raise ValueError("polys must have shape (m,k)")
        if P.size and not np.issubdtype(P.dtype, np.integer):
            if not np.all(np.equal(np.mod(P, 1), 0)):
                raise ValueError("polys must hold integer vertex indices")
        P = P.astype(np.int64)
        if P.size and (P.min() < 0 or P.max() >= V.shape[0]):
            raise ValueError("poly vertex index out of range")

        if element is None:
            element = _infer_element(P)
        if element not in ELEMENT_ARITY:
            raise ValueError(f"Unknown element type: {element}")
        if P.shape[1] != ELEMENT_ARITY[element]:
            raise ValueError(
                f"{element} polys need {ELEMENT_ARITY[element]} vertices, got {P.shape[1]}"
            )

        self.vertices = V
        self.polys = P
        self.element = element

    def __repr__(self) -> str:
        return f"PolyMesh(element={self.element!r}, verts={self.num_verts}, polys={self.num_polys})"

    # =================================================================
    # CONSTRUCTION
    # =================================================================

    @classmethod
    def from_trimesh(cls, mesh: trimesh.Trimesh) -> "PolyMesh":
        """Wrap the vertices and faces of a ``trimesh.Trimesh``."""
        if not isinstance(mesh, trimesh.Trimesh):
            raise TypeError("from_trimesh expects a trimesh.Trimesh")
        V = mesh.vertices.view(np.ndarray).astype(np.float64, copy=True)
        F = mesh.faces.view(np.ndarray).astype(np.int64, copy=True)
        return cls(V, F, element="tri")

    def to_trimesh(self) -> trimesh.Trimesh:
        if self.element != "tri":
            raise ValueError("Only triangle meshes convert to trimesh.Trimesh")
        return trimesh.Trimesh(vertices=self.vertices.copy(), faces=self.polys.copy(), process=False)

    # =================================================================
    # COUNTS AND CLASSIFICATION
    # =================================================================

    @property
    def num_verts(self) -> int:
        return int(self.vertices.shape[0])

    @property
    def num_polys(self) -> int:
        return int(self.polys.shape[0])

    @property
    def is_surface(self) -> bool:
        return self.element in SURFACE_ELEMENTS

    @property
    def is_simplicial(self) -> bool:
        return self.element in SIMPLEX_ELEMENTS

    # =================================================================
    # TOPOLOGY
    # =================================================================

    @cached_property
    def edges(self) -> np.ndarray:
        """Unique undirected edges as sorted ``(e,2)`` vertex pairs."""
        local = np.asarray(_EDGES[self.element], dtype=np.int64)
        E = self.polys[:, local].reshape(-1, 2)
        if E.shape[0] == 0:
            return np.zeros((0, 2), dtype=np.int64)
        return np.unique(np.sort(E, axis=1), axis=0)

    @cached_property
    def edge_avg_length(self) -> float:
        E = self.edges
        if E.shape[0] == 0:
            raise ValueError("Mesh has no edges")
        return float(np.mean(np.linalg.norm(self.vertices[E[:, 0]] - self.vertices[E[:, 1]], axis=1)))

    @cached_property
    def vertex_poly_incidence(self) -> sp.csr_matrix:
        """Sparse (n,m) 0/1 matrix, entry (v,p) set when vertex v belongs to poly p."""
        n, m = self.num_verts, self.num_polys
        k = self.polys.shape[1]
        rows = self.polys.ravel()
        cols = np.repeat(np.arange(m, dtype=np.int64), k)
        inc = sp.coo_matrix((np.ones(rows.shape[0]), (rows, cols)), shape=(n, m)).tocsr()
        inc.data[:] = 1.0
        return inc

    def adj_v2p(self, vid: int) -> np.ndarray:
        """Polys incident to vertex ``vid``."""
        inc = self.vertex_poly_incidence
        return np.sort(inc.indices[inc.indptr[vid]:inc.indptr[vid + 1]])

    @cached_property
    def dual_adjacency(self) -> sp.csr_matrix:
        """Sparse (m,m) 0/1 matrix linking polys that share a facet."""
        m = self.num_polys
        local = np.asarray(_FACETS[self.element], dtype=np.int64)
        f, s = local.shape
        if m == 0:
            return sp.csr_matrix((0, 0))
        keys = np.sort(self.polys[:, local].reshape(-1, s), axis=1)
        owner = np.repeat(np.arange(m, dtype=np.int64), f)
        _, inv = np.unique(keys, axis=0, return_inverse=True)
        inv = np.asarray(inv).ravel()
        facet_poly = sp.coo_matrix(
            (np.ones(owner.shape[0]), (inv, owner)), shape=(int(inv.max()) + 1, m)
        ).tocsr()
        D = (facet_poly.T @ facet_poly).tocsr()
        D = (D - sp.diags(D.diagonal())).tocsr()
        D.eliminate_zeros()
        D.data[:] = 1.0
        return D

    def adj_p2p(self, pid: int) -> np.ndarray:
        """Polys sharing a facet with poly ``pid``."""
        D = self.dual_adjacency
        return np.sort(D.indices[D.indptr[pid]:D.indptr[pid + 1]])

    @cached_property
    def vertex_adjacency(self) -> sp.csr_matrix:
        """Sparse (n,n) 0/1 edge graph of the mesh."""
        n = self.num_verts
        E = self.edges
        A = sp.coo_matrix(
            (np.ones(2 * E.shape[0]), (np.r_[E[:, 0], E[:, 1]], np.r_[E[:, 1], E[:, 0]])),
            shape=(n, n),
        ).tocsr()
        A.data[:] = 1.0
        return A

    @cached_property
    def simplices(self) -> tuple[np.ndarray, np.ndarray]:
        """Simplex decomposition ``(S, owner)`` of every poly.

        ``S`` is an ``(s, d+1)`` vertex array and ``owner[i]`` the poly that
        simplex ``i`` belongs to. Triangles and tetrahedra map to themselves.
        """
        local = np.asarray(_SIMPLICES[self.element], dtype=np.int64)
        S = self.polys[:, local].reshape(-1, local.shape[1])
        owner = np.repeat(np.arange(self.num_polys, dtype=np.int64), local.shape[0])
        return S, owner


# =================================================================
# EXAMPLE AND TEST MESHES
# =================================================================


def structured_grid(
    resolution: Sequence[int],
    *,
    element: str = "tri",
    size: float = 1.0,
) -> PolyMesh:
    """Build a regular grid over the unit square or cube scaled by ``size``.

    Parameters
    ----------
    resolution : (nx, ny) or (nx, ny, nz)
        Cells per axis. Two entries give a planar mesh of ``tri`` or ``quad``
        elements; three entries give a volume mesh of ``tet`` or ``hex``.
    element : {"tri", "quad", "tet", "hex"}
        Element type. Triangles split each cell along its 0-2 diagonal,
        tetrahedra use the 6-tet split of each cube.
    size : float
        Edge length of the whole domain.

    Examples
    --------
    >>> structured_grid((4, 4), element="quad").num_polys
    16
    """
    res = [int(r) for r in resolution]
    if any(r < 1 for r in res):
        raise ValueError("resolution entries must be >= 1")

    if len(res) == 2:
        if element not in SURFACE_ELEMENTS:
            raise ValueError("2D grids support 'tri' or 'quad'")
        nx, ny = res
        xs, ys = np.meshgrid(np.linspace(0, size, nx + 1), np.linspace(0, size, ny + 1), indexing="xy")
        V = np.column_stack([xs.ravel(), ys.ravel(), np.zeros(xs.size)])
        i, j = np.meshgrid(np.arange(nx), np.arange(ny), indexing="xy")
        i, j = i.ravel(), j.ravel()

        def vid(a, b):
            return a + (nx + 1) * b

        c = np.column_stack([vid(i, j), vid(i + 1, j), vid(i + 1, j + 1), vid(i, j + 1)])
        if element == "quad":
            P = c
        else:
            P = np.vstack([c[:, [0, 1, 2]], c[:, [0, 2, 3]]])
        return PolyMesh(V, P, element=element)

    if len(res) == 3:
        if element not in ("tet", "hex"):
            raise ValueError("3D grids support 'tet' or 'hex'")
        nx, ny, nz = res
        zs, ys, xs = np.meshgrid(
            np.linspace(0, size, nz + 1),
            np.linspace(0, size, ny + 1),
            np.linspace(0, size, nx + 1),
            indexing="ij",
        )
        V = np.column_stack([xs.ravel(), ys.ravel(), zs.ravel()])
        k, j, i = np.meshgrid(np.arange(nz), np.arange(ny), np.arange(nx), indexing="ij")
        i, j, k = i.ravel(), j.ravel(), k.ravel()

        def vid(a, b, c):
            return a + (nx + 1) * (b + (ny + 1) * c)

        H = np.column_stack([
            vid(i, j, k), vid(i + 1, j, k), vid(i + 1, j + 1, k), vid(i, j + 1, k),
            vid(i, j, k + 1), vid(i + 1, j, k + 1), vid(i + 1, j + 1, k + 1), vid(i, j + 1, k + 1),
        ])
        if element == "hex":
            P = H
        else:
            local = np.asarray(_SIMPLICES["hex"], dtype=np.int64)
            P = H[:, local].reshape(-1, 4)
        return PolyMesh(V, P, element=element)

    raise ValueError("resolution must have 2 or 3 entries")


def example_mesh(
    kind: str = "sphere",
    *,
    # Sphere params
    radius: float = 1.0,
    subdivisions: int = 3,
    # Torus params
    major_radius: float = 1.0,
    minor_radius: float = 0.3,
    major_sections: int | None = 64,
    minor_sections: int | None = 32,
    # Grid params
    resolution: int = 16,
    **kwargs,
) -> trimesh.Trimesh:
    """Create a simple demo triangle mesh.

    Parameters
    ----------
    kind : {"sphere", "torus", "grid"}
        Type of mesh to generate. Default "sphere".
    radius : float
        Sphere radius (when kind="sphere"). Default 1.0.
    subdivisions : int
        Icosphere subdivision level (when kind="sphere"). Default 3.
    major_radius, minor_radius : float
        Torus radii (when kind="torus").
    major_sections, minor_sections : int or None
        Torus resolution.
    resolution : int
        Cells per side of the flat unit square (when kind="grid"). Default 16.
    **kwargs : dict
        Passed through to the trimesh.creation helpers.

    Returns
    -------
    trimesh.Trimesh
        Generated mesh.

    Examples
    --------
    >>> m = example_mesh("sphere", subdivisions=2)
    >>> t = example_mesh("torus", major_radius=1.0, minor_radius=0.25)
    """
    k = (kind or "sphere").lower()
    if k == "sphere":
        return trimesh.creation.icosphere(subdivisions=int(subdivisions), radius=float(radius), **kwargs)
    elif k == "torus":
        return trimesh.creation.torus(
            major_radius=float(major_radius),
            minor_radius=float(minor_radius),
            major_sections=None if major_sections is None else int(major_sections),
            minor_sections=None if minor_sections is None else int(minor_sections),
            **kwargs,
        )
    elif k == "grid":
        g = structured_grid((resolution, resolution), element="tri")
        return g.to_trimesh()
    else:
        raise ValueError("example_mesh kind must be 'sphere', 'torus' or 'grid'")


def as_poly_mesh(mesh) -> PolyMesh:
    """Return ``mesh`` as a ``PolyMesh``, wrapping trimesh input."""
    if isinstance(mesh, PolyMesh):
        return mesh
    if isinstance(mesh, trimesh.Trimesh):
        return PolyMesh.from_trimesh(mesh)
    raise TypeError(f"Unsupported mesh type: {type(mesh)}")
