"""Extraction of a level set of a per-vertex field on a triangle mesh.

Relaxation stops at the scalar potential; recovering the boundary curve is a
downstream step and is provided here for triangle meshes.
"""

from __future__ import annotations

from typing import Union

import networkx as nx
import numpy as np
import trimesh as tm

from .mesh import PolyMesh, as_poly_mesh

_TRI_EDGES = np.array([[0, 1], [1, 2], [2, 0]], dtype=np.int64)


def level_set_segments(
    mesh: Union[PolyMesh, tm.Trimesh],
    field: np.ndarray,
    level: float = 0.0,
) -> tuple[np.ndarray, np.ndarray]:
    """Segments of the ``level`` iso-line, one per crossed triangle.

    Vertices exactly at ``level`` count as above it, so every triangle is
    crossed on either zero or two of its edges.

    Returns
    -------
    segments : (k,2,3) float array
        Segment end points.
    edge_keys : (k,2,2) int array
        Sorted mesh edge ``(i,j)`` each end point lies on; shared by the
        segments of neighbouring triangles.
    """
    pm = as_poly_mesh(mesh)
    if pm.element != "tri":
        raise ValueError("level_set_segments supports triangle meshes only")
    f = np.asarray(field, dtype=np.float64).ravel()
    if f.shape[0] != pm.num_verts:
        raise ValueError("field must have one value per vertex")

    F = pm.polys
    s = f[F] - float(level)
    above = s >= 0
    crossed = above[:, _TRI_EDGES[:, 0]] != above[:, _TRI_EDGES[:, 1]]
    rows = np.flatnonzero(crossed.any(axis=1))
    if rows.size == 0:
        return np.zeros((0, 2, 3)), np.zeros((0, 2, 2), dtype=np.int64)

    _, local_edge = np.nonzero(crossed[rows])
    local_edge = local_edge.reshape(-1, 2)
    ends = _TRI_EDGES[local_edge]  # (k,2,2) local vertex ids
    verts = F[rows][np.arange(rows.size)[:, None, None], ends]  # (k,2,2) vertex ids

    sa = f[verts[..., 0]] - level
    sb = f[verts[..., 1]] - level
    t = sa / (sa - sb)
    Va = pm.vertices[verts[..., 0]]
    Vb = pm.vertices[verts[..., 1]]
    segments = Va + t[..., None] * (Vb - Va)
    return segments, np.sort(verts, axis=2)


def level_set_polylines(
    mesh: Union[PolyMesh, tm.Trimesh],
    field: np.ndarray,
    level: float = 0.0,
) -> list[np.ndarray]:
    """Chain the iso-line segments into polylines.

    Closed loops repeat their first point at the end.
    """
    segments, keys = level_set_segments(mesh, field, level)
    G = nx.Graph()
    for seg, key in zip(segments, keys):
        a, b = tuple(key[0]), tuple(key[1])
        G.add_node(a, pos=seg[0])
        G.add_node(b, pos=seg[1])
        G.add_edge(a, b)

    polylines = []
    for comp in nx.connected_components(G):
        sub = G.subgraph(comp)
        ends = [n for n, d in sub.degree() if d == 1]
        start = ends[0] if ends else next(iter(comp))
        order = list(nx.dfs_preorder_nodes(sub, start))
        if not ends and len(order) > 2:
            order.append(start)
        polylines.append(np.array([G.nodes[n]["pos"] for n in order]))
    return polylines
