import numpy as np
import pytest
import trimesh as tm

from hsrelax.laplacian import laplacian_for
from hsrelax.mesh import PolyMesh, as_poly_mesh, example_mesh, structured_grid


def _two_triangles() -> PolyMesh:
    V = np.array([[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0]], dtype=float)
    F = np.array([[0, 1, 2], [0, 2, 3]])
    return PolyMesh(V, F)


def test_two_triangle_topology():
    pm = _two_triangles()
    assert pm.element == "tri"
    assert pm.num_verts == 4 and pm.num_polys == 2
    assert pm.edges.shape == (5, 2)
    assert np.isclose(pm.edge_avg_length, (4.0 + np.sqrt(2.0)) / 5.0)
    assert list(pm.adj_v2p(0)) == [0, 1]
    assert list(pm.adj_v2p(1)) == [0]
    assert list(pm.adj_p2p(0)) == [1]
    assert list(pm.adj_p2p(1)) == [0]


def test_element_inference():
    V = np.array([[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0], [0, 0, 1]], dtype=float)
    assert PolyMesh(V, [[0, 1, 2, 3]]).element == "quad"
    assert PolyMesh(V, [[0, 1, 3, 4]]).element == "quad"
    assert PolyMesh(V, [[0, 1, 3, 4]], element="tet").element == "tet"
    grid = structured_grid((2, 2, 2), element="tet")
    assert PolyMesh(grid.vertices, grid.polys).element == "tet"
    assert structured_grid((1, 1, 1), element="hex").element == "hex"


def test_non_planar_quads_are_not_tetrahedra():
    grid = structured_grid((6, 6), element="quad")
    V = grid.vertices.copy()
    V[:, 2] = (V[:, 0] - 0.5) * (V[:, 1] - 0.5)
    pm = PolyMesh(V, grid.polys)
    assert pm.element == "quad"
    assert pm.dual_adjacency.nnz == grid.dual_adjacency.nnz > 0
    assert laplacian_for(pm) == "uniform"


def test_planar_vertices_are_lifted():
    pm = PolyMesh([[0, 0], [1, 0], [0, 1]], [[0, 1, 2]])
    assert pm.vertices.shape == (3, 3)
    assert np.all(pm.vertices[:, 2] == 0)


def test_invalid_meshes_raise():
    V = np.zeros((3, 3))
    with pytest.raises(ValueError):
        PolyMesh(V, [[0, 1, 3]])
    with pytest.raises(ValueError):
        PolyMesh(V, [0, 1, 2])
    with pytest.raises(ValueError):
        PolyMesh(V, [[0, 1, 2, 0, 1]])
    with pytest.raises(ValueError):
        PolyMesh(V, [[0, 1, 2]], element="quad")
    with pytest.raises(ValueError):
        structured_grid((2, 2), element="hex")


def test_closed_sphere_dual_adjacency():
    mesh = tm.primitives.Sphere(radius=1.0, subdivisions=2)
    pm = PolyMesh.from_trimesh(mesh)
    deg = np.asarray(pm.dual_adjacency.sum(axis=1)).ravel()
    assert np.all(deg == 3)
    assert (pm.dual_adjacency - pm.dual_adjacency.T).nnz == 0


def test_structured_grid_counts():
    tri = structured_grid((4, 3), element="tri")
    assert tri.num_verts == 20 and tri.num_polys == 24
    quad = structured_grid((4, 3), element="quad")
    assert quad.num_polys == 12
    # interior quads have 4 neighbours, corners 2
    deg = np.asarray(quad.dual_adjacency.sum(axis=1)).ravel()
    assert deg.min() == 2 and deg.max() == 4
    hexes = structured_grid((2, 2, 2), element="hex")
    assert hexes.num_verts == 27 and hexes.num_polys == 8
    assert np.all(np.asarray(hexes.dual_adjacency.sum(axis=1)).ravel() == 3)


def test_tet_grid_is_conforming():
    pm = structured_grid((2, 2, 2), element="tet")
    assert pm.num_polys == 48
    # 48 boundary triangles out of 192 tet faces, every other face shared by two tets
    assert pm.dual_adjacency.nnz == 192 - 48


def test_simplex_decomposition():
    pm = structured_grid((2, 1), element="quad")
    S, owner = pm.simplices
    assert S.shape == (4, 3)
    assert list(owner) == [0, 0, 1, 1]


def test_example_meshes_and_conversion():
    sphere = example_mesh("sphere", subdivisions=1)
    assert isinstance(sphere, tm.Trimesh)
    grid = example_mesh("grid", resolution=3)
    pm = as_poly_mesh(grid)
    assert pm.num_polys == 18
    assert isinstance(pm.to_trimesh(), tm.Trimesh)
    assert as_poly_mesh(pm) is pm
    with pytest.raises(ValueError):
        example_mesh("cube")
    with pytest.raises(TypeError):
        as_poly_mesh(np.zeros((3, 3)))
