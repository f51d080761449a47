import numpy as np
import pytest

from hsrelax.gradient import divergence, gradient, gradient_matrix, poly_measures
from hsrelax.mesh import structured_grid


@pytest.mark.parametrize(
    "resolution,element",
    [((4, 3), "tri"), ((4, 3), "quad"), ((2, 2, 2), "tet"), ((2, 2, 2), "hex")],
)
def test_gradient_of_linear_function_is_exact(resolution, element):
    pm = structured_grid(resolution, element=element)
    a = np.array([0.3, -1.2, 2.0])
    if len(resolution) == 2:
        a[2] = 0.0  # planar mesh only sees in-plane components
    u = pm.vertices @ a
    g = gradient(pm, u)
    assert g.shape == (pm.num_polys, 3)
    assert np.allclose(g, a[None, :], atol=1e-10)


def test_gradient_matrix_shape_and_constants():
    pm = structured_grid((3, 3), element="tri")
    G = gradient_matrix(pm)
    assert G.shape == (3 * pm.num_polys, pm.num_verts)
    # constant functions have zero gradient
    assert np.allclose(G @ np.ones(pm.num_verts), 0.0, atol=1e-12)


def test_poly_measures_sum_to_domain_size():
    assert np.isclose(poly_measures(structured_grid((5, 4), element="tri", size=2.0)).sum(), 4.0)
    assert np.isclose(poly_measures(structured_grid((5, 4), element="quad", size=2.0)).sum(), 4.0)
    assert np.isclose(poly_measures(structured_grid((2, 3, 2), element="tet")).sum(), 1.0)
    assert np.isclose(poly_measures(structured_grid((2, 3, 2), element="hex")).sum(), 1.0)


def test_weighted_divergence_is_adjoint_of_gradient():
    rng = np.random.default_rng(0)
    pm = structured_grid((4, 4), element="tri")
    X = rng.normal(size=(pm.num_polys, 3))
    u = rng.normal(size=pm.num_verts)
    A = poly_measures(pm)
    lhs = float(divergence(pm, X, measures=A) @ u)
    rhs = float(np.sum(A * np.einsum("ij,ij->i", X, gradient(pm, u))))
    assert np.isclose(lhs, rhs)


def test_divergence_is_plain_transpose_by_default():
    rng = np.random.default_rng(1)
    pm = structured_grid((3, 3), element="tri")
    X = rng.normal(size=(pm.num_polys, 3))
    G = gradient_matrix(pm)
    assert np.allclose(divergence(pm, X), G.T @ X.ravel())


def test_shape_checks():
    pm = structured_grid((2, 2), element="tri")
    with pytest.raises(ValueError):
        gradient(pm, np.zeros(pm.num_verts + 1))
    with pytest.raises(ValueError):
        divergence(pm, np.zeros((pm.num_polys, 2)))
    with pytest.raises(ValueError):
        divergence(pm, np.zeros((pm.num_polys, 3)), measures=np.ones(pm.num_polys - 1))
