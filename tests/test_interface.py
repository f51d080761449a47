import numpy as np
import pytest
import scipy.sparse as sp

from hsrelax.errors import InvalidLabeling
from hsrelax.interface import find_heat_sources, validate_labeling
from hsrelax.mesh import PolyMesh, structured_grid


def test_validate_labeling_accepts_integral_values():
    labels = validate_labeling([0, 1.0, 1, 0], 4)
    assert labels.dtype == np.int8
    assert list(labels) == [0, 1, 1, 0]


@pytest.mark.parametrize(
    "labels",
    [[0, 1, 1], [0, 1, 2, 0], [0, 1, np.nan, 0], [0, 1, None, 0], [0, 0.5, 1, 0], ["a", 0, 1, 0]],
)
def test_validate_labeling_rejects(labels):
    with pytest.raises(InvalidLabeling):
        validate_labeling(labels, 4)


def test_invalid_labeling_is_a_value_error():
    with pytest.raises(ValueError):
        validate_labeling([0, 3], 2)


def test_two_triangle_sources():
    V = np.array([[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0]], dtype=float)
    pm = PolyMesh(V, [[0, 1, 2], [0, 2, 3]])
    src = find_heat_sources(pm.vertex_poly_incidence, np.array([0, 1]))
    assert list(src) == [0, 2]


def test_sources_on_synthetic_incidence():
    # 4 vertices, 3 polys: v0 in p0, v1 in p0,p1, v2 in p1,p2, v3 in p2 (twice)
    inc = sp.csr_matrix(
        np.array([
            [1, 0, 0],
            [1, 1, 0],
            [0, 1, 1],
            [0, 0, 2],
        ])
    )
    assert list(find_heat_sources(inc, np.array([0, 1, 1]))) == [1]
    assert list(find_heat_sources(inc, np.array([0, 0, 1]))) == [2]
    assert find_heat_sources(inc, np.array([1, 1, 1])).size == 0


def test_every_source_touches_both_labels():
    pm = structured_grid((8, 8), element="tri")
    centroids = pm.vertices[pm.polys].mean(axis=1)
    labels = validate_labeling((np.hypot(centroids[:, 0] - 0.5, centroids[:, 1] - 0.5) < 0.3).astype(int), pm.num_polys)
    src = find_heat_sources(pm.vertex_poly_incidence, labels)
    assert src.size > 0
    assert np.all(np.diff(src) > 0)
    for vid in src:
        touched = set(labels[pm.adj_v2p(vid)].tolist())
        assert touched == {0, 1}
    # vertices left out touch a single label
    others = np.setdiff1d(np.arange(pm.num_verts), src)
    for vid in others:
        assert len(set(labels[pm.adj_v2p(vid)].tolist())) == 1
    # deterministic
    assert np.array_equal(src, find_heat_sources(pm.vertex_poly_incidence, labels))


def test_label_count_mismatch():
    pm = structured_grid((2, 2), element="tri")
    with pytest.raises(InvalidLabeling):
        find_heat_sources(pm.vertex_poly_incidence, np.zeros(3, dtype=int))
