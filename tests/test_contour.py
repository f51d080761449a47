import numpy as np
import pytest
import trimesh as tm

from hsrelax.contour import level_set_polylines, level_set_segments
from hsrelax.mesh import structured_grid


def test_straight_level_line_on_grid():
    pm = structured_grid((4, 4), element="tri")
    field = pm.vertices[:, 0]
    segments, keys = level_set_segments(pm, field, 0.55)
    assert segments.shape[1:] == (2, 3)
    assert keys.shape == (segments.shape[0], 2, 2)
    assert np.allclose(segments[..., 0], 0.55)

    lines = level_set_polylines(pm, field, 0.55)
    assert len(lines) == 1
    line = lines[0]
    assert np.allclose(line[:, 0], 0.55)
    assert np.isclose(line[:, 1].min(), 0.0) and np.isclose(line[:, 1].max(), 1.0)
    # ordered along the curve
    assert np.all(np.diff(line[:, 1]) > 0) or np.all(np.diff(line[:, 1]) < 0)


def test_closed_loop_on_sphere():
    mesh = tm.primitives.Sphere(radius=1.0, subdivisions=2)
    z = np.asarray(mesh.vertices)[:, 2]
    lines = level_set_polylines(mesh, z, 0.05)
    assert len(lines) == 1
    loop = lines[0]
    assert np.allclose(loop[0], loop[-1])
    assert np.allclose(loop[:, 2], 0.05)


def test_no_crossing():
    pm = structured_grid((2, 2), element="tri")
    segments, keys = level_set_segments(pm, np.zeros(pm.num_verts), 1.0)
    assert segments.shape == (0, 2, 3)
    assert level_set_polylines(pm, np.zeros(pm.num_verts), 1.0) == []


def test_rejects_non_triangle_meshes():
    pm = structured_grid((2, 2), element="quad")
    with pytest.raises(ValueError):
        level_set_segments(pm, np.zeros(pm.num_verts))
