"""hsrelax: heat-flow based relaxation of discrete bipartition boundaries.

Public API:
- relax(mesh, labels, *, config=None, verbose=False)
- RelaxationConfig(smoothing_passes=5, constraint_weight=0.1, time_scale=1.0, laplacian=None, solver="normal")
- PolyMesh(vertices, polys, element=None), structured_grid(resolution, element="tri"), example_mesh(kind)
- find_heat_sources(incidence, labels), diffuse_from_interface(mesh, sources)
- gradient_matrix(mesh), flip_regions(X, labels), smooth_field(X, dual_adjacency, passes=5)
- reconstruct_potential(mesh, X, sources, *, constraint_weight=0.1)
- level_set_polylines(mesh, field, level=0.0)

"""
from .errors import InvalidLabeling, NoInterface, RelaxationError, SingularSystem
from .mesh import PolyMesh, example_mesh, structured_grid
from .laplacian import cotangent_laplacian, laplacian_entries, lumped_mass_matrix
from .gradient import divergence, gradient, gradient_matrix
from .interface import find_heat_sources, validate_labeling
from .heat import diffuse_from_interface, heat_flow, normalize_in_01
from .field import flip_regions, normalize_field, smooth_field
from .potential import reconstruct_potential
from .relax import RelaxationConfig, RelaxationResult, labels_from_field, relax
from .contour import level_set_polylines, level_set_segments

__all__ = [
    "InvalidLabeling",
    "NoInterface",
    "RelaxationError",
    "SingularSystem",
    "PolyMesh",
    "example_mesh",
    "structured_grid",
    "cotangent_laplacian",
    "laplacian_entries",
    "lumped_mass_matrix",
    "divergence",
    "gradient",
    "gradient_matrix",
    "find_heat_sources",
    "validate_labeling",
    "diffuse_from_interface",
    "heat_flow",
    "normalize_in_01",
    "flip_regions",
    "normalize_field",
    "smooth_field",
    "reconstruct_potential",
    "RelaxationConfig",
    "RelaxationResult",
    "labels_from_field",
    "relax",
    "level_set_polylines",
    "level_set_segments",
]
