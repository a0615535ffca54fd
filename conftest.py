# conftest.py
import dataclasses

import pytest

from pyharmfem.core.harmonics import SETTINGS, HarmonicSettings
from pyharmfem.utils.meshgen import boundary_lines, structured_quad, structured_triangles


@pytest.fixture(autouse=True)
def default_harmonic_settings():
    """Every test starts from the default global harmonic settings."""
    defaults = HarmonicSettings()
    for f in dataclasses.fields(HarmonicSettings):
        setattr(SETTINGS, f.name, getattr(defaults, f.name))
    yield


@pytest.fixture
def quad_mesh():
    """[0,2] x [0,1], 4 x 2 quads, disjoint regions 0 (x < 1) and 1 (x > 1)."""
    return structured_quad(2.0, 1.0, nx=4, ny=2, num_regions=2)


@pytest.fixture
def tri_mesh():
    """[0,2] x [0,1], 2 x 2 split quads, disjoint regions 0 (x < 1) and 1 (x > 1)."""
    return structured_triangles(2.0, 1.0, nx_quads=2, ny_quads=2, num_regions=2)


@pytest.fixture
def quad_mesh_with_boundary(quad_mesh):
    """``quad_mesh`` plus its border as line elements in disjoint region 5."""
    return boundary_lines(quad_mesh, 5)
