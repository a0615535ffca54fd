import numpy as np
import pytest

from pyharmfem.ufl import Constant, Field, Parameter, x_coord

PTS = np.array([[0.0, 0.0], [0.5, 0.5], [-0.25, 0.75]])


@pytest.mark.parametrize("n", [1, 2, 7, 32])
def test_static_expression_is_constant_in_time(quad_mesh, n):
    p = Parameter()
    p.set_value([0, 1], 4.0)
    expr = p.op() * x_coord + 1
    sel = quad_mesh.select("quad")
    static = expr.interpolate(sel, PTS)[1]
    samples = expr.multiharmonic_interpolate(n, sel, PTS)
    assert samples.shape == (n, sel.count(), len(PTS))
    for s in samples:
        assert np.allclose(s, static)


def test_single_harmonics_in_time(quad_mesh):
    u = Field(quad_mesh, harmonics=(1, 4, 5))
    u.set_value(1, 1.0)
    u.set_value(4, 2.0)
    u.set_value(5, -1.0)
    n = 9
    theta = 2 * np.pi * np.arange(n) / n
    samples = u.value().multiharmonic_interpolate(n, quad_mesh.select("quad"), PTS)
    expected = 1.0 + 2.0 * np.sin(2 * theta) - np.cos(2 * theta)
    assert np.allclose(samples[:, 3, 1], expected)


def test_product_matches_time_domain_product(quad_mesh):
    u = Field(quad_mesh, harmonics=(1, 2, 3))
    v = Field(quad_mesh, harmonics=(2, 5))
    rng = np.random.default_rng(0)
    for f in (u, v):
        for h in f.harmonics:
            f.set_value(h, rng.uniform(-1, 1, quad_mesh.count_nodes()))
    sel = quad_mesh.select("quad")
    n = 12
    tu = u.value().multiharmonic_interpolate(n, sel, PTS)
    tv = v.value().multiharmonic_interpolate(n, sel, PTS)
    tuv = (u.value() * v.value()).multiharmonic_interpolate(n, sel, PTS)
    assert np.allclose(tuv, tu * tv)
    cube = (u.value() ** 3).multiharmonic_interpolate(n, sel, PTS)
    assert np.allclose(cube, tu ** 3)


def test_empty_expression_samples_to_zero(quad_mesh):
    u = Field(quad_mesh, harmonics=(2,))
    sel = quad_mesh.select("quad")
    samples = u.value().harmonic(3).multiharmonic_interpolate(4, sel, PTS)
    assert samples.shape == (4, sel.count(), len(PTS))
    assert np.all(samples == 0.0)


def test_needs_one_time_sample(quad_mesh):
    with pytest.raises(ValueError):
        Constant(1.0).multiharmonic_interpolate(0, quad_mesh.select("quad"), PTS)
