import numpy as np
import pytest

from pyharmfem.ufl import Analytic, Constant, Field, OpParameter, Parameter, dt, x_coord, y_coord
from pyharmfem.ufl.analytic import x

PTS = np.array([[0.1, 0.2], [-0.6, 0.4], [0.9, -0.9]])


def _same(a, b):
    for h in set(a) | set(b):
        va = a.get(h, 0.0)
        vb = b.get(h, 0.0)
        if not np.allclose(va, vb):
            return False
    return True


@pytest.fixture
def setup(quad_mesh):
    rho = Parameter(name="rho")
    rho.set_value([0, 1], 7.0)
    mu = Parameter(name="mu")
    mu.set_value(0, 2.0)
    mu.set_value(1, x * x)
    u = Field(quad_mesh, harmonics=(1, 2, 3))
    u.set_from(lambda x, y, z: x + y)
    u.set_from(lambda x, y, z: x * y, harmonic=2)
    return quad_mesh, rho, mu, u


def _expressions(rho, mu, u):
    return [
        rho.op() * x_coord + 0,
        rho.op() * mu.op() + Constant(0.0) * y_coord,
        (rho.op() + 1) ** 2 * u.value(),
        mu.op() * u.value() * u.value() - Constant(1.0) * rho.op(),
        (u.value() * 1 + 0) / (rho.op() - 6),
        Analytic(x ** 0 * 3) * u.value().harmonic(2),
        (Constant(2.0) ** 3) * u.value().harmonic([1, 3]) + rho.op() ** 0,
    ]


@pytest.mark.parametrize("regions", [[0], [1], [0, 1]])
def test_simplify_preserves_values(setup, regions):
    mesh, rho, mu, u = setup
    sel = mesh.select("quad", regions)
    for expr in _expressions(rho, mu, u):
        simple = expr.simplify(regions)
        assert _same(expr.interpolate(sel, PTS), simple.interpolate(sel, PTS)), repr(expr)


def test_simplify_folds_constant_parameters(setup):
    mesh, rho, mu, u = setup
    s = (rho.op() * 2 + 1).simplify([0, 1])
    assert isinstance(s, Constant) and s.value == 15.0
    s = (mu.op() * 2).simplify([0])
    assert isinstance(s, Constant) and s.value == 4.0
    s = (mu.op() * 2).simplify([0, 1])
    assert s.find_first(lambda n: isinstance(n, OpParameter)) is not None


def test_simplify_removes_zero_terms(setup):
    mesh, rho, mu, u = setup
    s = (u.value() + 0 * mu.op()).simplify([0, 1])
    assert repr(s) == "u"
    assert isinstance(dt(Constant(3.0)).simplify([0]), Constant)
    assert dt(Constant(3.0)).simplify([0]).value == 0.0
