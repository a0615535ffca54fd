"""pyharmfem.ufl.derivatives
Space and time derivatives of expressions.
"""
import numpy as np

from pyharmfem.core.harmonics import (
    cosine_harmonic, get_fundamental_frequency, harmonic_frequency, is_sine, sine_harmonic,
)
from pyharmfem.fem import transform
from pyharmfem.ufl.analytic import Analytic
from pyharmfem.ufl.expressions import (
    Constant, Coordinate, Harmonic, Operation, Power, Product, Sum, _AXES, _check_axis, _merge,
    _points, as_operation,
)
from pyharmfem.ufl.fields import FieldValue


class Derivative(Operation):
    """Spatial derivative of a field value along x, y or z (tri/quad elements)."""

    def __init__(self, operand, axis: int):
        _check_axis(axis)
        if not isinstance(operand, FieldValue):
            raise TypeError(f"Derivative expects a field value, got {type(operand).__name__}; "
                            "use dx/dy/dz to differentiate general expressions.")
        self.operand = operand
        self.axis = axis

    def children(self): return (self.operand,)
    def _rebuild(self, children): return Derivative(children[0], self.axis)
    def __repr__(self): return f"d{_AXES[self.axis]}({self.operand!r})"

    def interpolate(self, selector, evaluation_coordinates, mesh_deform=None):
        pts = _points(evaluation_coordinates)
        nodal = self.operand.nodal_values(selector)
        if self.axis == 2:
            # the elements lie in the xy plane
            return {h: np.zeros((selector.count(), pts.shape[0])) for h in nodal}
        coords = selector.node_coordinates(mesh_deform)
        grads = transform.physical_gradient(selector.element_type, coords, pts)   # (e, p, n, 2)
        return {h: np.einsum("en,epn->ep", v, grads[..., self.axis]) for h, v in nodal.items()}

    def get_harmonics(self, disjoint_regions):
        return self.operand.get_harmonics(disjoint_regions)


def _d(expr, axis: int) -> Operation:
    expr = as_operation(expr)
    if isinstance(expr, Constant):
        return Constant(0.0)
    if isinstance(expr, Coordinate):
        return Constant(1.0 if expr.axis == axis else 0.0)
    if isinstance(expr, Analytic):
        return expr.diff(axis)
    if isinstance(expr, FieldValue):
        return Derivative(expr, axis)
    if isinstance(expr, Sum):
        return Sum(_d(expr.a, axis), _d(expr.b, axis))
    if isinstance(expr, Product):
        return Sum(Product(_d(expr.a, axis), expr.b), Product(expr.a, _d(expr.b, axis)))
    if isinstance(expr, Power):
        return Product(Product(Constant(expr.exponent), Power(expr.base, expr.exponent - 1)),
                       _d(expr.base, axis))
    if isinstance(expr, Harmonic):
        return Harmonic(_d(expr.operand, axis), expr.harmonics)
    raise TypeError(f"Cannot take a space derivative of {expr!r}.")


def dx(expr) -> Operation: return _d(expr, 0)
def dy(expr) -> Operation: return _d(expr, 1)
def dz(expr) -> Operation: return _d(expr, 2)


def _time_derivative_harmonics(harmonics):
    out = set()
    for h in harmonics:
        k = harmonic_frequency(h)
        if k == 0:
            continue
        out.add(cosine_harmonic(k) if is_sine(h) else sine_harmonic(k))
    return sorted(out)


class TimeDerivative(Operation):
    """
    ``d^order/dt^order`` in the frequency domain:
    d/dt (a sin(k w t)) = k w a cos(k w t), d/dt (b cos(k w t)) = -k w b sin(k w t).
    """

    def __init__(self, operand, order: int = 1):
        if order < 1:
            raise ValueError(f"Time derivative order must be at least 1, got {order}.")
        self.operand = operand
        self.order = int(order)

    def children(self): return (self.operand,)
    def _rebuild(self, children): return TimeDerivative(children[0], self.order)
    def __repr__(self): return f"{'dt' * self.order}({self.operand!r})"

    def interpolate(self, selector, evaluation_coordinates, mesh_deform=None):
        omega = 2.0 * np.pi * get_fundamental_frequency()
        vals = self.operand.interpolate(selector, evaluation_coordinates, mesh_deform)
        for _ in range(self.order):
            out = {}
            for h, v in vals.items():
                k = harmonic_frequency(h)
                if k == 0:
                    continue
                if is_sine(h):
                    out = _merge(out, {cosine_harmonic(k): k * omega * v})
                else:
                    out = _merge(out, {sine_harmonic(k): -k * omega * v})
            vals = out
        return vals

    def get_harmonics(self, disjoint_regions):
        hs = self.operand.get_harmonics(disjoint_regions)
        for _ in range(self.order):
            hs = _time_derivative_harmonics(hs)
        return hs

    def simplify(self, disjoint_regions):
        op = self.operand.simplify(disjoint_regions)
        if isinstance(op, Constant):
            return Constant(0.0)
        return TimeDerivative(op, self.order)


def dt(expr) -> TimeDerivative: return TimeDerivative(as_operation(expr), 1)
def dtdt(expr) -> TimeDerivative: return TimeDerivative(as_operation(expr), 2)
