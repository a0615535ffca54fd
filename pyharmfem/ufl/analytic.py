# analytic.py
import numpy as np
import sympy as sp

from pyharmfem.fem import transform
from pyharmfem.ufl.expressions import Constant, Operation, _points


class Analytic(Operation):
    """
    Wraps a SymPy expression in x, y, z or a callable f(x, y, z) taking
    numpy arrays. Evaluated at the physical coordinates of the points,
    constant in time (harmonic 1).
    """
    _x, _y, _z = sp.symbols("x y z")
    _coord_syms = (_x, _y, _z)

    def __init__(self, expr):
        if callable(expr) and not isinstance(expr, sp.Basic):
            self.expr = expr
            self._func = expr
            self.is_symbolic = False
        else:
            self.expr = sp.sympify(expr)
            self._func = sp.lambdify(self._coord_syms, self.expr, "numpy")
            self.is_symbolic = True

    def eval(self, X):
        """X : (..., 3) array -> array of the same leading shape."""
        X = np.asarray(X, dtype=float)
        vals = self._func(X[..., 0], X[..., 1], X[..., 2])
        return np.broadcast_to(np.asarray(vals, dtype=float), X.shape[:-1]).copy()

    def interpolate(self, selector, evaluation_coordinates, mesh_deform=None):
        coords = selector.node_coordinates(mesh_deform)
        xyz = transform.x_mapping(selector.element_type, coords, _points(evaluation_coordinates))
        return {1: self.eval(xyz)}

    def get_harmonics(self, disjoint_regions):
        return [1]

    def diff(self, axis: int) -> "Analytic":
        if not self.is_symbolic:
            raise TypeError("Only symbolic analytic expressions can be differentiated.")
        return Analytic(sp.diff(self.expr, self._coord_syms[axis]))

    def simplify(self, disjoint_regions):
        if self.is_symbolic and not self.expr.free_symbols:
            return Constant(float(self.expr))
        return self

    def _rebuild(self, children):
        return Analytic(self.expr)

    def __repr__(self):
        if self.is_symbolic:
            return f"Analytic({self.expr})"
        return f"Analytic({getattr(self.expr, '__name__', 'callable')})"


# helper to avoid typing Analytic._x all the time
x, y, z = Analytic._coord_syms
