# pyharmfem.fem.reference
"""
Reference-element factory (order-1 Lagrange geometry).
"""
from functools import lru_cache

import numpy as np

from pyharmfem.fem.reference.lagrange import lagrange_p1

# Reference dimension of every supported element type.
ELEMENT_DIMENSION = {"line": 1, "tri": 2, "quad": 2}
NUM_NODES = {"line": 2, "tri": 3, "quad": 4}


def _broadcast(vals, npts):
    """Lambdified constants come back as scalars; spread them over the points."""
    return np.array([np.broadcast_to(np.asarray(v, dtype=float).ravel(), (npts,)) for v in vals])


class Ref:
    def __init__(self, element_type, shape_lambda, deriv_lambdas, nodes):
        self.element_type = element_type
        self.dim = ELEMENT_DIMENSION[element_type]
        self.shape_lambda = shape_lambda
        self.deriv_lambdas = deriv_lambdas
        self.nodes = np.asarray(nodes, dtype=float)

    def _split(self, points):
        pts = np.atleast_2d(np.asarray(points, dtype=float))
        if pts.shape[1] < self.dim:
            raise ValueError(f"'{self.element_type}' needs {self.dim} reference coordinates per point, "
                             f"got {pts.shape[1]}.")
        xi = pts[:, 0]
        eta = pts[:, 1] if self.dim > 1 else np.zeros_like(xi)
        return xi, eta

    def shape(self, points) -> np.ndarray:
        """(n_points, n_nodes) shape-function values."""
        xi, eta = self._split(points)
        return _broadcast(self.shape_lambda(xi, eta), xi.size).T

    def grad(self, points) -> np.ndarray:
        """(n_points, n_nodes, dim) reference derivatives."""
        xi, eta = self._split(points)
        cols = [_broadcast(d(xi, eta), xi.size).T for d in self.deriv_lambdas]
        return np.stack(cols, axis=-1)


@lru_cache(maxsize=None)
def get_reference(element_type: str) -> Ref:
    if element_type not in ELEMENT_DIMENSION:
        raise KeyError(element_type)
    return Ref(element_type, *lagrange_p1(element_type))
