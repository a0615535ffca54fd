"""pyharmfem.integration.quadrature
Gauss rules on the reference line, triangle and quadrangle.
"""
from functools import lru_cache
from typing import Dict

import numpy as np
from numpy.polynomial.legendre import leggauss

from pyharmfem.fem import transform


# -------------------------------------------------------------------------
# 1-D Gauss-Legendre
# -------------------------------------------------------------------------
def gauss_legendre(order: int):
    if order < 1:
        raise ValueError(order)
    return leggauss(order)  # (points, weights)


@lru_cache(maxsize=None)
def line_rule(order: int):
    xi, wi = gauss_legendre(order)
    return xi[:, None], wi


# -------------------------------------------------------------------------
# Tensor-product construction helpers
# -------------------------------------------------------------------------
@lru_cache(maxsize=None)
def quad_rule(order: int):
    xi, wi = gauss_legendre(order)
    pts = np.array([[x, y] for x in xi for y in xi])
    wts = np.array([wx * wy for wx in wi for wy in wi])
    return pts, wts


@lru_cache(maxsize=None)
def tri_rule(order: int):
    """Collapsed (Duffy) square -> reference triangle rule, exact to degree 2*order-2."""
    xi, wi = gauss_legendre(order)
    u = 0.5 * (xi + 1.0)   # [0,1]
    w_u = 0.5 * wi
    pts = []
    wts = []
    for i, ui in enumerate(u):
        for j, vj in enumerate(u):
            r = ui
            s = vj * (1.0 - ui)
            weight = w_u[i] * w_u[j] * (1.0 - ui)
            pts.append([r, s])
            wts.append(weight)
    return np.array(pts), np.array(wts)


def volume(element_type: str, order: int = 2):
    """Reference points and weights for a whole element."""
    if element_type == 'line':
        return line_rule(order)
    if element_type == 'tri':
        return tri_rule(order)
    if element_type == 'quad':
        return quad_rule(order)
    raise KeyError(element_type)


def integrate(operation, selector, order: int = 2, mesh_deform=None) -> Dict[int, np.ndarray]:
    """
    Integral of ``operation`` over every element of the batch, per harmonic.

    Returns ``{harmonic: (n_elements,) array}``; absent harmonics are zero.
    """
    pts, wts = volume(selector.element_type, order)
    coords = selector.node_coordinates(mesh_deform)
    detj = transform.det_jacobian(selector.element_type, coords, pts)    # (e, p)
    values = operation.interpolate(selector, pts, mesh_deform)
    return {h: (v * detj) @ wts for h, v in values.items()}
