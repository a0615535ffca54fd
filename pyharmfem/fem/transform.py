"""pyharmfem.fem.transform
Reference -> physical mapping for a batch of linear elements.

``coords`` is always an ``(n_elements, n_nodes, 3)`` array of corner
coordinates and ``points`` an ``(n_points, dim)`` array of reference
coordinates.
"""
import numpy as np

from pyharmfem.fem.reference import get_reference


def x_mapping(element_type: str, coords: np.ndarray, points) -> np.ndarray:
    """Physical coordinates, shape (n_elements, n_points, 3)."""
    N = get_reference(element_type).shape(points)            # (p, n)
    return np.einsum("pn,enc->epc", N, coords, optimize=True)


def jacobian(element_type: str, coords: np.ndarray, points) -> np.ndarray:
    """J[e, p, d, c] = d x_c / d xi_d, shape (n_elements, n_points, dim, 3)."""
    dN = get_reference(element_type).grad(points)            # (p, n, d)
    return np.einsum("pnd,enc->epdc", dN, coords, optimize=True)


def det_jacobian(element_type: str, coords: np.ndarray, points) -> np.ndarray:
    """
    Measure of the mapping, sqrt(det(J J^T)), shape (n_elements, n_points).

    Equals |det J| for planar 2-D elements and the length ratio for lines.
    """
    J = jacobian(element_type, coords, points)
    gram = np.einsum("epdc,epfc->epdf", J, J, optimize=True)
    return np.sqrt(np.abs(np.linalg.det(gram)))


def _planar_jacobian(element_type: str, coords: np.ndarray, points) -> np.ndarray:
    if get_reference(element_type).dim != 2:
        raise ValueError(f"Spatial derivatives need 2-D elements, got '{element_type}'.")
    return jacobian(element_type, coords, points)[..., :2]   # (e, p, 2, 2)


def physical_gradient(element_type: str, coords: np.ndarray, points) -> np.ndarray:
    """
    x/y derivatives of the shape functions, shape (n_elements, n_points, n_nodes, 2).

    Only defined for triangles and quadrangles lying in the xy plane.
    """
    J = _planar_jacobian(element_type, coords, points)
    dN = get_reference(element_type).grad(points)            # (p, n, 2)
    rhs = np.broadcast_to(np.swapaxes(dN, 1, 2), J.shape[:2] + dN.shape[2:0:-1])
    try:
        grads = np.linalg.solve(J, rhs)                      # (e, p, 2, n)
    except np.linalg.LinAlgError:
        raise ValueError("Singular Jacobian: degenerate element in batch.")
    return np.swapaxes(grads, 2, 3)

