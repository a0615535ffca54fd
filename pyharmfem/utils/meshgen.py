"""pyharmfem.utils.meshgen
Mesh generators for quick tests.
"""
from typing import Optional, Tuple

import numba
import numpy as np
from scipy.spatial import Delaunay

from pyharmfem.core.mesh import Mesh

__all__ = ["delaunay_rectangle", "structured_quad", "structured_triangles", "boundary_lines"]


@numba.njit(cache=True)
def _structured_q1_numba(nx: int, ny: int):
    """Corner connectivity (CCW) of an nx x ny grid of quads."""
    n_gx = nx + 1
    elements = np.empty((nx * ny, 4), dtype=np.int64)
    for el_idx in range(nx * ny):
        el_j = el_idx // nx
        el_i = el_idx % nx
        bl = el_j * n_gx + el_i
        elements[el_idx, 0] = bl
        elements[el_idx, 1] = bl + 1
        elements[el_idx, 2] = bl + n_gx + 1
        elements[el_idx, 3] = bl + n_gx
    return elements


def _grid_nodes(Lx, Ly, nx, ny, offset):
    x = np.linspace(0.0, Lx, nx + 1)
    y = np.linspace(0.0, Ly, ny + 1)
    X, Y = np.meshgrid(x, y)
    pts = np.column_stack([X.ravel(), Y.ravel()])
    if offset is not None:
        pts += np.asarray(offset, dtype=float)
    return pts


def _stripe_regions(pts, elements, num_regions: int) -> np.ndarray:
    """Disjoint region of each element from the x position of its centroid."""
    if num_regions < 1:
        raise ValueError("num_regions must be a positive integer.")
    cx = pts[elements].mean(axis=1)[:, 0]
    x0, x1 = pts[:, 0].min(), pts[:, 0].max()
    width = (x1 - x0) or 1.0
    return np.minimum(((cx - x0) / width * num_regions).astype(np.int64), num_regions - 1)


def structured_quad(Lx: float, Ly: float, *, nx: int, ny: int,
                    offset: Optional[Tuple[float, float]] = None, num_regions: int = 1) -> Mesh:
    """Structured Q1 mesh of [0, Lx] x [0, Ly], regions 0..num_regions-1 as x-stripes."""
    if nx < 1 or ny < 1:
        raise ValueError("nx and ny must be positive integers.")
    pts = _grid_nodes(Lx, Ly, nx, ny, offset)
    elements = _structured_q1_numba(nx, ny)
    return Mesh(pts, {"quad": elements}, {"quad": _stripe_regions(pts, elements, num_regions)})


def structured_triangles(Lx: float, Ly: float, *, nx_quads: int, ny_quads: int,
                         offset: Optional[Tuple[float, float]] = None, num_regions: int = 1) -> Mesh:
    """Each quad of a structured grid split along its diagonal into two CCW triangles."""
    if nx_quads < 1 or ny_quads < 1:
        raise ValueError("nx_quads and ny_quads must be positive integers.")
    pts = _grid_nodes(Lx, Ly, nx_quads, ny_quads, offset)
    quads = _structured_q1_numba(nx_quads, ny_quads)
    elements = np.empty((2 * quads.shape[0], 3), dtype=np.int64)
    elements[0::2] = quads[:, [0, 1, 2]]
    elements[1::2] = quads[:, [0, 2, 3]]
    return Mesh(pts, {"tri": elements}, {"tri": _stripe_regions(pts, elements, num_regions)})


def delaunay_rectangle(length: float, height: float, nx: int = 10, ny: int = 10,
                       num_regions: int = 1) -> Mesh:
    x = np.linspace(0.0, length, nx)
    y = np.linspace(0.0, height, ny)
    X, Y = np.meshgrid(x, y)
    pts = np.column_stack([X.ravel(), Y.ravel()])
    tri = Delaunay(pts)
    elems = tri.simplices.copy()

    # make triangles CCW
    a, b, c = pts[elems[:, 0]], pts[elems[:, 1]], pts[elems[:, 2]]
    signed = (b[:, 0] - a[:, 0]) * (c[:, 1] - a[:, 1]) - (b[:, 1] - a[:, 1]) * (c[:, 0] - a[:, 0])
    flip = signed < 0
    elems[flip, 1], elems[flip, 2] = elems[flip, 2], elems[flip, 1].copy()
    return Mesh(pts, {"tri": elems}, {"tri": _stripe_regions(pts, elems, num_regions)})


def boundary_lines(mesh: Mesh, region: int) -> Mesh:
    """
    Copy of ``mesh`` with line elements on its border, all in disjoint
    region ``region``. Lines follow the CCW orientation of their element,
    so the normals point outward.
    """
    edges = []
    for etype in ("tri", "quad"):
        if mesh.count_elements(etype) == 0:
            continue
        conn = mesh.connectivity[etype].as_array()
        nn = conn.shape[1]
        for k in range(nn):
            edges.append(np.column_stack([conn[:, k], conn[:, (k + 1) % nn]]))
    if not edges:
        raise ValueError("The mesh has no surface elements to take a boundary of.")
    edges = np.concatenate(edges)
    _, inverse, counts = np.unique(np.sort(edges, axis=1), axis=0,
                                   return_inverse=True, return_counts=True)
    lines = edges[counts[inverse.ravel()] == 1]

    elements = {t: mesh.connectivity[t].as_array() for t in mesh.element_types}
    regions = {t: mesh.element_regions[t].get_values().copy() for t in mesh.element_types}
    elements["line"] = lines
    regions["line"] = np.full(lines.shape[0], region, dtype=np.int64)
    return Mesh(mesh.nodes_xyz, elements, regions)
