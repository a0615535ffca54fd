"""pyharmfem.core.elementselector"""
from __future__ import annotations

from hashlib import blake2b
from typing import Dict, Optional, Sequence

import numpy as np

from pyharmfem.core.indexmat import IndexMatrix
from pyharmfem.fem.reference import get_reference


def _selector_cache_token(mesh, element_type: str, numbers: np.ndarray) -> str:
    """Stable token for an element batch, used to key reuse caches."""
    h = blake2b(digest_size=16)
    h.update(str(mesh.serial).encode())
    h.update(element_type.encode())
    h.update(np.ascontiguousarray(numbers, dtype=np.int64).tobytes())
    return h.hexdigest()


class ElementSelector:
    """
    A batch of elements of a single type, evaluated together.

    The batch is read-only: operations never modify it, so the same batch
    may be shared by concurrent evaluations.
    """

    def __init__(self, mesh, element_type: str, element_numbers: Sequence[int]):
        self.mesh = mesh
        self.element_type = element_type
        self.element_numbers = np.asarray(element_numbers, dtype=np.int64).ravel()
        regs = mesh.element_regions[element_type].get_values()
        self.disjoint_regions = regs[self.element_numbers] if regs.size else np.zeros(0, dtype=np.int64)
        self._cache_token = _selector_cache_token(mesh, element_type, self.element_numbers)

    def count(self) -> int:
        return self.element_numbers.size

    @property
    def cache_token(self) -> str:
        return self._cache_token

    def get_disjoint_regions(self):
        """Sorted disjoint regions present in the batch."""
        return sorted(set(self.disjoint_regions.tolist()))

    def split_by_disjoint_region(self) -> Dict[int, np.ndarray]:
        """{disjoint region: positions inside this batch}, only non-empty entries."""
        if self.count() == 0:
            return {}
        regs = IndexMatrix(self.count(), 1, self.disjoint_regions)
        table = regs.find_all_occurrences(regs.max())
        return {r: pos for r, pos in enumerate(table) if pos.size}

    def subset(self, positions) -> "ElementSelector":
        return ElementSelector(self.mesh, self.element_type, self.element_numbers[np.asarray(positions, dtype=np.int64)])

    def node_coordinates(self, mesh_deform: Optional[Sequence] = None) -> np.ndarray:
        """
        Corner coordinates (n_elements, n_nodes, 3), optionally displaced.

        ``mesh_deform`` holds one scalar operation per space direction; each
        is evaluated at the element corners and must be harmonic-one.
        """
        coords = self.mesh.element_coordinates(self.element_type, self.element_numbers).copy()
        if mesh_deform is None:
            return coords
        if len(mesh_deform) > 3:
            raise ValueError(f"Mesh deformation has {len(mesh_deform)} components, at most 3 allowed.")
        corners = get_reference(self.element_type).nodes
        for axis, comp in enumerate(mesh_deform):
            vals = comp.interpolate(self, corners, None)
            if any(h != 1 for h in vals):
                raise ValueError("Mesh deformation must be constant in time (harmonic 1 only).")
            if 1 in vals:
                coords[:, :, axis] += vals[1]
        return coords

    def __len__(self):
        return self.count()

    def __repr__(self):
        return f"<ElementSelector {self.element_type} x{self.count()}>"
