import itertools
import logging
from typing import Dict, Iterable, List, Optional, Union

import numpy as np

from pyharmfem.core.errors import DimensionError
from pyharmfem.core.indexmat import IndexMatrix
from pyharmfem.core.elementselector import ElementSelector
from pyharmfem.fem.reference import NUM_NODES

logger = logging.getLogger(__name__)

# Serial numbers are never reused, unlike id() of a collected mesh.
_MESH_SERIAL = itertools.count()


class Mesh:
    """
    Node coordinates plus, per element type, the connectivity and the
    disjoint region of every element.

    Each element belongs to exactly one *disjoint region* (a non-negative
    integer). Physical regions are named unions of disjoint regions; every
    disjoint region is also a physical region containing only itself
    unless redefined with :meth:`define_physical_region`.
    """

    def __init__(self,
                 nodes: np.ndarray,
                 elements: Dict[str, np.ndarray],
                 element_regions: Optional[Dict[str, np.ndarray]] = None):
        nodes = np.asarray(nodes, dtype=float)
        if nodes.ndim != 2 or nodes.shape[1] not in (2, 3):
            raise DimensionError(f"Nodes must be an (n, 2) or (n, 3) array, got shape {nodes.shape}.")
        self.nodes_xyz = np.zeros((nodes.shape[0], 3))
        self.nodes_xyz[:, :nodes.shape[1]] = nodes

        self.connectivity: Dict[str, IndexMatrix] = {}
        self.element_regions: Dict[str, IndexMatrix] = {}
        element_regions = element_regions or {}
        for etype, conn in elements.items():
            if etype not in NUM_NODES:
                raise ValueError(f"Unsupported element type '{etype}'.")
            conn = np.asarray(conn, dtype=np.int64).reshape(-1, NUM_NODES[etype])
            if conn.size and (conn.min() < 0 or conn.max() >= self.count_nodes()):
                raise IndexError(f"'{etype}' connectivity refers to nodes outside [0, {self.count_nodes()}).")
            regs = np.asarray(element_regions.get(etype, np.zeros(conn.shape[0])), dtype=np.int64).ravel()
            if regs.size != conn.shape[0]:
                raise DimensionError(f"{regs.size} region numbers for {conn.shape[0]} '{etype}' elements.")
            if regs.size and regs.min() < 0:
                raise ValueError("Disjoint region numbers must be non-negative.")
            self.connectivity[etype] = IndexMatrix(*conn.shape, conn)
            self.element_regions[etype] = IndexMatrix(regs.size, 1, regs)

        self.serial = next(_MESH_SERIAL)
        self._physical_regions: Dict[int, List[int]] = {}
        self._region_maps: Dict[str, List[np.ndarray]] = {}
        logger.info(f"Mesh: {self.count_nodes()} nodes, "
                    + ", ".join(f"{self.count_elements(t)} {t}" for t in self.element_types)
                    + f", disjoint regions {self.disjoint_regions()}")

    # ------------------------------------------------------------------
    def count_nodes(self) -> int:
        return self.nodes_xyz.shape[0]

    @property
    def element_types(self) -> List[str]:
        return list(self.connectivity)

    def count_elements(self, element_type: str) -> int:
        if element_type not in self.connectivity:
            return 0
        return self.connectivity[element_type].count_rows()

    def disjoint_regions(self, element_type: Optional[str] = None) -> List[int]:
        types = self.element_types if element_type is None else [element_type]
        regs = set()
        for t in types:
            if t in self.element_regions:
                regs.update(self.element_regions[t].get_values().tolist())
        return sorted(regs)

    # ------------------------------------------------------------------
    # regions
    # ------------------------------------------------------------------
    def define_physical_region(self, physical_region: int, disjoint_regions: Iterable[int]):
        self._physical_regions[int(physical_region)] = sorted({int(r) for r in disjoint_regions})

    def get_disjoint_regions(self, physical_region: int) -> List[int]:
        if physical_region in self._physical_regions:
            return list(self._physical_regions[physical_region])
        if physical_region in self.disjoint_regions():
            return [int(physical_region)]
        raise KeyError(f"Region {physical_region} is not defined on this mesh.")

    def elements_in_region(self, element_type: str, disjoint_region: int) -> np.ndarray:
        """Element numbers of one type lying in one disjoint region (ascending)."""
        if element_type not in self._region_maps:
            regs = self.element_regions[element_type]
            top = regs.max() if regs.count() else 0
            self._region_maps[element_type] = regs.find_all_occurrences(top)
        table = self._region_maps[element_type]
        if not 0 <= disjoint_region < len(table):
            return np.zeros(0, dtype=np.int64)
        return table[disjoint_region]

    def select(self, element_type: str,
               regions: Union[None, int, Iterable[int]] = None) -> ElementSelector:
        """Element batch of one type, optionally restricted to physical region(s)."""
        if element_type not in self.connectivity:
            raise KeyError(f"No '{element_type}' elements in this mesh.")
        if regions is None:
            numbers = np.arange(self.count_elements(element_type), dtype=np.int64)
        else:
            if np.isscalar(regions):
                regions = [regions]
            disj = sorted({d for r in regions for d in self.get_disjoint_regions(r)})
            parts = [self.elements_in_region(element_type, d) for d in disj]
            numbers = np.sort(np.concatenate(parts)) if parts else np.zeros(0, dtype=np.int64)
        return ElementSelector(self, element_type, numbers)

    def element_coordinates(self, element_type: str, element_numbers) -> np.ndarray:
        """Corner coordinates, shape (n_elements, n_nodes, 3)."""
        conn = self.connectivity[element_type].get_values().reshape(-1, NUM_NODES[element_type])
        return self.nodes_xyz[conn[np.asarray(element_numbers, dtype=np.int64)]]

    def __repr__(self):
        counts = ", ".join(f"{t}={self.count_elements(t)}" for t in self.element_types)
        return f"<Mesh nodes={self.count_nodes()} {counts}>"
