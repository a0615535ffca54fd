"""pyharmfem.ufl.parameter
Region- and harmonic-wise user data, and the expression leaf reading it.

A :class:`RawParameter` is the table; :class:`OpParameter` is the node
that selects one tensor component of it inside an expression;
:class:`Parameter` is the handle users manipulate.
"""
from __future__ import annotations

import logging
import numbers
from hashlib import blake2b
from typing import Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
import sympy as sp

from pyharmfem.core.errors import ComponentRangeError, DimensionError, UndefinedLookupError
from pyharmfem.core.harmonics import check_harmonic
from pyharmfem.ufl.analytic import Analytic
from pyharmfem.ufl.expressions import Constant, Operation, _points

logger = logging.getLogger(__name__)

# Key of the per-region slot holding a value whose own harmonics pass through.
ALL_HARMONICS = None


def _to_operation(value) -> Operation:
    if isinstance(value, Operation):
        return value
    if isinstance(value, numbers.Number):
        return Constant(value)
    if isinstance(value, sp.Basic) or callable(value):
        return Analytic(value)
    if hasattr(value, "as_operation"):
        return value.as_operation()
    raise TypeError(f"Unsupported parameter value of type {type(value).__name__}.")


def _coordinates_token(points: np.ndarray) -> str:
    h = blake2b(digest_size=16)
    h.update(np.asarray(points.shape, dtype=np.int64).tobytes())
    h.update(np.ascontiguousarray(points).tobytes())
    return h.hexdigest()


class RawParameter:
    """
    Per disjoint region, either one value carrying its own harmonics or
    one value per harmonic. Values are (rows x cols) tables of operations.
    """

    def __init__(self, num_rows: int = 1, num_cols: int = 1, name: str = "parameter"):
        if num_rows < 1 or num_cols < 1:
            raise DimensionError(f"Parameter shape must be at least 1x1, got {num_rows}x{num_cols}.")
        self.num_rows, self.num_cols = int(num_rows), int(num_cols)
        self.name = name
        self._values: Dict[int, Dict[Optional[int], np.ndarray]] = {}
        # bumped on every change; part of the reuse-cache key of the leaf nodes
        self.generation = 0

    def count_rows(self) -> int: return self.num_rows
    def count_columns(self) -> int: return self.num_cols

    def _as_entries(self, value) -> np.ndarray:
        def is_seq(v):
            return isinstance(v, (list, tuple, np.ndarray))

        rows = list(value) if is_seq(value) else [value]
        if rows and not any(is_seq(r) for r in rows):
            # flat input: a row vector, a column vector or a single value
            if self.num_rows == 1:
                rows = [rows]
            else:
                rows = [[r] for r in rows]
        table = np.empty((self.num_rows, self.num_cols), dtype=object)
        if len(rows) != self.num_rows or any(not is_seq(r) or len(r) != self.num_cols for r in rows):
            raise DimensionError(f"'{self.name}' expects a {self.num_rows}x{self.num_cols} value.")
        for i, row in enumerate(rows):
            for j, v in enumerate(row):
                table[i, j] = _to_operation(v)
        return table

    def set_value(self, disjoint_regions: Union[int, Iterable[int]], value,
                  harmonic: Optional[int] = ALL_HARMONICS):
        """
        Define the value on the given disjoint regions.

        Without ``harmonic`` the value replaces everything defined on the
        regions and its own harmonics pass through. With ``harmonic=h`` the
        value must be constant in time and is placed on harmonic ``h``.
        """
        if isinstance(disjoint_regions, numbers.Integral):
            disjoint_regions = [disjoint_regions]
        if harmonic is not ALL_HARMONICS:
            check_harmonic(harmonic)
        entries = self._as_entries(value)
        for r in disjoint_regions:
            slot = self._values.setdefault(int(r), {})
            if harmonic is ALL_HARMONICS:
                slot.clear()
            else:
                slot.pop(ALL_HARMONICS, None)
            slot[harmonic] = entries
        self.generation += 1

    def defined_regions(self) -> List[int]:
        return sorted(self._values)

    def lookup(self, disjoint_region: int, harmonic: Optional[int] = None):
        """
        Everything defined on a region (``{harmonic or None: entries}``) or,
        with ``harmonic``, the entries covering that harmonic.
        """
        if disjoint_region not in self._values:
            raise UndefinedLookupError(
                f"'{self.name}' is not defined on disjoint region {disjoint_region}.")
        slot = self._values[disjoint_region]
        if harmonic is None:
            return slot
        if harmonic in slot:
            return slot[harmonic]
        if ALL_HARMONICS in slot:
            return slot[ALL_HARMONICS]
        raise UndefinedLookupError(
            f"'{self.name}' has no harmonic {harmonic} on disjoint region {disjoint_region}.")

    def _check_component(self, row: int, col: int):
        if not (0 <= row < self.num_rows and 0 <= col < self.num_cols):
            raise ComponentRangeError(
                f"Component ({row}, {col}) outside the {self.num_rows}x{self.num_cols} '{self.name}'.")

    # ------------------------------------------------------------------
    # structure queries
    # ------------------------------------------------------------------
    def get_harmonics(self, disjoint_regions: Sequence[int], row: int = 0, col: int = 0) -> List[int]:
        out = set()
        for r in disjoint_regions:
            for key, entries in self.lookup(r).items():
                hs = entries[row, col].get_harmonics([r])
                if key is ALL_HARMONICS:
                    out.update(hs)
                elif hs:
                    out.add(key)
        return sorted(out)

    def is_harmonic_one(self, disjoint_regions: Sequence[int], row: int = 0, col: int = 0) -> bool:
        return set(self.get_harmonics(disjoint_regions, row, col)) <= {1}

    def is_value_orientation_dependent(self, disjoint_regions: Sequence[int],
                                       row: int = 0, col: int = 0) -> bool:
        return any(entries[row, col].is_value_orientation_dependent([r])
                   for r in disjoint_regions for entries in self.lookup(r).values())

    def constant_value(self, disjoint_regions: Sequence[int], row: int = 0, col: int = 0) -> Optional[float]:
        """The common constant of the component on all regions, or None."""
        value = None
        for r in disjoint_regions:
            if r not in self._values:
                return None
            slot = self._values[r]
            if set(slot) - {ALL_HARMONICS, 1} or len(slot) != 1:
                return None
            entry = next(iter(slot.values()))[row, col].simplify([r])
            if not isinstance(entry, Constant):
                return None
            if value is not None and entry.value != value:
                return None
            value = entry.value
        return value

    # ------------------------------------------------------------------
    # evaluation
    # ------------------------------------------------------------------
    def interpolate(self, row: int, col: int, selector, evaluation_coordinates,
                    mesh_deform=None) -> Dict[int, np.ndarray]:
        """Component (row, col) on every element of the batch, per harmonic."""
        pts = _points(evaluation_coordinates)
        shape = (selector.count(), pts.shape[0])
        out: Dict[int, np.ndarray] = {}
        for r, positions in selector.split_by_disjoint_region().items():
            slot = self.lookup(r)
            sub = selector.subset(positions)
            for key, entries in slot.items():
                vals = entries[row, col].interpolate(sub, pts, mesh_deform)
                if key is not ALL_HARMONICS:
                    if any(h != 1 for h in vals):
                        raise ValueError(f"'{self.name}' on region {r}, harmonic {key}: "
                                         "a per-harmonic value must be constant in time.")
                    vals = {key: vals[1]} if 1 in vals else {}
                for h, v in vals.items():
                    if h not in out:
                        out[h] = np.zeros(shape)
                    out[h][positions] += v
        return dict(sorted(out.items()))

    def print(self):
        print(f"Parameter '{self.name}' ({self.num_rows}x{self.num_cols}):")
        for r in self.defined_regions():
            for key, entries in self._values[r].items():
                where = "all harmonics" if key is ALL_HARMONICS else f"harmonic {key}"
                print(f"  region {r}, {where}: {entries.tolist()}")

    def __repr__(self):
        return f"<RawParameter '{self.name}' {self.num_rows}x{self.num_cols} regions={self.defined_regions()}>"


class OpParameter(Operation):
    """
    Leaf node reading component (row, col) of a shared parameter table.

    With reuse enabled the last result is returned again as long as the
    table (identity and generation), the element batch and the evaluation
    points are the same. The mesh deformation is NOT part of that check:
    enable reuse only while the deformation is unchanged between calls.
    The cache is the only mutable state of the node; it is neither shared
    with copies nor safe to use from several threads at once.
    """

    def __init__(self, parameter: RawParameter, row: int = 0, col: int = 0):
        parameter._check_component(row, col)
        self._parameter = parameter
        self.row, self.col = int(row), int(col)
        self._reuse = False
        self._cache_key = None
        self._cache: Optional[Dict[int, np.ndarray]] = None

    def get_parameter(self) -> RawParameter:
        return self._parameter

    @property
    def reuse(self) -> bool:
        return self._reuse

    def reuse_it(self, is_to_be_reused: bool):
        self._reuse = bool(is_to_be_reused)
        if not self._reuse:
            self._cache_key, self._cache = None, None

    def _key(self, selector, pts):
        return (id(self._parameter), self._parameter.generation, selector.cache_token,
                _coordinates_token(pts))

    def interpolate(self, selector, evaluation_coordinates, mesh_deform=None):
        pts = _points(evaluation_coordinates)
        if self._reuse:
            key = self._key(selector, pts)
            if key == self._cache_key:
                logger.debug(f"{self!r}: reusing values for {selector!r}")
                return {h: v.copy() for h, v in self._cache.items()}
        vals = self._parameter.interpolate(self.row, self.col, selector, pts, mesh_deform)
        if self._reuse:
            self._cache_key, self._cache = key, vals
            return {h: v.copy() for h, v in vals.items()}
        return vals

    def get_harmonics(self, disjoint_regions):
        return self._parameter.get_harmonics(disjoint_regions, self.row, self.col)

    def is_harmonic_one(self, disjoint_regions):
        return self._parameter.is_harmonic_one(disjoint_regions, self.row, self.col)

    def is_value_orientation_dependent(self, disjoint_regions):
        return self._parameter.is_value_orientation_dependent(disjoint_regions, self.row, self.col)

    def simplify(self, disjoint_regions):
        value = self._parameter.constant_value(disjoint_regions, self.row, self.col)
        if value is not None:
            logger.debug(f"{self!r} is {value:g} on regions {list(disjoint_regions)}, collapsed to a constant")
            return Constant(value)
        return self.copy()

    def _rebuild(self, children):
        return OpParameter(self._parameter, self.row, self.col)

    def __repr__(self):
        if self._parameter.num_rows == 1 and self._parameter.num_cols == 1:
            return self._parameter.name
        return f"{self._parameter.name}[{self.row},{self.col}]"


class Parameter:
    """User handle on a shared :class:`RawParameter`."""

    def __init__(self, num_rows: int = 1, num_cols: int = 1, name: str = "parameter"):
        self._raw = RawParameter(num_rows, num_cols, name)

    def get_pointer(self) -> RawParameter:
        return self._raw

    def count_rows(self) -> int: return self._raw.count_rows()
    def count_columns(self) -> int: return self._raw.count_columns()

    def set_value(self, disjoint_regions, value, harmonic: Optional[int] = ALL_HARMONICS):
        self._raw.set_value(disjoint_regions, value, harmonic)

    def op(self, row: int = 0, col: int = 0) -> OpParameter:
        return OpParameter(self._raw, row, col)

    def __getitem__(self, idx) -> OpParameter:
        if isinstance(idx, tuple):
            return self.op(*idx)
        return self.op(idx, 0)

    def as_operation(self) -> OpParameter:
        if self.count_rows() != 1 or self.count_columns() != 1:
            raise DimensionError(f"'{self._raw.name}' is not scalar; select a component first.")
        return self.op()

    def is_harmonic_one(self, disjoint_regions) -> bool:
        return all(self._raw.is_harmonic_one(disjoint_regions, i, j)
                   for i in range(self.count_rows()) for j in range(self.count_columns()))

    def interpolate(self, selector, evaluation_coordinates, mesh_deform=None) -> Dict[int, np.ndarray]:
        """
        Scalar parameters: ``{h: (n_elements, n_points)}``.
        Tensor parameters: ``{h: (n_elements, n_points, rows, cols)}``.
        """
        if self.count_rows() == 1 and self.count_columns() == 1:
            return self._raw.interpolate(0, 0, selector, evaluation_coordinates, mesh_deform)
        pts = _points(evaluation_coordinates)
        out: Dict[int, np.ndarray] = {}
        for i in range(self.count_rows()):
            for j in range(self.count_columns()):
                for h, v in self._raw.interpolate(i, j, selector, pts, mesh_deform).items():
                    if h not in out:
                        out[h] = np.zeros(v.shape + (self.count_rows(), self.count_columns()))
                    out[h][..., i, j] = v
        return dict(sorted(out.items()))

    def print(self):
        self._raw.print()

    def __repr__(self):
        return f"Parameter('{self._raw.name}', {self.count_rows()}x{self.count_columns()})"
