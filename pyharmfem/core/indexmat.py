"""pyharmfem.core.indexmat
Dense row-major matrix of integers.

Used for element connectivity, disjoint-region tables and selection
bookkeeping. The values live in a flat ``int64`` buffer of length
``rows * cols`` laid out as [row0 row1 row2 ...].
"""
from __future__ import annotations

from typing import List, Sequence, Tuple, Union

import numba
import numpy as np

from pyharmfem.core.errors import DimensionError, EmptyMatrixError


@numba.njit(cache=True)
def _count_all_occurrences(values, max_value):
    out = np.zeros(max_value + 1, dtype=np.int64)
    for i in range(values.size):
        out[values[i]] += 1
    return out


@numba.njit(cache=True)
def _find_all_occurrences(values, counts):
    """CSR-style (offsets, positions) of every value in ``[0, counts.size)``."""
    offsets = np.zeros(counts.size + 1, dtype=np.int64)
    for v in range(counts.size):
        offsets[v + 1] = offsets[v] + counts[v]
    fill = offsets[:-1].copy()
    positions = np.empty(values.size, dtype=np.int64)
    for i in range(values.size):
        v = values[i]
        positions[fill[v]] = i
        fill[v] += 1
    return offsets, positions


class IndexMatrix:
    """
    Row-major dense matrix of ints.

    Every operation returns a new container (or a scalar) and leaves the
    receiver untouched. The only exception to "new container means new
    buffer" is :meth:`get_resized_view`, which reinterprets the *same*
    buffer with other dimensions.

    An empty container always has ``0`` rows, ``0`` columns and no buffer.
    """

    def __init__(self, num_rows: int = 0, num_cols: int = 0,
                 values: Union[None, int, Sequence[int], np.ndarray] = None):
        num_rows, num_cols = int(num_rows), int(num_cols)
        if num_rows < 0 or num_cols < 0:
            raise DimensionError(f"Negative dimensions {num_rows}x{num_cols}.")
        n = num_rows * num_cols

        if values is None:
            buffer = np.zeros(n, dtype=np.int64)
        elif np.isscalar(values):
            buffer = np.full(n, int(values), dtype=np.int64)
        else:
            buffer = np.array(values, dtype=np.int64).ravel()
            if buffer.size != n:
                raise DimensionError(
                    f"{num_rows}x{num_cols} matrix needs {n} values, got {buffer.size}.")

        if n == 0:
            self._num_rows, self._num_cols, self._values = 0, 0, None
        else:
            self._num_rows, self._num_cols, self._values = num_rows, num_cols, buffer

    # ------------------------------------------------------------------
    # alternative constructors
    # ------------------------------------------------------------------
    @classmethod
    def sequence(cls, num_rows: int, num_cols: int, init: int, step: int) -> "IndexMatrix":
        """Consecutive values ``[init, init+step, init+2*step, ...]``."""
        n = int(num_rows) * int(num_cols)
        return cls(num_rows, num_cols, init + step * np.arange(n, dtype=np.int64))

    @classmethod
    def concatenate(cls, matrices: Sequence["IndexMatrix"]) -> "IndexMatrix":
        """Vertical concatenation. Empty inputs are skipped."""
        blocks = [m for m in matrices if m.count() > 0]
        if not blocks:
            return cls()
        ncols = blocks[0].count_columns()
        for m in blocks:
            if m.count_columns() != ncols:
                raise DimensionError(
                    f"Cannot concatenate matrices with {ncols} and {m.count_columns()} columns.")
        nrows = sum(m.count_rows() for m in blocks)
        return cls(nrows, ncols, np.concatenate([m._values for m in blocks]))

    @classmethod
    def _from_buffer(cls, num_rows: int, num_cols: int, buffer) -> "IndexMatrix":
        out = cls.__new__(cls)
        if num_rows * num_cols == 0:
            out._num_rows, out._num_cols, out._values = 0, 0, None
        else:
            out._num_rows, out._num_cols, out._values = num_rows, num_cols, buffer
        return out

    # ------------------------------------------------------------------
    # size
    # ------------------------------------------------------------------
    def count_rows(self) -> int: return self._num_rows
    def count_columns(self) -> int: return self._num_cols
    def count(self) -> int: return self._num_rows * self._num_cols

    @property
    def shape(self) -> Tuple[int, int]:
        return self._num_rows, self._num_cols

    def _errorifempty(self):
        if self._values is None:
            raise EmptyMatrixError("Operation is not defined on an empty matrix.")

    def _as_2d(self) -> np.ndarray:
        if self._values is None:
            return np.zeros((0, 0), dtype=np.int64)
        return self._values.reshape(self._num_rows, self._num_cols)

    # ------------------------------------------------------------------
    # access
    # ------------------------------------------------------------------
    def get_values(self) -> np.ndarray:
        """The underlying flat buffer (shared, not a copy)."""
        if self._values is None:
            return np.zeros(0, dtype=np.int64)
        return self._values

    def __getitem__(self, idx) -> int:
        row, col = idx
        if not (0 <= row < self._num_rows and 0 <= col < self._num_cols):
            raise IndexError(f"Entry ({row}, {col}) outside {self._num_rows}x{self._num_cols} matrix.")
        return int(self._values[row * self._num_cols + col])

    def to_list(self) -> List[List[int]]:
        return self._as_2d().tolist()

    def as_array(self) -> np.ndarray:
        """Copy of the values as a 2-D array."""
        return self._as_2d().copy()

    def copy(self) -> "IndexMatrix":
        if self._values is None:
            return IndexMatrix()
        return IndexMatrix._from_buffer(self._num_rows, self._num_cols, self._values.copy())

    def get_resized_view(self, num_rows: int, num_cols: int) -> "IndexMatrix":
        """
        Same values seen as a ``num_rows x num_cols`` matrix.

        The buffer is NOT copied: the result aliases this container.
        """
        if num_rows * num_cols != self.count():
            raise DimensionError(
                f"Cannot view {self._num_rows}x{self._num_cols} matrix as {num_rows}x{num_cols}.")
        return IndexMatrix._from_buffer(num_rows, num_cols, self._values)

    # ------------------------------------------------------------------
    # scans and reductions
    # ------------------------------------------------------------------
    def count_positive(self) -> int:
        """Number of values that are positive or zero."""
        return int(np.count_nonzero(self.get_values() >= 0))

    def count_occurrences(self, value: int) -> int:
        return int(np.count_nonzero(self.get_values() == value))

    def remove_value(self, to_remove: int) -> "IndexMatrix":
        """Column matrix of all values different from ``to_remove`` (order kept)."""
        kept = self.get_values()[self.get_values() != to_remove]
        return IndexMatrix(kept.size, 1, kept)

    def _check_occurrence_range(self, max_value: int):
        if max_value < 0:
            raise ValueError(f"max_value must be non-negative, got {max_value}.")
        if self._values is not None:
            lo, hi = self.min_max()
            if lo < 0 or hi > max_value:
                raise IndexError(f"Values span [{lo}, {hi}], outside [0, {max_value}].")

    def count_all_occurrences(self, max_value: int) -> np.ndarray:
        """Entry ``i`` is the number of times value ``i`` appears, for ``i`` in ``[0, max_value]``."""
        self._check_occurrence_range(max_value)
        return _count_all_occurrences(self.get_values(), int(max_value))

    def find_all_occurrences(self, max_value: int) -> List[np.ndarray]:
        """Entry ``i`` holds the ordered flat indices at which value ``i`` appears."""
        counts = self.count_all_occurrences(max_value)
        offsets, positions = _find_all_occurrences(self.get_values(), counts)
        return [positions[offsets[v]:offsets[v + 1]] for v in range(counts.size)]

    def sum(self) -> int:
        self._errorifempty()
        return int(self._values.sum())

    def min_max(self) -> Tuple[int, int]:
        self._errorifempty()
        return int(self._values.min()), int(self._values.max())

    def max(self) -> int:
        self._errorifempty()
        return int(self._values.max())

    # ------------------------------------------------------------------
    # structural transformations
    # ------------------------------------------------------------------
    def get_transpose(self) -> "IndexMatrix":
        return IndexMatrix(self._num_cols, self._num_rows, self._as_2d().T)

    @staticmethod
    def _check_repeat(n: int):
        if n < 0:
            raise ValueError(f"Duplication count must be non-negative, got {n}.")

    def duplicate_all_rows_together(self, n: int) -> "IndexMatrix":
        """[row0; row1; ...] -> [row0; row1; ...; row0; row1; ...] (n blocks)."""
        self._check_repeat(n)
        out = np.tile(self._as_2d(), (n, 1))
        return IndexMatrix(*out.shape, out)

    def duplicate_rows_one_by_one(self, n: int) -> "IndexMatrix":
        """[row0; row1; ...] -> [row0; row0; ...; row1; row1; ...] (each n times)."""
        self._check_repeat(n)
        out = np.repeat(self._as_2d(), n, axis=0)
        return IndexMatrix(*out.shape, out)

    def duplicate_all_cols_together(self, n: int) -> "IndexMatrix":
        self._check_repeat(n)
        out = np.tile(self._as_2d(), (1, n))
        return IndexMatrix(*out.shape, out)

    def duplicate_cols_one_by_one(self, n: int) -> "IndexMatrix":
        self._check_repeat(n)
        out = np.repeat(self._as_2d(), n, axis=1)
        return IndexMatrix(*out.shape, out)

    @staticmethod
    def _checked_selection(selected, bound: int, what: str) -> np.ndarray:
        sel = np.asarray(selected, dtype=np.int64).ravel()
        bad = (sel < 0) | (sel >= bound)
        if np.any(bad):
            raise IndexError(f"{what} index {int(sel[bad][0])} out of range [0, {bound}).")
        return sel

    def extract_rows(self, selected: Sequence[int]) -> "IndexMatrix":
        """Rows ``selected[0], selected[1], ...`` in that order."""
        sel = self._checked_selection(selected, self._num_rows, "Row")
        out = self._as_2d()[sel, :]
        return IndexMatrix(*out.shape, out)

    def extract_cols(self, selected: Sequence[int]) -> "IndexMatrix":
        sel = self._checked_selection(selected, self._num_cols, "Column")
        out = self._as_2d()[:, sel]
        return IndexMatrix(*out.shape, out)

    def select(self, selection: Sequence[bool], select_if: bool) -> "IndexMatrix":
        """Column matrix of the flat indices ``i`` with ``selection[i] == select_if``."""
        mask = np.asarray(selection, dtype=bool).ravel()
        if mask.size != self.count():
            raise DimensionError(
                f"Selection has {mask.size} entries for a matrix of {self.count()} values.")
        idx = np.flatnonzero(mask == bool(select_if))
        return IndexMatrix(idx.size, 1, idx)

    # ------------------------------------------------------------------
    # diagnostics
    # ------------------------------------------------------------------
    def print_size(self):
        print(f"Matrix size is {self._num_rows}x{self._num_cols}")

    def print(self):
        self.print_size()
        for row in self._as_2d():
            print(" ".join(str(v) for v in row))

    def __repr__(self):
        return f"<IndexMatrix {self._num_rows}x{self._num_cols}>"
