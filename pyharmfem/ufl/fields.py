import numbers
from typing import Callable, Dict, Iterable, List, Optional, Union

import numpy as np

from pyharmfem.core.harmonics import check_harmonic
from pyharmfem.fem.reference import NUM_NODES, get_reference
from pyharmfem.ufl.analytic import Analytic
from pyharmfem.ufl.expressions import Operation, _points, as_operation


class Field:
    """
    Scalar order-1 nodal field: one value per mesh node and per harmonic.

    A ``Field`` is data, not an expression node. Use :meth:`value` (or
    combine it with an operation, which calls it) to bring it into an expression, and
    :meth:`dof` / :meth:`tf` for the trial and test placeholders.
    """

    def __init__(self, mesh, harmonics: Iterable[int] = (1,), name: str = "u"):
        self.mesh = mesh
        self.name = name
        hs = sorted({int(h) for h in harmonics})
        if not hs:
            raise ValueError("A field needs at least one harmonic.")
        for h in hs:
            check_harmonic(h)
        self._values: Dict[int, np.ndarray] = {h: np.zeros(mesh.count_nodes()) for h in hs}

    @property
    def harmonics(self) -> List[int]:
        return list(self._values)

    def _slot(self, harmonic: int) -> np.ndarray:
        if harmonic not in self._values:
            raise KeyError(f"Field '{self.name}' has no harmonic {harmonic} (has {self.harmonics}).")
        return self._values[harmonic]

    def get_value(self, harmonic: int = 1) -> np.ndarray:
        return self._slot(harmonic).copy()

    def set_value(self, harmonic: int, values):
        """Nodal values of one harmonic: a scalar or one value per node."""
        slot = self._slot(harmonic)
        vals = np.asarray(values, dtype=float)
        if vals.ndim and vals.shape != slot.shape:
            raise ValueError(f"Expected {slot.size} nodal values, got {vals.size}.")
        slot[:] = vals

    def set_from(self, source: Union[Operation, Callable, numbers.Number], harmonic: int = 1):
        """
        Set one harmonic by evaluating ``source`` at the mesh nodes.

        ``source`` may be a number, a callable f(x, y, z), a sympy expression
        or a harmonic-one operation.
        """
        if isinstance(source, Operation) or isinstance(source, numbers.Number):
            op = as_operation(source)
        else:
            op = Analytic(source)
        slot = self._slot(harmonic)
        for etype in self.mesh.element_types:
            if self.mesh.count_elements(etype) == 0:
                continue
            sel = self.mesh.select(etype)
            corners = get_reference(etype).nodes
            vals = op.interpolate(sel, corners)
            if any(h != 1 for h in vals):
                raise ValueError("Fields can only be set from harmonic-one expressions.")
            conn = self.mesh.connectivity[etype].get_values().reshape(-1, NUM_NODES[etype])
            slot[conn[sel.element_numbers].ravel()] = vals.get(1, np.zeros((sel.count(), len(corners)))).ravel()

    # ------------------------------------------------------------------
    def value(self, harmonics: Optional[Iterable[int]] = None) -> "FieldValue":
        return FieldValue(self, harmonics)

    def harmonic(self, harmonics) -> "FieldValue":
        if isinstance(harmonics, numbers.Integral):
            harmonics = [harmonics]
        return FieldValue(self, harmonics)

    def as_operation(self) -> "FieldValue":
        return self.value()

    def dof(self) -> "Dof":
        return Dof(self)

    def tf(self) -> "Tf":
        return Tf(self)

    def __repr__(self):
        return f"Field(name='{self.name}', harmonics={self.harmonics})"


class _FieldOperation(Operation):
    def __init__(self, field: Field, harmonics: Optional[Iterable[int]] = None):
        self.field = field
        if harmonics is None:
            self.harmonics = field.harmonics
        else:
            self.harmonics = sorted({int(h) for h in harmonics})
            missing = set(self.harmonics) - set(field.harmonics)
            if missing:
                raise KeyError(f"Field '{field.name}' has no harmonic(s) {sorted(missing)}.")

    def get_harmonics(self, disjoint_regions):
        return list(self.harmonics)

    def _label(self):
        if self.harmonics == self.field.harmonics:
            return self.field.name
        return f"{self.field.name}.harmonic({self.harmonics})"


class FieldValue(_FieldOperation):
    """Interpolated value of a nodal field."""

    def _rebuild(self, children):
        return FieldValue(self.field, self.harmonics)

    def __repr__(self):
        return self._label()

    def nodal_values(self, selector) -> Dict[int, np.ndarray]:
        """{harmonic: (n_elements, n_nodes)} nodal values of the batch."""
        if selector.mesh is not self.field.mesh:
            raise ValueError(f"Field '{self.field.name}' lives on another mesh.")
        nn = NUM_NODES[selector.element_type]
        conn = selector.mesh.connectivity[selector.element_type].get_values().reshape(-1, nn)
        nodes = conn[selector.element_numbers]
        return {h: self.field._values[h][nodes] for h in self.harmonics}

    def interpolate(self, selector, evaluation_coordinates, mesh_deform=None):
        N = get_reference(selector.element_type).shape(_points(evaluation_coordinates))    # (p, n)
        return {h: v @ N.T for h, v in self.nodal_values(selector).items()}


class Dof(_FieldOperation):
    """Trial-function placeholder, resolved by the assembly layer."""
    is_trial = True

    def _rebuild(self, children):
        return Dof(self.field, self.harmonics)

    def interpolate(self, selector, evaluation_coordinates, mesh_deform=None):
        raise TypeError(f"{self!r} is a trial placeholder and has no values.")

    def __repr__(self):
        return f"dof({self._label()})"


class Tf(_FieldOperation):
    """Test-function placeholder, resolved by the assembly layer."""
    is_test = True

    def _rebuild(self, children):
        return Tf(self.field, self.harmonics)

    def interpolate(self, selector, evaluation_coordinates, mesh_deform=None):
        raise TypeError(f"{self!r} is a test placeholder and has no values.")

    def __repr__(self):
        return f"tf({self._label()})"
