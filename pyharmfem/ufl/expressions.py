import logging
import numbers
from typing import Dict, List, Optional, Sequence

import numpy as np

from pyharmfem.core.harmonics import (
    SETTINGS, harmonics_to_time, time_to_harmonics, harmonics_up_to,
    max_frequency, samples_for,
)
from pyharmfem.fem import transform

logger = logging.getLogger(__name__)

# A multiharmonic value: {harmonic number: (n_elements, n_points) array}.
Harmonics = Dict[int, np.ndarray]


def _points(evaluation_coordinates) -> np.ndarray:
    return np.atleast_2d(np.asarray(evaluation_coordinates, dtype=float))


def _merge(a: Harmonics, b: Harmonics, sign: float = 1.0) -> Harmonics:
    out = dict(a)
    for h, v in b.items():
        out[h] = out[h] + sign * v if h in out else sign * v
    return dict(sorted(out.items()))


def as_operation(value) -> "Operation":
    """Wrap plain numbers; pass operations through."""
    if isinstance(value, Operation):
        return value
    if isinstance(value, numbers.Number):
        return Constant(value)
    if hasattr(value, "as_operation"):
        return value.as_operation()
    raise TypeError(f"Cannot use {type(value).__name__} in an expression.")


class Operation:
    """
    Base class for every node of a multiharmonic expression tree.

    Nodes are shared freely between parent expressions, so a node never
    changes its structure after construction.
    """
    is_test = False
    is_trial = False

    def children(self) -> tuple:
        return ()

    # ------------------------------------------------------------------
    # evaluation
    # ------------------------------------------------------------------
    def interpolate(self, selector, evaluation_coordinates, mesh_deform=None) -> Harmonics:
        """
        Values at every element of ``selector`` and every reference point.

        Returns ``{harmonic: (n_elements, n_points) array}``. Harmonics the
        expression does not produce are left out and must be read as zero.
        """
        raise NotImplementedError(f"{type(self).__name__} cannot be interpolated.")

    def multiharmonic_interpolate(self, num_time_evals: int, selector,
                                  evaluation_coordinates, mesh_deform=None) -> np.ndarray:
        """
        Time-domain values at ``num_time_evals`` instants equally spaced over
        one period, shape ``(num_time_evals, n_elements, n_points)``.
        """
        if num_time_evals < 1:
            raise ValueError(f"Need at least one time evaluation, got {num_time_evals}.")
        pts = _points(evaluation_coordinates)
        vals = self.interpolate(selector, pts, mesh_deform)
        return harmonics_to_time(vals, num_time_evals, (selector.count(), pts.shape[0]))

    # ------------------------------------------------------------------
    # structure
    # ------------------------------------------------------------------
    def get_harmonics(self, disjoint_regions: Sequence[int]) -> List[int]:
        """Harmonics the expression may be nonzero on (a superset is allowed)."""
        raise NotImplementedError

    def is_harmonic_one(self, disjoint_regions: Sequence[int]) -> bool:
        return set(self.get_harmonics(disjoint_regions)) <= {1}

    def is_value_orientation_dependent(self, disjoint_regions: Sequence[int]) -> bool:
        return any(c.is_value_orientation_dependent(disjoint_regions) for c in self.children())

    def simplify(self, disjoint_regions: Sequence[int]) -> "Operation":
        return self._rebuild([c.simplify(disjoint_regions) for c in self.children()])

    def _rebuild(self, children: list) -> "Operation":
        raise NotImplementedError

    def copy(self, memo: Optional[dict] = None) -> "Operation":
        """
        Structural copy. A sub-tree shared inside this tree is shared in
        the copy as well; data holders (fields, parameter tables) are not
        duplicated.
        """
        if memo is None:
            memo = {}
        key = id(self)
        if key not in memo:
            memo[key] = self._rebuild([c.copy(memo) for c in self.children()])
        return memo[key]

    def reuse_it(self, is_to_be_reused: bool):
        """Enable result reuse on every node of the tree that supports it."""
        for c in self.children():
            c.reuse_it(is_to_be_reused)

    def print(self):
        print(repr(self))

    def __repr__(self):
        return f"{self.__class__.__name__}()"

    # ------------------------------------------------------------------
    # algebra
    # ------------------------------------------------------------------
    def __add__(self, other): return Sum(self, as_operation(other))
    def __radd__(self, other): return Sum(as_operation(other), self)
    def __sub__(self, other): return Sum(self, -as_operation(other))
    def __rsub__(self, other): return Sum(as_operation(other), -self)
    def __mul__(self, other): return Product(self, as_operation(other))
    def __rmul__(self, other): return Product(as_operation(other), self)
    def __truediv__(self, other): return Product(self, Power(as_operation(other), -1))
    def __rtruediv__(self, other): return Product(as_operation(other), Power(self, -1))
    def __neg__(self): return Product(Constant(-1.0), self)

    def __pow__(self, exponent):
        if not isinstance(exponent, numbers.Number):
            raise TypeError("Only constant exponents are supported.")
        return Power(self, exponent)

    def harmonic(self, harmonics) -> "Harmonic":
        return Harmonic(self, harmonics)

    def find_first(self, criteria):
        """Depth-first search for the first node satisfying *criteria*."""
        visited = set()

        def dfs(node):
            if id(node) in visited:
                return None
            visited.add(id(node))
            if criteria(node):
                return node
            for c in node.children():
                found = dfs(c)
                if found is not None:
                    return found
            return None

        return dfs(self)


class Constant(Operation):
    def __init__(self, value):
        self.value = float(value)

    def interpolate(self, selector, evaluation_coordinates, mesh_deform=None):
        return {1: np.full((selector.count(), _points(evaluation_coordinates).shape[0]), self.value)}

    def get_harmonics(self, disjoint_regions):
        return [1]

    def simplify(self, disjoint_regions):
        return self

    def _rebuild(self, children):
        return Constant(self.value)

    def __float__(self):
        return self.value

    def __repr__(self):
        return f"{self.value:g}"


def _is_constant(op, value=None) -> bool:
    return isinstance(op, Constant) and (value is None or op.value == value)


class Sum(Operation):
    def __init__(self, a, b): self.a, self.b = a, b
    def children(self): return (self.a, self.b)
    def _rebuild(self, children): return Sum(*children)
    def __repr__(self): return f"({self.a!r} + {self.b!r})"

    def interpolate(self, selector, evaluation_coordinates, mesh_deform=None):
        return _merge(self.a.interpolate(selector, evaluation_coordinates, mesh_deform),
                      self.b.interpolate(selector, evaluation_coordinates, mesh_deform))

    def get_harmonics(self, disjoint_regions):
        return sorted(set(self.a.get_harmonics(disjoint_regions)) | set(self.b.get_harmonics(disjoint_regions)))

    def simplify(self, disjoint_regions):
        a, b = self.a.simplify(disjoint_regions), self.b.simplify(disjoint_regions)
        if _is_constant(a) and _is_constant(b):
            return Constant(a.value + b.value)
        if _is_constant(a, 0.0):
            return b
        if _is_constant(b, 0.0):
            return a
        return Sum(a, b)


def _product_harmonics(ha: List[int], hb: List[int]) -> List[int]:
    if not ha or not hb:
        return []
    if set(ha) <= {1}:
        return list(hb)
    if set(hb) <= {1}:
        return list(ha)
    return harmonics_up_to(max_frequency(ha) + max_frequency(hb))


def _time_product(va: Harmonics, vb: Harmonics) -> Harmonics:
    """Exact product of two multiharmonic values through time sampling."""
    kmax = max_frequency(va) + max_frequency(vb)
    n = samples_for(kmax)
    ta = harmonics_to_time(va, n)
    tb = harmonics_to_time(vb, n)
    return time_to_harmonics(ta * tb, kmax)


class Product(Operation):
    def __init__(self, a, b): self.a, self.b = a, b
    def children(self): return (self.a, self.b)
    def _rebuild(self, children): return Product(*children)
    def __repr__(self): return f"({self.a!r} * {self.b!r})"

    def interpolate(self, selector, evaluation_coordinates, mesh_deform=None):
        # both operands are evaluated so that undefined data fails even next to a zero factor
        va = self.a.interpolate(selector, evaluation_coordinates, mesh_deform)
        vb = self.b.interpolate(selector, evaluation_coordinates, mesh_deform)
        if not va or not vb:
            return {}
        if set(va) == {1}:
            return {h: va[1] * v for h, v in vb.items()}
        if set(vb) == {1}:
            return {h: v * vb[1] for h, v in va.items()}
        return _time_product(va, vb)

    def get_harmonics(self, disjoint_regions):
        return _product_harmonics(self.a.get_harmonics(disjoint_regions),
                                  self.b.get_harmonics(disjoint_regions))

    def simplify(self, disjoint_regions):
        a, b = self.a.simplify(disjoint_regions), self.b.simplify(disjoint_regions)
        if _is_constant(a) and _is_constant(b):
            return Constant(a.value * b.value)
        if _is_constant(a, 0.0) or _is_constant(b, 0.0):
            return Constant(0.0)
        if _is_constant(a, 1.0):
            return b
        if _is_constant(b, 1.0):
            return a
        return Product(a, b)


class Power(Operation):
    """``base ** exponent`` for a constant exponent."""

    def __init__(self, base, exponent):
        self.base = base
        self.exponent = float(exponent)

    def children(self): return (self.base,)
    def _rebuild(self, children): return Power(children[0], self.exponent)
    def __repr__(self): return f"({self.base!r} ** {self.exponent:g})"

    def _is_polynomial(self) -> bool:
        return self.exponent >= 0 and self.exponent.is_integer()

    def interpolate(self, selector, evaluation_coordinates, mesh_deform=None):
        pts = _points(evaluation_coordinates)
        vb = self.base.interpolate(selector, pts, mesh_deform)
        shape = (selector.count(), pts.shape[0])
        if self.exponent == 0:
            return {1: np.ones(shape)}
        if not vb and self.exponent > 0:
            return {}
        if set(vb) <= {1}:
            with np.errstate(divide="raise", invalid="raise"):
                base = vb.get(1, np.zeros(shape))
                return {1: np.power(base, self.exponent)}

        if self._is_polynomial():
            kmax = int(self.exponent) * max_frequency(vb)
            n = samples_for(kmax)
        else:
            kmax = SETTINGS.nonlinear_max_frequency
            # oversample to limit aliasing of the truncated tail
            n = samples_for(4 * kmax)
            logger.warning(f"{self!r}: harmonic series truncated at frequency index {kmax}.")
        with np.errstate(divide="raise", invalid="raise"):
            samples = np.power(harmonics_to_time(vb, n), self.exponent)
        return time_to_harmonics(samples, kmax)

    def get_harmonics(self, disjoint_regions):
        if self.exponent == 0:
            return [1]
        hb = self.base.get_harmonics(disjoint_regions)
        if set(hb) <= {1}:
            return [1] if (hb or self.exponent < 0) else []
        if self._is_polynomial():
            return harmonics_up_to(int(self.exponent) * max_frequency(hb))
        return harmonics_up_to(SETTINGS.nonlinear_max_frequency)

    def simplify(self, disjoint_regions):
        base = self.base.simplify(disjoint_regions)
        if self.exponent == 0:
            return Constant(1.0)
        if self.exponent == 1:
            return base
        if _is_constant(base) and not (base.value == 0 and self.exponent < 0) \
                and not (base.value < 0 and not self.exponent.is_integer()):
            return Constant(base.value ** self.exponent)
        return Power(base, self.exponent)


class Harmonic(Operation):
    """Keeps only the listed harmonics of the operand."""

    def __init__(self, operand, harmonics):
        self.operand = operand
        if isinstance(harmonics, numbers.Integral):
            harmonics = [harmonics]
        self.harmonics = sorted({int(h) for h in harmonics})
        if not self.harmonics or self.harmonics[0] < 1:
            raise ValueError(f"Harmonic numbers start at 1, got {harmonics}.")

    def children(self): return (self.operand,)
    def _rebuild(self, children): return Harmonic(children[0], self.harmonics)
    def __repr__(self): return f"{self.operand!r}.harmonic({self.harmonics})"

    def interpolate(self, selector, evaluation_coordinates, mesh_deform=None):
        vals = self.operand.interpolate(selector, evaluation_coordinates, mesh_deform)
        return {h: v for h, v in vals.items() if h in self.harmonics}

    def get_harmonics(self, disjoint_regions):
        return [h for h in self.operand.get_harmonics(disjoint_regions) if h in self.harmonics]

    def simplify(self, disjoint_regions):
        op = self.operand.simplify(disjoint_regions)
        if _is_constant(op):
            return op if 1 in self.harmonics else Constant(0.0)
        return Harmonic(op, self.harmonics)


class GetHarmonic(Operation):
    """Coefficient of harmonic ``h`` of the operand, as a constant-in-time value."""

    def __init__(self, operand, harmonic: int):
        if harmonic < 1:
            raise ValueError(f"Harmonic numbers start at 1, got {harmonic}.")
        self.operand = operand
        self.harmonic_number = int(harmonic)

    def children(self): return (self.operand,)
    def _rebuild(self, children): return GetHarmonic(children[0], self.harmonic_number)
    def __repr__(self): return f"getharmonic({self.harmonic_number}, {self.operand!r})"

    def interpolate(self, selector, evaluation_coordinates, mesh_deform=None):
        vals = self.operand.interpolate(selector, evaluation_coordinates, mesh_deform)
        if self.harmonic_number in vals:
            return {1: vals[self.harmonic_number]}
        return {}

    def get_harmonics(self, disjoint_regions):
        return [1] if self.harmonic_number in self.operand.get_harmonics(disjoint_regions) else []

    def simplify(self, disjoint_regions):
        op = self.operand.simplify(disjoint_regions)
        if _is_constant(op):
            return op if self.harmonic_number == 1 else Constant(0.0)
        return GetHarmonic(op, self.harmonic_number)


_AXES = ("x", "y", "z")


def _check_axis(axis: int):
    if axis not in (0, 1, 2):
        raise ValueError(f"Axis must be 0, 1 or 2, got {axis}.")


class Coordinate(Operation):
    """Physical coordinate of the evaluation point (deformed if requested)."""

    def __init__(self, axis: int):
        _check_axis(axis)
        self.axis = axis

    def _rebuild(self, children): return Coordinate(self.axis)
    def __repr__(self): return _AXES[self.axis]

    def interpolate(self, selector, evaluation_coordinates, mesh_deform=None):
        coords = selector.node_coordinates(mesh_deform)
        xyz = transform.x_mapping(selector.element_type, coords, _points(evaluation_coordinates))
        return {1: xyz[..., self.axis]}

    def get_harmonics(self, disjoint_regions):
        return [1]


class Normal(Operation):
    """
    Component of the unit normal of line elements in the xy plane.

    The normal is the tangent rotated clockwise, so it points outward on a
    counter-clockwise boundary. Flipping an element flips the value.
    """

    def __init__(self, axis: int):
        _check_axis(axis)
        self.axis = axis

    def _rebuild(self, children): return Normal(self.axis)
    def __repr__(self): return f"normal({_AXES[self.axis]})"

    def interpolate(self, selector, evaluation_coordinates, mesh_deform=None):
        if selector.element_type != "line":
            raise ValueError(f"Normals are defined on line elements, not '{selector.element_type}'.")
        coords = selector.node_coordinates(mesh_deform)
        J = transform.jacobian("line", coords, _points(evaluation_coordinates))   # (e, p, 1, 3)
        t = J[:, :, 0, :]
        t = t / np.linalg.norm(t, axis=-1, keepdims=True)
        n = np.stack([t[..., 1], -t[..., 0], np.zeros_like(t[..., 0])], axis=-1)
        return {1: n[..., self.axis]}

    def get_harmonics(self, disjoint_regions):
        return [1]

    def is_value_orientation_dependent(self, disjoint_regions):
        return True


x_coord, y_coord, z_coord = Coordinate(0), Coordinate(1), Coordinate(2)


def normal(axis: int) -> Normal:
    return Normal(axis)
