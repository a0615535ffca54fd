# pyharmfem/core/harmonics.py
"""
Multiharmonic conventions.

Harmonic 1 is the constant part, harmonic ``2k`` is ``sin(2 pi k f0 t)`` and
harmonic ``2k+1`` is ``cos(2 pi k f0 t)``. A multiharmonic value is stored
as ``{harmonic: ndarray}``; a missing harmonic is a structural zero.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import numpy as np
from scipy import fft as sp_fft

logger = logging.getLogger(__name__)


@dataclass
class HarmonicSettings:
    """Global knobs of the multiharmonic machinery."""
    # Fundamental frequency f0 in Hz. Only time derivatives need it.
    fundamental_frequency: Optional[float] = None
    # Harmonics produced by an FFT whose magnitude is below this fraction
    # of the largest one are dropped.
    fft_drop_tolerance: float = 1e-12
    # Highest frequency index kept when resolving a nonlinear operation
    # whose harmonic series does not terminate.
    nonlinear_max_frequency: int = 4


# Global, editable in one place:
SETTINGS = HarmonicSettings()


def set_fundamental_frequency(f0: float):
    if f0 <= 0:
        raise ValueError(f"Fundamental frequency must be positive, got {f0}.")
    SETTINGS.fundamental_frequency = float(f0)


def get_fundamental_frequency() -> float:
    if SETTINGS.fundamental_frequency is None:
        raise ValueError("The fundamental frequency has not been set "
                         "(call set_fundamental_frequency first).")
    return SETTINGS.fundamental_frequency


def check_harmonic(h: int):
    if h < 1:
        raise ValueError(f"Harmonic numbers start at 1, got {h}.")


def harmonic_frequency(h: int) -> int:
    """Frequency index k of harmonic h (0 for the constant harmonic)."""
    check_harmonic(h)
    return h // 2


def is_sine(h: int) -> bool:
    check_harmonic(h)
    return h % 2 == 0


def is_cosine(h: int) -> bool:
    check_harmonic(h)
    return h > 1 and h % 2 == 1


def sine_harmonic(k: int) -> int:
    if k < 1:
        raise ValueError(f"A sine harmonic needs k >= 1, got {k}.")
    return 2 * k


def cosine_harmonic(k: int) -> int:
    if k < 0:
        raise ValueError(f"Frequency index must be non-negative, got {k}.")
    return 2 * k + 1 if k > 0 else 1


def harmonics_up_to(kmax: int) -> List[int]:
    """All harmonics with frequency index <= kmax: [1, 2, 3, ..., 2*kmax+1]."""
    return list(range(1, 2 * kmax + 2))


def max_frequency(harmonics: Iterable[int]) -> int:
    harmonics = list(harmonics)
    return max((harmonic_frequency(h) for h in harmonics), default=0)


def time_basis(h: int, num_samples: int) -> np.ndarray:
    """Basis function of harmonic h at ``t_i = i / (num_samples * f0)``."""
    theta = 2.0 * np.pi * np.arange(num_samples) / num_samples
    k = harmonic_frequency(h)
    if k == 0:
        return np.ones(num_samples)
    if is_sine(h):
        return np.sin(k * theta)
    return np.cos(k * theta)


def harmonics_to_time(values: Dict[int, np.ndarray], num_samples: int,
                      shape=None) -> np.ndarray:
    """
    Sum ``values[h] * basis_h(t_i)`` -> array of shape ``(num_samples, *shape)``.

    ``shape`` is only needed when ``values`` is empty.
    """
    if num_samples < 1:
        raise ValueError(f"Need at least one time sample, got {num_samples}.")
    if shape is None:
        if not values:
            raise ValueError("Cannot infer the value shape of an empty harmonic set.")
        shape = next(iter(values.values())).shape
    out = np.zeros((num_samples,) + tuple(shape))
    for h, val in values.items():
        out += time_basis(h, num_samples).reshape((-1,) + (1,) * len(shape)) * val
    return out


def samples_for(kmax: int) -> int:
    """Time samples needed to recover harmonics up to frequency kmax without aliasing."""
    return 2 * kmax + 2


def time_to_harmonics(samples: np.ndarray, kmax: Optional[int] = None,
                      drop_tolerance: Optional[float] = None) -> Dict[int, np.ndarray]:
    """
    Inverse of :func:`harmonics_to_time` over one period (FFT along axis 0).

    Harmonics above ``kmax`` or with negligible magnitude are left out.
    """
    samples = np.asarray(samples, dtype=float)
    n = samples.shape[0]
    kmax_alias_free = (n - 1) // 2
    if kmax is None:
        kmax = kmax_alias_free
    if kmax > kmax_alias_free:
        raise ValueError(f"{n} samples resolve frequencies up to {kmax_alias_free}, not {kmax}.")
    if drop_tolerance is None:
        drop_tolerance = SETTINGS.fft_drop_tolerance

    spectrum = sp_fft.rfft(samples, axis=0)
    coeffs: Dict[int, np.ndarray] = {1: spectrum[0].real / n}
    for k in range(1, kmax + 1):
        coeffs[sine_harmonic(k)] = -2.0 * spectrum[k].imag / n
        coeffs[cosine_harmonic(k)] = 2.0 * spectrum[k].real / n

    scale = max((np.max(np.abs(v), initial=0.0) for v in coeffs.values()), default=0.0)
    kept = {h: v for h, v in coeffs.items() if np.max(np.abs(v), initial=0.0) > drop_tolerance * scale}
    if len(kept) < len(coeffs):
        logger.debug(f"time_to_harmonics: dropped harmonics {sorted(set(coeffs) - set(kept))}")
    return dict(sorted(kept.items()))
