from .core import (IndexMatrix, Mesh, ElementSelector, DimensionError, EmptyMatrixError,
                   ComponentRangeError, UndefinedLookupError)
from .core.harmonics import SETTINGS, set_fundamental_frequency, get_fundamental_frequency
__all__ = ['IndexMatrix', 'Mesh', 'ElementSelector', 'DimensionError', 'EmptyMatrixError',
           'ComponentRangeError', 'UndefinedLookupError', 'SETTINGS',
           'set_fundamental_frequency', 'get_fundamental_frequency']
