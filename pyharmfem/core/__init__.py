from .errors import DimensionError, EmptyMatrixError, ComponentRangeError, UndefinedLookupError
from .indexmat import IndexMatrix
from .elementselector import ElementSelector
from .mesh import Mesh
__all__ = ['IndexMatrix', 'Mesh', 'ElementSelector', 'DimensionError', 'EmptyMatrixError',
           'ComponentRangeError', 'UndefinedLookupError']
