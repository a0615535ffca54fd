"""pyharmfem.core.errors
Exceptions raised by the index container and the expression engine.

They derive from the matching builtin so that callers may catch either.
"""


class DimensionError(ValueError):
    """Shape or count mismatch (construction, resize, selection)."""


class EmptyMatrixError(ValueError):
    """A reduction was requested on an empty container."""


class ComponentRangeError(IndexError):
    """A tensor-component selector lies outside the declared shape."""


class UndefinedLookupError(LookupError):
    """A parameter was queried on a region/harmonic it has no data for."""


__all__ = ["DimensionError", "EmptyMatrixError", "ComponentRangeError", "UndefinedLookupError"]
