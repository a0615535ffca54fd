from .expressions import (Operation, Constant, Sum, Product, Power, Harmonic, GetHarmonic,
                          Coordinate, Normal, x_coord, y_coord, z_coord, normal)
from .analytic import Analytic
from .fields import Field, FieldValue, Dof, Tf
from .derivatives import Derivative, TimeDerivative, dx, dy, dz, dt, dtdt
from .parameter import RawParameter, OpParameter, Parameter
__all__ = ['Operation', 'Constant', 'Sum', 'Product', 'Power', 'Harmonic', 'GetHarmonic',
           'Coordinate', 'Normal', 'x_coord', 'y_coord', 'z_coord', 'normal', 'Analytic',
           'Field', 'FieldValue', 'Dof', 'Tf', 'Derivative', 'TimeDerivative',
           'dx', 'dy', 'dz', 'dt', 'dtdt', 'RawParameter', 'OpParameter', 'Parameter']
