"""
.. module:: vnacal.calibration
========================================
calibration (:mod:`vnacal.calibration`)
========================================


This Package provides the calibration solver: error term layouts,
standards and their parameters, the iterative solver, and solved
calibrations that correct DUT measurements.

.. automodule:: vnacal.calibration.layout
.. automodule:: vnacal.calibration.parameter
.. automodule:: vnacal.calibration.calkit
.. automodule:: vnacal.calibration.standard
.. automodule:: vnacal.calibration.equations
.. automodule:: vnacal.calibration.solver
.. automodule:: vnacal.calibration.calibration
.. automodule:: vnacal.calibration.exceptions

"""

from . import (calibration, calkit, equations, exceptions, layout, parameter,
               solver, standard)
from .calibration import *
from .calkit import *
from .exceptions import *
from .layout import *
from .parameter import *
from .solver import *
from .standard import *

__all__ = [
    'CalType', 'Layout', 'compute_layout', 'needed_standards',
    'Parameter', 'ScalarParameter', 'VectorParameter', 'UnknownParameter',
    'CorrelatedParameter', 'StandardParameter', 'as_parameter', 'MATCH',
    'OPEN', 'SHORT', 'ZERO', 'ONE',
    'Standard', 'CalkitStandard', 'CalkitShort', 'CalkitOpen', 'CalkitLoad',
    'CalkitThrough', 'DataStandard',
    'MeasuredStandard', 'measurement_from_ab',
    'Solver', 'SolveResult',
    'Calibration', 'convert_ue14_to_e12', 'convert_e12_to_ue14',
    'convert_t_to_u', 'convert_u_to_t',
    'VnacalError', 'InvalidDimensions', 'SingularSystem', 'SingularMatrix',
    'NotEnoughStandards', 'IterationLimitExceeded', 'PoorFitWarning',
]
