"""
.. currentmodule:: vnacal.constants

========================================
constants (:mod:`vnacal.constants`)
========================================

This module contains numerical constants and the default settings of the
calibration solver.

.. data:: INF

    A very very large value (1e99)

.. data:: PHI_INV

    One over the golden ratio. Maximum norm of a Gauss-Newton step
    relative to the norm of the parameter vector.

.. data:: Z0_DEFAULT

    Default reference impedance of a calibration (50 ohm).

"""
from __future__ import annotations

from numbers import Number
from typing import Sequence, Union

import numpy as np

# used as substitutes to handle mathematical singularities.
INF = 1e99
"""
High but not infinite value for numerical purposes.
"""

PHI_INV = 0.618033988749895
"""
1 / phi, where phi is the golden ratio.
"""

PHI_INV2 = 0.381966011250105
"""
1 / phi**2
"""

ET_TOLERANCE_DEFAULT = 1e-6
"""
Default RMS change of the error terms below which the solver stops.
"""

P_TOLERANCE_DEFAULT = 1e-6
"""
Default RMS change of the unknown parameters below which the solver stops.
"""

ITERATION_LIMIT_DEFAULT = 50
"""
Default maximum number of Gauss-Newton iterations per frequency.
"""

PVALUE_LIMIT_DEFAULT = 1e-3
"""
Default p-value below which a calibration is flagged as a poor fit.
"""

BACKTRACK_LIMIT = 6
"""
Maximum number of consecutive step halvings in the line search.
"""

F_EXTRAPOLATION = 0.01
"""
Fraction by which frequencies may lie outside of the calibration range.
"""

Z0_DEFAULT = 50.
"""
Default reference impedance
"""

NumberLike = Union[Number, Sequence[Number], np.ndarray]
