"""
vnacal is an object-oriented approach to vector network analyzer
calibration, implemented in Python.
"""

__version__ = '0.1.0'
## Import all  module names for coherent reference of name-space


from . import (
    calibration,
    constants,
    mathFunctions,
)
from .calibration import *
from .constants import *
from .mathFunctions import *

## Shorthand Names
C = Calibration
