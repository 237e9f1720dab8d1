'''
.. module:: vnacal.calibration.parameter
================================================================
parameter (:mod:`vnacal.calibration.parameter`)
================================================================

Parameters describe the S-parameters of calibration standards. A cell of
a standard's S matrix holds either a known value, constant or frequency
dependent, or an unknown that the solver determines along with the
error terms.

.. autosummary::
   :toctree: generated/

   Parameter
   ScalarParameter
   VectorParameter
   UnknownParameter
   CorrelatedParameter
   StandardParameter
   as_parameter

'''
from numbers import Number

import numpy as npy

from ..constants import F_EXTRAPOLATION, Z0_DEFAULT
from ..mathFunctions import interpolate_vector


def _check_frequency_range(frequency_vector, f, what):
    fmin = frequency_vector[0] * (1.0 - F_EXTRAPOLATION)
    fmax = frequency_vector[-1] * (1.0 + F_EXTRAPOLATION)
    f = npy.atleast_1d(f)
    if npy.any(f < fmin) or npy.any(f > fmax):
        raise ValueError('frequency %e outside of %s range [%e, %e]' %
                         (f[(f < fmin) | (f > fmax)][0], what,
                          frequency_vector[0], frequency_vector[-1]))


def _check_frequency_vector(frequency_vector):
    frequency_vector = npy.asarray(frequency_vector, dtype=float)
    if frequency_vector.ndim != 1 or len(frequency_vector) == 0:
        raise ValueError('frequency vector must be a non-empty vector')
    if npy.any(frequency_vector < 0.0):
        raise ValueError('frequencies must be non-negative')
    if npy.any(npy.diff(frequency_vector) <= 0.0):
        raise ValueError('frequencies must be ascending')
    return frequency_vector


class Parameter(object):
    '''
    Base class of standard parameters.
    '''
    is_unknown = False

    def evaluate(self, frequency_vector, z0=Z0_DEFAULT):
        '''
        Value of the parameter at each frequency.

        Parameters
        ----------
        frequency_vector : npy.ndarray
            frequencies in Hz
        z0 : complex or array_like
            reference impedance of the calibration; only the values of
            standards described by their physical construction depend
            on it

        Returns
        -------
        values : npy.ndarray
            complex vector, one value per frequency
        '''
        raise NotImplementedError

    @property
    def is_zero(self):
        '''
        True if the parameter is known to be exactly zero at every
        frequency, i.e. the cell has no signal path.
        '''
        return False


class ScalarParameter(Parameter):
    '''
    Frequency independent parameter.

    Parameters
    ----------
    value : complex
    '''
    def __init__(self, value):
        self.value = complex(value)

    def __repr__(self):
        return 'ScalarParameter(%r)' % (self.value,)

    def evaluate(self, frequency_vector, z0=Z0_DEFAULT):
        return npy.full(len(frequency_vector), self.value, dtype=complex)

    @property
    def is_zero(self):
        return self.value == 0.0


class VectorParameter(Parameter):
    '''
    Frequency dependent parameter.

    Values between the given frequencies are found by rational function
    interpolation. Evaluating outside of the given frequency range by
    more than one percent is an error.

    Parameters
    ----------
    frequency_vector : array_like
        ascending frequencies in Hz
    values : array_like
        complex value at each frequency
    '''
    def __init__(self, frequency_vector, values):
        self.frequency_vector = _check_frequency_vector(frequency_vector)
        self.values = npy.asarray(values, dtype=complex)
        if self.values.shape != self.frequency_vector.shape:
            raise ValueError('values must have one entry per frequency')

    def __repr__(self):
        return 'VectorParameter(%d frequencies)' % len(self.frequency_vector)

    def evaluate(self, frequency_vector, z0=Z0_DEFAULT):
        frequency_vector = npy.asarray(frequency_vector, dtype=float)
        _check_frequency_range(self.frequency_vector, frequency_vector,
                               'parameter')
        return interpolate_vector(self.frequency_vector, self.values,
                                  frequency_vector)


class UnknownParameter(Parameter):
    '''
    Parameter determined by the solver.

    Parameters
    ----------
    initial : :class:`Parameter` or complex
        initial guess; the closer to the actual value the better

    Examples
    --------
    An unknown reflect that's roughly a short:

    >>> reflect = UnknownParameter(SHORT)
    '''
    is_unknown = True

    def __init__(self, initial):
        self.initial = as_parameter(initial)
        if self.initial.is_unknown:
            raise TypeError('initial guess must be a known parameter')

    def __repr__(self):
        return '%s(%r)' % (self.__class__.__name__, self.initial)

    def evaluate(self, frequency_vector, z0=Z0_DEFAULT):
        '''
        Initial guess at each frequency.
        '''
        return self.initial.evaluate(frequency_vector, z0)


class CorrelatedParameter(UnknownParameter):
    '''
    Unknown parameter expected to lie close to another parameter.

    The difference between this parameter and `other` is treated as a
    zero mean complex random variable with standard deviation `sigma`.

    Parameters
    ----------
    other : :class:`Parameter` or complex
        parameter this one is correlated with; may itself be unknown
    sigma : float or array_like
        standard deviation of the difference, either a constant or one
        value per entry of `sigma_frequency_vector`
    sigma_frequency_vector : array_like, optional
        frequencies at which `sigma` is given
    '''
    def __init__(self, other, sigma, sigma_frequency_vector=None):
        self.other = as_parameter(other)
        if self.other.is_unknown:
            initial = self.other.initial
        else:
            initial = self.other
        super(CorrelatedParameter, self).__init__(initial)
        sigma = npy.asarray(sigma, dtype=float)
        if sigma_frequency_vector is None:
            if sigma.ndim != 0:
                raise ValueError('sigma must be a scalar when no '
                                 'sigma_frequency_vector is given')
            self.sigma_frequency_vector = None
        else:
            self.sigma_frequency_vector = \
                _check_frequency_vector(sigma_frequency_vector)
            if sigma.shape != self.sigma_frequency_vector.shape:
                raise ValueError('sigma must have one entry per frequency')
        if npy.any(sigma <= 0.0):
            raise ValueError('sigma must be positive')
        self.sigma = sigma

    def __repr__(self):
        return 'CorrelatedParameter(%r, sigma=%r)' % (self.other, self.sigma)

    def evaluate_sigma(self, frequency_vector):
        '''
        Standard deviation at each frequency.
        '''
        frequency_vector = npy.asarray(frequency_vector, dtype=float)
        if self.sigma_frequency_vector is None:
            return npy.full(len(frequency_vector), float(self.sigma))
        _check_frequency_range(self.sigma_frequency_vector, frequency_vector,
                               'sigma')
        return npy.abs(interpolate_vector(self.sigma_frequency_vector,
                                          self.sigma, frequency_vector))


class StandardParameter(Parameter):
    '''
    One cell of the S matrix of a multi-cell standard.

    The standard is evaluated as a whole at the reference impedance of
    the calibration. The cells of one standard must be placed together
    in the S matrix of a measured standard: a diagonal cell on the
    diagonal, and each port of the standard on one port.

    Parameters
    ----------
    standard : :class:`~vnacal.calibration.calkit.Standard`
    row, column : int
        zero-based cell of the standard's S matrix
    placement : object, optional
        token shared by the cells that are placed together; defaults to
        the standard

    See Also
    --------
    vnacal.calibration.calkit.Standard.parameter_matrix
    '''
    def __init__(self, standard, row, column, placement=None):
        if not (0 <= row < standard.ports and 0 <= column < standard.ports):
            raise IndexError('cell (%d, %d) outside of %d port standard' %
                             (row, column, standard.ports))
        self.standard = standard
        self.row = row
        self.column = column
        self.placement = standard if placement is None else placement

    def __repr__(self):
        return 'StandardParameter(%r, %d, %d)' % (self.standard, self.row,
                                                  self.column)

    def evaluate(self, frequency_vector, z0=Z0_DEFAULT):
        frequency_vector = npy.asarray(frequency_vector, dtype=float)
        return self.standard.evaluate(frequency_vector,
                                      z0)[:, self.row, self.column]


ZERO = ScalarParameter(0.0)
ONE = ScalarParameter(1.0)
MATCH = ZERO
OPEN = ONE
SHORT = ScalarParameter(-1.0)


def as_parameter(value):
    '''
    Promote a number to a :class:`ScalarParameter`.

    Zero and one map to the predefined :data:`ZERO` and :data:`ONE`.
    Parameters are returned unchanged.
    '''
    if isinstance(value, Parameter):
        return value
    if isinstance(value, (Number, npy.number)):
        if value == 0:
            return ZERO
        if value == 1:
            return ONE
        return ScalarParameter(value)
    raise TypeError('expected a Parameter or number, got %r' % (value,))
