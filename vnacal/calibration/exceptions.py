'''
.. module:: vnacal.calibration.exceptions
================================================================
exceptions (:mod:`vnacal.calibration.exceptions`)
================================================================

Errors raised while building and solving calibrations.

Numerical failures carry enough context (frequency, standard and
iteration) to tell which standard or which frequency caused them.

.. autosummary::
   :toctree: generated/

   VnacalError
   InvalidDimensions
   SingularSystem
   SingularMatrix
   NotEnoughStandards
   IterationLimitExceeded
   PoorFitWarning

'''


class VnacalError(Exception):
    '''
    Base class of all calibration errors.

    Parameters
    ----------
    message : str
        description of the error
    frequency_index : int, optional
        index of the frequency at which the failure occurred
    frequency : float, optional
        frequency in Hz at which the failure occurred
    standard_index : int, optional
        index of the calibration standard that caused the failure
    iteration : int, optional
        solver iteration in which the failure occurred
    '''
    def __init__(self, message, frequency_index=None, frequency=None,
                 standard_index=None, iteration=None):
        self.message = message
        self.frequency_index = frequency_index
        self.frequency = frequency
        self.standard_index = standard_index
        self.iteration = iteration
        super().__init__(message)

    def __str__(self):
        return self._format()

    def _format(self):
        context = []
        if self.frequency is not None:
            context.append('at %e Hz' % self.frequency)
        elif self.frequency_index is not None:
            context.append('at frequency index %d' % self.frequency_index)
        if self.standard_index is not None:
            context.append('standard %d' % self.standard_index)
        if self.iteration is not None:
            context.append('iteration %d' % self.iteration)
        if not context:
            return self.message
        return '%s (%s)' % (self.message, ', '.join(context))


class InvalidDimensions(VnacalError, ValueError):
    '''
    Matrix dimensions or port maps inconsistent with the error term layout.
    '''


class SingularSystem(VnacalError, ArithmeticError):
    '''
    A linear system in the calibration is singular.
    '''


class SingularMatrix(SingularSystem):
    '''
    A matrix that must be inverted is singular.
    '''


class NotEnoughStandards(VnacalError, ValueError):
    '''
    The standards given don't supply enough equations to find all unknowns.
    '''


class IterationLimitExceeded(VnacalError, ArithmeticError):
    '''
    The iterative solver failed to converge within the iteration limit.
    '''


class PoorFitWarning(UserWarning):
    '''
    The measurements are inconsistent with the error model and the
    measurement errors given, i.e. the p-value is below the limit.
    '''
