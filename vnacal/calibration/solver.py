'''
.. module:: vnacal.calibration.solver
================================================================
solver (:mod:`vnacal.calibration.solver`)
================================================================

Find the error terms of a VNA from measured calibration standards.

A :class:`Solver` collects measured standards, then :meth:`Solver.solve`
finds the error terms at each frequency. Without unknown standard
parameters and without a measurement error model the error terms are
the (least squares) solution of a linear system. Otherwise the solver
uses variable projection: the error terms are eliminated by QR
decomposition and Gauss-Newton iteration finds the unknown parameters,
using Kaufman's approximation of the Jacobian.

Examples
--------
Solve a 2 port T8 calibration from a short-open-load-through set:

>>> solver = Solver('T8', 2, 2, frequency_vector)
>>> solver.add_double_reflect(m_short, SHORT, SHORT, 1, 2)
>>> solver.add_double_reflect(m_open, OPEN, OPEN, 1, 2)
>>> solver.add_double_reflect(m_load, MATCH, MATCH, 1, 2)
>>> solver.add_through(m_through, 1, 2)
>>> result = solver.solve()
>>> s = result.calibration.apply(m_dut)

.. autosummary::
   :toctree: generated/

   Solver
   SolveResult

'''
import logging
import warnings
from collections import namedtuple

import numpy as npy
from scipy import linalg
from scipy.stats import chi2

from ..constants import (BACKTRACK_LIMIT, ET_TOLERANCE_DEFAULT, INF,
                         ITERATION_LIMIT_DEFAULT, P_TOLERANCE_DEFAULT, PHI_INV,
                         PHI_INV2, PVALUE_LIMIT_DEFAULT, Z0_DEFAULT)
from ..mathFunctions import cabs2, interpolate_vector, mldivide, qr, qrsolve
from .calibration import Calibration, convert_ue14_to_e12
from .equations import error_model
from .exceptions import (InvalidDimensions, IterationLimitExceeded,
                         NotEnoughStandards, PoorFitWarning, SingularSystem,
                         VnacalError)
from .layout import CalType, Layout
from .parameter import (ONE, ZERO, CorrelatedParameter,
                        _check_frequency_range, _check_frequency_vector)
from .standard import MeasuredStandard, measurement_from_ab

logger = logging.getLogger(__name__)


SolveResult = namedtuple('SolveResult', ['calibration', 'pvalues', 'poor_fit',
                                         'iterations', 'parameter_values',
                                         'rms_error'])
SolveResult.__doc__ = '''
Result of :meth:`Solver.solve`.

calibration : :class:`~vnacal.calibration.calibration.Calibration`
    the solved calibration
pvalues : npy.ndarray or None
    p-value of the fit at each frequency; None without a measurement
    error model
poor_fit : bool
    True if any p-value is below the solver's pvalue_limit
iterations : npy.ndarray
    iterations used at each frequency (0 for the linear solve)
parameter_values : dict
    maps each unknown parameter to its solved values, one per frequency
rms_error : npy.ndarray
    RMS difference between measured and modeled values at each frequency
'''

def _correlation_chain(parameter):
    '''
    The parameter followed by the parameters it is correlated with, in
    order, ending at the first one that isn't correlated.
    '''
    chain = [parameter]
    while isinstance(chain[-1], CorrelatedParameter):
        chain.append(chain[-1].other)
    return chain


class Solver(object):
    '''
    Calibration in progress.

    Parameters
    ----------
    cal_type : :class:`~vnacal.calibration.layout.CalType` or str
        error term type, e.g. 'T8', 'UE14' or 'E12'
    m_rows : int
        rows of the measurement matrix (VNA detectors)
    m_columns : int
        columns of the measurement matrix (VNA driven ports)
    frequency_vector : array_like
        ascending calibration frequencies in Hz
    z0 : complex
        reference impedance; calibration kit and data standards are
        evaluated at it
    name : str, optional
        name given to the solved calibration
    et_tolerance : float
        RMS change of the error terms at which iteration stops
    p_tolerance : float
        RMS change of the unknown parameters at which iteration stops
    iteration_limit : int
        maximum iterations per frequency
    pvalue_limit : float
        p-value under which the fit is reported as poor

    See Also
    --------
    vnacal.calibration.calibration.Calibration
    '''
    def __init__(self, cal_type, m_rows, m_columns, frequency_vector,
                 z0=Z0_DEFAULT, name=None, et_tolerance=ET_TOLERANCE_DEFAULT,
                 p_tolerance=P_TOLERANCE_DEFAULT,
                 iteration_limit=ITERATION_LIMIT_DEFAULT,
                 pvalue_limit=PVALUE_LIMIT_DEFAULT):
        self.layout = Layout(cal_type, m_rows, m_columns)
        self.solve_layout = self.layout.solve_layout()
        self.model = error_model(self.layout)
        self.frequency_vector = _check_frequency_vector(frequency_vector)
        self.z0 = z0
        self.name = name
        self.et_tolerance = et_tolerance
        self.p_tolerance = p_tolerance
        self.iteration_limit = iteration_limit
        self.pvalue_limit = pvalue_limit
        self.standards = []
        self.m_error = None
        self._parameter_values = None

    def __repr__(self):
        return 'Solver(%s %dx%d, %d frequencies, %d standards)' % (
            self.layout.cal_type.name, self.layout.m_rows,
            self.layout.m_columns, self.frequencies, len(self.standards))

    @property
    def frequencies(self):
        return len(self.frequency_vector)

    @property
    def et_tolerance(self):
        return self._et_tolerance

    @et_tolerance.setter
    def et_tolerance(self, value):
        if not value > 0.0:
            raise ValueError('et_tolerance must be positive')
        self._et_tolerance = float(value)

    @property
    def p_tolerance(self):
        return self._p_tolerance

    @p_tolerance.setter
    def p_tolerance(self, value):
        if not value > 0.0:
            raise ValueError('p_tolerance must be positive')
        self._p_tolerance = float(value)

    @property
    def iteration_limit(self):
        return self._iteration_limit

    @iteration_limit.setter
    def iteration_limit(self, value):
        if int(value) < 1:
            raise ValueError('iteration_limit must be at least 1')
        self._iteration_limit = int(value)

    @property
    def pvalue_limit(self):
        return self._pvalue_limit

    @pvalue_limit.setter
    def pvalue_limit(self, value):
        if not 0.0 <= value <= 1.0:
            raise ValueError('pvalue_limit must be between 0 and 1')
        self._pvalue_limit = float(value)

    ## standards
    def add_mapped_matrix(self, m, s, port_map=None, a=None):
        '''
        Add a measured standard.

        Parameters
        ----------
        m : npy.ndarray
            frequencies x m_rows x m_columns measurement matrix, or the
            b matrix of an a/b pair
        s : array_like
            matrix of parameters or numbers describing the standard; may
            be smaller than the calibration if `port_map` is given
        port_map : sequence of int, optional
            VNA port (1-based) attached to each port of the standard
        a : npy.ndarray, optional
            voltages leaving the VNA; if given, the measurement is
            ``m a^-1`` (for UE14 and E12 each column of m is divided by
            the matching entry of the 1 x m_columns row a)

        Returns
        -------
        standard : :class:`~vnacal.calibration.standard.MeasuredStandard`
        '''
        index = len(self.standards)
        if a is not None:
            m = measurement_from_ab(a, m, self.layout.cal_type.is_column_system,
                                    standard_index=index)
        standard = MeasuredStandard(self.solve_layout, m, s, port_map, index)
        if standard.frequencies != self.frequencies:
            raise InvalidDimensions('m must have %d frequencies' %
                                    self.frequencies, standard_index=index)
        self.standards.append(standard)
        self._parameter_values = None
        logger.debug('added standard %d, port map %s', index,
                     standard.port_map)
        return standard

    def add_single_reflect(self, m, s11, port=1, a=None):
        '''
        Add a reflect standard on one port.
        '''
        return self.add_mapped_matrix(m, [[s11]], [port], a)

    def add_double_reflect(self, m, s11, s22, port1=1, port2=2, a=None):
        '''
        Add a pair of reflect standards measured at the same time on two
        ports, without leakage between them.
        '''
        return self.add_mapped_matrix(m, [[s11, ZERO], [ZERO, s22]],
                                      [port1, port2], a)

    def add_through(self, m, port1=1, port2=2, a=None):
        '''
        Add a perfect, zero length through between two ports.
        '''
        return self.add_mapped_matrix(m, [[ZERO, ONE], [ONE, ZERO]],
                                      [port1, port2], a)

    def add_line(self, m, s_2x2, port1=1, port2=2, a=None):
        '''
        Add a two port line standard with the given S matrix.
        '''
        s_2x2 = npy.array(s_2x2, dtype=object)
        if s_2x2.shape != (2, 2):
            raise InvalidDimensions('line standard must be 2 x 2')
        return self.add_mapped_matrix(m, s_2x2, [port1, port2], a)

    def set_m_error(self, noise, tracking=None, frequency_vector=None):
        '''
        Set the measurement error model.

        The standard deviation of each measured value x is
        ``sqrt(noise**2 + tracking**2 * |x|**2)``. Setting the error
        model weights the equations accordingly and enables the
        p-value test.

        Parameters
        ----------
        noise : float or array_like or None
            noise floor; None removes the error model
        tracking : float or array_like, optional
            error proportional to the measured value; default zero
        frequency_vector : array_like, optional
            frequencies at which noise and tracking are given; if
            omitted they are scalars or have one entry per calibration
            frequency
        '''
        if noise is None:
            self.m_error = None
            return
        noise = npy.asarray(noise, dtype=float)
        tracking = npy.zeros_like(noise) if tracking is None else \
            npy.asarray(tracking, dtype=float)
        if npy.any(noise <= 0.0):
            raise ValueError('noise must be positive')
        if npy.any(tracking < 0.0):
            raise ValueError('tracking must be non-negative')
        if frequency_vector is not None:
            frequency_vector = _check_frequency_vector(frequency_vector)
            _check_frequency_range(frequency_vector, self.frequency_vector,
                                   'm_error')
            values = []
            for x in (noise, tracking):
                x = npy.broadcast_to(x, frequency_vector.shape)
                values.append(npy.abs(interpolate_vector(
                    frequency_vector, x, self.frequency_vector)))
            noise, tracking = values
        else:
            try:
                noise = npy.broadcast_to(noise, self.frequency_vector.shape)
                tracking = npy.broadcast_to(tracking,
                                            self.frequency_vector.shape)
            except ValueError:
                raise ValueError('noise and tracking must be scalars or '
                                 'have one entry per frequency')
        self.m_error = (npy.array(noise, dtype=float),
                        npy.array(tracking, dtype=float))

    ## parameters
    def _unknown_parameters(self):
        unknowns = []
        for standard in self.standards:
            for p in standard.parameters():
                for q in _correlation_chain(p):
                    if q.is_unknown and not any(q is u for u in unknowns):
                        unknowns.append(q)
        return unknowns

    def _known_parameters(self):
        known = {}
        for standard in self.standards:
            for p in standard.parameters():
                p = _correlation_chain(p)[-1]
                if not p.is_unknown and id(p) not in known:
                    known[id(p)] = p.evaluate(self.frequency_vector, self.z0)
        return known

    def get_parameter_value(self, parameter):
        '''
        Solved value of a parameter at each calibration frequency.

        Raises
        ------
        ValueError
            if `parameter` is unknown and :meth:`solve` hasn't succeeded
            since the last standard was added, or it isn't used by any
            standard
        '''
        if not parameter.is_unknown:
            return parameter.evaluate(self.frequency_vector, self.z0)
        if self._parameter_values is None:
            raise ValueError('calibration has not been solved')
        try:
            return self._parameter_values[id(parameter)][1]
        except KeyError:
            raise ValueError('%r is not used by any standard' % (parameter,))

    ## solve
    def solve(self):
        '''
        Solve for the error terms at every frequency.

        Returns
        -------
        result : :class:`SolveResult`

        Raises
        ------
        NotEnoughStandards
            if the standards don't give enough equations
        SingularSystem
            if a linear system or V matrix is singular
        IterationLimitExceeded
            if the iteration doesn't converge
        '''
        if not self.standards:
            raise NotEnoughStandards('no standards given')
        logger.debug('%s', self.model.describe())
        layout = self.solve_layout
        unknowns = self._unknown_parameters()
        known = self._known_parameters()
        initial = npy.zeros((len(unknowns), self.frequencies), dtype=complex)
        for k, u in enumerate(unknowns):
            initial[k] = u.evaluate(self.frequency_vector, self.z0)
        sigmas = dict((id(u), u.evaluate_sigma(self.frequency_vector))
                      for u in unknowns if isinstance(u, CorrelatedParameter))

        terms = npy.zeros((self.frequencies, layout.error_terms),
                          dtype=complex)
        values = npy.zeros((len(unknowns), self.frequencies), dtype=complex)
        pvalues = None if self.m_error is None else \
            npy.zeros(self.frequencies)
        iterations = npy.zeros(self.frequencies, dtype=int)
        rms_error = npy.zeros(self.frequencies)
        for findex, f in enumerate(self.frequency_vector):
            state = _SolveState(self, findex, unknowns, known, sigmas,
                                initial[:, findex])
            try:
                state.solve()
                if pvalues is not None:
                    pvalues[findex] = state.pvalue()
                rms_error[findex] = state.rms_error()
            except VnacalError as e:
                e.frequency_index = findex
                e.frequency = f
                raise
            terms[findex] = state.error_terms()
            values[:, findex] = state.p
            iterations[findex] = state.iterations

        layout_out = layout
        if self.layout.cal_type is CalType.E12:
            layout_out, terms = convert_ue14_to_e12(layout, terms)
        calibration = Calibration(layout_out, self.frequency_vector, terms,
                                  self.z0, self.name)
        self._parameter_values = dict(
            (id(u), (u, values[k])) for k, u in enumerate(unknowns))

        poor_fit = pvalues is not None and \
            bool(npy.any(pvalues < self.pvalue_limit))
        if poor_fit:
            worst = int(npy.argmin(pvalues))
            warnings.warn('poor fit: p-value %.3g at %e Hz is below %g' %
                          (pvalues[worst], self.frequency_vector[worst],
                           self.pvalue_limit), PoorFitWarning, stacklevel=2)
        logger.info('solved %s calibration: %d frequencies, %d standards, '
                    '%d unknown parameters, max rms error %.3g',
                    self.layout.cal_type.name, self.frequencies,
                    len(self.standards), len(unknowns),
                    rms_error.max() if len(rms_error) else 0.0)
        return SolveResult(calibration, pvalues, poor_fit, iterations,
                           dict((u, v) for u, v in
                                self._parameter_values.values()),
                           rms_error)


class _SolveState(object):
    '''
    Working state of the solve at one frequency.
    '''
    def __init__(self, solver, findex, unknowns, known, sigmas, initial):
        self.solver = solver
        self.layout = solver.solve_layout
        self.model = solver.model
        self.findex = findex
        self.standards = solver.standards
        self.m = [standard.m[findex] for standard in self.standards]
        self.unknowns = unknowns
        self.known = dict((key, value[findex])
                          for key, value in known.items())
        self.p = npy.array(initial, dtype=complex)
        self.iterations = 0
        self.leakage = npy.zeros(self.layout.leakage_terms, dtype=complex)
        self._leakage_stats = None
        if solver.m_error is None:
            self.noise = self.tracking = None
        else:
            self.noise = solver.m_error[0][findex]
            self.tracking = solver.m_error[1][findex]

        index = dict((id(u), k) for k, u in enumerate(unknowns))
        self.index = index
        self.correlated = []
        for k, u in enumerate(unknowns):
            if isinstance(u, CorrelatedParameter):
                other = u.other
                self.correlated.append(
                    (k, index.get(id(other)),
                     None if other.is_unknown else self.known[id(other)],
                     sigmas[id(u)][findex]))
        self.x = [self.model.initial_terms(system)
                  for system in range(self.layout.systems)]
        self.v = [[self.model.identity_v()
                   for system in range(self.layout.systems)]
                  for standard in self.standards]

    ## helpers
    def _s(self, standard):
        values = dict((id(u), self.p[k]) for k, u in enumerate(self.unknowns))
        return standard.s_matrix(self.known, values)

    def _full_terms(self, system, x):
        return self.model.full_terms(system, x)

    def _weights(self, m, cells):
        if self.noise is None:
            return npy.ones(len(cells))
        values = npy.array([m[r, c] for r, c in cells], dtype=complex)
        return 1.0 / npy.sqrt(self.noise ** 2 +
                              self.tracking ** 2 * cabs2(values))

    def _assemble(self, system):
        rows_a, rows_b, rows_w = [], [], []
        for k, standard in enumerate(self.standards):
            a, b, cells = self.model.assemble(standard, system,
                                              self._s(standard),
                                              self.v[k][system], self.m[k])
            rows_a.append(a)
            rows_b.append(b)
            rows_w.append(self._weights(self.m[k], cells))
        return (npy.vstack(rows_a), npy.concatenate(rows_b),
                npy.concatenate(rows_w))

    def _derivatives(self, system, terms):
        '''
        Equations x unknowns matrix of derivatives of the equations with
        respect to the unknown parameters.
        '''
        blocks = []
        for k, standard in enumerate(self.standards):
            cells = standard.equation_cells(system)
            block = npy.zeros((len(cells), len(self.unknowns)), dtype=complex)
            for parameter in standard.parameters():
                if not parameter.is_unknown:
                    continue
                block[:, self.index[id(parameter)]] = self.model.derivative(
                    standard, system, standard.indicator(parameter),
                    self.v[k][system], self.m[k], terms)
            blocks.append(block)
        return npy.vstack(blocks)

    def _update_v(self):
        x = npy.concatenate(self.x)
        for k, standard in enumerate(self.standards):
            self.v[k] = self.model.update_all_v(standard, x, self._s(standard))

    ## solve
    def solve(self):
        if self.layout.leakage_terms:
            self._solve_leakage()
        self._check_equation_count()
        if not self.unknowns and self.noise is None:
            self._solve_linear()
        else:
            self._solve_iterative()
        self._update_v()

    def _solve_leakage(self):
        '''
        Average the off-diagonal measurements of cells without a signal
        path, then remove the leakage from the measurements.
        '''
        layout = self.layout
        leakage_map = layout.leakage_map()
        sums = npy.zeros(len(leakage_map), dtype=complex)
        sumsq = npy.zeros(len(leakage_map))
        counts = npy.zeros(len(leakage_map), dtype=int)
        for standard, m in zip(self.standards, self.m):
            for r, c in standard.leakage_cells():
                k = leakage_map[r, c]
                sums[k] += m[r, c]
                sumsq[k] += cabs2(m[r, c])
                counts[k] += 1
        if npy.any(counts == 0):
            raise SingularSystem('leakage term system is singular')
        self.leakage = sums / counts
        self._leakage_stats = (sums, sumsq, counts)
        matrix = npy.zeros((layout.m_rows, layout.m_columns), dtype=complex)
        for (r, c), k in leakage_map.items():
            matrix[r, c] = self.leakage[k]
        self.m = [m - matrix for m in self.m]

    def _check_equation_count(self):
        layout = self.layout
        n = layout.x_terms
        total = 0
        for system in range(layout.systems):
            count = sum(len(standard.equation_cells(system))
                        for standard in self.standards)
            if count < n:
                raise NotEnoughStandards(
                    'not enough standards: %d equations for %d error terms' %
                    (count, n))
            total += count
        total += len(self.correlated)
        needed = layout.systems * n + len(self.unknowns)
        if total < needed:
            raise NotEnoughStandards(
                'not enough standards: %d equations for %d error terms and '
                'unknown parameters' % (total, needed))

    def _solve_linear(self):
        n = self.layout.x_terms
        logger.debug('frequency %d: linear solve', self.findex)
        for system in range(self.layout.systems):
            a, b, w = self._assemble(system)
            if a.shape[0] == n:
                x, det = mldivide(a, b)
            else:
                x, rank = qrsolve(a, b)
            if x is None:
                raise SingularSystem('singular linear system')
            self.x[system] = x

    def _solve_iterative(self):
        layout = self.layout
        solver = self.solver
        n = layout.x_terms
        p_length = len(self.p)
        et_tolerance2 = solver.et_tolerance ** 2
        p_tolerance2 = solver.p_tolerance ** 2
        best = INF
        best_x = best_p = best_d = None
        backtracks = 0
        previous_x = None
        iteration = 0
        logger.debug('frequency %d: iterative solve, %d unknown parameters',
                     self.findex, p_length)
        try:
            while True:
                x_blocks, j_blocks, k_blocks = [], [], []
                for system in range(layout.systems):
                    a, b, w = self._assemble(system)
                    a = a * w[:, npy.newaxis]
                    b = b * w
                    q, r, rank = qr(a)
                    if rank < n:
                        raise SingularSystem('singular linear system')
                    x = linalg.solve_triangular(r[:n], q[:, :n].conj().T @ b,
                                                check_finite=False)
                    x_blocks.append(x)
                    if p_length:
                        q2h = q[:, n:].conj().T
                        d = self._derivatives(system,
                                              self._full_terms(system, x))
                        j_blocks.append(-(q2h @ (d * w[:, npy.newaxis])))
                        k_blocks.append(q2h @ b)
                x = npy.concatenate(x_blocks)
                x_change = 0.0 if previous_x is None else \
                    npy.mean(cabs2(x - previous_x))
                previous_x = x

                if not p_length:
                    self._set_x(x)
                    converged = iteration > 0 and x_change <= et_tolerance2
                else:
                    for k, other, value, sigma in self.correlated:
                        row = npy.zeros(p_length, dtype=complex)
                        row[k] = 1.0 / sigma
                        rhs = self.p[k] / sigma
                        if other is not None:
                            row[other] = -1.0 / sigma
                            rhs -= self.p[other] / sigma
                        else:
                            rhs -= value / sigma
                        j_blocks.append(row[npy.newaxis, :])
                        k_blocks.append(npy.array([rhs]))
                    j = npy.vstack(j_blocks)
                    k = npy.concatenate(k_blocks)
                    if j.shape[0] == p_length:
                        d, det = mldivide(j, k)
                    else:
                        d, rank = qrsolve(j, k)
                    if d is None:
                        raise SingularSystem('singular parameter system')

                    converged = iteration > 0 and \
                        npy.mean(cabs2(d)) <= p_tolerance2 and \
                        x_change <= et_tolerance2
                    sum_d2 = npy.sum(cabs2(d))
                    if converged:
                        self._set_x(x)
                        self.p = self.p - d
                    elif sum_d2 < best:
                        best = sum_d2
                        sum_p2 = max(npy.sum(cabs2(self.p)), 1.0)
                        if sum_d2 > sum_p2 * PHI_INV2:
                            d = d * npy.sqrt(sum_p2 / sum_d2) * PHI_INV
                        best_x, best_p, best_d = x, self.p.copy(), d
                        self._set_x(x)
                        self.p = self.p - d
                        backtracks = 0
                    else:
                        backtracks += 1
                        if backtracks > BACKTRACK_LIMIT:
                            logger.debug('frequency %d: backtrack limit, '
                                         'keeping best solution', self.findex)
                            self._set_x(best_x)
                            self.p = best_p
                            break
                        best_d = best_d * 0.5
                        self._set_x(best_x)
                        self.p = best_p - best_d
                        logger.debug('frequency %d: backtrack %d',
                                     self.findex, backtracks)
                if converged:
                    break
                iteration += 1
                self.iterations = iteration
                if iteration >= solver.iteration_limit:
                    raise IterationLimitExceeded(
                        'system failed to converge')
                self._update_v()
        except VnacalError as e:
            if e.iteration is None:
                e.iteration = iteration
            raise
        logger.debug('frequency %d: converged after %d iterations',
                     self.findex, iteration)

    def _set_x(self, x):
        n = self.layout.x_terms
        self.x = [x[system * n:(system + 1) * n]
                  for system in range(self.layout.systems)]

    ## results
    def error_terms(self):
        '''
        Error term vector of the solve layout.
        '''
        layout = self.layout
        terms = npy.zeros(layout.error_terms, dtype=complex)
        for system in range(layout.systems):
            start = layout.system_offset(system)
            terms[start:start + layout.t_terms] = \
                self._full_terms(system, self.x[system])
        terms[layout.leakage_offset:] = self.leakage
        return terms

    def _residuals(self):
        for system in range(self.layout.systems):
            terms = self._full_terms(system, self.x[system])
            for k, standard in enumerate(self.standards):
                residuals = self.model.residuals(
                    standard, system, self._s(standard), self.v[k][system],
                    self.m[k], terms)
                cells = standard.equation_cells(system)
                yield self.m[k], cells, residuals

    def rms_error(self):
        '''
        RMS difference between measured and modeled values.
        '''
        values = npy.concatenate([residuals for m, cells, residuals
                                  in self._residuals()])
        if len(values) == 0:
            return 0.0
        return float(npy.sqrt(npy.mean(cabs2(values))))

    def pvalue(self):
        '''
        Probability of residuals at least this large given the
        measurement error model.
        '''
        noise2 = self.noise ** 2
        tracking2 = self.tracking ** 2
        chisq = 0.0
        df = 0
        for m, cells, residuals in self._residuals():
            values = npy.array([m[r, c] for r, c in cells], dtype=complex)
            chisq += npy.sum(2.0 * cabs2(residuals) /
                             (noise2 + tracking2 * cabs2(values)))
            df += 2 * len(cells)
        df -= 2 * self.layout.x_terms * self.layout.systems
        df -= 2 * (len(self.unknowns) - len(self.correlated))

        if self._leakage_stats is not None:
            sums, sumsq, counts = self._leakage_stats
            for total, squares, count in zip(sums, sumsq, counts):
                if count > 1:
                    n_mean_squared = cabs2(total) / count
                    weight = 1.0 / (noise2 + n_mean_squared / count *
                                    tracking2)
                    chisq += 2.0 * (squares - n_mean_squared) * weight
                    df += 2 * (count - 1)
        if df < 1:
            return 0.0
        pvalue = float(chi2.sf(chisq, df))
        logger.debug('frequency %d: chisq %.4g, df %d, p-value %.4g',
                     self.findex, chisq, df, pvalue)
        return pvalue
