'''
.. module:: vnacal.calibration.equations
================================================================
equations (:mod:`vnacal.calibration.equations`)
================================================================

Linear systems relating error terms to measured standards.

Each error term type has an :class:`ErrorModel` that builds, for one
measured standard at one frequency, the rows of the coefficient matrix
and right hand side of the linear system in the error terms, and that
updates the standard's V matrix from the current error terms.

Every model writes its equation as a sum over error term blocks. The
coefficient of block term ``B[i, j]`` in equation cell ``(r, c)`` is
``sign * L[r, i] * R[j, c]`` for a left factor L and right factor R
that depend on the measurement M, the standard's S matrix and V:

=====  ====  =====  =====      =====  ====  =====  =====
T      sign  L      R          U      sign  L      R
=====  ====  =====  =====      =====  ====  =====  =====
Ts     \\-    I      S V        Um     \\+    V      M
Ti     \\-    I      V          Ui     \\+    V      I
Tx     \\+    M      S V        Ux     \\-    V S    M
Tm     \\+    M      V          Us     \\-    V S    I
=====  ====  =====  =====      =====  ====  =====  =====

V is ``(Tx S + Tm)^-1`` in T and ``(Um - S Ux)^-1`` in U, so that with
the V factors included the residual of each equation is the difference
between the modeled and the measured value of one cell of M.

.. autosummary::
   :toctree: generated/

   ErrorModel
   TModel
   UModel
   UE14Model
   error_model

'''
import numpy as npy

from ..mathFunctions import minverse
from .exceptions import InvalidDimensions, SingularMatrix
from .layout import CalType


class ErrorModel(object):
    '''
    Equations of one error term type.

    Parameters
    ----------
    layout : :class:`~vnacal.calibration.layout.Layout`
        solve layout (E12 is solved through UE14)
    '''
    def __init__(self, layout):
        self.layout = layout

    def _factors(self, system, s, v, m):
        '''
        List of (block, sign, L, R) factors of the equation.
        '''
        raise NotImplementedError

    def _derivative_factors(self, system, p, v, m):
        '''
        Factors of the derivative of the equation with respect to the
        S cells selected by the indicator matrix p.
        '''
        raise NotImplementedError

    def _v_inverse(self, system, terms, s):
        raise NotImplementedError

    def _coefficients(self, system, cells, factors):
        layout = self.layout
        start = layout.system_offset(system)
        rows = npy.array([r for r, c in cells], dtype=int)
        columns = npy.array([c for r, c in cells], dtype=int)
        coefficients = npy.zeros((len(cells), layout.t_terms), dtype=complex)
        for block, sign, left, right in factors:
            i, j = (npy.array(x, dtype=int) for x in zip(*block.entries))
            base = block.offset - start
            coefficients[:, base:base + len(i)] += \
                sign * left[rows][:, i] * right[j][:, columns].T
        return coefficients

    def _split(self, system, coefficients):
        layout = self.layout
        start = layout.system_offset(system)
        unity = layout.unity_offset(system) - start
        keep = [k for k in range(layout.t_terms) if k != unity]
        return coefficients[:, keep], -coefficients[:, unity]

    def assemble(self, standard, system, s, v, m):
        '''
        Rows of the linear system contributed by a measured standard.

        Parameters
        ----------
        standard : :class:`~vnacal.calibration.standard.MeasuredStandard`
        system : int
            linear system (column for UE14, else 0)
        s : npy.ndarray
            numeric S matrix of the standard at this frequency
        v : npy.ndarray
            V matrix of the standard for this system
        m : npy.ndarray
            measurement matrix at this frequency, leakage removed

        Returns
        -------
        a : npy.ndarray
            equations x (t_terms - 1) coefficient matrix
        b : npy.ndarray
            right hand side, from the term normalized to one
        cells : list
            measurement cell of each equation
        '''
        cells = standard.equation_cells(system)
        v = self.masked_v(standard, v)
        coefficients = self._coefficients(system, cells,
                                          self._factors(system, s, v, m))
        a, b = self._split(system, coefficients)
        return a, b, cells

    def derivative(self, standard, system, p, v, m, terms):
        '''
        Derivative of each equation's left hand side with respect to a
        parameter of the standard, evaluated at the error terms.

        V is held constant.

        Parameters
        ----------
        p : npy.ndarray
            indicator matrix of the S cells holding the parameter
        terms : npy.ndarray
            error terms of the system including the unity term
        '''
        cells = standard.equation_cells(system)
        v = self.masked_v(standard, v)
        coefficients = self._coefficients(
            system, cells, self._derivative_factors(system, p, v, m))
        return coefficients @ terms

    def residuals(self, standard, system, s, v, m, terms):
        '''
        Measured minus modeled value of each equation's cell of M.
        '''
        cells = standard.equation_cells(system)
        v = self.masked_v(standard, v)
        coefficients = self._coefficients(system, cells,
                                          self._factors(system, s, v, m))
        return coefficients @ terms

    def masked_v(self, standard, v):
        return npy.where(standard.v_mask(), v, 0.0)

    def identity_v(self):
        '''
        V matrix of the initial, identity-like error terms.
        '''
        return npy.eye(self.layout.v_shape[0], dtype=complex)

    def initial_terms(self, system=0):
        '''
        Identity-like error terms used before the first solve.

        Ts and Tm (Um and Us in U) are identity, everything else zero.
        '''
        layout = self.layout
        start = layout.system_offset(system)
        terms = npy.zeros(layout.t_terms, dtype=complex)
        names = ('ts', 'tm') if layout.is_t else ('um', 'us')
        for block in layout.blocks(system):
            if block.name in names:
                for k, (i, j) in enumerate(block.entries):
                    if i == j:
                        terms[block.offset - start + k] = 1.0
        return terms

    def full_terms(self, system, x):
        '''
        Insert the term normalized to one into the unknown terms of a
        system.

        Parameters
        ----------
        system : int
        x : npy.ndarray
            the x_terms unknown terms, in the order of
            :meth:`~vnacal.calibration.layout.Layout.x_indices`

        Returns
        -------
        terms : npy.ndarray
            the t_terms terms of the system
        '''
        layout = self.layout
        start = layout.system_offset(system)
        terms = npy.zeros(layout.t_terms, dtype=complex)
        terms[npy.array(layout.x_indices(system), dtype=int) - start] = x
        terms[layout.unity_offset(system) - start] = 1.0
        return terms

    def update_all_v(self, standard, x, s):
        '''
        Recompute the V matrices of a standard for every linear system.

        Parameters
        ----------
        standard : :class:`~vnacal.calibration.standard.MeasuredStandard`
        x : array_like
            unknown terms of all systems, concatenated system by system
        s : npy.ndarray
            numeric S matrix, zero where unknown

        Returns
        -------
        v : list of npy.ndarray
            V matrix of each system

        Raises
        ------
        InvalidDimensions
            if x doesn't hold systems * x_terms values
        SingularMatrix
            if a matrix to invert is singular
        '''
        layout = self.layout
        x = npy.asarray(x, dtype=complex)
        n = layout.x_terms
        if x.shape != (layout.systems * n,):
            raise InvalidDimensions(
                'x must have %d terms, not %d' % (layout.systems * n, x.size),
                standard_index=standard.index)
        return [self.update_v(standard, system,
                              self.full_terms(system, x[system * n:
                                                        (system + 1) * n]), s)
                for system in range(layout.systems)]

    def update_v(self, standard, system, terms, s):
        '''
        Recompute the V matrix of a standard from the error terms.

        Parameters
        ----------
        standard : :class:`~vnacal.calibration.standard.MeasuredStandard`
        system : int
        terms : npy.ndarray
            error terms of the system including the unity term
        s : npy.ndarray
            numeric S matrix, zero where unknown

        Raises
        ------
        SingularMatrix
            if the matrix to invert is singular
        '''
        v, det = minverse(self._v_inverse(system, terms, s))
        if v is None:
            raise SingularMatrix('V matrix is singular',
                                 standard_index=standard.index)
        return v

    def _block(self, name, system, terms):
        layout = self.layout
        shifted = npy.zeros(layout.error_terms, dtype=complex)
        start = layout.system_offset(system)
        shifted[start:start + layout.t_terms] = terms
        return layout.block_matrix(name, shifted, system)

    def describe(self):
        '''
        One line summary of the equations and V matrix of the model.
        '''
        raise NotImplementedError


class TModel(ErrorModel):
    '''
    Equations of T8, TE10 and T16: ``Ts S + Ti = M (Tx S + Tm)``.
    '''
    def _factors(self, system, s, v, m):
        layout = self.layout
        identity = npy.eye(layout.m_rows, dtype=complex)
        sv = s @ v
        return [(layout.block('ts'), -1.0, identity, sv),
                (layout.block('ti'), -1.0, identity, v),
                (layout.block('tx'), 1.0, m, sv),
                (layout.block('tm'), 1.0, m, v)]

    def _derivative_factors(self, system, p, v, m):
        layout = self.layout
        identity = npy.eye(layout.m_rows, dtype=complex)
        pv = p @ v
        return [(layout.block('ts'), -1.0, identity, pv),
                (layout.block('tx'), 1.0, m, pv)]

    def _v_inverse(self, system, terms, s):
        return self._block('tx', system, terms) @ s + \
            self._block('tm', system, terms)

    def describe(self):
        return '%s: Ts S + Ti = M (Tx S + Tm), V = (Tx S + Tm)^-1' % \
            self.layout.cal_type.name


class UModel(ErrorModel):
    '''
    Equations of U8, UE10 and U16: ``Um M + Ui = S (Ux M + Us)``.
    '''
    def _factors(self, system, s, v, m):
        layout = self.layout
        identity = npy.eye(layout.m_columns, dtype=complex)
        vs = v @ s
        return [(layout.block('um', system), 1.0, v, m),
                (layout.block('ui', system), 1.0, v, identity),
                (layout.block('ux', system), -1.0, vs, m),
                (layout.block('us', system), -1.0, vs, identity)]

    def _derivative_factors(self, system, p, v, m):
        layout = self.layout
        identity = npy.eye(layout.m_columns, dtype=complex)
        vp = v @ p
        return [(layout.block('ux', system), -1.0, vp, m),
                (layout.block('us', system), -1.0, vp, identity)]

    def _v_inverse(self, system, terms, s):
        return self._block('um', system, terms) - \
            s @ self._block('ux', system, terms)

    def describe(self):
        return '%s: Um M + Ui = S (Ux M + Us), V = (Um - S Ux)^-1' % \
            self.layout.cal_type.name


class UE14Model(UModel):
    '''
    Equations of UE14, one U8-like system per driven column.

    The system of column c holds diagonal Um and Ux, and the single
    terms ui and us of cell (c, c). Its equations are the cells of
    column c of the U equation; the term normalized to one is the
    column's own um diagonal.
    '''
    def describe(self):
        return 'UE14: per column c, Um M + Ui = S (Ux M + Us) in column c, ' \
            'V = (Um - S Ux)^-1'


def error_model(layout):
    '''
    Return the :class:`ErrorModel` for a layout.

    E12 layouts are replaced by their UE14 solve layout.
    '''
    layout = layout.solve_layout()
    if layout.cal_type is CalType.UE14:
        return UE14Model(layout)
    if layout.is_t:
        return TModel(layout)
    return UModel(layout)
