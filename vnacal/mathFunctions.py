"""
mathFunctions (:mod:`vnacal.mathFunctions`)
=============================================


Provides the dense complex matrix kernel used by the calibration solver,
together with a few interpolation and random number helpers.

The kernel functions never raise on singular input. Instead, like the
determinant returned by an LU decomposition, they report singularity
through their return value: a zero determinant or a rank smaller than
the number of columns.

Matrix Kernel
--------------
.. autosummary::
        :toctree: generated/

        lu_det
        mldivide
        mrdivide
        minverse
        qr
        qrsolve
        rsolve

Various Utility Functions
--------------------------
.. autosummary::
        :toctree: generated/

        cabs2
        rand_c
        rational_interp
        interpolate_vector
        fix_z0_shape
        renormalize_s

"""
from __future__ import annotations

import warnings
from typing import Callable

import numpy as npy
from scipy import linalg

from .constants import NumberLike


def cabs2(z: NumberLike):
    """
    Return the squared magnitude of the complex argument.

    Parameters
    ----------
    z : number or array_like

    Returns
    -------
    mag2 : ndarray or scalar
    """
    z = npy.asarray(z)
    return z.real**2 + z.imag**2


def rand_c(*args, rng: npy.random.Generator = None) -> npy.ndarray:
    """
    Creates a complex random array of shape s.

    The bounds on real and imaginary values are (-1,1)

    Parameters
    -----------
    s : list-like
        shape of array
    rng : :class:`numpy.random.Generator`, optional
        source of random numbers. A new default generator is used
        if not given.

    Examples
    ---------
    >>> x = vnacal.rand_c(2, 2, rng=numpy.random.default_rng(1))
    """
    if rng is None:
        rng = npy.random.default_rng()
    return 1-2*rng.random(args) + \
        1j-2j*rng.random(args)


def _rank(r: npy.ndarray) -> int:
    """
    Numerical rank of the upper-triangular factor of a QR decomposition.
    """
    d = npy.abs(npy.diagonal(r))
    if d.size == 0 or d.max() == 0.0:
        return 0
    tol = max(r.shape) * npy.finfo(float).eps * d.max()
    return int(npy.count_nonzero(d > tol))


def lu_det(a: npy.ndarray):
    """
    LU factor a square matrix and find its determinant.

    Parameters
    ----------
    a : npy.ndarray
        n x n complex matrix

    Returns
    -------
    lu : npy.ndarray
        combined L and U factors, see :func:`scipy.linalg.lu_factor`
    piv : npy.ndarray
        pivot indices
    det : complex
        determinant of a; zero if a is singular
    """
    a = npy.asarray(a, dtype=complex)
    if not npy.all(npy.isfinite(a)):
        return None, None, 0.0
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', linalg.LinAlgWarning)
        lu, piv = linalg.lu_factor(a, check_finite=False)
    u = npy.abs(npy.diagonal(lu))
    if u.size == 0 or u.max() == 0.0 or \
            u.min() <= len(u) * npy.finfo(float).eps * u.max():
        return lu, piv, 0.0
    sign = (-1) ** npy.count_nonzero(piv != npy.arange(len(piv)))
    det = sign * npy.prod(npy.diagonal(lu))
    return lu, piv, det


def mldivide(a: npy.ndarray, b: npy.ndarray):
    """
    Solve the matrix equation A X = B for X.

    Parameters
    ----------
    a : npy.ndarray
        n x n coefficient matrix
    b : npy.ndarray
        n x m right hand side

    Returns
    -------
    x : npy.ndarray or None
        solution, or None if a is singular
    det : complex
        determinant of a; zero signals that a is singular
    """
    lu, piv, det = lu_det(a)
    if det == 0.0:
        return None, 0.0
    x = linalg.lu_solve((lu, piv), npy.asarray(b, dtype=complex),
                        check_finite=False)
    return x, det


def mrdivide(b: npy.ndarray, a: npy.ndarray):
    """
    Solve the matrix equation X A = B for X.

    Parameters
    ----------
    b : npy.ndarray
        m x n right hand side
    a : npy.ndarray
        n x n coefficient matrix

    Returns
    -------
    x : npy.ndarray or None
        solution, or None if a is singular
    det : complex
        determinant of a; zero signals that a is singular
    """
    x, det = mldivide(npy.transpose(a), npy.transpose(b))
    if x is None:
        return None, det
    return npy.transpose(x), det


def minverse(a: npy.ndarray):
    """
    Invert a square matrix.

    Returns
    -------
    a_inv : npy.ndarray or None
        inverse of a, or None if a is singular
    det : complex
        determinant of a; zero signals that a is singular
    """
    a = npy.asarray(a, dtype=complex)
    return mldivide(a, npy.eye(a.shape[0], dtype=complex))


def qr(a: npy.ndarray):
    """
    Full QR decomposition of a (possibly rectangular) matrix.

    Parameters
    ----------
    a : npy.ndarray
        m x n matrix

    Returns
    -------
    q : npy.ndarray
        m x m unitary matrix
    r : npy.ndarray
        m x n upper-triangular matrix
    rank : int
        numerical rank of a
    """
    q, r = linalg.qr(npy.asarray(a, dtype=complex), mode='full',
                     check_finite=False)
    return q, r, _rank(r)


def qrsolve(a: npy.ndarray, b: npy.ndarray):
    """
    Solve A X = B in the least squares sense using QR decomposition.

    Parameters
    ----------
    a : npy.ndarray
        m x n coefficient matrix with m >= n
    b : npy.ndarray
        m x o right hand side (or vector of length m)

    Returns
    -------
    x : npy.ndarray or None
        solution, or None if a doesn't have full column rank
    rank : int
        numerical rank of a
    """
    a = npy.asarray(a, dtype=complex)
    b = npy.asarray(b, dtype=complex)
    n = a.shape[1]
    q, r = linalg.qr(a, mode='economic', check_finite=False)
    rank = _rank(r)
    if rank < n:
        return None, rank
    x = linalg.solve_triangular(r, q.conj().T @ b, check_finite=False)
    return x, rank


def rsolve(A: npy.ndarray, B: npy.ndarray) -> npy.ndarray:
    r"""Solves x @ A = B.

    Calls numpy.linalg.solve with transposed matrices.

    Same as B @ npy.linalg.inv(A) but avoids calculating the inverse and
    should be numerically slightly more accurate.

    Input should have dimension of similar to (nfreqs, nports, nports).

    Parameters
    ----------
    A : npy.ndarray
    B : npy.ndarray

    Returns
    -------
    x : npy.ndarray
    """
    return npy.transpose(npy.linalg.solve(npy.transpose(A, (0, 2, 1)).conj(),
            npy.transpose(B, (0, 2, 1)).conj()), (0, 2, 1)).conj()


def rational_interp(x: npy.ndarray, y: npy.ndarray, d: int = 4, epsilon: float = 1e-9, axis: int = 0, assume_sorted: bool = False) -> Callable:
    """
    Interpolates function using rational polynomials of degree `d`.

    Interpolating function is singular when xi is exactly one of the
    original x points. If xi is closer than epsilon to one of the original points,
    then the value at that points is returned instead.

    Implementation is based on [#]_.

    Parameters
    ----------
    x : npy.ndarray
    y : npy.ndarray
    d : int, optional
        order of the polynomial, by default 4
    epsilon : float, optional
        numerical tolerance, by default 1e-9
    axis : int, optional
        axis to operate on, by default 0
    assume_sorted : bool, optional
        If False, values of x can be in any order and they are sorted first.
        If True, x has to be an array of monotonically increasing values.

    Returns
    -------
    fx : Callable
        Interpolate function

    Raises
    ------
    NotImplementedError
        if axis != 0.

    References
    ------------
    .. [#] M. S. Floater and K. Hormann, "Barycentric rational interpolation with no poles and high rates of approximation," Numer. Math., vol. 107, no. 2, pp. 315-331, Aug. 2007
    """
    if axis != 0:
        raise NotImplementedError("Axis other than 0 is not implemented")

    if not assume_sorted:
        sort_indices = npy.argsort(x, axis=axis)
        x = x[sort_indices]
        y = y[sort_indices]

    n = len(x)
    if n <= d:
        raise ValueError('Not enough x-axis points')

    w = npy.zeros(n)
    # Scaling to give close to 1 weights
    hd = (x[n//2] - x[n//2-1])**d
    for k in range(n):
        for i in range(max(0,k-d), min(k+1, n-d)):
            p = hd
            for j in range(i,min(n,i+d+1)):
                if j == k:
                    continue
                p *= 1/(x[k] - x[j])
            if i % 2 == 1:
                w[k] -= p
            else:
                w[k] += p

    # Add dimensions to match y shape
    w_shape = [1]*len(y.shape)
    w_shape[0] = -1
    w = w.reshape(w_shape)

    def fx(xi):
        # The method divides by zero if a new x value is exactly an
        # existing x value. Replace those with the y value at that point.
        xi = npy.atleast_1d(npy.asarray(xi, dtype=float))
        idx = npy.searchsorted(x, xi)
        idx[idx == len(x)] = len(x) - 1
        nearest_idx = npy.where(npy.abs(x[idx] - xi) < epsilon)[0]
        nearest_value = y[idx[nearest_idx]]

        xi = xi.reshape(*w_shape)
        with npy.errstate(divide='ignore', invalid='ignore'):
            v = sum(y[i]*w[i]/(xi - x[i]) for i in range(n))\
                /sum(w[i]/(xi - x[i]) for i in range(n))

        for e, i in enumerate(nearest_idx):
            v[i] = nearest_value[e]

        return v

    return fx


def interpolate_vector(x: npy.ndarray, y: npy.ndarray, xi: NumberLike,
                       d: int = 4) -> npy.ndarray:
    """
    Evaluate tabulated data y(x) at the points xi.

    Uses :func:`rational_interp`, lowering the degree when only a few
    points are given. A single point is treated as a constant.

    Parameters
    ----------
    x : npy.ndarray
        ascending sample points
    y : npy.ndarray
        samples; the first axis corresponds to x
    xi : number or array_like
        points at which to evaluate

    Returns
    -------
    yi : npy.ndarray
        values with first axis corresponding to xi
    """
    x = npy.asarray(x, dtype=float)
    y = npy.asarray(y)
    xi = npy.atleast_1d(npy.asarray(xi, dtype=float))
    if len(x) == 1:
        return npy.repeat(y[:1], len(xi), axis=0)
    fx = rational_interp(x, y, d=min(d, len(x) - 1), assume_sorted=True)
    return fx(xi)


def fix_z0_shape(z0: NumberLike, nfreqs: int, nports: int) -> npy.ndarray:
    """
    Make a port impedance of shape (nfreqs, nports).

    Parameters
    ----------
    z0 : number, array-like
        z0 can be:
        * a number (same at all ports and frequencies)
        * an array-like of length == number ports.
        * an array-like of length == number frequency points.
        * the correct shape ==(nfreqs,nports)

    nfreqs : int
        number of frequency points
    nports : int
        number of ports

    Returns
    -------
    z0 : npy.ndarray
        complex array of shape (nfreqs, nports)

    Raises
    ------
    ValueError
        if z0 can't be broadcast
    """
    z0 = npy.asarray(z0, dtype=complex)
    if z0.shape == (nfreqs, nports):
        return z0.copy()
    if z0.ndim == 0:
        return npy.full((nfreqs, nports), z0, dtype=complex)
    if z0.ndim == 1 and len(z0) == nports:
        return npy.tile(z0, (nfreqs, 1))
    if z0.ndim == 1 and len(z0) == nfreqs:
        return npy.tile(z0[:, npy.newaxis], (1, nports))
    raise ValueError('z0 is not an acceptable shape')


def renormalize_s(s: npy.ndarray, z_old: NumberLike,
                  z_new: NumberLike) -> npy.ndarray:
    """
    Renormalize an s-parameter matrix given old and new port impedances.

    Uses the power-wave formulation. With ``Zr`` and ``Zn`` the
    diagonal matrices of the old and new impedances and ``K`` the
    diagonal of ``sqrt(|Re Zr / Re Zn|) / (2 Re Zr)``::

        A = K ((Zr* + S Zr) + Zn (I - S))
        B = K ((Zr* + S Zr) - Zn* (I - S))
        S' = B A^-1

    Parameters
    ----------
    s : complex array of shape `fxnxn`
        s-parameter matrix
    z_old : number or array_like
        old port impedances, in any shape accepted by :func:`fix_z0_shape`
    z_new : number or array_like
        new port impedances

    Returns
    -------
    s_new : npy.ndarray
        renormalized s-parameter matrix (shape `fxnxn`)

    Raises
    ------
    ValueError
        if the matrix A is singular at some frequency

    See Also
    --------
    fix_z0_shape
    """
    s = npy.asarray(s, dtype=complex)
    nfreqs, nports = s.shape[0], s.shape[1]
    z1 = fix_z0_shape(z_old, nfreqs, nports)
    z2 = fix_z0_shape(z_new, nfreqs, nports)
    k = 0.5 * npy.sqrt(npy.abs(z1.real / z2.real)) / z1.real
    identity = npy.eye(nports, dtype=complex)
    s_new = npy.empty_like(s)
    for f in range(nfreqs):
        vm = npy.diag(z1[f].conj()) + s[f] * z1[f]
        im = identity - s[f]
        a = k[f][:, npy.newaxis] * (vm + z2[f][:, npy.newaxis] * im)
        b = k[f][:, npy.newaxis] * (vm - z2[f].conj()[:, npy.newaxis] * im)
        x, det = mrdivide(b, a)
        if x is None:
            raise ValueError('singular matrix renormalizing s at index %d' % f)
        s_new[f] = x
    return s_new
