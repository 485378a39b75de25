#!/usr/bin/env python
"""
Operator algebra for spin ensembles in Hilbert and Liouville space.

This module builds the sparse operators and superoperators used by the
trajectory engine. Density operators are vectorised by **column stacking**
(Fortran order), so that

.. math::
    \\mathrm{vec}(A\\,\\rho\\,B^{\\dagger}) = (B^{\\ast} \\otimes A)\\,\\mathrm{vec}(\\rho).

Main contents
-------------
- `pauli_matrices` : sparse Pauli matrices ``σx, σy, σz``.
- `sigma_j` : Pauli operator acting on a single spin of an ``n`` spin register.
- `collective_spin_operator` : :math:`\\sum_j \\sigma^{(d)}_j`.
- `blkdiag` : repeat a sparse matrix along the diagonal without a Kronecker product.
- `sup_pre`, `sup_post`, `sup_pre_post` : Liouville-space multiplication superoperators.
- `trace_vectorized`, `matrix_to_vector`, `vector_to_matrix` : vectorisation helpers.
- `chop` : in-place removal of round-off sized entries.

Shape conventions
-----------------
- Hilbert operators: ``(dim, dim)`` sparse CSC matrices.
- Superoperators: ``(dim**2, dim**2)`` sparse CSC matrices.
- Vectorised densities: 1-D arrays of length ``dim**2``.
"""

from functools import reduce
from math import isqrt

import numpy as np
import scipy as sp

from .errors import DimensionError, InvalidArgumentError

DIRECTIONS = ("x", "y", "z")


def pauli_matrices() -> dict:
    """Sparse (CSC) Pauli matrices keyed by ``"x"``, ``"y"`` and ``"z"``.

    >>> pauli_matrices()["z"].toarray().real
    array([[ 1.,  0.],
           [ 0., -1.]])
    """
    return {
        "x": sp.sparse.csc_matrix(np.array([[0, 1], [1, 0]], dtype=complex)),
        "y": sp.sparse.csc_matrix(np.array([[0, -1j], [1j, 0]], dtype=complex)),
        "z": sp.sparse.csc_matrix(np.array([[1, 0], [0, -1]], dtype=complex)),
    }


def _check_direction(direction: str):
    if direction not in DIRECTIONS:
        raise InvalidArgumentError(
            f"Direction must be one of {DIRECTIONS}, got {direction!r}."
        )


def sigma_j(direction: str, j: int, n: int) -> sp.sparse.csc_matrix:
    """Pauli operator on the ``j``-th of ``n`` spins.

    The register is ordered so that site ``j = 1`` is the last
    (least significant) Kronecker factor.

    Args:

        direction (str): One of ``"x"``, ``"y"``, ``"z"``.

        j (int): Site index, ``1 <= j <= n``.

        n (int): Number of spins.

    Returns:
        sp.sparse.csc_matrix:

            The ``2**n × 2**n`` operator
            :math:`I^{\\otimes (n-j)} \\otimes \\sigma_d \\otimes I^{\\otimes (j-1)}`.

    Raises:
        InvalidArgumentError: Unknown direction or site index out of range.
    """
    _check_direction(direction)
    if not 1 <= j <= n:
        raise InvalidArgumentError(f"Site index must satisfy 1 <= j <= n, got j={j}, n={n}.")
    sigma = pauli_matrices()[direction]
    if n == 1:
        return sigma
    eye = sp.sparse.identity(2, dtype=complex, format="csc")
    factors = [eye] * (n - j) + [sigma] + [eye] * (j - 1)
    return reduce(lambda a, b: sp.sparse.kron(a, b, format="csc"), factors)


def collective_spin_operator(direction: str, n: int) -> sp.sparse.csc_matrix:
    """Collective Pauli operator :math:`\\sigma_d = \\sum_j \\sigma^{(d)}_j`.

    >>> collective_spin_operator("x", 1).toarray().real
    array([[0., 1.],
           [1., 0.]])
    >>> collective_spin_operator("z", 2).diagonal().real
    array([ 2.,  0.,  0., -2.])
    """
    _check_direction(direction)
    if n < 1:
        raise InvalidArgumentError(f"Number of spins must be positive, got {n}.")
    result = sp.sparse.csc_matrix((2**n, 2**n), dtype=complex)
    for j in range(1, n + 1):
        result = result + sigma_j(direction, j, n)
    return result


def _as_csc(A) -> sp.sparse.csc_matrix:
    A = sp.sparse.csc_matrix(A, dtype=complex, copy=True)
    A.sum_duplicates()
    return A


def blkdiag(A, num: int) -> sp.sparse.csc_matrix:
    """Block-diagonal matrix with ``num`` copies of ``A`` on the diagonal.

    Assembled directly from the CSC arrays of ``A``, which is much cheaper
    than ``kron(I, A)`` for large sparse operators.

    Args:
        A: Sparse or dense ``(m, n)`` matrix.
        num (int): Number of diagonal copies.

    Returns:
        sp.sparse.csc_matrix: ``(num*m, num*n)`` matrix equal to :math:`I_{num} \\otimes A`.
    """
    A = _as_csc(A)
    m, n = A.shape
    nnz = A.nnz
    copies = np.arange(num)
    indptr = (A.indptr[:-1][None, :] + (copies * nnz)[:, None]).ravel()
    indptr = np.append(indptr, num * nnz)
    indices = (A.indices[None, :] + (copies * m)[:, None]).ravel()
    data = np.tile(A.data, num)
    return sp.sparse.csc_matrix((data, indices, indptr), shape=(num * m, num * n))


def sup_pre(A) -> sp.sparse.csc_matrix:
    """Superoperator of left multiplication, :math:`\\rho \\mapsto A\\rho`.

    Effectively evaluates the Kronecker product :math:`I \\otimes A`.
    """
    return blkdiag(A, A.shape[0])


def sup_post(A) -> sp.sparse.csc_matrix:
    """Superoperator of right multiplication by the adjoint, :math:`\\rho \\mapsto \\rho A^{\\dagger}`.

    Effectively evaluates the Kronecker product :math:`A^{\\ast} \\otimes I`.
    """
    A = _as_csc(A)
    eye = sp.sparse.identity(A.shape[0], dtype=complex, format="csc")
    return sp.sparse.kron(A.conj(), eye, format="csc")


def sup_pre_post(A, B=None) -> sp.sparse.csc_matrix:
    """Superoperator :math:`\\rho \\mapsto A\\rho B^{\\dagger}`.

    Effectively evaluates the Kronecker product :math:`B^{\\ast} \\otimes A`;
    with a single argument ``B = A``.
    """
    A = _as_csc(A)
    B = A if B is None else _as_csc(B)
    return sp.sparse.kron(B.conj(), A, format="csc")


def _side(length: int) -> int:
    n = isqrt(length)
    if n * n != length:
        raise DimensionError(
            f"Vectorized operator of length {length} is not a square matrix."
        )
    return n


def trace_vectorized(v: np.ndarray) -> complex:
    """Trace of a vectorised (column-stacked) square operator.

    >>> float(trace_vectorized(np.array([1.0, 0.0, 0.0, 2.0])))
    3.0

    Raises:
        DimensionError: ``len(v)`` is not a perfect square.
    """
    v = np.asarray(v).ravel()
    n = _side(v.size)
    return v[:: n + 1].sum()


def matrix_to_vector(M: np.ndarray) -> np.ndarray:
    """Convert a matrix into a (flat) column-stacked vector."""
    return np.asarray(M).reshape(-1, order="F")


def vector_to_matrix(v: np.ndarray, n: int | None = None) -> np.ndarray:
    """Convert a column-stacked vector into an ``n × n`` matrix."""
    v = np.asarray(v).ravel()
    if n is None:
        n = _side(v.size)
    elif n * n != v.size:
        raise DimensionError(f"Cannot reshape a vector of length {v.size} to ({n}, {n}).")
    return v.reshape((n, n), order="F")


def chop(x, tol: float):
    """Set entries with magnitude below ``tol`` to zero, in place.

    Real and imaginary parts are chopped independently. Sparse matrices
    keep their sparsity pattern (the zeros stay stored).

    Args:
        x: ``numpy`` array, ``scipy.sparse`` matrix or `BlockDiagonal`.
        tol (float): Chopping threshold.

    Returns:
        The same object ``x``.
    """
    data = x if isinstance(x, np.ndarray) else x.data
    if np.iscomplexobj(data):
        for part in (data.real, data.imag):
            part[np.abs(part) < tol] = 0
    else:
        data[np.abs(data) < tol] = 0
    return x
