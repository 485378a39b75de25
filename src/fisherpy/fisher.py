#!/usr/bin/env python
"""Quantum Fisher information of a parametrised density matrix.

With the spectral decomposition :math:`\\rho = \\sum_i \\lambda_i |i\\rangle\\langle i|`
the quantum Fisher information is

.. math::
    F_Q = 2 \\sum_{i,j:\\,\\lambda_i + \\lambda_j > \\epsilon}
          \\frac{|\\langle i|\\partial\\rho|j\\rangle|^2}{\\lambda_i + \\lambda_j},

and the symmetric logarithmic derivative (SLD) has the eigenbasis elements
:math:`L_{ij} = 2\\langle i|\\partial\\rho|j\\rangle / (\\lambda_i + \\lambda_j)`.
Terms whose eigenvalue sum is below the tolerance :math:`\\epsilon` are
dropped, which regularises rank-deficient (e.g. pure) states.
"""

import numpy as np
import scipy as sp

from .errors import DimensionError
from .shared import defaults


def _dense_square(M, name: str) -> np.ndarray:
    M = M.toarray() if sp.sparse.issparse(M) else np.asarray(M)
    if M.ndim != 2 or M.shape[0] != M.shape[1]:
        raise DimensionError(f"{name} must be a square matrix, got shape {M.shape}.")
    return M


def _eigenbasis(rho, drho, tol: float):
    rho = _dense_square(rho, "rho")
    drho = _dense_square(drho, "drho")
    if rho.shape != drho.shape:
        raise DimensionError(
            f"rho and drho shapes differ: {rho.shape} != {drho.shape}."
        )
    evals, evecs = np.linalg.eigh((rho + rho.conj().T) / 2)
    drho_eig = evecs.conj().T @ drho @ evecs
    denom = evals[:, None] + evals[None, :]
    mask = denom > tol
    return evecs, drho_eig, denom, mask


def quantum_fisher_information(
    rho, drho, tol: float = float(defaults.qfi_tolerance)
) -> float:
    """Quantum Fisher information of ``rho`` with derivative ``drho``.

    >>> psi = np.array([1, 1]) / np.sqrt(2)
    >>> dpsi = np.array([-1j, 1j]) / (2 * np.sqrt(2))
    >>> rho = np.outer(psi, psi.conj())
    >>> drho = np.outer(dpsi, psi.conj()) + np.outer(psi, dpsi.conj())
    >>> round(quantum_fisher_information(rho, drho), 10)
    1.0

    Args:
        rho: Density matrix (``dim × dim``, dense or sparse).
        drho: Derivative of ``rho`` with respect to the parameter.
        tol (float): Cutoff on :math:`\\lambda_i + \\lambda_j`.

    Returns:
        float: Nonnegative quantum Fisher information.

    Raises:
        DimensionError: The matrices are not square or differ in shape.
    """
    _, drho_eig, denom, mask = _eigenbasis(rho, drho, tol)
    return float(2 * np.sum(np.abs(drho_eig[mask]) ** 2 / denom[mask]))


def symmetric_logarithmic_derivative(
    rho, drho, tol: float = float(defaults.qfi_tolerance)
) -> np.ndarray:
    """SLD operator :math:`L` solving :math:`\\partial\\rho = (L\\rho + \\rho L)/2`
    on the support of ``rho``."""
    evecs, drho_eig, denom, mask = _eigenbasis(rho, drho, tol)
    L_eig = np.zeros_like(drho_eig, dtype=complex)
    L_eig[mask] = 2 * drho_eig[mask] / denom[mask]
    return evecs @ L_eig @ evecs.conj().T
