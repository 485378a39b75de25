"""Bookkeeping and collective operators for the Dicke basis.

For ``N`` spin-1/2 particles, permutation symmetry splits the density
matrix into blocks labelled by the total angular momentum
:math:`j = N/2, N/2 - 1, \\dots, j_{min}` with :math:`j_{min} = 0` (``N``
even) or ``1/2`` (``N`` odd). Each block has size :math:`2j + 1`, and within
a block the states are ordered by decreasing :math:`m`. This is the
ordering used by QuTiP's PIQS module.

Functions:
        - `j_min`, `j_values`, `block_sizes`: block labels and sizes.
        - `num_dicke_states`: total dimension of the block-diagonal space.
        - `nspins`: number of spins from the Dicke-space dimension.
        - `spin_matrices`: spin-j operators for a given multiplicity.
        - `collective_operator`: :math:`J_x, J_y, J_z` in the Dicke basis.
"""

from math import isqrt

import numpy as np
import scipy as sp

from .errors import DimensionError, InvalidArgumentError
from .operators import DIRECTIONS


def _check_num_spins(N: int):
    if N < 1:
        raise InvalidArgumentError(f"Number of spins must be positive, got {N}.")


def j_min(N: int) -> float:
    """Minimum value of :math:`j` for ``N`` spins."""
    _check_num_spins(N)
    return 0.0 if N % 2 == 0 else 0.5


def j_values(N: int) -> np.ndarray:
    """Values of :math:`j` in decreasing order.

    >>> j_values(4)
    array([2., 1., 0.])
    """
    return np.arange(N / 2, j_min(N) - 0.25, -1.0)


def block_sizes(N: int) -> tuple[int, ...]:
    """Block sizes of the density matrix of ``N`` spins in the Dicke basis.

    >>> block_sizes(3)
    (4, 2)
    """
    return tuple(int(2 * j + 1) for j in j_values(N))


def num_dicke_states(N: int) -> int:
    """Dimension of the Dicke space (sum of the block sizes).

    >>> num_dicke_states(4), num_dicke_states(5)
    (9, 12)
    """
    return sum(block_sizes(N))


def nspins(size: int) -> int:
    """Number of spins from the dimension of a Dicke-basis matrix.

    Inverse of `num_dicke_states`: ``(N/2 + 1)**2`` for even ``N`` and
    ``(N + 1)(N + 3)/4`` for odd ``N``.

    >>> nspins(9), nspins(12)
    (4, 5)
    """
    root = isqrt(size)
    if root * root == size:
        N = 2 * (root - 1)
    else:
        disc = isqrt(1 + 4 * size)
        if disc * disc != 1 + 4 * size:
            raise DimensionError(f"{size} is not the dimension of a Dicke space.")
        N = disc - 2
    if N < 1:
        raise DimensionError(f"{size} is not the dimension of a Dicke space.")
    return N


def spin_matrices(mult: int) -> dict:
    """Spin operators for a single spin of multiplicity ``mult``.

    Args:
        mult (int): The multiplicity :math:`2j + 1`.

    Return:
        dict: A dictionary containing 6 `np.array` matrices of
        shape `(mult, mult)`:
            - the unit operator `result["u"]`,
            - raising operator `result["p"]`,
            - lowering operator `result["m"]`,
            - spin matrix for x axis `result["x"]`,
            - spin matrix for y axis `result["y"]`,
            - spin matrix for z axis `result["z"]`.

    """
    if mult < 1:
        raise InvalidArgumentError(f"Multiplicity must be positive, got {mult}.")
    result = {}
    spin = (mult - 1) / 2
    prjs = np.arange(mult - 1, -1, -1) - spin

    p_data = np.sqrt(spin * (spin + 1) - prjs * (prjs + 1))
    m_data = np.sqrt(spin * (spin + 1) - prjs * (prjs - 1))

    result["u"] = np.eye(mult, dtype=complex)
    result["p"] = np.diag(p_data[1:], 1).astype(complex)
    result["m"] = np.diag(m_data[:-1], -1).astype(complex)
    result["x"] = 0.5 * (result["p"] + result["m"])
    result["y"] = -0.5 * 1j * (result["p"] - result["m"])
    result["z"] = np.diag(prjs).astype(complex)
    return result


def collective_operator(direction: str, N: int) -> sp.sparse.csc_matrix:
    """Collective spin operator :math:`J_d` of ``N`` spins in the Dicke basis.

    The result is block diagonal with one spin-:math:`j` block per value in
    `j_values`. For the symmetric block, :math:`J_d` coincides with half the
    collective Pauli operator of `fisherpy.operators.collective_spin_operator`.

    >>> collective_operator("z", 2).diagonal().real
    array([ 1.,  0., -1.,  0.])
    """
    if direction not in DIRECTIONS:
        raise InvalidArgumentError(
            f"Direction must be one of {DIRECTIONS}, got {direction!r}."
        )
    blocks = [spin_matrices(size)[direction] for size in block_sizes(N)]
    return sp.sparse.block_diag(blocks, format="csc", dtype=complex)
