"""Initial spin states for magnetometry simulations.

States are returned as normalised complex state vectors (1-D arrays).

Full ``2**N`` computational basis (``|0> = |↑>`` is the ``+1`` eigenstate
of ``σz``):

- `coherent_state`: every spin along ``+x``, :math:`|+\\rangle^{\\otimes N}`.
- `ghz_state`: :math:`(|0\\cdots0\\rangle + |1\\cdots1\\rangle)/\\sqrt{2}`.

Dicke basis (see `fisherpy.dicke`), living in the symmetric ``j = N/2`` block:

- `dicke_state`: basis vector :math:`|j, m\\rangle`.
- `coherent_state_dicke`: the coherent spin state along ``+x``.
- `ghz_state_dicke`: :math:`(|N/2, N/2\\rangle + |N/2, -N/2\\rangle)/\\sqrt{2}`.
"""

import numpy as np
from scipy.special import comb

from . import dicke
from .errors import InvalidArgumentError


def _check_num_spins(N: int):
    if N < 1:
        raise InvalidArgumentError(f"Number of spins must be positive, got {N}.")


def coherent_state(N: int) -> np.ndarray:
    """Coherent spin state along ``+x`` in the full basis.

    >>> coherent_state(2).real
    array([0.5, 0.5, 0.5, 0.5])
    """
    _check_num_spins(N)
    dim = 2**N
    return np.full(dim, 1 / np.sqrt(dim), dtype=complex)


def ghz_state(N: int) -> np.ndarray:
    """GHZ state in the full basis."""
    _check_num_spins(N)
    psi = np.zeros(2**N, dtype=complex)
    psi[0] = psi[-1] = 1 / np.sqrt(2)
    return psi


def dicke_state(N: int, j: float, m: float) -> np.ndarray:
    """Dicke basis vector :math:`|j, m\\rangle` for ``N`` spins.

    Args:
        N (int): Number of spins.
        j (float): Total angular momentum, one of `fisherpy.dicke.j_values`.
        m (float): Projection, ``-j <= m <= j``.

    Returns:
        np.ndarray: Unit vector of length `fisherpy.dicke.num_dicke_states`.
    """
    js = dicke.j_values(N)
    sizes = dicke.block_sizes(N)
    matches = np.flatnonzero(np.isclose(js, j))
    if matches.size == 0:
        raise InvalidArgumentError(f"j={j} is not allowed for N={N} spins.")
    if abs(m) > j or not float(j - m).is_integer():
        raise InvalidArgumentError(f"m={m} is not allowed for j={j}.")
    block = matches[0]
    offset = sum(sizes[:block])
    psi = np.zeros(sum(sizes), dtype=complex)
    psi[offset + int(round(j - m))] = 1.0
    return psi


def coherent_state_dicke(N: int) -> np.ndarray:
    """Coherent spin state along ``+x`` in the Dicke basis.

    The amplitude of :math:`|N/2, N/2 - k\\rangle` is
    :math:`\\sqrt{\\binom{N}{k}} / 2^{N/2}`.

    >>> np.round(coherent_state_dicke(2).real, 4)
    array([0.5   , 0.7071, 0.5   , 0.    ])
    """
    _check_num_spins(N)
    psi = np.zeros(dicke.num_dicke_states(N), dtype=complex)
    k = np.arange(N + 1)
    psi[: N + 1] = np.sqrt(comb(N, k)) / 2 ** (N / 2)
    return psi


def ghz_state_dicke(N: int) -> np.ndarray:
    """GHZ state in the Dicke basis."""
    _check_num_spins(N)
    psi = np.zeros(dicke.num_dicke_states(N), dtype=complex)
    psi[0] = psi[N] = 1 / np.sqrt(2)
    return psi
