"""Collaborators for initial states and foreign sparse matrices.

The trajectory engine never talks to an external quantum toolbox directly.
Instead, a `Toolbox` object is created once by the caller and passed to the
entry points in `fisherpy.experiments`. A toolbox provides

- ``initial_state(n)``: the initial state of ``n`` spins, either as a
  normalised state vector or, for toolboxes that only produce mixed
  representations, as a density matrix;
- ``sparse_from_foreign(obj)``: conversion of an externally represented
  sparse operator into a native ``scipy.sparse`` CSC matrix.

Classes:
        - `Toolbox`: abstract interface.
        - `NumpyToolbox`: native implementation based on `fisherpy.states`.
        - `QutipToolbox`: uses QuTiP / PIQS (``pip install fisherpy[qutip]``).

Functions:
        - `sparse_from_ijv`: ``(rows, cols, values, m, n)`` → CSC matrix.
        - `sparse_to_ijv`: CSC matrix → ``(rows, cols, values, m, n)``.

Index triplets use the 1-based convention by default.
"""

from abc import ABC, abstractmethod
from typing import Literal

import numpy as np
import scipy as sp

from . import states
from .errors import DimensionError, InvalidArgumentError

try:
    import qutip
    from qutip import piqs

    IS_QUTIP_AVAILABLE = True
except ModuleNotFoundError:
    IS_QUTIP_AVAILABLE = False

MSG_QUTIP_NOT_INSTALLED = """
qutip is not installed.
Please install it with `pip install fisherpy[qutip]` or `pip install qutip`.
"""

StateName = Literal["coherent", "ghz"]
BasisName = Literal["full", "dicke"]


def sparse_from_ijv(
    rows, cols, values, m: int, n: int, one_based: bool = True
) -> sp.sparse.csc_matrix:
    """Build a sparse matrix from index/value triplets.

    >>> A = sparse_from_ijv([1, 2], [2, 1], [1.0, 1.0], 2, 2)
    >>> A.toarray().real
    array([[0., 1.],
           [1., 0.]])

    Args:
        rows: Row indices of the stored entries.
        cols: Column indices of the stored entries.
        values: Values of the stored entries.
        m (int): Number of rows.
        n (int): Number of columns.
        one_based (bool): Whether the indices start at 1.

    Returns:
        sp.sparse.csc_matrix: Complex ``(m, n)`` matrix; duplicate entries are summed.
    """
    rows = np.asarray(rows, dtype=np.int64)
    cols = np.asarray(cols, dtype=np.int64)
    values = np.asarray(values, dtype=complex)
    if not rows.shape == cols.shape == values.shape:
        raise DimensionError("rows, cols and values must have the same length.")
    if one_based:
        rows = rows - 1
        cols = cols - 1
    if rows.size and (rows.min() < 0 or cols.min() < 0 or rows.max() >= m or cols.max() >= n):
        raise DimensionError(f"Index out of bounds for a ({m}, {n}) matrix.")
    return sp.sparse.coo_matrix((values, (rows, cols)), shape=(m, n)).tocsc()


def sparse_to_ijv(matrix, one_based: bool = True):
    """Decompose a sparse matrix into ``(rows, cols, values, m, n)``."""
    coo = sp.sparse.coo_matrix(matrix)
    coo.sum_duplicates()
    offset = 1 if one_based else 0
    m, n = coo.shape
    return coo.row + offset, coo.col + offset, coo.data.astype(complex), m, n


class Toolbox(ABC):
    """Interface of the initial-state and sparse-conversion collaborator."""

    basis: BasisName = "full"

    @abstractmethod
    def initial_state(self, n: int) -> np.ndarray:
        """Initial state of ``n`` spins (state vector or density matrix)."""

    @abstractmethod
    def sparse_from_foreign(self, obj) -> sp.sparse.csc_matrix:
        """Convert an externally represented operator to a CSC matrix."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(basis={self.basis!r})"


class NumpyToolbox(Toolbox):
    """Native toolbox built on `fisherpy.states`.

    >>> NumpyToolbox("ghz").initial_state(1).real
    array([0.70710678, 0.70710678])

    Args:
        state (str): ``"coherent"`` or ``"ghz"``.
        basis (str): ``"full"`` (``2**n`` dimensional) or ``"dicke"``.
    """

    _STATES = {
        ("coherent", "full"): states.coherent_state,
        ("ghz", "full"): states.ghz_state,
        ("coherent", "dicke"): states.coherent_state_dicke,
        ("ghz", "dicke"): states.ghz_state_dicke,
    }

    def __init__(self, state: StateName = "coherent", basis: BasisName = "full"):
        if (state, basis) not in self._STATES:
            raise InvalidArgumentError(
                f"Unknown initial state/basis combination: {state!r}, {basis!r}."
            )
        self.state = state
        self.basis = basis

    def initial_state(self, n: int) -> np.ndarray:
        return self._STATES[(self.state, self.basis)](n)

    def sparse_from_foreign(self, obj) -> sp.sparse.csc_matrix:
        """Accepts a ``(rows, cols, values, m, n)`` tuple (1-based), a
        ``scipy.sparse`` matrix or a dense array."""
        if isinstance(obj, tuple) and len(obj) == 5:
            return sparse_from_ijv(*obj)
        return sp.sparse.csc_matrix(obj, dtype=complex)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(state={self.state!r}, basis={self.basis!r})"


class QutipToolbox(Toolbox):
    """Toolbox backed by QuTiP and its PIQS module.

    In the Dicke basis the PIQS states are density matrices, so
    `initial_state` returns a dense ``(dim, dim)`` array there.

    Args:
        state (str): ``"coherent"`` or ``"ghz"``.
        basis (str): ``"full"`` or ``"dicke"``.
    """

    def __init__(self, state: StateName = "coherent", basis: BasisName = "dicke"):
        if not IS_QUTIP_AVAILABLE:
            raise ModuleNotFoundError(MSG_QUTIP_NOT_INSTALLED)
        if state not in ("coherent", "ghz") or basis not in ("full", "dicke"):
            raise InvalidArgumentError(
                f"Unknown initial state/basis combination: {state!r}, {basis!r}."
            )
        self.state = state
        self.basis = basis

    def initial_state(self, n: int) -> np.ndarray:
        if self.basis == "dicke":
            rho = piqs.css(n) if self.state == "coherent" else piqs.ghz(n)
            return self.sparse_from_foreign(rho).toarray()
        if self.state == "coherent":
            plus = (qutip.basis(2, 0) + qutip.basis(2, 1)).unit()
            psi = qutip.tensor([plus] * n)
        else:
            psi = qutip.ghz_state(n)
        return psi.full().ravel()

    def sparse_from_foreign(self, obj) -> sp.sparse.csc_matrix:
        """Convert a ``qutip.Qobj`` (or ``scipy.sparse`` matrix) via index triplets."""
        if isinstance(obj, qutip.Qobj):
            obj = obj.to("csr").data_as("csr_matrix")
        return sparse_from_ijv(*sparse_to_ijv(obj))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(state={self.state!r}, basis={self.basis!r})"
