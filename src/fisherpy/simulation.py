#!/usr/bin/env python
"""Stochastic master equation trajectories under homodyne detection.

A `HomodyneSimulation` holds everything that is shared by all trajectories
of an experiment (operators, Kraus-operator ingredients, superoperators) and
is read-only once constructed. Each `Trajectory` owns its density operator
``ρ``, the unnormalised derivative ``τ = ∂ρ/∂ω`` and its random stream, and
records per step

- the classical Fisher information of the homodyne record, :math:`\\mathrm{Re}(\\mathrm{tr}(\\tau)^2)`,
- the quantum Fisher information of a final strong measurement, :math:`F_Q(\\rho, \\partial\\rho)`.

One step of length ``dt`` uses the Kraus operator

.. math::
    M = M_0 + \\sqrt{\\eta}\\sum_k C_k\\,dy_k
        + \\frac{\\eta}{2}\\sum_{i,j} C_iC_j\\,(dy_i\\,dy_j - \\delta_{ij}\\,dt),

with :math:`M_0 = I - iH\\,dt - \\frac{dt}{2}\\sum c^{\\dagger}c` over all noise
operators and the homodyne currents
:math:`dy_k = \\sqrt{\\eta}\\,\\mathrm{tr}((C_k + C_k^{\\dagger})\\rho)\\,dt + dW_k`.

Two engines are available:

- `HomodyneSimulation`: vectorised (column-stacked) density operators and
  sparse Liouville-space superoperators.
- `BlockDiagonalHomodyneSimulation`: block-diagonal density operators in
  the Dicke basis, with pattern-stable superoperators from
  `fisherpy.blockdiag`.
"""

import enum
import logging
from math import floor, sqrt

import numpy as np
import scipy as sp

from . import dicke
from .blockdiag import BlockDiagonal, PatternStableSuperoperator
from .errors import DimensionError, InvalidArgumentError, NumericalInstabilityError
from .fisher import quantum_fisher_information
from .operators import (
    chop,
    matrix_to_vector,
    sup_post,
    sup_pre,
    sup_pre_post,
    trace_vectorized,
    vector_to_matrix,
)
from .shared import defaults

logger = logging.getLogger(__name__)

STEP_TOLERANCE = 1e-9


class TrajectoryState(enum.Enum):
    INITIALIZED = "initialized"
    STEPPING = "stepping"
    COMPLETED = "completed"


def num_steps(final_time: float, dt: float) -> int:
    """Number of steps ``floor(final_time / dt)``, robust to round-off.

    >>> num_steps(1.0, 0.01), num_steps(0.3, 0.1), num_steps(0.35, 0.1)
    (100, 3, 3)
    """
    return floor(final_time / dt + STEP_TOLERANCE)


def _operator(A) -> sp.sparse.csc_matrix:
    A = sp.sparse.csc_matrix(A, dtype=complex, copy=True)
    A.sum_duplicates()
    return A


def _operator_list(ops) -> list:
    if ops is None:
        return []
    if sp.sparse.issparse(ops) or (isinstance(ops, np.ndarray) and ops.ndim == 2):
        return [_operator(ops)]
    return [_operator(op) for op in ops]


def _check_finite_trace(trace: complex):
    if not np.isfinite(trace) or abs(trace) == 0:
        raise NumericalInstabilityError(
            f"Trace of the unnormalised density operator is {trace}."
        )


class HomodyneSimulation:
    """Homodyne-monitored SME on vectorised density operators.

    Args:
        H: Hamiltonian (``dim × dim``).

        dH: Derivative of the Hamiltonian with respect to the estimated
            frequency.

        non_monitored_noise_op (list): Lindblad operators :math:`c` whose
            output is not detected (may be empty).

        monitored_noise_op (list): Lindblad operators :math:`C_k` whose
            output is detected by homodyne measurement (at least one).

        initial_state (np.ndarray): State vector of length ``dim`` or
            density matrix ``dim × dim``.

        dt (float): Time step.

        final_time (float): Final time; the trajectory takes
            ``floor(final_time / dt)`` steps.

        eta (float): Detection efficiency, :math:`0 \\le \\eta \\le 1`.

        chop_tolerance (float): Entries of ``ρ`` and ``τ`` with magnitude
            below this value are set to zero after each step.

        qfi_tolerance (float): Eigenvalue cutoff of the QFI formula.

    Raises:
        InvalidArgumentError: Empty monitored set, ``eta`` outside
            ``[0, 1]``, ``dt <= 0`` or ``final_time < dt``.
        DimensionError: Operators or initial state of inconsistent size.
    """

    def __init__(
        self,
        H,
        dH,
        non_monitored_noise_op,
        monitored_noise_op,
        initial_state,
        dt: float,
        final_time: float,
        eta: float = defaults.eta,
        chop_tolerance: float = defaults.chop_tolerance,
        qfi_tolerance: float = defaults.qfi_tolerance,
    ):
        self.H = _operator(H)
        self.dH = _operator(dH)
        self.non_monitored_noise_op = _operator_list(non_monitored_noise_op)
        self.monitored_noise_op = _operator_list(monitored_noise_op)
        self.dt = float(dt)
        self.final_time = float(final_time)
        self.eta = float(eta)
        self.chop_tolerance = float(chop_tolerance)
        self.qfi_tolerance = float(qfi_tolerance)
        self._validate()
        self.initial_state = self._check_initial_state(initial_state)
        self.num_steps = num_steps(self.final_time, self.dt)
        self._precompute()
        logger.debug("Prepared %r", self)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(dim={self.dim}, "
            f"monitored={len(self.monitored_noise_op)}, "
            f"non_monitored={len(self.non_monitored_noise_op)}, "
            f"dt={self.dt}, num_steps={self.num_steps}, eta={self.eta})"
        )

    @property
    def dim(self) -> int:
        return self.H.shape[0]

    @property
    def num_monitored(self) -> int:
        return len(self.monitored_noise_op)

    @property
    def time(self) -> np.ndarray:
        """Time grid ``dt, 2 dt, ..., num_steps * dt``."""
        return self.dt * np.arange(1, self.num_steps + 1)

    def _validate(self):
        if not self.monitored_noise_op:
            raise InvalidArgumentError(
                "At least one monitored noise operator is required."
            )
        if not 0 <= self.eta <= 1:
            raise InvalidArgumentError(f"eta must be in [0, 1], got {self.eta}.")
        if not self.dt > 0:
            raise InvalidArgumentError(f"dt must be positive, got {self.dt}.")
        if num_steps(self.final_time, self.dt) < 1:
            raise InvalidArgumentError(
                f"final_time ({self.final_time}) must not be smaller than dt ({self.dt})."
            )
        dim = self.H.shape[0]
        ops = [self.H, self.dH] + self.non_monitored_noise_op + self.monitored_noise_op
        for op in ops:
            if op.shape != (dim, dim):
                raise DimensionError(
                    f"All operators must have shape ({dim}, {dim}), got {op.shape}."
                )

    def _check_initial_state(self, state) -> np.ndarray:
        state = np.asarray(
            state.toarray() if sp.sparse.issparse(state) else state, dtype=complex
        )
        if state.ndim == 2 and 1 in state.shape:
            state = state.ravel()
        if state.shape not in ((self.dim,), (self.dim, self.dim)):
            raise DimensionError(
                f"Initial state of shape {state.shape} does not match dimension {self.dim}."
            )
        return state

    def initial_density_matrix(self) -> np.ndarray:
        """Initial density matrix (``dim × dim``)."""
        psi = self.initial_state
        if psi.ndim == 1:
            return np.outer(psi, psi.conj())
        return psi

    def _kraus_ingredients(self):
        """Deterministic part :math:`M_0`, :math:`dM` and the products :math:`C_iC_j`."""
        dt = self.dt
        eye = sp.sparse.identity(self.dim, dtype=complex, format="csc")
        M0 = eye - 1j * dt * self.H
        for c in self.non_monitored_noise_op + self.monitored_noise_op:
            M0 = M0 - (dt / 2) * (c.conj().T @ c)
        dM = -1j * dt * self.dH
        CC = [[Ci @ Cj for Cj in self.monitored_noise_op] for Ci in self.monitored_noise_op]
        return _operator(M0), _operator(dM), [[_operator(x) for x in row] for row in CC]

    def _decoherence_superoperator(self) -> sp.sparse.csc_matrix:
        """:math:`(1-\\eta)\\,dt\\sum \\mathcal{S}[C] + dt\\sum \\mathcal{S}[c]`."""
        size = self.dim**2
        result = sp.sparse.csc_matrix((size, size), dtype=complex)
        for C in self.monitored_noise_op:
            result = result + (1 - self.eta) * self.dt * sup_pre_post(C)
        for c in self.non_monitored_noise_op:
            result = result + self.dt * sup_pre_post(c)
        return _operator(result)

    def _current_weights(self) -> np.ndarray:
        # tr(Xρ) = vec(Xᵀ) · vec(ρ)
        return np.array(
            [
                matrix_to_vector((C + C.conj().T).T.toarray())
                for C in self.monitored_noise_op
            ]
        )

    def _precompute(self):
        self.M0, self.dM, self.CC = self._kraus_ingredients()
        self.dM_pre = sup_pre(self.dM)
        self.dM_post = sup_post(self.dM)
        self.decoherence = self._decoherence_superoperator()
        self.current_weights = self._current_weights()

    def homodyne_current(self, rho, dW: np.ndarray) -> np.ndarray:
        """:math:`dy_k = \\sqrt{\\eta}\\,\\mathrm{tr}((C_k + C_k^{\\dagger})\\rho)\\,dt + dW_k`."""
        data = rho.data if isinstance(rho, BlockDiagonal) else rho
        expect = (self.current_weights @ data).real
        return self.dt * sqrt(self.eta) * expect + dW

    def kraus_operator(self, dy: np.ndarray) -> sp.sparse.csc_matrix:
        """Stochastic Kraus operator :math:`M` for the currents ``dy``."""
        M = self.M0
        for dyk, C in zip(dy, self.monitored_noise_op):
            M = M + C * float(sqrt(self.eta) * dyk)
        for i, row in enumerate(self.CC):
            for j, CiCj in enumerate(row):
                M = M + CiCj * float(self.eta / 2 * (dy[i] * dy[j] - (i == j) * self.dt))
        return M

    def workspace(self):
        """Per-trajectory mutable buffers (none for the sparse engine)."""
        return None

    def initial_states(self):
        """Initial ``(ρ, τ)`` of a trajectory."""
        rho = matrix_to_vector(self.initial_density_matrix()).copy()
        return rho, np.zeros_like(rho)

    def step(self, rho, tau, dW, workspace=None):
        """Advance ``(ρ, τ)`` by one time step.

        Returns:
            tuple: New ``ρ``, new ``τ``, classical FI and QFI of the step.

        Raises:
            NumericalInstabilityError: Zero or non-finite trace of the
                unnormalised state.
        """
        dy = self.homodyne_current(rho, dW)
        M = self.kraus_operator(dy)
        M_pre = sup_pre(M)
        M_post = sup_post(M)

        M_post_rho = M_post @ rho
        new_rho = M_pre @ M_post_rho + self.decoherence @ rho
        chop(new_rho, self.chop_tolerance)
        trace = trace_vectorized(new_rho)
        _check_finite_trace(trace)

        new_tau = (
            M_pre @ (M_post @ tau + self.dM_post @ rho)
            + self.dM_pre @ M_post_rho
            + self.decoherence @ tau
        ) / trace
        chop(new_tau, self.chop_tolerance)

        rho = new_rho / trace
        tau_trace = trace_vectorized(new_tau)
        drho = new_tau - tau_trace * rho
        fi = (tau_trace**2).real
        qfi = quantum_fisher_information(
            vector_to_matrix(rho), vector_to_matrix(drho), self.qfi_tolerance
        )
        return rho, new_tau, fi, qfi

    def trajectory(self, rng=None) -> "Trajectory":
        return Trajectory(self, rng)

    def run_trajectory(self, rng=None):
        """Run one trajectory; returns the ``(fi, qfi)`` series."""
        return self.trajectory(rng).run()


class BlockDiagonalHomodyneSimulation(HomodyneSimulation):
    """Homodyne-monitored SME on block-diagonal density operators.

    Same arguments as `HomodyneSimulation`, plus

    Args:
        block_sizes (Optional[tuple[int]]): Block structure of the
            density operator. Defaults to the Dicke-basis blocks of the
            spin number inferred from the operator dimension.

    All operators must be block diagonal in this structure (e.g. collective
    operators in the Dicke basis); off-diagonal-block contributions are
    discarded. The Kraus operator is assembled on a fixed sparsity pattern
    (the union of the patterns of :math:`M_0`, :math:`C_k` and
    :math:`C_iC_j`), so the superoperators :math:`M\\rho M^{\\dagger}`,
    :math:`M\\rho\\,dM^{\\dagger}` and :math:`dM\\rho M^{\\dagger}` keep their
    block indices for the whole run and only their values are updated.
    """

    def __init__(self, *args, block_sizes=None, **kwargs):
        self._block_sizes = None if block_sizes is None else tuple(block_sizes)
        super().__init__(*args, **kwargs)

    def _precompute(self):
        if self._block_sizes is None:
            self._block_sizes = dicke.block_sizes(dicke.nspins(self.dim))
        if sum(self._block_sizes) != self.dim:
            raise DimensionError(
                f"Block sizes {self._block_sizes} do not add up to dimension {self.dim}."
            )
        self.M0, self.dM, self.CC = self._kraus_ingredients()

        terms = [self.M0] + self.monitored_noise_op + [x for row in self.CC for x in row]
        self.pattern = self._union_pattern(terms)
        self.M0_values = self._on_pattern(self.M0)
        self.C_values = np.array([self._on_pattern(C) for C in self.monitored_noise_op])
        Nm = self.num_monitored
        self.CC_values = np.array(
            [self._on_pattern(x) for row in self.CC for x in row]
        ).reshape(Nm, Nm, -1)

        sizes = self._block_sizes
        self.kraus = PatternStableSuperoperator.pre_post(self.pattern, self.pattern, sizes)
        self.kraus_dM = PatternStableSuperoperator.pre_post(self.pattern, self.dM, sizes)
        self.dM_kraus = PatternStableSuperoperator.pre_post(self.dM, self.pattern, sizes)
        self.decoherence = PatternStableSuperoperator.from_sparse(
            self._decoherence_superoperator(), sizes
        )
        self.current_weights = np.array(
            [
                BlockDiagonal.from_matrix((C + C.conj().T).T, sizes).data
                for C in self.monitored_noise_op
            ]
        )
        logger.debug(
            "Kraus pattern: %d entries, superoperator entries: %d",
            self.pattern.nnz,
            self.kraus.nnz,
        )

    @property
    def block_sizes(self) -> tuple[int, ...]:
        return self._block_sizes

    @staticmethod
    def _union_pattern(terms) -> sp.sparse.csc_matrix:
        dim = terms[0].shape[0]
        pattern = sp.sparse.csc_matrix((dim, dim), dtype=float)
        for X in terms:
            pattern = pattern + sp.sparse.csc_matrix(
                (np.ones(X.nnz), X.indices, X.indptr), shape=X.shape
            )
        pattern.sum_duplicates()
        pattern.sort_indices()
        return pattern

    def _on_pattern(self, X) -> np.ndarray:
        """Values of ``X`` at the stored entries of the Kraus pattern."""
        P = self.pattern
        dim = P.shape[0]
        p_cols = np.repeat(np.arange(dim), np.diff(P.indptr))
        x_cols = np.repeat(np.arange(dim), np.diff(X.indptr))
        p_keys = p_cols * dim + P.indices
        x_keys = x_cols * dim + X.indices
        values = np.zeros(P.nnz, dtype=complex)
        values[np.searchsorted(p_keys, x_keys)] = X.data
        return values

    def kraus_values(self, dy: np.ndarray) -> np.ndarray:
        """Values of :math:`M` on the Kraus pattern."""
        weights = np.outer(dy, dy) - self.dt * np.eye(len(dy))
        return (
            self.M0_values
            + sqrt(self.eta) * (dy @ self.C_values)
            + (self.eta / 2) * np.einsum("ij,ijk->k", weights, self.CC_values)
        )

    def kraus_operator(self, dy: np.ndarray) -> sp.sparse.csc_matrix:
        P = self.pattern
        return sp.sparse.csc_matrix(
            (self.kraus_values(dy), P.indices, P.indptr), shape=P.shape
        )

    def initial_states(self):
        rho = BlockDiagonal.from_matrix(self.initial_density_matrix(), self._block_sizes)
        return rho, BlockDiagonal(self._block_sizes)

    def workspace(self):
        """Copies of the Kraus superoperators whose values change every step."""
        return {
            "kraus": self.kraus.copy(),
            "kraus_dM": self.kraus_dM.copy(),
            "dM_kraus": self.dM_kraus.copy(),
        }

    def step(self, rho, tau, dW, workspace=None):
        if workspace is None:
            workspace = self.workspace()
        kraus = workspace["kraus"]
        kraus_dM = workspace["kraus_dM"]
        dM_kraus = workspace["dM_kraus"]
        sizes = self._block_sizes
        dy = self.homodyne_current(rho, dW)
        M_values = self.kraus_values(dy)
        kraus.update_pre_post(M_values, M_values)
        kraus_dM.update_pre_post(M_values, self.dM.data)
        dM_kraus.update_pre_post(self.dM.data, M_values)

        new_rho = BlockDiagonal(sizes)
        scratch = BlockDiagonal(sizes)
        kraus.apply(new_rho, rho)
        new_rho.axpy(1, self.decoherence.apply(scratch, rho))
        new_rho.chop(self.chop_tolerance)
        trace = new_rho.trace()
        _check_finite_trace(trace)

        new_tau = BlockDiagonal(sizes)
        kraus.apply(new_tau, tau)
        new_tau.axpy(1, kraus_dM.apply(scratch, rho))
        new_tau.axpy(1, dM_kraus.apply(scratch, rho))
        new_tau.axpy(1, self.decoherence.apply(scratch, tau))
        new_tau.scale(1 / trace).chop(self.chop_tolerance)

        new_rho.scale(1 / trace)
        tau_trace = new_tau.trace()
        drho = new_tau.copy().axpy(-tau_trace, new_rho)
        fi = (tau_trace**2).real
        qfi = sum(
            quantum_fisher_information(r, d, self.qfi_tolerance)
            for r, d in zip(new_rho.blocks, drho.blocks)
        )
        return new_rho, new_tau, fi, qfi


class Trajectory:
    """A single stochastic trajectory of a `HomodyneSimulation`.

    Args:
        simulation (HomodyneSimulation): Shared, read-only precomputations.

        rng: Seed, `np.random.SeedSequence` or `np.random.Generator` of the
            Wiener increments.

    >>> import numpy as np
    >>> from fisherpy.operators import pauli_matrices
    >>> Z, Y = pauli_matrices()["z"], pauli_matrices()["y"]
    >>> sim = HomodyneSimulation(0 * Z, Z / 2, [], [Y / 2],
    ...                          np.array([1, 1]) / np.sqrt(2), 0.1, 0.3)
    >>> traj = sim.trajectory(rng=1)
    >>> traj.state
    <TrajectoryState.INITIALIZED: 'initialized'>
    >>> fi, qfi = traj.run()
    >>> traj.state, fi.shape, qfi.shape
    (<TrajectoryState.COMPLETED: 'completed'>, (3,), (3,))
    """

    def __init__(self, simulation: HomodyneSimulation, rng=None):
        self.simulation = simulation
        self.rng = np.random.default_rng(rng)
        self.rho, self.tau = simulation.initial_states()
        self.workspace = simulation.workspace()
        self.step_index = 0
        self.fi = np.zeros(simulation.num_steps)
        self.qfi = np.zeros(simulation.num_steps)
        self.state = TrajectoryState.INITIALIZED

    def wiener_increment(self) -> np.ndarray:
        sim = self.simulation
        dW = self.rng.normal(0.0, sqrt(sim.dt), sim.num_monitored)
        if not np.all(np.isfinite(dW)):
            raise NumericalInstabilityError("Non-finite Wiener increment.")
        return dW

    def step(self):
        """Advance the trajectory by one time step and record FI and QFI."""
        if self.state is TrajectoryState.COMPLETED:
            raise InvalidArgumentError("Trajectory is already completed.")
        self.state = TrajectoryState.STEPPING
        self.rho, self.tau, fi, qfi = self.simulation.step(
            self.rho, self.tau, self.wiener_increment(), self.workspace
        )
        self.fi[self.step_index] = fi
        self.qfi[self.step_index] = qfi
        self.step_index += 1
        if self.step_index == self.simulation.num_steps:
            self.state = TrajectoryState.COMPLETED

    def run(self):
        """Step until completion; returns the ``(fi, qfi)`` series."""
        while self.state is not TrajectoryState.COMPLETED:
            self.step()
        return self.fi, self.qfi
