#!/usr/bin/env python
"""Fisher information of frequency estimation with homodyne monitoring.

All entry points return an `fisherpy.ensemble.EnsembleResult`, which
unpacks as ``t, fi, qfi``; the three arrays have length
``floor(final_time / dt)``.

- `eff_qfi_hd`: ``N`` spins with independent noise at an angle θ and
  monitored collective transverse noise, in the full ``2**N`` basis.
- `eff_qfi_hd_sup`: the same SME for user-supplied operators.
- `eff_qfi_hd_dicke`: collective noise only, in the Dicke basis, on the
  block-diagonal engine.

>>> t, fi, qfi = eff_qfi_hd(1, 2, 0.02, 0.01, seed=0, max_workers=1)
>>> np.round(t, 2)
array([0.01, 0.02])
"""

import logging
from math import cos, sin, sqrt

import numpy as np

from . import dicke
from .bridge import NumpyToolbox, Toolbox
from .ensemble import EnsembleResult, run_trajectories
from .errors import DimensionError, InvalidArgumentError
from .operators import collective_spin_operator, sigma_j
from .shared import defaults
from .simulation import BlockDiagonalHomodyneSimulation, HomodyneSimulation

logger = logging.getLogger(__name__)


def _num_spins_full_basis(dim: int) -> int:
    num_spins = dim.bit_length() - 1
    if num_spins < 1 or 2**num_spins != dim:
        raise DimensionError(f"Dimension {dim} is not a power of two.")
    return num_spins


def _check_couplings(kappa: float, kappa_coll: float):
    for name, value in [("kappa", kappa), ("kappa_coll", kappa_coll)]:
        if not value >= 0:
            raise InvalidArgumentError(f"{name} must be non-negative, got {value}.")


def eff_qfi_hd(
    num_spins: int,
    num_trajectories: int,
    final_time: float,
    dt: float,
    kappa: float = defaults.kappa,
    kappa_coll: float = defaults.kappa_coll,
    omega: float = defaults.omega,
    eta: float = defaults.eta,
    theta: float = defaults.theta,
    toolbox: Toolbox = None,
    seed=None,
    max_workers: int = None,
    progress: bool = False,
    chop_tolerance: float = defaults.chop_tolerance,
) -> EnsembleResult:
    """FI and QFI for independent noise and monitored collective noise.

    The model is

    - :math:`H = \\omega\\,\\sigma_z / 2` and :math:`\\partial_\\omega H = \\sigma_z / 2`
      with the collective operator :math:`\\sigma_z = \\sum_j \\sigma^{(j)}_z`,
    - non-monitored noise :math:`\\sqrt{\\kappa/2}\\,(\\cos\\theta\\,\\sigma^{(j)}_z + \\sin\\theta\\,\\sigma^{(j)}_y)`
      on every spin,
    - monitored noise :math:`\\sqrt{\\kappa_{coll}}\\,\\sigma_y / 2`,
    - a coherent spin state along ``+x`` (from ``toolbox``).

    Args:
        num_spins (int): Number of spins.

        num_trajectories (int): Number of trajectories.

        final_time (float): Final time of the evolution.

        dt (float): Time step.

        kappa (float): Independent noise coupling.

        kappa_coll (float): Collective (monitored) noise coupling.

        omega (float): Local value of the frequency.

        eta (float): Measurement efficiency.

        theta (float): Noise angle (0 parallel, π/2 transverse).

        toolbox (Toolbox): Initial-state collaborator in the full basis
            (defaults to ``NumpyToolbox("coherent")``).

        seed: Seed of the trajectory random streams.

        max_workers (int): Number of worker processes.

        progress (bool): Show a progress bar.

        chop_tolerance (float): Round-off threshold of the integrator.

    Returns:
        EnsembleResult: ``(t, fi, qfi)``.
    """
    if num_spins < 1:
        raise InvalidArgumentError(f"num_spins must be positive, got {num_spins}.")
    _check_couplings(kappa, kappa_coll)
    if toolbox is None:
        toolbox = NumpyToolbox("coherent")
    if toolbox.basis != "full":
        raise InvalidArgumentError("eff_qfi_hd needs a toolbox in the full basis.")

    Sz = collective_spin_operator("z", num_spins)
    Sy = collective_spin_operator("y", num_spins)
    H = omega * Sz / 2
    dH = Sz / 2
    non_monitored = [
        sqrt(kappa / 2)
        * (cos(theta) * sigma_j("z", j, num_spins) + sin(theta) * sigma_j("y", j, num_spins))
        for j in range(1, num_spins + 1)
    ]
    monitored = [sqrt(kappa_coll) * Sy / 2]
    return eff_qfi_hd_sup(
        num_trajectories,
        final_time,
        dt,
        H,
        dH,
        non_monitored,
        monitored,
        initial_state=toolbox.initial_state(num_spins),
        eta=eta,
        toolbox=toolbox,
        seed=seed,
        max_workers=max_workers,
        progress=progress,
        chop_tolerance=chop_tolerance,
    )


def eff_qfi_hd_sup(
    num_trajectories: int,
    final_time: float,
    dt: float,
    H,
    dH,
    non_monitored_noise_op,
    monitored_noise_op,
    initial_state=None,
    eta: float = defaults.eta,
    toolbox: Toolbox = None,
    seed=None,
    max_workers: int = None,
    progress: bool = False,
    chop_tolerance: float = defaults.chop_tolerance,
) -> EnsembleResult:
    """FI and QFI for arbitrary operators in the full ``2**N`` basis.

    Operators may be given in any form ``toolbox.sparse_from_foreign``
    accepts (``scipy.sparse`` matrices, dense arrays, index triplets or,
    with `fisherpy.bridge.QutipToolbox`, ``qutip.Qobj``).

    Args:
        initial_state: State vector or density matrix, a callable taking the
            number of spins, or ``None`` for the toolbox's initial state
            (GHZ with the default toolbox).

        toolbox (Toolbox): Defaults to ``NumpyToolbox("ghz")``.

    The remaining arguments are those of `eff_qfi_hd` and
    `fisherpy.simulation.HomodyneSimulation`.

    Returns:
        EnsembleResult: ``(t, fi, qfi)``.
    """
    if toolbox is None:
        toolbox = NumpyToolbox("ghz")
    convert = toolbox.sparse_from_foreign
    H = convert(H)
    dH = convert(dH)
    non_monitored = [convert(c) for c in non_monitored_noise_op]
    monitored = [convert(C) for C in monitored_noise_op]

    if initial_state is None or callable(initial_state):
        num_spins = _num_spins_full_basis(H.shape[0])
        make_state = toolbox.initial_state if initial_state is None else initial_state
        initial_state = make_state(num_spins)

    simulation = HomodyneSimulation(
        H,
        dH,
        non_monitored,
        monitored,
        initial_state,
        dt,
        final_time,
        eta=eta,
        chop_tolerance=chop_tolerance,
    )
    return run_trajectories(
        simulation,
        num_trajectories,
        seed=seed,
        max_workers=max_workers,
        progress=progress,
    )


def eff_qfi_hd_dicke(
    num_spins: int,
    num_trajectories: int,
    final_time: float,
    dt: float,
    kappa: float = defaults.kappa,
    kappa_coll: float = defaults.kappa_coll,
    omega: float = defaults.omega,
    eta: float = defaults.eta,
    toolbox: Toolbox = None,
    seed=None,
    max_workers: int = None,
    progress: bool = False,
    chop_tolerance: float = defaults.chop_tolerance,
) -> EnsembleResult:
    """FI and QFI for collective noise in the Dicke basis.

    The model is :math:`H = \\omega J_z`, :math:`\\partial_\\omega H = J_z`,
    non-monitored collective dephasing :math:`\\sqrt{\\kappa}\\,J_z` and
    monitored :math:`\\sqrt{\\kappa_{coll}}\\,J_y`, starting from the coherent
    spin state (``toolbox`` must work in the Dicke basis, default
    ``NumpyToolbox("coherent", basis="dicke")``). The density operator is
    propagated block by block with
    `fisherpy.simulation.BlockDiagonalHomodyneSimulation`.

    >>> t, fi, qfi = eff_qfi_hd_dicke(3, 2, 0.02, 0.01, seed=0, max_workers=1)
    >>> fi.shape, bool(np.all(qfi >= 0))
    ((2,), True)

    Returns:
        EnsembleResult: ``(t, fi, qfi)``.
    """
    _check_couplings(kappa, kappa_coll)
    if toolbox is None:
        toolbox = NumpyToolbox("coherent", basis="dicke")
    if toolbox.basis != "dicke":
        raise InvalidArgumentError("eff_qfi_hd_dicke needs a toolbox in the Dicke basis.")

    Jz = dicke.collective_operator("z", num_spins)
    Jy = dicke.collective_operator("y", num_spins)
    simulation = BlockDiagonalHomodyneSimulation(
        omega * Jz,
        Jz,
        [sqrt(kappa) * Jz],
        [sqrt(kappa_coll) * Jy],
        toolbox.initial_state(num_spins),
        dt,
        final_time,
        eta=eta,
        chop_tolerance=chop_tolerance,
        block_sizes=dicke.block_sizes(num_spins),
    )
    return run_trajectories(
        simulation,
        num_trajectories,
        seed=seed,
        max_workers=max_workers,
        progress=progress,
    )
