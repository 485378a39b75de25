#!/usr/bin/env python
"""Monte Carlo averaging of homodyne trajectories.

`run_trajectories` spawns one independent random stream per trajectory
from a single `np.random.SeedSequence`, runs the trajectories in
contiguous batches (in worker processes or in-process) and averages the
per-trajectory FI and QFI series. Batches are reduced in batch order, so a
fixed ``seed`` gives the same result for any number of workers.

Trajectories that fail with `NumericalInstabilityError` are left out of
the average; a `RuntimeWarning` reports how many were dropped.
"""

import concurrent.futures
import logging
import os
import warnings
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from math import ceil
from typing import Optional

import numpy as np
from tqdm.auto import tqdm

from .errors import InvalidArgumentError, NumericalInstabilityError
from .simulation import HomodyneSimulation

logger = logging.getLogger(__name__)

MAX_NUM_BATCHES = 64


@dataclass
class EnsembleResult:
    """Ensemble-averaged Fisher information.

    Unpacks as ``t, fi, qfi = result``.
    """

    t: np.ndarray
    fi: np.ndarray
    qfi: np.ndarray
    num_trajectories: int
    num_failed: int = 0

    @property
    def num_completed(self) -> int:
        return self.num_trajectories - self.num_failed

    def __iter__(self):
        return iter((self.t, self.fi, self.qfi))


def _run_batch(simulation: HomodyneSimulation, seeds: list) -> tuple:
    """Sum the FI and QFI series of the trajectories seeded by ``seeds``."""
    fi_sum = np.zeros(simulation.num_steps)
    qfi_sum = np.zeros(simulation.num_steps)
    failed = 0
    for seed in seeds:
        try:
            fi, qfi = simulation.run_trajectory(seed)
        except NumericalInstabilityError as e:
            logger.debug("Dropping trajectory: %s", e)
            failed += 1
            continue
        fi_sum += fi
        qfi_sum += qfi
    return fi_sum, qfi_sum, failed


def _batches(seeds: list, batch_size: Optional[int]) -> list:
    if batch_size is None:
        batch_size = ceil(len(seeds) / MAX_NUM_BATCHES)
    if batch_size < 1:
        raise InvalidArgumentError(f"batch_size must be positive, got {batch_size}.")
    return [seeds[i : i + batch_size] for i in range(0, len(seeds), batch_size)]


def _run_serial(simulation, batches, pbar) -> list:
    results = []
    for batch in batches:
        results.append(_run_batch(simulation, batch))
        pbar.update(len(batch))
    return results


def _run_parallel(simulation, batches, max_workers, pbar) -> list:
    results = [None] * len(batches)
    with ProcessPoolExecutor(max_workers=max_workers) as executor:
        active_futures = []
        try:
            i = 0  # number of submitted batches
            while i < len(batches) or active_futures:
                while len(active_futures) < max_workers and i < len(batches):
                    future = executor.submit(_run_batch, simulation, batches[i])
                    active_futures.append((future, i))
                    i += 1

                done, _ = concurrent.futures.wait(
                    [f for f, _ in active_futures],
                    return_when=concurrent.futures.FIRST_COMPLETED,
                )

                remaining_futures = []
                for future, batch_i in active_futures:
                    if future in done:
                        results[batch_i] = future.result()
                        pbar.update(len(batches[batch_i]))
                    else:
                        remaining_futures.append((future, batch_i))
                active_futures = remaining_futures

        except KeyboardInterrupt:
            logger.warning("Cancelling %d active batches", len(active_futures))
            for future, _ in active_futures:
                future.cancel()
            executor.shutdown(wait=False, cancel_futures=True)
            raise
    return results


def run_trajectories(
    simulation: HomodyneSimulation,
    num_trajectories: int,
    seed=None,
    max_workers: Optional[int] = None,
    progress: bool = False,
    batch_size: Optional[int] = None,
) -> EnsembleResult:
    """Average FI and QFI over independent trajectories.

    Args:
        simulation (HomodyneSimulation): Prepared simulation (either engine).

        num_trajectories (int): Number of trajectories.

        seed: Entropy of the root `np.random.SeedSequence`; ``None`` draws
            fresh entropy.

        max_workers (Optional[int]): Number of worker processes (defaults
            to the number of CPUs). With ``1`` everything runs in-process.

        progress (bool): Show a `tqdm` progress bar.

        batch_size (Optional[int]): Trajectories per batch. The default
            splits the run into at most 64 contiguous batches.

    Returns:
        EnsembleResult: Time grid ``dt, ..., num_steps * dt`` and the
        averaged FI and QFI.

    Raises:
        InvalidArgumentError: Non-positive ``num_trajectories`` or
            ``max_workers``.
        NumericalInstabilityError: Every trajectory failed.
    """
    if num_trajectories < 1:
        raise InvalidArgumentError(
            f"num_trajectories must be positive, got {num_trajectories}."
        )
    if max_workers is None:
        max_workers = os.cpu_count() or 1
    if max_workers < 1:
        raise InvalidArgumentError(f"max_workers must be positive, got {max_workers}.")

    seeds = np.random.SeedSequence(seed).spawn(num_trajectories)
    batches = _batches(seeds, batch_size)
    max_workers = min(max_workers, len(batches))
    logger.info(
        "Running %d trajectories of %d steps in %d batches on %d workers",
        num_trajectories,
        simulation.num_steps,
        len(batches),
        max_workers,
    )

    pbar = tqdm(total=num_trajectories, desc="Trajectories", disable=not progress)
    try:
        if max_workers == 1:
            results = _run_serial(simulation, batches, pbar)
        else:
            results = _run_parallel(simulation, batches, max_workers, pbar)
    finally:
        pbar.close()

    fi = np.zeros(simulation.num_steps)
    qfi = np.zeros(simulation.num_steps)
    num_failed = 0
    for fi_sum, qfi_sum, failed in results:
        fi += fi_sum
        qfi += qfi_sum
        num_failed += failed

    if num_failed == num_trajectories:
        raise NumericalInstabilityError(
            f"All {num_trajectories} trajectories were numerically unstable."
        )
    if num_failed:
        msg = f"{num_failed} of {num_trajectories} trajectories were numerically unstable and were dropped."
        logger.warning(msg)
        warnings.warn(msg, RuntimeWarning, stacklevel=2)

    num_completed = num_trajectories - num_failed
    return EnsembleResult(
        t=simulation.time,
        fi=fi / num_completed,
        qfi=qfi / num_completed,
        num_trajectories=num_trajectories,
        num_failed=num_failed,
    )
