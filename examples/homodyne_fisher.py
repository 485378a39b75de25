#! /usr/bin/env python

from pathlib import Path

import numpy as np

from fisherpy.experiments import eff_qfi_hd
from fisherpy.shared import setup_logging


def main(num_trajectories=200, final_time=2.0, dt=0.01):
    setup_logging()

    # Parallel vs. transverse independent noise, 1 to 4 spins.
    columns = []
    header = ["t"]
    for theta, label in [(0.0, "par"), (np.pi / 2, "perp")]:
        for N in range(1, 5):
            t, fi, qfi = eff_qfi_hd(
                N,
                num_trajectories,
                final_time,
                dt,
                kappa=1.0,
                kappa_coll=1.0,
                eta=1.0,
                theta=theta,
                seed=N,
                progress=True,
            )
            # Fisher information per unit time and spin
            columns += [fi / (t * N), (fi + qfi) / (t * N)]
            header += [f"fi_{label}_N{N}", f"fi+qfi_{label}_N{N}"]
            print(f"{label} N={N}: (FI + QFI)/(tN) at t={t[-1]:.2f} is {columns[-1][-1]:.4f}")

    path = __file__[:-3] + ".csv"
    np.savetxt(path, np.column_stack([t] + columns), delimiter=",", header=",".join(header))
    print(f"Saved {Path(path).name}")


if __name__ == "__main__":
    main()
