#! /usr/bin/env python

import doctest
import unittest
from math import pi, sqrt

import numpy as np
import scipy as sp

from fisherpy import ensemble, experiments, states
from fisherpy.bridge import NumpyToolbox, sparse_to_ijv
from fisherpy.errors import DimensionError, InvalidArgumentError
from fisherpy.experiments import eff_qfi_hd, eff_qfi_hd_dicke, eff_qfi_hd_sup
from fisherpy.operators import collective_spin_operator, pauli_matrices, sigma_j


def load_tests(loader, tests, ignore):
    tests.addTests(doctest.DocTestSuite(experiments))
    tests.addTests(doctest.DocTestSuite(ensemble))
    return tests


def ghz_model(N, kappa=1.0, kappa_coll=1.0, omega=0.0):
    Sz = collective_spin_operator("z", N)
    Sy = collective_spin_operator("y", N)
    return dict(
        H=omega * Sz / 2,
        dH=Sz / 2,
        non_monitored_noise_op=[sqrt(kappa / 2) * sigma_j("z", j, N) for j in range(1, N + 1)],
        monitored_noise_op=[sqrt(kappa_coll) * Sy / 2],
    )


class EffQfiHdTestCase(unittest.TestCase):
    def test_two_spins(self):
        t, fi, qfi = eff_qfi_hd(2, 50, 1.0, 0.01, seed=0, max_workers=1)
        self.assertEqual(len(t), 100)
        np.testing.assert_allclose(t, np.arange(1, 101) * 0.01)
        self.assertEqual(fi.shape, (100,))
        self.assertEqual(qfi.shape, (100,))
        self.assertTrue(np.all(fi >= -1e-12))
        self.assertTrue(np.all(qfi >= -1e-12))
        self.assertTrue(np.all(np.isfinite(fi)) and np.all(np.isfinite(qfi)))

    def test_single_step(self):
        t, fi, qfi = eff_qfi_hd(2, 1, 0.01, 0.01, seed=0, max_workers=1)
        self.assertEqual(len(t), 1)
        self.assertEqual(len(fi), 1)
        self.assertEqual(len(qfi), 1)

    def test_transverse_noise(self):
        t, fi, qfi = eff_qfi_hd(2, 4, 0.05, 0.01, theta=pi / 2, seed=1, max_workers=1)
        self.assertEqual(len(t), 5)
        self.assertTrue(np.all(qfi >= -1e-12))

    def test_reproducible(self):
        r1 = eff_qfi_hd(1, 4, 0.05, 0.01, omega=0.3, seed=2, max_workers=1)
        r2 = eff_qfi_hd(1, 4, 0.05, 0.01, omega=0.3, seed=2, max_workers=1)
        np.testing.assert_array_equal(r1.fi, r2.fi)
        np.testing.assert_array_equal(r1.qfi, r2.qfi)

    def test_matches_explicit_operators(self):
        N, kappa, kappa_coll, omega = 2, 0.7, 1.3, 0.4
        r1 = eff_qfi_hd(
            N, 3, 0.05, 0.01, kappa=kappa, kappa_coll=kappa_coll, omega=omega,
            seed=3, max_workers=1,
        )
        r2 = eff_qfi_hd_sup(
            3, 0.05, 0.01,
            **ghz_model(N, kappa, kappa_coll, omega),
            initial_state=states.coherent_state(N),
            seed=3, max_workers=1,
        )
        np.testing.assert_allclose(r1.fi, r2.fi, rtol=1e-10, atol=1e-14)
        np.testing.assert_allclose(r1.qfi, r2.qfi, rtol=1e-10, atol=1e-14)

    def test_qfi_grows_without_unmonitored_noise(self):
        """With only monitored noise, η = 1 and ω = 0 the averaged QFI never decreases."""
        t, fi, qfi = eff_qfi_hd(2, 200, 1.0, 0.01, kappa=0.0, seed=3, max_workers=1)
        self.assertEqual(len(qfi), 100)
        self.assertTrue(np.all(np.diff(qfi) >= -1e-10))
        self.assertGreater(qfi[-1], qfi[0])

    def test_invalid_arguments(self):
        with self.assertRaises(InvalidArgumentError):
            eff_qfi_hd(0, 1, 0.1, 0.01)
        with self.assertRaises(InvalidArgumentError):
            eff_qfi_hd(1, 1, 0.1, 0.01, kappa=-1.0)
        with self.assertRaises(InvalidArgumentError):
            eff_qfi_hd(1, 1, 0.1, 0.01, kappa_coll=-0.5)
        with self.assertRaises(InvalidArgumentError):
            eff_qfi_hd(1, 1, 0.1, 0.01, eta=1.5)
        with self.assertRaises(InvalidArgumentError):
            eff_qfi_hd(1, 0, 0.1, 0.01)
        with self.assertRaises(InvalidArgumentError):
            eff_qfi_hd(1, 1, 0.1, 0.01, toolbox=NumpyToolbox("coherent", basis="dicke"))


class EffQfiHdSupTestCase(unittest.TestCase):
    def test_default_initial_state_is_ghz(self):
        model = ghz_model(2)
        r1 = eff_qfi_hd_sup(3, 0.05, 0.01, **model, seed=4, max_workers=1)
        r2 = eff_qfi_hd_sup(
            3, 0.05, 0.01, **model, initial_state=states.ghz_state(2), seed=4, max_workers=1
        )
        np.testing.assert_array_equal(r1.fi, r2.fi)
        np.testing.assert_array_equal(r1.qfi, r2.qfi)

    def test_callable_initial_state(self):
        model = ghz_model(2)
        r1 = eff_qfi_hd_sup(
            2, 0.03, 0.01, **model, initial_state=states.coherent_state, seed=5, max_workers=1
        )
        r2 = eff_qfi_hd_sup(
            2, 0.03, 0.01, **model, initial_state=states.coherent_state(2), seed=5, max_workers=1
        )
        np.testing.assert_array_equal(r1.fi, r2.fi)

    def test_ijv_operators(self):
        model = ghz_model(2, omega=0.2)
        ijv = {
            "H": sparse_to_ijv(model["H"]),
            "dH": sparse_to_ijv(model["dH"]),
            "non_monitored_noise_op": [sparse_to_ijv(c) for c in model["non_monitored_noise_op"]],
            "monitored_noise_op": [sparse_to_ijv(C) for C in model["monitored_noise_op"]],
        }
        r1 = eff_qfi_hd_sup(2, 0.03, 0.01, **model, seed=6, max_workers=1)
        r2 = eff_qfi_hd_sup(2, 0.03, 0.01, **ijv, seed=6, max_workers=1)
        np.testing.assert_allclose(r1.fi, r2.fi, rtol=1e-12, atol=1e-15)
        np.testing.assert_allclose(r1.qfi, r2.qfi, rtol=1e-12, atol=1e-15)

    def test_dense_operators(self):
        model = ghz_model(1)
        dense = {
            key: [x.toarray() for x in value] if isinstance(value, list) else value.toarray()
            for key, value in model.items()
        }
        r1 = eff_qfi_hd_sup(2, 0.03, 0.01, **model, seed=7, max_workers=1)
        r2 = eff_qfi_hd_sup(2, 0.03, 0.01, **dense, seed=7, max_workers=1)
        np.testing.assert_allclose(r1.fi, r2.fi, rtol=1e-12, atol=1e-15)

    def test_no_non_monitored_noise(self):
        model = ghz_model(1)
        model["non_monitored_noise_op"] = []
        t, fi, qfi = eff_qfi_hd_sup(2, 0.03, 0.01, **model, seed=8, max_workers=1)
        self.assertEqual(len(t), 3)

    def test_dimension_not_power_of_two(self):
        X = pauli_matrices()["x"]
        op = sp.sparse.kron(sp.sparse.identity(3), X, format="csc")
        with self.assertRaises(DimensionError):
            eff_qfi_hd_sup(1, 0.01, 0.01, op, op, [], [op], max_workers=1)


class EffQfiHdDickeTestCase(unittest.TestCase):
    def test_single_spin_matches_full_basis(self):
        kappa, kappa_coll, omega = 0.8, 1.2, 0.5
        Z = pauli_matrices()["z"]
        Y = pauli_matrices()["y"]
        r_dicke = eff_qfi_hd_dicke(
            1, 3, 0.1, 0.01, kappa=kappa, kappa_coll=kappa_coll, omega=omega,
            seed=9, max_workers=1,
        )
        r_full = eff_qfi_hd_sup(
            3, 0.1, 0.01,
            H=omega * Z / 2,
            dH=Z / 2,
            non_monitored_noise_op=[sqrt(kappa) * Z / 2],
            monitored_noise_op=[sqrt(kappa_coll) * Y / 2],
            initial_state=states.coherent_state(1),
            seed=9, max_workers=1,
        )
        np.testing.assert_allclose(r_dicke.t, r_full.t)
        np.testing.assert_allclose(r_dicke.fi, r_full.fi, rtol=1e-7, atol=1e-9)
        np.testing.assert_allclose(r_dicke.qfi, r_full.qfi, rtol=1e-7, atol=1e-9)

    def test_several_spins(self):
        t, fi, qfi = eff_qfi_hd_dicke(4, 3, 0.05, 0.01, omega=0.2, seed=10, max_workers=1)
        self.assertEqual(len(t), 5)
        self.assertTrue(np.all(fi >= -1e-12))
        self.assertTrue(np.all(qfi >= -1e-12))

    def test_ghz_toolbox(self):
        result = eff_qfi_hd_dicke(
            2, 2, 0.03, 0.01, toolbox=NumpyToolbox("ghz", basis="dicke"),
            seed=11, max_workers=1,
        )
        self.assertEqual(result.num_completed, 2)

    def test_invalid_arguments(self):
        with self.assertRaises(InvalidArgumentError):
            eff_qfi_hd_dicke(2, 1, 0.1, 0.01, toolbox=NumpyToolbox("coherent"))
        with self.assertRaises(InvalidArgumentError):
            eff_qfi_hd_dicke(2, 1, 0.1, 0.01, eta=-0.5)
        with self.assertRaises(InvalidArgumentError):
            eff_qfi_hd_dicke(0, 1, 0.1, 0.01)
        with self.assertRaises(InvalidArgumentError):
            eff_qfi_hd_dicke(2, 1, 0.1, 0.01, kappa=-0.1)
        with self.assertRaises(InvalidArgumentError):
            eff_qfi_hd_dicke(2, 1, 0.1, 0.01, kappa_coll=-2.0)
