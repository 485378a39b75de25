#! /usr/bin/env python

import doctest
import logging
import os
import pickle
import unittest
from unittest import mock

from fisherpy import shared


def load_tests(loader, tests, ignore):
    tests.addTests(doctest.DocTestSuite(shared))
    return tests


class DefaultTestCase(unittest.TestCase):
    """Test case for the `Default` class."""

    def test_number_of_defaults(self):
        """Check the number of defaults to the previous state."""
        self.assertEqual(len(vars(shared.defaults)), 7)

    def test_defaults(self):
        """Test the values of all the defaults."""
        D = shared.defaults
        self.assertEqual(D.kappa, 1.0)
        self.assertEqual(D.kappa_coll, 1.0)
        self.assertEqual(D.omega, 0.0)
        self.assertEqual(D.eta, 1.0)
        self.assertEqual(D.theta, 0.0)
        self.assertEqual(D.chop_tolerance, 1e-14)
        self.assertEqual(D.qfi_tolerance, 1e-12)

    def test_details(self):
        eta = shared.defaults.eta
        self.assertEqual(eta.details.symbol, "η")
        self.assertIn("efficiency", eta.details.description)
        self.assertFalse(hasattr(eta.details, "value"))

    def test_arithmetic(self):
        self.assertEqual(shared.defaults.kappa / 2, 0.5)
        self.assertIsInstance(shared.defaults.kappa / 2, float)

    def test_pickle(self):
        kappa = pickle.loads(pickle.dumps(shared.defaults.kappa))
        self.assertIsInstance(kappa, shared.Default)
        self.assertEqual(kappa, 1.0)
        self.assertEqual(kappa.details.symbol, "κ")


class LoggingTestCase(unittest.TestCase):
    def setUp(self):
        self.logger = logging.getLogger(shared.LOGGER_NAME)
        self.handlers = list(self.logger.handlers)
        self.level = self.logger.level

    def tearDown(self):
        self.logger.handlers = self.handlers
        self.logger.setLevel(self.level)

    def test_level_from_argument(self):
        logger = shared.setup_logging("debug")
        self.assertEqual(logger.level, logging.DEBUG)

    def test_level_from_environment(self):
        with mock.patch.dict(os.environ, {shared.LOG_LEVEL_ENV: "WARNING"}):
            logger = shared.setup_logging()
        self.assertEqual(logger.level, logging.WARNING)

    def test_single_stream_handler(self):
        shared.setup_logging("INFO")
        shared.setup_logging("INFO")
        streams = [
            h for h in self.logger.handlers if isinstance(h, logging.StreamHandler)
        ]
        self.assertEqual(len(streams), 1)
