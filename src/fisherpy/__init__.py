"""Fisherpy package root."""

import logging
from importlib.metadata import PackageNotFoundError, version

from . import (
    blockdiag,
    bridge,
    dicke,
    ensemble,
    errors,
    experiments,
    fisher,
    operators,
    shared,
    simulation,
    states,
)

try:
    __version__ = version("fisherpy")
except PackageNotFoundError:
    __version__ = "unknown"

logging.getLogger(shared.LOGGER_NAME).addHandler(logging.NullHandler())
