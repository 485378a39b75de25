#! /usr/bin/env python
"""
Shared configuration defaults and logging setup.

This module provides a lightweight mechanism to load numerically usable
default parameters from a JSON file while preserving rich metadata
(e.g., symbols, descriptions):

- ``Default``: a subclass of ``float`` that carries a ``details`` attribute
  (a ``types.SimpleNamespace``) with auxiliary information about the
  parameter. You can use a ``Default`` anywhere a ``float`` is expected,
  and still access metadata via ``.details``, e.g.
  ``defaults.eta.details.description``.

- ``Default.fromjson(path)``: load a JSON mapping of name → {value, ...}
  into a ``SimpleNamespace`` of ``Default`` objects, accessible by attribute.

- ``DATA_DIR``: path to bundled data files.

- ``defaults``: the default namespace loaded from ``DATA_DIR/defaults.json``.

- ``setup_logging``: attach a stream handler to the package logger.

>>> float(defaults.eta)
1.0
>>> defaults.chop_tolerance
1e-14
"""

import json
import logging
import os
from pathlib import Path
from types import SimpleNamespace
from typing import Optional

LOGGER_NAME = "fisherpy"
LOG_LEVEL_ENV = "FISHERPY_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Default(float):
    """Default parameter class.

    Extends float with the `Default.details` member.
    """

    details: SimpleNamespace
    """Details (e.g. symbol, description) of the parameter."""

    def __new__(cls, details: dict):  # noqa D102
        details = dict(details)
        obj = super().__new__(cls, details.pop("value"))
        obj.details = SimpleNamespace(**details)
        return obj

    def __reduce__(self):
        return (Default, ({"value": float(self), **vars(self.details)},))

    @staticmethod
    def fromjson(json_file: Path) -> SimpleNamespace:
        """Read all defaults from the JSON file.

        Args:
            json_file (Path)

        Returns:
            SimpleNamespace: A namespace containing all defaults.
        """
        with open(json_file, encoding="utf-8") as f:
            data = json.load(f)
        return SimpleNamespace(**{k: Default(v) for k, v in data.items()})


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure console logging for the package.

    Args:
        level (Optional[str]): Logging level name. Read from the
            ``FISHERPY_LOG_LEVEL`` environment variable when omitted,
            falling back to ``"INFO"``.

    Returns:
        logging.Logger: The configured package logger.
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO")
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger


DATA_DIR = Path(__file__).parent / "data_files"
defaults = Default.fromjson(DATA_DIR / "defaults.json")
