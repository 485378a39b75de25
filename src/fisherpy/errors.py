"""Exceptions raised by fisherpy.

- `InvalidArgumentError`: a parameter is outside its allowed set
  (direction symbol, efficiency, empty monitored-operator list, ...).
- `DimensionError`: shapes do not fit together (non-square vectorized
  operator, superoperator vs. block structure, operator vs. state).
- `NumericalInstabilityError`: the stochastic integration produced a zero
  or non-finite trace, or a non-finite Wiener increment.

The first two derive from `ValueError` so code catching ``ValueError``
keeps working.
"""


class FisherPyError(Exception):
    """Base class for all fisherpy errors."""


class InvalidArgumentError(FisherPyError, ValueError):
    """An argument has an invalid value."""


class DimensionError(FisherPyError, ValueError):
    """Operator, state or superoperator dimensions are inconsistent."""


class NumericalInstabilityError(FisherPyError, ArithmeticError):
    """A trajectory hit a zero or non-finite normalisation."""
