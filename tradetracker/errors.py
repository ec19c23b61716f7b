# tradetracker/errors.py
"""
Error taxonomy.

`TradeTrackerError` and its subclasses are fatal for a run but carry a
description of the failing file, line, field or identifier. Invariant
violations are logic bugs and derive from AssertionError.
"""


class TradeTrackerError(Exception):
    """Base class for errors that abort a run with a descriptive message."""


class MalformedInputError(TradeTrackerError):
    """Input data (CSV line, transaction hex, config field) could not be parsed."""


class MissingDataError(TradeTrackerError):
    """External data needed to compute cost basis is not available."""


class OutputExistsError(TradeTrackerError):
    """Refusing to overwrite an existing output directory or file."""


class StorageError(TradeTrackerError):
    """The price database could not be read or written."""


class InvariantViolation(AssertionError):
    """An internal invariant did not hold. Continuing could produce wrong figures."""


class UnitMismatchError(InvariantViolation):
    """Arithmetic between quantities of two different non-zero units."""
