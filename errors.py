# errors.py
"""Failure taxonomy for the oracle pipeline.

Every rejection is a local, synchronous exception. Nothing in the core retries
or swallows these; the caller decides what to do next (for example re-poke once
the update interval has elapsed).
"""


class OracleError(Exception):
    """Base class for every pipeline failure."""


# --- Admission / timing ---

class TooSoon(OracleError):
    """The store's next update slot has not been reached yet."""


class NotEnoughTimePassed(OracleError):
    """A trigger was re-armed before the confirmation minimum elapsed."""


class WindowNotOpen(OracleError):
    """Confirmation attempted outside the [min, max] window."""


# --- Data availability ---

class InsufficientHistory(OracleError):
    """Fewer stored points than the requested window."""


class PriceUnavailable(OracleError):
    """An upstream price source holds no valid value."""


# --- Arithmetic ---

class FixedPointOverflow(OracleError, ArithmeticError):
    """Result left the unsigned 256-bit range."""


class DivisionByZero(OracleError, ZeroDivisionError):
    pass


# --- Signal direction ---

class NoCrossoverDetected(OracleError):
    """The signal restates the currently confirmed state."""


class CrossoverReversed(OracleError):
    """The armed crossover no longer holds at confirmation time."""


class AmbiguousSignal(OracleError):
    """Oscillator sits strictly inside the band."""


# --- Construction ---

class InvalidConfiguration(OracleError, ValueError):
    pass


class InvalidBounds(InvalidConfiguration):
    pass


class InvalidInitialAllocation(InvalidConfiguration):
    pass


class UnknownComponent(OracleError, KeyError):
    """Lookup of a feed, oracle or trigger name that was never registered."""

    def __str__(self) -> str:
        return Exception.__str__(self)
