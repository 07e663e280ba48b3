# greyhole/errors.py


class GreyholeError(Exception):
    """Base class for protocol errors."""


class AlreadyAttached(GreyholeError):
    pass


class NotAttached(GreyholeError):
    pass


class InvalidConfiguration(GreyholeError, ValueError):
    pass


class InvariantViolation(GreyholeError):
    """Internal inconsistency. Fatal to the watchdog that hit it, not to the run."""
