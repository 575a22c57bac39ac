"""
Exceptions raised by the competition core.
"""


class CourtsideError(Exception):
    """Base exception for all competition core errors."""


class ValidationError(CourtsideError):
    """Raised for malformed or disallowed input. No state is changed."""


class InvariantViolation(CourtsideError):
    """Raised when computed state would break a structural invariant.

    These are programmer errors (e.g. a rotation state out of sync with the
    match being completed) and are never coerced into a valid state.
    """


class NotFoundError(CourtsideError):
    """Raised when a referenced match, competition or team id is absent."""
