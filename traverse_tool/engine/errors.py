"""
Engine Errors Module

Custom errors for adjustment computations.

Missing or partial survey data never raises: it degrades to empty results.
These errors signal programmer mistakes at the engine boundary.
"""


class ToleranceInputError(ValueError):
    """
    Error raised when a tolerance formula receives a negative argument.

    Station counts and traverse lengths cannot be negative; a negative value
    indicates a bug in the caller, not bad field data.
    """
    pass


class InvalidRequestError(ValueError):
    """
    Error raised when a calculation request is malformed.

    Examples:
    - Stations referencing a run that is not part of the request
    - Orientation sign other than +1 or -1
    """
    pass
