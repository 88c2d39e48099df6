"""
EdgeLens - Filter Errors
========================
Exception hierarchy shared by the filter core and the frame processor.
"""


class FilterError(Exception):
    """Base class for every error raised by EdgeLens filters."""


class ContractViolation(FilterError, ValueError):
    """
    Malformed input buffer or invalid option values.

    Raised before any output is allocated; never silently coerced.
    """


class ComputationFailure(FilterError, RuntimeError):
    """
    Unexpected failure while a filter was running.

    The filter invocation is atomic: when this is raised no output buffer
    is returned.
    """
