"""
Errors and warnings raised by the pipeline core.
"""


class PipelineError(Exception):
    """
    Base class for all errors raised by delayed_pipeline
    """


class InvalidScheduleError(PipelineError, ValueError):
    """
    A multi-resolution schedule (or the level count / factors used to build
    it) is malformed.

    This is fatal to the call that triggered it, the schedule is never coerced
    into a valid one.
    """


class DegenerateFactorWarning(UserWarning):
    """
    A caller supplied a shrink factor of zero, which was normalized to one.
    """


class InsufficientInputError(PipelineError):
    """
    A requested region does not overlap the largest possible region of the
    data it was requested from.

    This is recoverable, the caller can request a different region.

    Args:
        message (str): description
        stage (ProcessingStage | None): the stage that reported the problem
        requested (Region | None): the region that could not be satisfied
        largest (Region | None): the largest possible region at that point
    """

    def __init__(self, message, stage=None, requested=None, largest=None):
        super().__init__(message)
        self.stage = stage
        self.requested = requested
        self.largest = largest


class StaleCacheInconsistency(PipelineError, AssertionError):
    """
    An internal region / buffer invariant was violated. This indicates a
    programming error in a stage and is never expected in correct operation.
    """


class PipelineCycleError(PipelineError):
    """
    The stage graph contains a cycle.
    """


class UnknownFormatError(PipelineError, KeyError):
    """
    No registered codec can handle a file.
    """

    def __str__(self):
        # KeyError would otherwise repr the message
        return str(self.args[0]) if self.args else ''
