class SchedulerError(Exception):
    """Base class for errors raised by the scheduler"""


class InvalidInputError(SchedulerError):
    """Missing or malformed plan, out-of-range day/week, or nothing to schedule.

    Always fatal to the current composition and never retried.
    """


class ExternalCallError(SchedulerError):
    """The text-generation model was unreachable or returned unusable output.

    Only raised inside the content agent, which converts it to a fallback value.
    """


class NotFoundError(SchedulerError):
    """A requested study plan or schedule does not exist"""
