"""Error taxonomy shared by the pipeline stages.

Each error also subclasses the builtin the HTTP layer maps to a status code:
``LookupError`` -> 404, ``ValueError`` -> 400, ``RuntimeError`` -> 503.
"""


class ReviewPulseError(Exception):
    retryable: bool = False


class TransientFetchError(ReviewPulseError, RuntimeError):
    """The review platform was unreachable, rate limited or timed out."""

    retryable = True


class NotFoundError(ReviewPulseError, LookupError):
    """A business, review or external platform id does not exist."""


class InvalidInputError(ReviewPulseError, ValueError):
    """Input that can never succeed, such as an empty review text."""


class PersistenceError(ReviewPulseError, RuntimeError):
    """The database could not be read or written."""

    retryable = True


class DeliveryError(ReviewPulseError, RuntimeError):
    retryable = True
