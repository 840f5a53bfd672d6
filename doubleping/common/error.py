class DoublePingError(Exception):
    """
    Base class of every error raised by doubleping.
    """

    def __init__(self, err):
        self.error = err

    def __str__(self) -> str:
        return str(self.error)


class TransportRegistrationError(DoublePingError):
    """
    A prefix couldn't be advertised. Fatal to the hosting process.
    """


class SignError(DoublePingError):
    """
    A response couldn't be signed. Fatal to a single cycle.
    """


class InterestTimeout(DoublePingError, TimeoutError):
    """
    A request's lifetime expired before its response arrived.
    """


class MetricIOError(DoublePingError):
    """
    A timestamp record couldn't be written or read.
    """


class CorrelationUnderrun(DoublePingError):
    """
    A cycle couldn't be joined across the three timestamp logs.
    """
