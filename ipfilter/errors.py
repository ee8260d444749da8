"""
Exception types raised while loading rules and evaluating requests.
"""


class IPFilterError(Exception):
    """Base class for all filter errors."""


class ConfigurationError(IPFilterError, ValueError):
    """Rule definitions are malformed or incomplete."""


class InvalidAddress(IPFilterError, ValueError):
    """An IP range expression does not reduce to a valid IPv4 range."""


class NoParsableAddress(IPFilterError):
    """None of the candidate client addresses could be parsed."""


class LookupFailed(IPFilterError):
    """The country database lookup failed."""


class StreamingFailed(IPFilterError):
    """The block page could not be read."""
