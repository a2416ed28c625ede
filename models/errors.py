"""
Configuration errors raised while building or wiring the CGAN graphs.

All of these are fatal: they indicate a miswired node specification and are
never retried by the training loop.
"""


class ConfigurationError(Exception):
    """Base class for graph configuration errors."""


class InvalidTopology(ConfigurationError):
    """A node specification violates the naming or wiring rules."""


class MissingInput(ConfigurationError, KeyError):
    """A forward pass was called without one of the declared graph inputs."""


class MissingOutput(ConfigurationError, KeyError):
    """A named output is absent from the activations of a forward pass."""


class SynchronizationError(ConfigurationError):
    """Parameter relay between graphs found mismatched node names."""
