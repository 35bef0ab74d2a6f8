"""Exceptions raised by the DQN trader."""


class ConfigurationError(ValueError):
    """Invalid construction parameters (buffer size, epsilon range, ...)."""


class EmptyBufferError(RuntimeError):
    """Sampling was requested from a replay memory that holds no transitions."""
