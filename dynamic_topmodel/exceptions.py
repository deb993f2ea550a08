class DynamicTopmodelError(Exception):
    """Base class for errors raised by the package."""


class ConfigurationError(DynamicTopmodelError, ValueError):
    """Invalid run input, detected before any time step is taken."""
