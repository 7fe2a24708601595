class AutoscalerError(Exception):
    """Base class for autoscaler errors."""


class TransientReadFailure(AutoscalerError):
    """A backlog sample or task demand read failed. Never fatal."""


class ApplyFailure(AutoscalerError):
    """A capacity change call was rejected or failed."""


class ConfigurationError(AutoscalerError):
    """The configuration cannot be used to make scaling decisions."""
