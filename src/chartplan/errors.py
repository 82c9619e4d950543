class ChartPlanError(Exception):
    """Base class for chartplan errors."""


class ConfigurationError(ChartPlanError):
    """No usable provider credentials; callers fall back to heuristics."""


class ProviderError(ChartPlanError):
    """The AI provider call failed or returned an unusable payload."""


class TargetNotFoundError(ChartPlanError):
    """A command's destination could not be located on the execution surface."""


class UnsupportedCommandError(ChartPlanError):
    """The execution surface has no handler for a command type."""
