"""
Exception hierarchy for the lead automation core.

Configuration errors fail the operation that depends on them. Collaborator
failures never surface here: they are caught and logged where they happen.
"""


class LeadflowError(Exception):
    """Base class for all leadflow errors."""


class ConfigurationError(LeadflowError):
    """Invalid or missing automation configuration."""


class ScoringConfigError(ConfigurationError):
    """Scoring weights are malformed."""


class ScheduleConfigError(ConfigurationError):
    """A time-of-day or weekday setting cannot be parsed."""


class SettingsValidationError(LeadflowError):
    """A settings update was rejected; nothing was written."""

    def __init__(self, errors):
        self.errors = errors
        super().__init__('; '.join(errors))


class LeadValidationError(LeadflowError):
    """A lead payload failed store validation."""
