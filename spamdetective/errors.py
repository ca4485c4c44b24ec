"""
Exception hierarchy for Spam Detective.

InputError and ExternalServiceError are absorbed by the analyzers (an analyzer
that cannot run contributes no score). LookupUnavailable aborts the analysis
of a single account. ConfigError rejects a settings write.
"""


class SpamDetectiveError(Exception):
    """Base class for all Spam Detective errors."""


class InputError(SpamDetectiveError):
    """Malformed account data (e.g. an email without '@')."""


class LookupUnavailable(SpamDetectiveError):
    """The account repository or a backing store could not be queried."""


class ExternalServiceError(SpamDetectiveError):
    """A reputation, DNS or avatar service call failed or timed out."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class ConfigError(SpamDetectiveError):
    """Invalid detection settings."""
