"""Pipeline error taxonomy.

Only two of these ever cross a module boundary as exceptions:
``PersistenceFailure`` (raised by ``persistence.save_exchange``) and
``IdentityRequired``.  The others label failures that are recovered where
they happen and are used to tag log records and wrap causes.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for every error raised by the conversation pipeline."""


class GroundingPartialFailure(PipelineError):
    """One context sub-query failed; its section is dropped."""

    def __init__(self, section: str, cause: BaseException):
        super().__init__(f"{section}: {cause}")
        self.section = section
        self.cause = cause


class ProviderUnavailable(PipelineError):
    """A completion provider is missing credentials or its call failed."""


class StreamInterrupted(PipelineError):
    """The upstream chunk iterator raised after streaming began."""


class PersistenceFailure(PipelineError):
    """The exchange transaction failed and was rolled back."""


class IdentityRequired(PipelineError):
    """An anonymous caller reached a path that needs a user identity."""
