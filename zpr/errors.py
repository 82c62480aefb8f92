"""Exceptions raised by the review pipeline."""


class ZPRError(Exception):
    """Base class for all review pipeline errors."""


class CredentialExchangeError(ZPRError):
    """The token endpoint was unreachable or rejected the credential exchange."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ContentFetchError(ZPRError):
    """A file blob could not be fetched or decoded."""


class ModelBackendError(ZPRError):
    """The model backend failed or returned a non-success response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SchemaValidationError(ZPRError):
    """Model output did not parse into the expected review issue list."""


class ReconciliationMatchError(ZPRError):
    """A reply carried a feedback command but no stored comment matches its thread."""


class PreconditionError(ZPRError):
    """The requested operation is not valid for the pull request's current state."""


class DuplicateReviewError(PreconditionError):
    """A first review was requested for a pull request that was already reviewed."""
