"""
Exception taxonomy for the Agentic Wiki pipeline.

Every error raised on purpose by the pipeline derives from WikiError. Each class
also inherits the closest built-in kind so callers can catch either.
"""


class WikiError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(WikiError, ValueError):
    """Configuration record failed validation."""


class DirectoryNotFoundError(WikiError, FileNotFoundError):
    """Crawl root does not exist or is not a directory."""


class NoFilesFoundError(WikiError, ValueError):
    """Crawl produced zero files."""


class UnknownProviderError(WikiError, LookupError):
    """No registered provider has the requested name."""


class MissingCredentialError(WikiError, RuntimeError):
    """No credential was passed and none could be resolved."""


class ProviderRequestError(WikiError, RuntimeError):
    """Transport, auth or rate-limit failure reported by a provider."""


class LlmRequestFailedError(WikiError, RuntimeError):
    """Gateway-level wrapper around a failed provider call."""


class ResponseFormatError(WikiError, ValueError):
    """Model output does not follow the structured-output contract."""


class InvalidAbstractionError(ResponseFormatError):
    pass


class IndexOutOfRangeError(ResponseFormatError):
    pass


class AllAbstractionsInvalidError(ResponseFormatError):
    pass


class MalformedRelationshipsError(ResponseFormatError):
    pass


class DuplicateOrderEntryError(ResponseFormatError):
    pass


class IncompleteOrderError(ResponseFormatError):
    pass


class PipelineCancelledError(WikiError):
    """Cancellation was requested; raised at the next stage boundary."""
