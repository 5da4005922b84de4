"""Exception hierarchy for the grounding index.

    GroundingIndexError
    +-- ConfigurationError
    +-- UnsupportedFormatError
    +-- ExtractionError
    |   +-- EmptyContentError
    +-- ProviderError
    |   +-- TransientProviderError   (retryable)
    |   +-- ProviderInputError
    +-- NotFoundError
    +-- InvalidQueryError
    +-- InvalidTransitionError
    +-- MaterialBusyError
    +-- ProcessingTimeoutError
"""

from __future__ import annotations


class GroundingIndexError(Exception):
    """Base class; carries an optional provider name for log output."""

    retryable: bool = False

    def __init__(self, message: str = "Unexpected grounding index error", provider_name: str | None = None) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


class ConfigurationError(GroundingIndexError):
    """Invalid chunker parameters, vector dimensions, or settings."""


class UnsupportedFormatError(GroundingIndexError):
    """No decoder is registered for the declared MIME type."""


class ExtractionError(GroundingIndexError):
    """A decoder could not turn bytes into text."""


class EmptyContentError(ExtractionError):
    """Decoding succeeded but produced no usable text."""


class ProviderError(GroundingIndexError):
    """Embedding or vision model failure."""


class TransientProviderError(ProviderError):
    """Rate limit, timeout or outage; the caller may retry."""

    retryable = True


class ProviderInputError(ProviderError):
    """The provider rejected the input; retrying will not help."""


class NotFoundError(GroundingIndexError):
    """Missing blob, material or image."""


class InvalidQueryError(GroundingIndexError):
    """Empty or malformed retrieval query."""


class InvalidTransitionError(GroundingIndexError):
    """Status change not permitted by the material lifecycle."""


class MaterialBusyError(GroundingIndexError):
    """Another processing attempt holds the material's lease."""

    retryable = True


class ProcessingTimeoutError(GroundingIndexError):
    """A processing attempt exceeded its wall-clock budget."""

    retryable = True


__all__ = [
    "GroundingIndexError",
    "ConfigurationError",
    "UnsupportedFormatError",
    "ExtractionError",
    "EmptyContentError",
    "ProviderError",
    "TransientProviderError",
    "ProviderInputError",
    "NotFoundError",
    "InvalidQueryError",
    "InvalidTransitionError",
    "MaterialBusyError",
    "ProcessingTimeoutError",
]
