"""
Exceptions raised by transcription backends and the session pipeline.

Every backend failure is a BackendError carrying an ErrorKind so callers can
tell configuration, transient and permanent failures apart without string
matching. The retry policy reads the ``retryable`` flag.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    CONFIGURATION_FAILED = "configuration_failed"
    EMPTY_CREDENTIAL = "empty_credential"
    INVALID_ENDPOINT = "invalid_endpoint"
    FILE_NOT_FOUND = "file_not_found"
    AUDIO_DECODE_FAILED = "audio_decode_failed"
    ENGINE_FAILURE = "engine_failure"
    AUTHENTICATION_FAILED = "authentication_failed"
    RATE_LIMITED = "rate_limited"
    INVALID_AUDIO_FORMAT = "invalid_audio_format"
    SERVICE_UNAVAILABLE = "service_unavailable"
    INVALID_RESPONSE = "invalid_response"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


class BackendError(Exception):
    """Base exception for backend errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    retryable: bool = False


class ConfigurationError(BackendError):
    """Backend could not be constructed from the given configuration."""

    kind = ErrorKind.CONFIGURATION_FAILED


class EmptyCredentialError(ConfigurationError):
    kind = ErrorKind.EMPTY_CREDENTIAL


class InvalidEndpointError(ConfigurationError):
    kind = ErrorKind.INVALID_ENDPOINT


class ModelNotFoundError(ConfigurationError):
    pass


class AudioFileNotFoundError(BackendError):
    kind = ErrorKind.FILE_NOT_FOUND


class AudioDecodeError(BackendError):
    kind = ErrorKind.AUDIO_DECODE_FAILED


class EngineFailure(BackendError):
    """The local inference engine reported a failure."""

    kind = ErrorKind.ENGINE_FAILURE


class CloudError(BackendError):
    """Failure reported by (or while talking to) the cloud transcription API."""

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message or self.__class__.__name__)
        self.status_code = status_code


class AuthenticationFailedError(CloudError):
    kind = ErrorKind.AUTHENTICATION_FAILED


class RateLimitedError(CloudError):
    kind = ErrorKind.RATE_LIMITED
    retryable = True


class InvalidAudioFormatError(CloudError):
    kind = ErrorKind.INVALID_AUDIO_FORMAT


class ServiceUnavailableError(CloudError):
    kind = ErrorKind.SERVICE_UNAVAILABLE
    retryable = True


class InvalidResponseError(CloudError):
    kind = ErrorKind.INVALID_RESPONSE
    retryable = True


class NetworkError(CloudError):
    """No HTTP response was received. The transport error is chained as __cause__."""

    kind = ErrorKind.NETWORK_ERROR
    retryable = True


class OperationCancelled(Exception):
    """Raised when a cancellation token fires. Not a failure."""


class EnhancementError(Exception):
    """AI enhancement of a transcript failed."""
