from .backends import AUTO_LANGUAGE, BackendType, TranscriptionBackend, effective_language
from .cancellation import CancellationToken
from .errors import (
    AudioDecodeError,
    AudioFileNotFoundError,
    AuthenticationFailedError,
    BackendError,
    CloudError,
    ConfigurationError,
    EmptyCredentialError,
    EngineFailure,
    EnhancementError,
    ErrorKind,
    InvalidAudioFormatError,
    InvalidEndpointError,
    InvalidResponseError,
    ModelNotFoundError,
    NetworkError,
    OperationCancelled,
    RateLimitedError,
    ServiceUnavailableError,
)
from .retry import RetryPolicy

__all__ = [
    "AUTO_LANGUAGE",
    "BackendType",
    "TranscriptionBackend",
    "effective_language",
    "CancellationToken",
    "RetryPolicy",
    "ErrorKind",
    "BackendError",
    "ConfigurationError",
    "EmptyCredentialError",
    "InvalidEndpointError",
    "ModelNotFoundError",
    "AudioFileNotFoundError",
    "AudioDecodeError",
    "EngineFailure",
    "CloudError",
    "AuthenticationFailedError",
    "RateLimitedError",
    "InvalidAudioFormatError",
    "ServiceUnavailableError",
    "InvalidResponseError",
    "NetworkError",
    "OperationCancelled",
    "EnhancementError",
]
