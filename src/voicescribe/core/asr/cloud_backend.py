"""
Cloud transcription backend for OpenAI-compatible /audio/transcriptions endpoints.

Requests are sent with ``requests`` on a worker thread; transient failures are
retried by the RetryPolicy.
"""

import asyncio
import json
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import requests

from ...utils.logger import get_logger
from ..settings.config import (
    CLOUD_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_CLOUD_ENDPOINT,
    DEFAULT_CLOUD_MODEL,
)
from .backends import BackendType, TranscriptionBackend, effective_language
from .cancellation import CancellationToken
from .errors import (
    AudioFileNotFoundError,
    AuthenticationFailedError,
    EmptyCredentialError,
    InvalidAudioFormatError,
    InvalidEndpointError,
    InvalidResponseError,
    NetworkError,
    RateLimitedError,
    ServiceUnavailableError,
)
from .retry import RetryPolicy

logger = get_logger(__name__)

SERVICE_UNAVAILABLE_CODES = {500, 502, 503, 504}


def validate_endpoint(endpoint: Optional[str]) -> str:
    if not endpoint or not endpoint.strip():
        raise InvalidEndpointError("Endpoint URL is empty")
    endpoint = endpoint.strip()
    parsed = urlparse(endpoint)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidEndpointError(
            f"Invalid endpoint URL {endpoint!r}: expected an http:// or https:// URL"
        )
    return endpoint


def validate_api_key(api_key: Optional[str]) -> str:
    if not api_key or not api_key.strip():
        raise EmptyCredentialError("API key is empty")
    return api_key.strip()


def parse_transcription_body(body: bytes) -> str:
    """Extract the transcript from a 200 response: JSON ``{"text"}`` or plain text."""
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        payload = None

    if isinstance(payload, dict) and isinstance(payload.get("text"), str):
        return payload["text"]

    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidResponseError("Could not parse transcription response", 200) from e

    logger.info("Cloud transcription received plain text response")
    return text


def _api_error_message(body: bytes) -> Optional[str]:
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        return payload["error"].get("message")
    return None


class CloudAPIBackend(TranscriptionBackend):
    name = "cloud"
    backend_type = BackendType.CLOUD

    def __init__(
        self,
        api_key: str,
        api_endpoint: str = DEFAULT_CLOUD_ENDPOINT,
        model_name: str = DEFAULT_CLOUD_MODEL,
        retry_policy: Optional[RetryPolicy] = None,
        cancel_token: Optional[CancellationToken] = None,
        timeout: float = CLOUD_REQUEST_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        super().__init__()
        self.api_key = validate_api_key(api_key)
        self.api_endpoint = validate_endpoint(api_endpoint)
        self.model_name = model_name or DEFAULT_CLOUD_MODEL
        self.retry_policy = retry_policy or RetryPolicy()
        self.cancel_token = cancel_token
        self.timeout = timeout
        self._session = session or requests.Session()
        logger.info(f"Cloud transcription initialized with endpoint: {self.api_endpoint}")

    def set_model(self, model_name: str) -> None:
        self.model_name = model_name
        logger.debug(f"Model set: {model_name}")

    async def _transcribe(self, audio_path: Path) -> str:
        if not audio_path.exists():
            logger.error(f"Audio file not found at path: {audio_path}")
            raise AudioFileNotFoundError(f"Audio file not found: {audio_path}")

        logger.info(f"Starting cloud transcription of {audio_path.name} using {self.model_name}")
        audio_bytes = await asyncio.to_thread(audio_path.read_bytes)

        async def attempt() -> str:
            return await self._run_in_worker(
                self._perform_request, audio_path.name, audio_bytes
            )

        text = await self.retry_policy.run(attempt, self.cancel_token)
        logger.info("Cloud transcription successfully completed")
        return text

    def _build_form_fields(self) -> dict:
        fields = {"model": self.model_name}
        language = effective_language(self.language)
        if language:
            fields["language"] = language
        if self.prompt:
            fields["prompt"] = self.prompt
        return fields

    def _perform_request(self, filename: str, audio_bytes: bytes) -> str:
        try:
            response = self._session.post(
                self.api_endpoint,
                headers={"Authorization": f"Bearer {self.api_key}"},
                data=self._build_form_fields(),
                files={"file": (filename, audio_bytes, "audio/wav")},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Network error talking to {self.api_endpoint}: {e}")
            raise NetworkError(f"Network error: {e}") from e

        return self._handle_response(response.status_code, response.content)

    def _handle_response(self, status_code: int, body: bytes) -> str:
        if status_code == 200:
            return parse_transcription_body(body)

        if status_code == 401:
            logger.error("Authentication failed with the cloud API key")
            raise AuthenticationFailedError("Authentication failed", status_code)

        if status_code == 429:
            logger.error("Cloud transcription rate limit exceeded")
            raise RateLimitedError("Rate limit exceeded", status_code)

        if status_code == 400:
            message = _api_error_message(body)
            if message:
                logger.error(f"Cloud bad request: {message}")
            else:
                logger.error("Cloud bad request - possibly unsupported language or format")
            raise InvalidAudioFormatError(message or "Bad request", status_code)

        if status_code in SERVICE_UNAVAILABLE_CODES:
            logger.error(f"Cloud service temporarily unavailable (status: {status_code})")
            raise ServiceUnavailableError(
                f"Service unavailable (HTTP {status_code})", status_code
            )

        logger.error(f"Unexpected HTTP status from cloud API: {status_code}")
        raise InvalidResponseError(f"Unexpected HTTP status {status_code}", status_code)

    def _release_resources(self) -> None:
        self._session.close()
