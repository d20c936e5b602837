"""
Centralized application configuration.

Edit the variables below to configure development settings.
"""

import logging

# =============================================================================
# DEVELOPMENT SETTINGS - Edit these for local development
# =============================================================================
LOG_LEVEL = "DEBUG"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
LOG_TO_CONSOLE = True  # Set to True to output logs to terminal
LOG_TO_FILE = True  # Rotating log file in the platform log directory
# =============================================================================

# =============================================================================
# HISTORY SETTINGS
# =============================================================================
MAX_HISTORY_ENTRIES = 20  # Number of transcription history records to keep
# =============================================================================

# =============================================================================
# CLOUD TRANSCRIPTION
# =============================================================================
DEFAULT_CLOUD_ENDPOINT = "https://api.openai.com/v1/audio/transcriptions"
DEFAULT_CLOUD_MODEL = "gpt-4o-transcribe"
CLOUD_REQUEST_TIMEOUT_SECONDS = 120.0
MAX_RETRY_ATTEMPTS = 3  # Retries after the first attempt
RETRY_BASE_DELAY_SECONDS = 1.0
RETRY_JITTER_SECONDS = 0.0  # Upper bound of random jitter added to each delay
# =============================================================================

# =============================================================================
# LOCAL ENGINE
# =============================================================================
LOCAL_SAMPLE_RATE = 16000
MAX_ENGINE_THREADS = 8
RESERVED_CPU_CORES = 2
# =============================================================================


def get_log_level() -> int:
    """Get the logging level as an integer."""
    return getattr(logging, LOG_LEVEL.upper(), logging.INFO)
