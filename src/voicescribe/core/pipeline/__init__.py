from .session import (
    ProcessingPhase,
    SessionOutcome,
    SessionStatus,
    TranscriptionJob,
    TranscriptionSession,
    retranscribe,
)

__all__ = [
    "ProcessingPhase",
    "SessionOutcome",
    "SessionStatus",
    "TranscriptionJob",
    "TranscriptionSession",
    "retranscribe",
]
