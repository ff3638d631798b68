"""String enums for the generation pipeline."""

from enum import StrEnum


class ResultStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({ResultStatus.COMPLETED, ResultStatus.ERROR})


class EventName(StrEnum):
    """Event names of the workflows shipped with genpipe."""

    SPEECH_SYNTHESIS = "tts/convert"
