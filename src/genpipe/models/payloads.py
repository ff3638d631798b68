"""Typed result payloads keyed by event name.

The result store keeps ``result`` as opaque JSON. Consumers that know the
event name can validate it into the registered payload model instead of
handling an untyped dict.
"""

from typing import Any

from pydantic import BaseModel, Field

from genpipe.models.enums import EventName

_registry: dict[str, type[BaseModel]] = {}


class SpeechSynthesisResult(BaseModel):
    """Final payload of the text-to-speech workflow."""

    success: bool = True
    audio_url: str
    duration: float
    parts: int
    part_durations: list[float] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


def register_payload(event_name: str, model: type[BaseModel]) -> None:
    """Register the payload model for an event name."""
    _registry[event_name] = model


def get_payload_model(event_name: str) -> type[BaseModel] | None:
    return _registry.get(event_name)


def decode_payload(event_name: str, raw: Any) -> Any:
    """Validate a raw result into its registered model, or return it unchanged."""
    model = _registry.get(event_name)
    if model is None or raw is None:
        return raw
    return model.model_validate(raw)


register_payload(EventName.SPEECH_SYNTHESIS, SpeechSynthesisResult)
