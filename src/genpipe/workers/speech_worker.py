"""Worker for tts/convert jobs: chunked text-to-speech synthesis."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Protocol

import httpx

from genpipe.config import settings
from genpipe.models.enums import EventName
from genpipe.models.generation import JobStartEvent
from genpipe.models.payloads import SpeechSynthesisResult
from genpipe.workers.chunked import AggregatedChunks, ChunkedWorkflow
from genpipe.workers.steps import StepRunner

logger = logging.getLogger(__name__)


class SpeechClient(Protocol):
    """External text-to-speech capability."""

    async def synthesize(self, text: str, speaker: str, emotion: str) -> dict[str, Any]:
        """Return ``{"audio_url": str, "duration": float}`` for the text."""
        ...

    async def download(self, url: str) -> bytes:
        ...


class AudioStorage(Protocol):
    async def save(self, key: str, content: bytes) -> str:
        """Store the audio under ``key`` and return its public URL."""
        ...


class HttpSpeechClient:
    """HTTP client for the text-to-speech API."""

    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url or settings.speech_api_url
        self.api_key = api_key if api_key is not None else settings.speech_api_key
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def synthesize(self, text: str, speaker: str, emotion: str) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        async with self._client() as client:
            resp = await client.post(
                self.api_url,
                json={"text": text, "speaker": speaker, "emotion": emotion},
                headers=headers,
            )
            resp.raise_for_status()
            body = resp.json()

        # Some deployments wrap the payload in a "data" object
        data = body.get("data") if isinstance(body.get("data"), dict) else body
        audio_url = data.get("audio_url") or data.get("oss_url")
        if not audio_url:
            raise ValueError("Speech API response did not include an audio URL")
        return {"audio_url": audio_url, "duration": float(data.get("duration") or 0)}

    async def download(self, url: str) -> bytes:
        async with self._client() as client:
            resp = await client.get(url)
            resp.raise_for_status()
            return resp.content


class LocalAudioStorage:
    """Store audio files under a local directory served at ``base_url``."""

    def __init__(self, base_dir: str | Path | None = None, base_url: str | None = None) -> None:
        self.base_dir = Path(base_dir or settings.audio_storage_dir)
        self.base_url = (base_url or settings.audio_base_url).rstrip("/")

    async def save(self, key: str, content: bytes) -> str:
        path = self.base_dir / key
        # Same key on retry overwrites the same file
        await asyncio.to_thread(self._write, path, content)
        return f"{self.base_url}/{key}"

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)


def _storage_prefix(metadata: dict[str, Any]) -> str:
    for field, folder in (("characterId", "characters"), ("artifactId", "artifacts"), ("relicId", "relics")):
        if metadata.get(field):
            return f"{folder}/{metadata[field]}"
    return "general"


class SpeechSynthesisWorkflow(ChunkedWorkflow):
    event_name = EventName.SPEECH_SYNTHESIS
    produce_label = "Generate Audio Part"
    materialize_label = "Download Audio Part"

    def __init__(
        self,
        client: SpeechClient | None = None,
        storage: AudioStorage | None = None,
        max_length: int | None = None,
        concurrency: int | None = None,
    ):
        super().__init__(max_length=max_length, concurrency=concurrency)
        self.client = client or HttpSpeechClient()
        self.storage = storage or LocalAudioStorage()

    async def produce_chunk(self, chunk: str, index: int, event: JobStartEvent) -> dict[str, Any]:
        speaker = event.data.get("speaker") or settings.speech_default_speaker
        emotion = event.data.get("emotion") or settings.speech_default_emotion
        return await self.client.synthesize(chunk, speaker, emotion)

    async def materialize_chunk(self, artifact: dict[str, Any], index: int, event: JobStartEvent) -> bytes:
        return await self.client.download(artifact["audio_url"])

    def chunk_metadata(self, artifact: dict[str, Any]) -> dict[str, Any]:
        return {"duration": float(artifact.get("duration") or 0)}

    async def finalize(self, event: JobStartEvent, step: StepRunner, merged: AggregatedChunks) -> SpeechSynthesisResult:
        metadata = dict(event.data.get("metadata") or {})
        key = f"audio/{_storage_prefix(metadata)}/speech-{event.id}.mp3"
        audio_url = await step.run(
            "Upload Audio",
            self.storage.save, key, merged.content,
            message=f"Uploaded {merged.parts} audio part(s)",
        )
        return SpeechSynthesisResult(
            audio_url=audio_url,
            duration=merged.metadata.get("duration", 0.0),
            parts=merged.parts,
            part_durations=[part.get("duration", 0.0) for part in merged.part_metadata],
            metadata={**metadata, "filename": key},
        )
