"""Chunked sub-task aggregation for workloads split into bounded pieces."""

import asyncio
import logging
import re
from abc import abstractmethod
from dataclasses import dataclass, field
from numbers import Number
from typing import Any

from genpipe.config import settings
from genpipe.errors.exceptions import NonRetryableStepError
from genpipe.models.generation import JobStartEvent
from genpipe.workers.base import BaseWorkflow
from genpipe.workers.steps import StepRunner

logger = logging.getLogger(__name__)

# A sentence is a run of text closed by terminal punctuation; trailing text
# without punctuation counts as a sentence of its own.
_SENTENCE_RE = re.compile(r"[^.!?]*[.!?]+|[^.!?]+")


def _hard_split(sentence: str, max_length: int) -> list[str]:
    """Cut an over-long sentence into pieces of at most ``max_length`` characters."""
    pieces: list[str] = []
    rest = sentence
    while len(rest) > max_length:
        window = rest[:max_length]
        cut = max(window.rfind(" "), window.rfind("\n"), window.rfind("\t"))
        if cut <= 0:
            cut = max_length
        pieces.append(rest[:cut])
        rest = rest[cut:]
    if rest:
        pieces.append(rest)
    return pieces


def split_into_chunks(text: str, max_length: int = 500) -> list[str]:
    """Split text into chunks of whole sentences, each at most ``max_length`` characters.

    Sentences are packed greedily. A sentence that alone exceeds the bound is
    cut at the last whitespace inside the bound, or at exactly ``max_length``
    characters when it has none.
    """
    if max_length < 1:
        raise ValueError("max_length must be at least 1")

    chunks: list[str] = []
    current = ""
    for sentence in _SENTENCE_RE.findall(text or ""):
        for piece in _hard_split(sentence, max_length):
            if current.strip() and len(current + piece) > max_length:
                chunks.append(current.strip())
                current = piece
            else:
                current += piece
    if current.strip():
        chunks.append(current.strip())
    return chunks


@dataclass
class ChunkResult:
    index: int
    content: Any
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class AggregatedChunks:
    """Chunk outputs merged in chunk order."""

    content: Any
    parts: int
    metadata: dict[str, float] = field(default_factory=dict)
    part_metadata: list[dict[str, Any]] = field(default_factory=list)


def merge_chunks(results: list[ChunkResult]) -> AggregatedChunks:
    """Concatenate outputs by chunk index and sum numeric metadata.

    Byte and string outputs are joined; any other output type is returned as
    an ordered list.
    """
    ordered = sorted(results, key=lambda r: r.index)
    contents = [r.content for r in ordered]
    if contents and all(isinstance(c, (bytes, bytearray)) for c in contents):
        content: Any = b"".join(contents)
    elif contents and all(isinstance(c, str) for c in contents):
        content = "".join(contents)
    else:
        content = contents

    totals: dict[str, float] = {}
    for r in ordered:
        for key, value in r.metadata.items():
            if isinstance(value, Number) and not isinstance(value, bool):
                totals[key] = totals.get(key, 0) + value

    return AggregatedChunks(
        content=content,
        parts=len(ordered),
        metadata=totals,
        part_metadata=[dict(r.metadata) for r in ordered],
    )


class ChunkedWorkflow(BaseWorkflow):
    """Workflow that processes a long input as independently retried chunks.

    For chunk ``i`` (1-based in step names) two dependent steps run:
    ``"<produce_label> i"`` creates a chunk artifact through the external
    capability and ``"<materialize_label> i"`` fetches its content. Chunks run
    concurrently up to ``concurrency``; the merged output follows chunk order
    regardless of completion order. A chunk that fails permanently fails the
    whole job; artifacts produced by other chunks are left in place.
    """

    produce_label: str = "Generate Part"
    materialize_label: str = "Download Part"
    input_field: str = "text"

    def __init__(self, max_length: int | None = None, concurrency: int | None = None):
        self.max_length = max_length or settings.chunk_max_length
        self.concurrency = max(concurrency or settings.chunk_concurrency, 1)

    def split(self, event: JobStartEvent) -> list[str]:
        text = event.data.get(self.input_field)
        if not isinstance(text, str) or not text.strip():
            raise NonRetryableStepError(f"'{self.input_field}' must be a non-empty string")
        return split_into_chunks(text, self.max_length)

    @abstractmethod
    async def produce_chunk(self, chunk: str, index: int, event: JobStartEvent) -> dict[str, Any]:
        """Create the artifact for one chunk; the return value must be JSON-serializable."""
        ...

    @abstractmethod
    async def materialize_chunk(self, artifact: dict[str, Any], index: int, event: JobStartEvent) -> Any:
        """Fetch the content of a chunk artifact."""
        ...

    def chunk_metadata(self, artifact: dict[str, Any]) -> dict[str, Any]:
        """Metadata of one chunk; numeric values are summed across chunks."""
        return {}

    @abstractmethod
    async def finalize(self, event: JobStartEvent, step: StepRunner, merged: AggregatedChunks) -> Any:
        """Build the job payload from the merged chunk outputs."""
        ...

    async def process(self, event: JobStartEvent, step: StepRunner) -> Any:
        chunks = await step.run("split-input", self.split, event, message="Split input into chunks")
        logger.info("Processing %d chunk(s) for %s", len(chunks), event.id)
        results = await self.run_chunks(chunks, event, step)
        merged = merge_chunks(results)
        return await self.finalize(event, step, merged)

    async def run_chunks(self, chunks: list[str], event: JobStartEvent, step: StepRunner) -> list[ChunkResult]:
        semaphore = asyncio.Semaphore(self.concurrency)
        total = len(chunks)

        async def _run_chunk(index: int, chunk: str) -> ChunkResult:
            async with semaphore:
                part = index + 1
                artifact = await step.run(
                    f"{self.produce_label} {part}",
                    self.produce_chunk, chunk, index, event,
                    message=f"Generated part {part} of {total}",
                )
                content = await step.run(
                    f"{self.materialize_label} {part}",
                    self.materialize_chunk, artifact, index, event,
                    message=f"Fetched part {part} of {total}",
                )
                return ChunkResult(index=index, content=content, metadata=self.chunk_metadata(artifact))

        tasks = [asyncio.create_task(_run_chunk(i, chunk)) for i, chunk in enumerate(chunks)]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
