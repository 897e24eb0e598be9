from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, model_validator

from voxweave.chunking import chunk_text
from voxweave.errors import EmptyPlanError
from voxweave.tags import Segment


class TextChunk(BaseModel):
    """Length-bounded sub-span of a segment, submitted to the engine as one unit."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    voice: str = Field(min_length=1)
    text: str = Field(min_length=1)
    global_index: int = Field(ge=0, description="Position across the whole plan.")


class GenerationPlan(BaseModel):
    """Ordered, immutable set of chunks for one generation request."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    chunks: Tuple[TextChunk, ...]
    max_len: int = Field(ge=1)

    @model_validator(mode="after")
    def _check_dense_indices(self) -> "GenerationPlan":
        if not self.chunks:
            raise ValueError("A generation plan needs at least one chunk.")
        for expected, chunk in enumerate(self.chunks):
            if chunk.global_index != expected:
                raise ValueError(
                    f"Chunk indices must be dense and ordered; expected {expected}, "
                    f"got {chunk.global_index}."
                )
        return self

    @property
    def total_count(self) -> int:
        return len(self.chunks)

    def voices(self) -> List[str]:
        """Voices in order of first appearance."""
        return list(dict.fromkeys(chunk.voice for chunk in self.chunks))

    def chunks_per_voice(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for chunk in self.chunks:
            counts[chunk.voice] = counts.get(chunk.voice, 0) + 1
        return counts


def build_plan(segments: Sequence[Segment], max_len: int) -> GenerationPlan:
    """Chunk every segment and number the chunks with one global counter."""
    if not segments:
        raise EmptyPlanError("No valid text segments found to synthesize.")

    chunks: List[TextChunk] = []
    for segment in segments:
        for piece in chunk_text(segment.text, max_len):
            chunks.append(
                TextChunk(voice=segment.voice, text=piece, global_index=len(chunks))
            )
    if not chunks:
        raise EmptyPlanError("Segments produced no chunks to synthesize.")

    plan = GenerationPlan(chunks=tuple(chunks), max_len=max_len)
    logger.debug(
        "plan.built segments={segments} chunks={chunks} voices={voices}",
        segments=len(segments),
        chunks=plan.total_count,
        voices=plan.chunks_per_voice(),
    )
    return plan
