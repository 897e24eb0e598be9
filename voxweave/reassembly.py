from __future__ import annotations

from typing import Dict, Iterable, List, Optional

import numpy as np
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from voxweave.errors import ReassemblyError, SampleRateMismatchError
from voxweave.messages import ChunkResult


class Waveform(BaseModel):
    """Contiguous mono waveform, float32 amplitudes in [-1, 1]."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    samples: np.ndarray
    sample_rate: int = Field(gt=0)

    @property
    def duration_seconds(self) -> float:
        return len(self.samples) / self.sample_rate


class ResultBuffer:
    """Index-keyed store for chunk results of one generation.

    Results may arrive in any order. The sample rate of the first result added
    is authoritative; a later disagreement fails immediately.
    """

    def __init__(self, total_count: int) -> None:
        if total_count <= 0:
            raise ValueError(f"total_count must be positive, got {total_count}")
        self.total_count = total_count
        self.sample_rate: Optional[int] = None
        self._results: Dict[int, ChunkResult] = {}

    def __len__(self) -> int:
        return len(self._results)

    def __contains__(self, global_index: object) -> bool:
        return global_index in self._results

    @property
    def is_complete(self) -> bool:
        return len(self._results) == self.total_count

    def add(self, result: ChunkResult) -> bool:
        """Store a result; return ``False`` when the index was already filled."""
        index = result.global_index
        if not 0 <= index < self.total_count:
            raise ReassemblyError(
                f"Chunk index {index} outside plan range 0..{self.total_count - 1}"
            )
        if index in self._results:
            logger.warning("reassembly.duplicate_result index={index}", index=index)
            return False
        if self.sample_rate is None:
            self.sample_rate = result.sample_rate
        elif result.sample_rate != self.sample_rate:
            raise SampleRateMismatchError(self.sample_rate, result.sample_rate, index)
        self._results[index] = result
        return True

    def results(self) -> List[ChunkResult]:
        return list(self._results.values())

    def reassemble(self) -> Waveform:
        return reassemble(self._results.values(), self.total_count)


def reassemble(results: Iterable[ChunkResult], total_count: int) -> Waveform:
    """Concatenate chunk samples in ``global_index`` order, without gaps or fades.

    ``results`` is taken in completion order: the first one fixes the sample rate.
    """
    if total_count <= 0:
        raise ReassemblyError("Nothing to reassemble; the plan has no chunks.")
    arrived = list(results)
    ordered = sorted(arrived, key=lambda result: result.global_index)
    if len(ordered) != total_count:
        raise ReassemblyError(
            f"Cannot reassemble {len(ordered)} of {total_count} chunks; plan is incomplete."
        )
    for expected, result in enumerate(ordered):
        if result.global_index != expected:
            raise ReassemblyError(
                f"Chunk indices are not contiguous: expected {expected}, "
                f"found {result.global_index}."
            )

    sample_rate = arrived[0].sample_rate
    for result in ordered:
        if result.sample_rate != sample_rate:
            raise SampleRateMismatchError(
                sample_rate, result.sample_rate, result.global_index
            )

    samples = np.concatenate([result.samples for result in ordered]).astype(
        np.float32, copy=False
    )
    logger.debug(
        "reassembly.done chunks={chunks} samples={samples} sample_rate={rate}",
        chunks=total_count,
        samples=len(samples),
        rate=sample_rate,
    )
    return Waveform(samples=samples, sample_rate=sample_rate)
