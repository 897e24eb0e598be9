"""Dispatch a generation plan to a dispatcher and collect results by index."""

from __future__ import annotations

import asyncio
import math
import uuid
from enum import Enum
from typing import Dict, Optional, Tuple

from loguru import logger

from voxweave.config import ExecutionShape, SchedulerPolicy
from voxweave.errors import SynthesisError
from voxweave.messages import ChunkFailure, ChunkResult, SynthesisRequest
from voxweave.plan import GenerationPlan
from voxweave.progress import ProgressModel
from voxweave.reassembly import ResultBuffer
from voxweave.workers import Dispatcher


class SchedulerState(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


class Scheduler:
    """Feeds plan chunks to a dispatcher under a :class:`SchedulerPolicy`.

    Chunks are submitted in plan order; outcomes may arrive in any order and are
    buffered by ``global_index``. The first failure aborts the generation.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        policy: Optional[SchedulerPolicy] = None,
        progress: Optional[ProgressModel] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.policy = policy or SchedulerPolicy()
        self.progress = progress
        self.state = SchedulerState.IDLE
        self.generation_id: Optional[str] = None

    def _window(self) -> Tuple[int, int]:
        """Return ``(cap, admit_level)`` for the configured shape."""
        if self.policy.shape == ExecutionShape.SEQUENTIAL:
            return 1, 0
        cap = self.policy.max_concurrent_in_flight
        admit_level = math.floor(cap * (1 - self.policy.batch_advance_threshold))
        return cap, min(admit_level, cap - 1)

    async def run(
        self, plan: GenerationPlan, generation_id: Optional[str] = None
    ) -> Dict[int, ChunkResult]:
        """Synthesize every chunk of ``plan``.

        Args:
            plan: The validated plan to dispatch.
            generation_id: Identifier stamped on every request; a fresh uuid4
                hex string when omitted.

        Returns:
            Results keyed by ``global_index``, one per chunk.

        Raises:
            SynthesisError: A chunk failed; no partial result is returned.
            SampleRateMismatchError: Two chunks disagree on sample rate.
            asyncio.CancelledError: The run was cancelled.
        """
        if self.state == SchedulerState.DISPATCHING:
            raise RuntimeError("Scheduler is already dispatching a generation.")
        generation_id = generation_id or uuid.uuid4().hex
        self.generation_id = generation_id
        self.state = SchedulerState.DISPATCHING

        chunks = plan.chunks
        total = plan.total_count
        cap, admit_level = self._window()
        delay_s = self.policy.inter_chunk_delay_ms / 1000
        buffer = ResultBuffer(total)
        next_index = 0
        in_flight = 0

        logger.info(
            "scheduler.start generation={generation} chunks={chunks} shape={shape} cap={cap}",
            generation=generation_id,
            chunks=total,
            shape=self.policy.shape.value,
            cap=cap,
        )

        async def admit() -> None:
            nonlocal next_index, in_flight
            while next_index < total and in_flight < cap:
                if next_index > 0 and delay_s:
                    await asyncio.sleep(delay_s)
                chunk = chunks[next_index]
                self.dispatcher.submit(
                    SynthesisRequest(
                        generation_id=generation_id,
                        global_index=chunk.global_index,
                        voice=chunk.voice,
                        text=chunk.text,
                    )
                )
                logger.debug(
                    "scheduler.submit index={index} voice={voice} size={size}",
                    index=chunk.global_index,
                    voice=chunk.voice,
                    size=len(chunk.text),
                )
                next_index += 1
                in_flight += 1

        try:
            await admit()
            while not buffer.is_complete:
                outcome = await self.dispatcher.receive()
                if outcome.generation_id != generation_id:
                    logger.debug(
                        "scheduler.stale generation={generation} index={index}",
                        generation=outcome.generation_id,
                        index=outcome.global_index,
                    )
                    continue
                if isinstance(outcome, ChunkFailure):
                    raise SynthesisError(outcome.global_index, outcome.voice, outcome.error)
                if not buffer.add(outcome):
                    continue
                in_flight -= 1
                if self.progress is not None:
                    self.progress.report_chunk(len(buffer), total)
                if in_flight <= admit_level:
                    await admit()
        except asyncio.CancelledError:
            self.state = SchedulerState.CANCELLED
            self.dispatcher.discard(generation_id)
            logger.info("scheduler.cancelled generation={generation}", generation=generation_id)
            raise
        except Exception as exc:
            self.state = SchedulerState.ERROR
            self.dispatcher.discard(generation_id)
            logger.error(
                "scheduler.failed generation={generation} error={error}",
                generation=generation_id,
                error=exc,
            )
            raise

        self.state = SchedulerState.COMPLETE
        logger.info(
            "scheduler.done generation={generation} chunks={chunks}",
            generation=generation_id,
            chunks=total,
        )
        return {result.global_index: result for result in buffer.results()}
