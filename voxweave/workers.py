"""Dispatchers that run engine calls off the event loop.

Both dispatchers expose the same message interface to the scheduler:
``submit(request)``, ``await receive()``, ``discard(generation_id)`` and
``await close()``. Outcomes come back as :class:`ChunkResult` or
:class:`ChunkFailure` messages in completion order.
"""

from __future__ import annotations

import asyncio
import gc
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Set

from loguru import logger

from voxweave.engine import SynthesisEngine
from voxweave.messages import ChunkFailure, ChunkResult, SynthesisOutcome, SynthesisRequest

# Number of stale generation ids kept for dropping late outcomes.
DISCARDED_HISTORY = 64


class Dispatcher(Protocol):
    def submit(self, request: SynthesisRequest) -> None: ...

    async def receive(self) -> SynthesisOutcome: ...

    def discard(self, generation_id: str) -> None: ...

    async def close(self) -> None: ...


def _failure(request: SynthesisRequest, exc: BaseException) -> ChunkFailure:
    logger.warning(
        "worker.chunk_failed generation={generation} index={index} voice={voice} error={error}",
        generation=request.generation_id,
        index=request.global_index,
        voice=request.voice,
        error=exc,
    )
    return ChunkFailure(
        generation_id=request.generation_id,
        global_index=request.global_index,
        voice=request.voice,
        error=str(exc) or repr(exc),
        error_type=type(exc).__name__,
    )


def synthesize_request(engine: SynthesisEngine, request: SynthesisRequest) -> SynthesisOutcome:
    """Blocking engine call for one request; exceptions become a failure message.

    Malformed engine output (wrong type, non-numeric samples) fails validation
    here too, so every request produces exactly one outcome.
    """
    try:
        output = engine.synthesize(request.text, request.voice)
        return ChunkResult(
            generation_id=request.generation_id,
            global_index=request.global_index,
            samples=output.samples,
            sample_rate=output.sample_rate,
        )
    except Exception as exc:  # noqa: BLE001
        return _failure(request, exc)


async def _with_timeout(
    call: Callable[[], Awaitable[SynthesisOutcome]],
    request: SynthesisRequest,
    timeout: Optional[float],
) -> SynthesisOutcome:
    try:
        return await asyncio.wait_for(call(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(
            "worker.chunk_timeout generation={generation} index={index} timeout={timeout}s",
            generation=request.generation_id,
            index=request.global_index,
            timeout=timeout,
        )
        return ChunkFailure(
            generation_id=request.generation_id,
            global_index=request.global_index,
            voice=request.voice,
            error=f"Synthesis timed out after {timeout}s",
            error_type="TimeoutError",
        )


class _OutboxDispatcher:
    def __init__(self, engine: SynthesisEngine, timeout: Optional[float] = None) -> None:
        self.engine = engine
        self.timeout = timeout
        self._outbox: asyncio.Queue[SynthesisOutcome] = asyncio.Queue()
        # Insertion-ordered so the oldest ids can be evicted.
        self._discarded: Dict[str, None] = {}

    async def receive(self) -> SynthesisOutcome:
        return await self._outbox.get()

    def _mark_discarded(self, generation_id: str) -> None:
        self._discarded[generation_id] = None
        while len(self._discarded) > DISCARDED_HISTORY:
            del self._discarded[next(iter(self._discarded))]

    def _post(self, outcome: SynthesisOutcome) -> None:
        if outcome.generation_id in self._discarded:
            logger.debug(
                "worker.drop_stale generation={generation} index={index}",
                generation=outcome.generation_id,
                index=outcome.global_index,
            )
            return
        self._outbox.put_nowait(outcome)


# ─────────────────────────────────────────────────────────────────────────────
# Await-each model: one asyncio task per submitted chunk.
# ─────────────────────────────────────────────────────────────────────────────


class InlineDispatcher(_OutboxDispatcher):
    """Runs every submission as its own task around ``asyncio.to_thread``."""

    def __init__(self, engine: SynthesisEngine, timeout: Optional[float] = None) -> None:
        super().__init__(engine, timeout)
        self._tasks: Dict[str, Set[asyncio.Task]] = {}

    def submit(self, request: SynthesisRequest) -> None:
        task = asyncio.create_task(self._run(request))
        tasks = self._tasks.setdefault(request.generation_id, set())
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    async def _run(self, request: SynthesisRequest) -> None:
        try:
            outcome = await _with_timeout(
                lambda: asyncio.to_thread(synthesize_request, self.engine, request),
                request,
                self.timeout,
            )
        except Exception as exc:  # noqa: BLE001
            outcome = _failure(request, exc)
        self._post(outcome)

    def discard(self, generation_id: str) -> None:
        self._mark_discarded(generation_id)
        for task in self._tasks.pop(generation_id, set()):
            task.cancel()

    async def close(self) -> None:
        pending = [task for tasks in self._tasks.values() for task in tasks]
        self._tasks.clear()
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)


# ─────────────────────────────────────────────────────────────────────────────
# Message-passing model: long-lived workers reading an inbox queue.
# ─────────────────────────────────────────────────────────────────────────────


class WorkerPool(_OutboxDispatcher):
    """Fixed set of worker tasks feeding an executor from an inbox queue.

    Args:
        engine: Loaded synthesis engine shared by all workers.
        workers: Number of worker tasks (and executor threads when the pool
            creates its own executor).
        executor: Optional ``concurrent.futures`` executor to run engine calls.
        gc_interval: Run ``gc.collect()`` after every N chunks per worker.
        timeout: Per-chunk timeout in seconds.
    """

    def __init__(
        self,
        engine: SynthesisEngine,
        workers: int = 1,
        executor: Optional[Executor] = None,
        gc_interval: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> None:
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        super().__init__(engine, timeout)
        self.workers = workers
        self.gc_interval = gc_interval
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="voxweave-synth"
        )
        self._inbox: asyncio.Queue[SynthesisRequest] = asyncio.Queue()
        self._tasks: List[asyncio.Task] = []

    def _ensure_started(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(worker_id), name=f"voxweave-worker-{worker_id}")
            for worker_id in range(self.workers)
        ]
        logger.debug("pool.start workers={workers}", workers=self.workers)

    def submit(self, request: SynthesisRequest) -> None:
        self._ensure_started()
        self._inbox.put_nowait(request)

    def discard(self, generation_id: str) -> None:
        self._mark_discarded(generation_id)

    async def _worker(self, worker_id: int) -> None:
        loop = asyncio.get_running_loop()
        processed = 0
        while True:
            request = await self._inbox.get()
            try:
                if request.generation_id in self._discarded:
                    logger.debug(
                        "pool.skip worker={worker} generation={generation} index={index}",
                        worker=worker_id,
                        generation=request.generation_id,
                        index=request.global_index,
                    )
                    continue
                try:
                    outcome = await _with_timeout(
                        lambda: loop.run_in_executor(
                            self._executor, synthesize_request, self.engine, request
                        ),
                        request,
                        self.timeout,
                    )
                except Exception as exc:  # noqa: BLE001
                    # A worker outlives any single request.
                    outcome = _failure(request, exc)
                self._post(outcome)
                processed += 1
                if self.gc_interval and processed % self.gc_interval == 0:
                    gc.collect()
                    logger.debug(
                        "pool.gc worker={worker} processed={count}",
                        worker=worker_id,
                        count=processed,
                    )
            finally:
                self._inbox.task_done()

    async def close(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
        logger.debug("pool.closed workers={workers}", workers=self.workers)
