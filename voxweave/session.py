"""Session orchestration: model load, then text → plan → scheduler → waveform.

A :class:`Session` owns one engine, one :class:`ProgressModel` and one
dispatcher. Starting a generation while another one runs supersedes it; the
older caller receives :class:`GenerationCancelledError`.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from voxweave.config import Settings
from voxweave.engine import SynthesisEngine
from voxweave.errors import GenerationCancelledError, ModelLoadError
from voxweave.plan import build_plan
from voxweave.progress import ProgressModel
from voxweave.reassembly import Waveform, reassemble
from voxweave.scheduler import Scheduler
from voxweave.tags import ParseWarning, parse, single_voice
from voxweave.voices import DEFAULT_CATALOG, VoiceCatalog
from voxweave.workers import Dispatcher, WorkerPool


class GenerationResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    waveform: Waveform
    warnings: List[ParseWarning] = Field(default_factory=list)
    chunk_count: int = Field(ge=1)
    voices: List[str] = Field(description="Voice ids in order of first use.")
    generation_id: str
    elapsed_seconds: float = Field(ge=0.0)

    @property
    def duration(self) -> float:
        return self.waveform.duration_seconds

    @property
    def sample_rate(self) -> int:
        return self.waveform.sample_rate


class Session:
    def __init__(
        self,
        engine: SynthesisEngine,
        catalog: VoiceCatalog = DEFAULT_CATALOG,
        settings: Optional[Settings] = None,
        dispatcher: Optional[Dispatcher] = None,
    ) -> None:
        self.engine = engine
        self.catalog = catalog
        self.settings = settings or Settings()
        self.progress = ProgressModel()
        self._dispatcher = dispatcher
        self._load_lock = asyncio.Lock()
        self._current: Optional[asyncio.Task] = None
        self._current_id: Optional[str] = None

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def dispatcher(self) -> Dispatcher:
        if self._dispatcher is None:
            profile = self.settings.device_profile()
            self._dispatcher = WorkerPool(
                self.engine,
                workers=profile.workers,
                gc_interval=profile.gc_interval,
                timeout=self.settings.scheduler_policy().chunk_timeout_s,
            )
        return self._dispatcher

    # —————————————————— Model load ——————————————————

    async def load_model(self) -> None:
        """Load and verify the engine once; later calls return immediately.

        Raises:
            ModelLoadError: The engine failed to load or the verification
                synthesis failed. Progress is left in ``error`` and the load
                may be retried.
        """
        async with self._load_lock:
            if self.progress.model_ready:
                logger.debug("session.load_skipped engine={engine}", engine=self.engine.name)
                return
            self.progress.start_loading()
            loop = asyncio.get_running_loop()

            def on_progress(fraction: float, message: str) -> None:
                loop.call_soon_threadsafe(self.progress.report_download, fraction, message)

            logger.info("session.load_start engine={engine}", engine=self.engine.name)
            started = time.perf_counter()
            try:
                await asyncio.to_thread(self.engine.load, on_progress)
                # Let queued download callbacks land before the verify step.
                await asyncio.sleep(0)
                self.progress.report_verifying()
                await asyncio.to_thread(self.engine.synthesize, "test", self.engine.verify_voice)
            except Exception as exc:
                message = f"Failed to load model: {exc}"
                self.progress.fail(message)
                logger.error(
                    "session.load_failed engine={engine} error={error}",
                    engine=self.engine.name,
                    error=exc,
                )
                raise ModelLoadError(message) from exc
            self.progress.mark_ready()
            logger.info(
                "session.load_done engine={engine} elapsed={elapsed:.2f}s",
                engine=self.engine.name,
                elapsed=time.perf_counter() - started,
            )

    # —————————————————— Generation ——————————————————

    async def generate(
        self,
        text: str,
        voice: Optional[str] = None,
        multi_voice: bool = True,
        max_chunk_len: Optional[int] = None,
    ) -> GenerationResult:
        """Synthesize ``text`` into one waveform.

        Args:
            text: Input text, optionally containing ``[Name]`` voice tags.
            voice: Default voice id or tag name; the configured default when omitted.
            multi_voice: Honour inline tags; otherwise tags are spoken literally.
            max_chunk_len: Chunk size override; the device profile's when omitted.

        Returns:
            The reassembled waveform with parse warnings and metadata.

        Raises:
            UnknownVoiceError: The default voice is not in the catalog.
            EmptyPlanError: The text has nothing to synthesize.
            SynthesisError: A chunk failed.
            ReassemblyError: Chunk results could not be stitched together.
            GenerationCancelledError: The generation was cancelled or superseded.
        """
        await self.load_model()
        started = time.perf_counter()
        max_len = max_chunk_len or self.settings.max_chunk_len()

        try:
            default_voice = self.catalog.resolve(voice or self.settings.default_voice).id
            if multi_voice:
                parsed = parse(text, default_voice, self.catalog)
            else:
                parsed = single_voice(text, default_voice)
            for warning in parsed.warnings:
                logger.warning(
                    "session.parse_warning kind={kind} message={message}",
                    kind=warning.kind.value,
                    message=warning.message,
                )
            plan = build_plan(parsed.segments, max_len)
        except Exception as exc:
            # A rejected request leaves a running generation's progress alone.
            if self._current is None or self._current.done():
                self.progress.fail(str(exc))
            raise

        if self._current is not None and not self._current.done():
            logger.info("session.supersede generation={generation}", generation=self._current_id)
            self._current.cancel()

        generation_id = uuid.uuid4().hex
        scheduler = Scheduler(self.dispatcher, self.settings.scheduler_policy(), self.progress)
        self.progress.begin_generation(plan.total_count)
        task = asyncio.create_task(scheduler.run(plan, generation_id))
        self._current = task
        self._current_id = generation_id
        logger.info(
            "session.generate generation={generation} chunks={chunks} "
            "voices={voices} max_len={max_len}",
            generation=generation_id,
            chunks=plan.total_count,
            voices=plan.voices(),
            max_len=max_len,
        )

        try:
            results = await task
            waveform = reassemble(results.values(), plan.total_count)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            if self._current is task:
                self.progress.reset()
            raise GenerationCancelledError(generation_id) from None
        except Exception as exc:
            if self._current is task:
                self.progress.fail(str(exc))
            raise
        finally:
            if self._current is task:
                self._current = None
                self._current_id = None

        self.progress.finish()
        result = GenerationResult(
            waveform=waveform,
            warnings=parsed.warnings,
            chunk_count=plan.total_count,
            voices=plan.voices(),
            generation_id=generation_id,
            elapsed_seconds=time.perf_counter() - started,
        )
        logger.info(
            "session.done generation={generation} duration={duration:.2f}s elapsed={elapsed:.2f}s",
            generation=generation_id,
            duration=result.duration,
            elapsed=result.elapsed_seconds,
        )
        return result

    def cancel(self) -> bool:
        """Cancel the running generation; ``False`` when nothing is running."""
        if self._current is None or self._current.done():
            return False
        logger.info("session.cancel generation={generation}", generation=self._current_id)
        self._current.cancel()
        return True

    async def close(self) -> None:
        task = self._current
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        if self._dispatcher is not None:
            await self._dispatcher.close()
