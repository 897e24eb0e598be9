from __future__ import annotations

import asyncio
import threading
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pytest

from voxweave.engine import Synthesized
from voxweave.messages import ChunkFailure, ChunkResult, SynthesisOutcome, SynthesisRequest
from voxweave.plan import GenerationPlan, TextChunk


def text_samples(text: str) -> np.ndarray:
    """Deterministic samples that encode the chunk text, one sample per character."""
    return np.array([ord(char) / 1024 for char in text], dtype=np.float32)


class FakeEngine:
    """In-process engine double with scriptable delays and failures."""

    name = "fake"
    verify_voice = "af_heart"

    def __init__(
        self,
        sample_rate: int = 24000,
        fail_on: Optional[str] = None,
        delays: Optional[Dict[str, float]] = None,
        load_error: Optional[Exception] = None,
        rate_for: Optional[Callable[[str], int]] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.fail_on = fail_on
        self.delays = delays or {}
        self.load_error = load_error
        self.rate_for = rate_for
        self.calls: List[Tuple[str, str]] = []
        self.load_calls = 0
        self._lock = threading.Lock()

    def load(self, on_progress: Callable[[float, str], None]) -> None:
        self.load_calls += 1
        if self.load_error is not None:
            raise self.load_error
        for fraction in (0.25, 0.5, 1.0):
            on_progress(fraction, "Downloading model")

    def synthesize(self, text: str, voice: str) -> Synthesized:
        with self._lock:
            self.calls.append((text, voice))
        for needle, delay in self.delays.items():
            if needle in text:
                time.sleep(delay)
        if self.fail_on is not None and self.fail_on in text:
            raise RuntimeError(f"engine exploded on {text!r}")
        rate = self.rate_for(text) if self.rate_for else self.sample_rate
        return Synthesized(samples=text_samples(text), sample_rate=rate)

    def spoken(self) -> List[str]:
        """Texts synthesized so far, excluding the load verification call."""
        return [text for text, _voice in self.calls if text != "test"]


class ScriptedDispatcher:
    """Dispatcher double that answers pending requests in a scripted order.

    ``order`` lists global indices in the order their outcomes should be
    delivered; indices not listed are answered first-in first-out. ``extra``
    outcomes are delivered before anything else. Every submit/receive is
    recorded in ``events``.
    """

    def __init__(
        self,
        order: Sequence[int] = (),
        sample_rate: int = 24000,
        fail_index: Optional[int] = None,
        rates: Optional[Dict[int, int]] = None,
        extra: Sequence[SynthesisOutcome] = (),
    ) -> None:
        self.order = list(order)
        self.sample_rate = sample_rate
        self.fail_index = fail_index
        self.rates = rates or {}
        self.extra = list(extra)
        self.submitted: List[SynthesisRequest] = []
        self.pending: List[SynthesisRequest] = []
        self.discarded: List[str] = []
        self.events: List[Tuple[str, int]] = []
        self.max_in_flight = 0
        self.closed = False

    def submit(self, request: SynthesisRequest) -> None:
        self.submitted.append(request)
        self.pending.append(request)
        self.events.append(("submit", request.global_index))
        self.max_in_flight = max(self.max_in_flight, len(self.pending))

    def _next_request(self) -> SynthesisRequest:
        for index in list(self.order):
            for request in self.pending:
                if request.global_index == index:
                    self.order.remove(index)
                    self.pending.remove(request)
                    return request
        return self.pending.pop(0)

    async def receive(self) -> SynthesisOutcome:
        await asyncio.sleep(0)
        if self.extra:
            return self.extra.pop(0)
        if not self.pending:
            # Nothing left to answer; park like a real queue would.
            await asyncio.Event().wait()
        request = self._next_request()
        self.events.append(("receive", request.global_index))
        if request.global_index == self.fail_index:
            return ChunkFailure(
                generation_id=request.generation_id,
                global_index=request.global_index,
                voice=request.voice,
                error="boom",
                error_type="RuntimeError",
            )
        return ChunkResult(
            generation_id=request.generation_id,
            global_index=request.global_index,
            samples=text_samples(request.text),
            sample_rate=self.rates.get(request.global_index, self.sample_rate),
        )

    def discard(self, generation_id: str) -> None:
        self.discarded.append(generation_id)

    async def close(self) -> None:
        self.closed = True


def make_plan(texts: Sequence[str], voice: str = "am_fenrir", max_len: int = 300) -> GenerationPlan:
    return GenerationPlan(
        chunks=tuple(
            TextChunk(voice=voice, text=text, global_index=index)
            for index, text in enumerate(texts)
        ),
        max_len=max_len,
    )


@pytest.fixture()
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture()
def three_chunk_plan() -> GenerationPlan:
    return make_plan(["Hello there.", "How are you?", "Fine, thanks."])
