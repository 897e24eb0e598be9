from __future__ import annotations

import asyncio
from typing import List

import numpy as np
import pytest
from conftest import FakeEngine, text_samples

from voxweave.config import Settings
from voxweave.errors import (
    EmptyPlanError,
    GenerationCancelledError,
    ModelLoadError,
    SampleRateMismatchError,
    SynthesisError,
    UnknownVoiceError,
)
from voxweave.progress import Phase, ProgressState
from voxweave.session import Session
from voxweave.tags import WarningKind
from voxweave.workers import InlineDispatcher


@pytest.mark.asyncio
async def test_load_reports_download_verify_and_ready(fake_engine):
    seen: List[ProgressState] = []
    async with Session(fake_engine) as session:
        session.progress.subscribe(seen.append)
        await session.load_model()
        await session.load_model()

    assert fake_engine.load_calls == 1
    assert fake_engine.calls == [("test", "af_heart")]
    assert [(s.phase, s.fraction) for s in seen] == [
        (Phase.LOADING_MODEL, 0.0),
        (Phase.LOADING_MODEL, 0.25),
        (Phase.LOADING_MODEL, 0.5),
        (Phase.LOADING_MODEL, 0.9),
        (Phase.LOADING_MODEL, 0.95),
        (Phase.READY, 1.0),
    ]


@pytest.mark.asyncio
async def test_failed_load_raises_and_can_be_retried():
    engine = FakeEngine(load_error=RuntimeError("offline"))
    async with Session(engine) as session:
        with pytest.raises(ModelLoadError, match="offline"):
            await session.load_model()
        assert session.progress.state.phase == Phase.ERROR

        engine.load_error = None
        await session.load_model()
        assert session.progress.model_ready


@pytest.mark.asyncio
async def test_failed_verification_is_a_load_error():
    engine = FakeEngine(fail_on="test")
    async with Session(engine) as session:
        with pytest.raises(ModelLoadError):
            await session.load_model()
        assert not session.progress.model_ready


@pytest.mark.asyncio
async def test_generate_multi_voice_text(fake_engine):
    async with Session(fake_engine) as session:
        result = await session.generate("[Felix] Hello there. [Sarah] How are you?")

    assert result.voices == ["am_fenrir", "af_heart"]
    assert result.chunk_count == 2
    assert result.warnings == []
    assert sorted(fake_engine.spoken()) == ["Hello there.", "How are you?"]
    expected = np.concatenate([text_samples("Hello there."), text_samples("How are you?")])
    assert np.array_equal(result.waveform.samples, expected)
    assert result.sample_rate == 24000
    assert result.duration == pytest.approx(len(expected) / 24000)
    assert session.progress.state.phase == Phase.DONE
    assert session.progress.state.fraction == 1.0


@pytest.mark.asyncio
async def test_generate_attaches_parse_warnings(fake_engine):
    async with Session(fake_engine) as session:
        result = await session.generate("[Zorg] Hi. Bye.", voice="af_heart")
    assert [w.kind for w in result.warnings] == [WarningKind.UNKNOWN_TAG]
    assert fake_engine.spoken() == ["Hi. Bye."]
    assert result.voices == ["af_heart"]


@pytest.mark.asyncio
async def test_single_voice_mode_speaks_tags_literally(fake_engine):
    async with Session(fake_engine) as session:
        result = await session.generate("[Felix] Hi.", voice="Sarah", multi_voice=False)
    assert fake_engine.calls[-1] == ("[Felix] Hi.", "af_heart")
    assert result.voices == ["af_heart"]


@pytest.mark.asyncio
async def test_chunk_size_override_splits_text(fake_engine):
    async with Session(fake_engine, settings=Settings(chunk_size=300)) as session:
        result = await session.generate("One. Two. Three.", max_chunk_len=5)
    assert result.chunk_count == 3


@pytest.mark.asyncio
async def test_empty_text_fails_with_empty_plan(fake_engine):
    async with Session(fake_engine) as session:
        with pytest.raises(EmptyPlanError):
            await session.generate("   [Felix]  ")
        assert session.progress.state.phase == Phase.ERROR


@pytest.mark.asyncio
async def test_unknown_default_voice_fails(fake_engine):
    async with Session(fake_engine) as session:
        with pytest.raises(UnknownVoiceError):
            await session.generate("Hello.", voice="zz_nobody")


@pytest.mark.asyncio
async def test_chunk_failure_fails_generation_and_progress():
    engine = FakeEngine(fail_on="Broken")
    async with Session(engine, settings=Settings(chunk_size=20)) as session:
        with pytest.raises(SynthesisError) as excinfo:
            await session.generate("Fine sentence. Broken sentence. Never spoken.")
        assert excinfo.value.global_index == 1
        assert session.progress.state.phase == Phase.ERROR
        assert "chunk 1" in session.progress.state.message


@pytest.mark.asyncio
async def test_sample_rate_disagreement_fails_generation():
    engine = FakeEngine(rate_for=lambda text: 22050 if text.startswith("How") else 24000)
    async with Session(engine) as session:
        with pytest.raises(SampleRateMismatchError):
            await session.generate("[Felix] Hello there. [Sarah] How are you?")


@pytest.mark.asyncio
async def test_cancel_stops_generation_and_resets_progress():
    engine = FakeEngine(delays={"Slow": 0.3})
    async with Session(engine, dispatcher=InlineDispatcher(engine)) as session:
        await session.load_model()
        task = asyncio.create_task(session.generate("Slow sentence."))
        await asyncio.sleep(0.05)
        assert session.cancel()
        with pytest.raises(GenerationCancelledError):
            await task
        assert session.progress.state.phase == Phase.IDLE
        assert not session.cancel()


@pytest.mark.asyncio
async def test_new_generation_supersedes_running_one():
    engine = FakeEngine(delays={"Slow": 0.3})
    async with Session(engine, dispatcher=InlineDispatcher(engine)) as session:
        await session.load_model()
        first = asyncio.create_task(session.generate("Slow sentence."))
        await asyncio.sleep(0.05)
        second = await session.generate("Quick sentence.")
        with pytest.raises(GenerationCancelledError):
            await first

    assert np.array_equal(second.waveform.samples, text_samples("Quick sentence."))
    assert session.progress.state.phase == Phase.DONE


@pytest.mark.asyncio
async def test_rejected_request_leaves_running_generation_alone():
    engine = FakeEngine(delays={"Slow": 0.2})
    async with Session(engine, dispatcher=InlineDispatcher(engine)) as session:
        await session.load_model()
        running = asyncio.create_task(session.generate("Slow one. Slow two.", max_chunk_len=10))
        await asyncio.sleep(0.05)
        with pytest.raises(EmptyPlanError):
            await session.generate("   ")
        assert session.progress.state.phase == Phase.GENERATING
        result = await running

    assert result.chunk_count == 2
    assert session.progress.state.phase == Phase.DONE

