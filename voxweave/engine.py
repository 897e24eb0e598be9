"""Synthesis engine boundary.

An engine turns ``(text, voice)`` into float samples plus a sample rate and has
a one-time ``load`` step that reports fractional progress. The heavy neural
adapters live in their own modules so importing this one stays cheap.
"""

from __future__ import annotations

import math
import zlib
from typing import Callable, Optional, Protocol, runtime_checkable

import numpy as np
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from voxweave.config import EngineConfig

ProgressCallback = Callable[[float, str], None]


class Synthesized(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    samples: np.ndarray
    sample_rate: int = Field(gt=0)


@runtime_checkable
class SynthesisEngine(Protocol):
    name: str
    verify_voice: str
    sample_rate: int

    def load(self, on_progress: ProgressCallback) -> None: ...

    def synthesize(self, text: str, voice: str) -> Synthesized: ...


def resolve_device(device: str) -> str:
    """Map ``auto`` to ``cuda`` when available, else ``cpu``."""
    if device != "auto":
        return device
    import torch

    return "cuda" if torch.cuda.is_available() else "cpu"


class ToneEngine:
    """Offline stand-in that renders a sine tone per chunk.

    Duration scales with word count and pitch is derived from the voice id, so
    output is deterministic and voices stay distinguishable.
    """

    name = "tone"

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        sample_rate: int = 24000,
        gain_db: float = -10.0,
    ) -> None:
        self.config = config or EngineConfig()
        self.sample_rate = sample_rate
        self.amplitude = 10 ** (gain_db / 20)
        self.verify_voice = self.config.verify_voice or "af_heart"
        self.loaded = False

    def load(self, on_progress: ProgressCallback) -> None:
        for step in (0.0, 0.5, 1.0):
            on_progress(step, "Preparing tone generator")
        self.loaded = True

    def synthesize(self, text: str, voice: str) -> Synthesized:
        if not self.loaded:
            raise RuntimeError("TTS model not initialized")
        duration_s = max(0.5, len(text.split()) * 0.3)
        pitch = 440 + (zlib.crc32(voice.encode("utf-8")) % 200)
        count = int(duration_s * self.sample_rate)
        t = np.arange(count, dtype=np.float32) / self.sample_rate
        samples = (self.amplitude * np.sin(2 * math.pi * pitch * t)).astype(np.float32)
        return Synthesized(samples=samples, sample_rate=self.sample_rate)


def create_engine(name: str, config: Optional[EngineConfig] = None) -> SynthesisEngine:
    """Instantiate an engine adapter by name (``kokoro``, ``chatterbox`` or ``tone``)."""
    config = config or EngineConfig()
    logger.debug("engine.create name={name} device={device}", name=name, device=config.device)
    if name == "tone":
        return ToneEngine(config)
    if name == "kokoro":
        from voxweave.kokoro_engine import KokoroEngine  # heavy: torch + kokoro

        return KokoroEngine(config)
    if name == "chatterbox":
        from voxweave.chatterbox_engine import ChatterboxEngine  # heavy: torch + chatterbox

        return ChatterboxEngine(config)
    raise ValueError(f"Unknown engine {name!r}; expected kokoro, chatterbox or tone.")
