from __future__ import annotations

import threading
from typing import Dict, List, Optional

import numpy as np
from kokoro import KPipeline  # type: ignore[import]
from loguru import logger

from voxweave.config import EngineConfig
from voxweave.engine import ProgressCallback, Synthesized, resolve_device

DEFAULT_MODEL_ID = "hexgrad/Kokoro-82M"
SAMPLE_RATE = 24000


class KokoroEngine:
    """Kokoro-82M via ``kokoro.KPipeline``; one pipeline per language code.

    The language code is the first letter of the voice id (``a`` American,
    ``b`` British English).
    """

    name = "kokoro"

    def __init__(self, config: EngineConfig) -> None:
        self.config = config
        self.model_id = config.model_id or DEFAULT_MODEL_ID
        self.verify_voice = config.verify_voice or "af_heart"
        self.sample_rate = SAMPLE_RATE
        self.device: Optional[str] = None
        self._pipelines: Dict[str, KPipeline] = {}
        # KPipeline is not safe to drive from several threads at once.
        self._lock = threading.Lock()

    def _pipeline(self, lang_code: str) -> KPipeline:
        if lang_code not in self._pipelines:
            assert self.device is not None, "Engine used before load()."
            logger.info(
                "kokoro.pipeline_init lang={lang} repo={repo} device={device}",
                lang=lang_code,
                repo=self.model_id,
                device=self.device,
            )
            self._pipelines[lang_code] = KPipeline(
                lang_code=lang_code, repo_id=self.model_id, device=self.device
            )
        return self._pipelines[lang_code]

    def load(self, on_progress: ProgressCallback) -> None:
        self.device = resolve_device(self.config.device)
        on_progress(0.0, "Downloading model")
        lang_codes = ["a", "b"]
        for done, lang_code in enumerate(lang_codes, start=1):
            with self._lock:
                self._pipeline(lang_code)
            on_progress(done / len(lang_codes), "Downloading model")

    def synthesize(self, text: str, voice: str) -> Synthesized:
        with self._lock:
            pipeline = self._pipeline(voice[0])
            parts: List[np.ndarray] = []
            for _graphemes, _phonemes, audio in pipeline(text, voice=voice):
                if audio is None:
                    continue
                if hasattr(audio, "detach"):
                    audio = audio.detach().cpu().numpy()
                parts.append(np.asarray(audio, dtype=np.float32).reshape(-1))
        if not parts:
            raise RuntimeError("Kokoro returned no audio for the given text.")
        return Synthesized(samples=np.concatenate(parts), sample_rate=self.sample_rate)
