from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional

import numpy as np
import torch
from chatterbox.tts import ChatterboxTTS  # type: ignore[import]
from loguru import logger

from voxweave.config import EngineConfig
from voxweave.engine import ProgressCallback, Synthesized, resolve_device
from voxweave.voices import VoiceCatalog


class ChatterboxEngine:
    """Chatterbox TTS conditioned on reference recordings.

    A voice id names a WAV file in ``config.voices_dir`` (``<voice>.wav``);
    use :meth:`VoiceCatalog.from_directory` to build the matching catalog.
    """

    name = "chatterbox"

    def __init__(self, config: EngineConfig) -> None:
        self.config = config
        self.voices_dir = Path(config.voices_dir)
        self.model: Optional[ChatterboxTTS] = None
        self._lock = threading.Lock()
        if config.verify_voice:
            self.verify_voice = config.verify_voice
        else:
            self.verify_voice = VoiceCatalog.from_directory(self.voices_dir).ids[0]

    def voice_file(self, voice: str) -> Path:
        """Resolve a voice WAV path and assert existence."""
        voice_file = self.voices_dir / f"{voice}.wav"
        assert voice_file.exists(), f"Voice file {voice_file} does not exist."
        return voice_file

    def load(self, on_progress: ProgressCallback) -> None:
        device = resolve_device(self.config.device)
        on_progress(0.0, "Downloading model")
        try:
            self.model = ChatterboxTTS.from_pretrained(device=device)
        except RuntimeError as exc:
            if device == "cuda" and "out of memory" in str(exc).lower():
                logger.warning("chatterbox.load_cuda_failed falling back to CPU due to OOM")
                torch.cuda.empty_cache()
                self.model = ChatterboxTTS.from_pretrained(device="cpu")
            else:
                raise
        on_progress(1.0, "Downloading model")

    @property
    def sample_rate(self) -> int:
        assert self.model is not None, "Engine used before load()."
        return int(self.model.sr)

    def synthesize(self, text: str, voice: str) -> Synthesized:
        assert self.model is not None, "Engine used before load()."
        with self._lock:
            wav = self.model.generate(text=text, audio_prompt_path=str(self.voice_file(voice)))
        waveform = wav.detach().cpu()
        if waveform.ndim == 2:
            waveform = waveform.mean(dim=0)
        elif waveform.ndim != 1:
            raise ValueError(f"Unexpected waveform shape: {tuple(waveform.shape)}")
        samples = waveform.contiguous().numpy().astype(np.float32)
        return Synthesized(samples=samples, sample_rate=self.sample_rate)
