"""Waveform encoding: float samples to PCM WAV bytes and audio files."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Optional

import numpy as np
import soundfile as sf
from loguru import logger
from pydub import AudioSegment

from voxweave.reassembly import Waveform

_SUBTYPES = {16: "PCM_16", 24: "PCM_24", 32: "PCM_32"}


def to_pcm16(samples: np.ndarray) -> np.ndarray:
    """Clip to [-1, 1] and scale to int16 (negatives by 32768, positives by 32767)."""
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 0x8000, clipped * 0x7FFF)
    return scaled.astype(np.int16)


def encode_wav(
    samples: np.ndarray, sample_rate: int, bit_depth: int = 16, channels: int = 1
) -> bytes:
    """Encode float samples as a RIFF/WAVE PCM byte string.

    Args:
        samples: Mono float samples in [-1, 1].
        sample_rate: Samples per second.
        bit_depth: 16, 24 or 32 bit integer PCM.
        channels: Output channel count; mono input is duplicated across channels.

    Returns:
        The complete WAV file contents.

    Raises:
        ValueError: On an unsupported bit depth, channel count or sample rate.
    """
    if bit_depth not in _SUBTYPES:
        raise ValueError(f"Unsupported bit depth {bit_depth}; expected 16, 24 or 32.")
    if channels < 1:
        raise ValueError(f"channels must be positive, got {channels}")
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be positive, got {sample_rate}")

    mono = np.clip(np.asarray(samples, dtype=np.float32).reshape(-1), -1.0, 1.0)
    data = to_pcm16(mono) if bit_depth == 16 else mono
    if channels > 1:
        data = np.repeat(data[:, None], channels, axis=1)

    buf = BytesIO()
    sf.write(buf, data, sample_rate, subtype=_SUBTYPES[bit_depth], format="WAV")
    return buf.getvalue()


def export_audio(waveform: Waveform, path: Path | str, fmt: Optional[str] = None) -> Path:
    """Write ``waveform`` to ``path``; the format defaults to the file suffix.

    WAV is written directly; other formats (``mp3``, ``ogg``...) are transcoded
    through pydub, which needs ffmpeg on the PATH.
    """
    out_file = Path(path)
    fmt = (fmt or out_file.suffix.lstrip(".") or "wav").lower()
    out_file.parent.mkdir(parents=True, exist_ok=True)
    wav_bytes = encode_wav(waveform.samples, waveform.sample_rate)
    if fmt == "wav":
        out_file.write_bytes(wav_bytes)
    else:
        segment = AudioSegment.from_file(BytesIO(wav_bytes), format="wav")
        segment.export(out_file, format=fmt)
    logger.info(
        "audio.saved path={path} format={fmt} duration={duration:.2f}s",
        path=out_file,
        fmt=fmt,
        duration=waveform.duration_seconds,
    )
    return out_file
