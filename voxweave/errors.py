from __future__ import annotations

from typing import Optional


class VoxweaveError(Exception):
    """Base class for every failure raised by the synthesis pipeline."""


class EmptyPlanError(VoxweaveError):
    """Raised when the input yields no segments or chunks to synthesize."""


class UnknownVoiceError(VoxweaveError):
    """Raised when a voice name or id is not part of the catalog."""

    def __init__(self, voice: str) -> None:
        super().__init__(f"Unknown voice: {voice}")
        self.voice = voice


class ModelLoadError(VoxweaveError):
    """Raised when the engine fails to download, initialize, or verify."""


class SynthesisError(VoxweaveError):
    """A single chunk failed to synthesize; fatal to the current generation."""

    def __init__(self, global_index: int, voice: str, reason: str) -> None:
        super().__init__(
            f"Failed to generate speech for chunk {global_index} (voice={voice}): {reason}"
        )
        self.global_index = global_index
        self.voice = voice
        self.reason = reason


class ReassemblyError(VoxweaveError):
    """Chunk results cannot be stitched into one waveform."""


class SampleRateMismatchError(ReassemblyError):
    """Two chunk results of one plan disagree on sample rate."""

    def __init__(
        self, expected: int, actual: int, global_index: Optional[int] = None
    ) -> None:
        where = f" at chunk {global_index}" if global_index is not None else ""
        super().__init__(
            f"Sample rate mismatch{where}: expected {expected} Hz, got {actual} Hz"
        )
        self.expected = expected
        self.actual = actual
        self.global_index = global_index


class InvalidTransitionError(VoxweaveError):
    """A progress transition was requested from a phase that does not allow it."""


class GenerationCancelledError(VoxweaveError):
    """The awaited generation was cancelled or superseded by a newer one."""

    def __init__(self, generation_id: Optional[str]) -> None:
        super().__init__(f"Generation {generation_id} was cancelled")
        self.generation_id = generation_id
