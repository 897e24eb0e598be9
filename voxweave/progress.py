"""Two-phase progress signal: model readiness, then generation.

The model-load fraction is capped at 0.9 while downloading; 0.95 marks the
verification synthesis and 1.0 readiness. Generation progress is
``completed / total`` and only reaches 1.0 once the waveform is reassembled.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, List

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from voxweave.errors import InvalidTransitionError

DOWNLOAD_CAP = 0.9
VERIFY_FRACTION = 0.95
GENERATION_CAP = 0.99


class Phase(str, Enum):
    IDLE = "idle"
    LOADING_MODEL = "loading_model"
    READY = "ready"
    GENERATING = "generating"
    DONE = "done"
    ERROR = "error"


class ProgressState(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    phase: Phase = Phase.IDLE
    fraction: float = Field(default=0.0, ge=0.0, le=1.0)
    message: str = ""


ProgressListener = Callable[[ProgressState], None]


def _clamp(value: float, upper: float = 1.0) -> float:
    return max(0.0, min(upper, value))


class ProgressModel:
    """Owned progress state, mutated only through its transition methods."""

    def __init__(self) -> None:
        self._state = ProgressState()
        self._model_ready = False
        self._listeners: List[ProgressListener] = []

    @property
    def state(self) -> ProgressState:
        return self._state

    @property
    def model_ready(self) -> bool:
        return self._model_ready

    def subscribe(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: ProgressListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _set(self, phase: Phase, fraction: float, message: str) -> None:
        self._state = ProgressState(phase=phase, fraction=fraction, message=message)
        logger.trace(
            "progress.{phase} fraction={fraction:.3f} message={message}",
            phase=phase.value,
            fraction=fraction,
            message=message,
        )
        for listener in list(self._listeners):
            listener(self._state)

    def _require(self, *phases: Phase) -> None:
        if self._state.phase not in phases:
            allowed = ", ".join(phase.value for phase in phases)
            raise InvalidTransitionError(
                f"Cannot transition from {self._state.phase.value}; expected one of: {allowed}"
            )

    # —————————————————— Model load ——————————————————

    def start_loading(self) -> None:
        if self._model_ready:
            raise InvalidTransitionError("The model is already loaded for this session.")
        self._require(Phase.IDLE, Phase.ERROR)
        self._set(Phase.LOADING_MODEL, 0.0, "Starting model loading")

    def report_download(self, fraction: float, message: str = "Downloading model") -> None:
        self._require(Phase.LOADING_MODEL)
        capped = max(self._state.fraction, _clamp(fraction, DOWNLOAD_CAP))
        self._set(Phase.LOADING_MODEL, capped, message)

    def report_verifying(self) -> None:
        self._require(Phase.LOADING_MODEL)
        self._set(Phase.LOADING_MODEL, VERIFY_FRACTION, "Initializing model")

    def mark_ready(self) -> None:
        self._require(Phase.LOADING_MODEL)
        self._model_ready = True
        self._set(Phase.READY, 1.0, "Model loaded successfully")

    # —————————————————— Generation ——————————————————

    def begin_generation(self, total: int) -> None:
        if not self._model_ready:
            raise InvalidTransitionError("Generation cannot start before the model is ready.")
        self._require(Phase.READY, Phase.GENERATING, Phase.DONE, Phase.ERROR, Phase.IDLE)
        self._set(Phase.GENERATING, 0.0, f"Generating chunk 1/{total}")

    def report_chunk(self, completed: int, total: int) -> None:
        self._require(Phase.GENERATING)
        if total <= 0:
            raise ValueError(f"total must be positive, got {total}")
        fraction = max(self._state.fraction, _clamp(completed / total, GENERATION_CAP))
        if completed >= total:
            message = "Combining audio chunks"
        else:
            message = f"Generating chunk {completed + 1}/{total}"
        self._set(Phase.GENERATING, fraction, message)

    def finish(self, message: str = "Audio generated") -> None:
        self._require(Phase.GENERATING)
        self._set(Phase.DONE, 1.0, message)

    # —————————————————— Terminal/reset ——————————————————

    def fail(self, message: str) -> None:
        self._set(Phase.ERROR, 0.0, message)

    def reset(self) -> None:
        self._set(Phase.IDLE, 0.0, "")
