from __future__ import annotations

from typing import Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

# ─────────────────────────────────────────────────────────────────────────────
# Messages exchanged between the scheduler and synthesis workers.
# Every message carries the generation id so results of a cancelled run can be
# told apart from those of the run that replaced it.
# ─────────────────────────────────────────────────────────────────────────────


class SynthesisRequest(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    generation_id: str = Field(min_length=1)
    global_index: int = Field(ge=0)
    voice: str = Field(min_length=1)
    text: str = Field(min_length=1)


class ChunkResult(BaseModel):
    """Engine output for one chunk."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    generation_id: str
    global_index: int = Field(ge=0)
    samples: np.ndarray
    sample_rate: int = Field(gt=0)

    @field_validator("samples", mode="before")
    @classmethod
    def _as_float_array(cls, value: object) -> np.ndarray:
        array = np.asarray(value, dtype=np.float32)
        if array.ndim != 1:
            array = array.reshape(-1)
        return array


class ChunkFailure(BaseModel):
    """Engine failure for one chunk."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    generation_id: str
    global_index: int = Field(ge=0)
    voice: str
    error: str
    error_type: str = "Exception"


SynthesisOutcome = Union[ChunkResult, ChunkFailure]
