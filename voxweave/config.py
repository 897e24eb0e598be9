from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from voxweave.voices import DEFAULT_VOICE_ID

VOICES_DIR = Path(os.environ.get("VOXWEAVE_VOICES_DIR", "/data/voices"))


class ExecutionShape(str, Enum):
    SEQUENTIAL = "sequential"
    PIPELINED = "pipelined"


class SchedulerPolicy(BaseModel):
    """Dispatch policy injected into the scheduler."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    shape: ExecutionShape = Field(default=ExecutionShape.PIPELINED)
    max_concurrent_in_flight: int = Field(
        default=1, ge=1, description="Upper bound on chunks submitted but not yet answered."
    )
    inter_chunk_delay_ms: int = Field(
        default=0, ge=0, description="Pause between consecutive submissions."
    )
    batch_advance_threshold: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description=(
            "Fraction of the in-flight window that must complete before more chunks are "
            "admitted. 0 tops up continuously, 1 waits for the whole batch."
        ),
    )
    chunk_timeout_s: Optional[float] = Field(
        default=None, gt=0, description="Per-chunk synthesis timeout; None disables it."
    )


class EngineConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    model_id: Optional[str] = Field(
        default=None, description="Model repository id; engine default when omitted."
    )
    device: Literal["auto", "cpu", "cuda"] = "auto"
    voices_dir: Path = VOICES_DIR
    verify_voice: Optional[str] = Field(
        default=None, description="Voice used for the post-load verification synthesis."
    )


class DeviceProfile(BaseModel):
    """Device-dependent tuning, chosen by the caller rather than detected."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    max_chunk_len: int = Field(ge=1)
    policy: SchedulerPolicy
    workers: int = Field(default=1, ge=1)
    gc_interval: Optional[int] = Field(
        default=None, ge=1, description="Run gc.collect() every N chunks per worker."
    )


DEVICE_PROFILES: Dict[str, DeviceProfile] = {
    "desktop": DeviceProfile(
        name="desktop",
        max_chunk_len=300,
        policy=SchedulerPolicy(
            shape=ExecutionShape.PIPELINED,
            max_concurrent_in_flight=2,
            batch_advance_threshold=0.0,
        ),
        workers=2,
    ),
    "constrained": DeviceProfile(
        name="constrained",
        max_chunk_len=150,
        policy=SchedulerPolicy(
            shape=ExecutionShape.PIPELINED,
            max_concurrent_in_flight=2,
            inter_chunk_delay_ms=50,
            batch_advance_threshold=1.0,
        ),
        workers=1,
        gc_interval=3,
    ),
}


def get_profile(name: str) -> DeviceProfile:
    try:
        return DEVICE_PROFILES[name]
    except KeyError:
        known = ", ".join(sorted(DEVICE_PROFILES))
        raise ValueError(f"Unknown device profile {name!r}; expected one of: {known}") from None


class Settings(BaseModel):
    """Process-level settings, typically read from ``VOXWEAVE_*`` variables."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    engine: Literal["kokoro", "chatterbox", "tone"] = "kokoro"
    profile: str = "desktop"
    default_voice: str = DEFAULT_VOICE_ID
    chunk_size: Optional[int] = Field(
        default=None, ge=1, description="Overrides the profile's max chunk length."
    )
    chunk_timeout_s: Optional[float] = Field(default=None, gt=0)
    engine_config: EngineConfig = Field(default_factory=EngineConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        values: Dict[str, object] = {}
        if env.get("VOXWEAVE_ENGINE"):
            values["engine"] = env["VOXWEAVE_ENGINE"]
        if env.get("VOXWEAVE_PROFILE"):
            values["profile"] = env["VOXWEAVE_PROFILE"]
        if env.get("VOXWEAVE_DEFAULT_VOICE"):
            values["default_voice"] = env["VOXWEAVE_DEFAULT_VOICE"]
        if env.get("VOXWEAVE_CHUNK_SIZE"):
            values["chunk_size"] = int(env["VOXWEAVE_CHUNK_SIZE"])
        if env.get("VOXWEAVE_CHUNK_TIMEOUT"):
            values["chunk_timeout_s"] = float(env["VOXWEAVE_CHUNK_TIMEOUT"])
        engine_values: Dict[str, object] = {}
        if env.get("VOXWEAVE_MODEL_ID"):
            engine_values["model_id"] = env["VOXWEAVE_MODEL_ID"]
        if env.get("VOXWEAVE_DEVICE"):
            engine_values["device"] = env["VOXWEAVE_DEVICE"]
        if env.get("VOXWEAVE_VOICES_DIR"):
            engine_values["voices_dir"] = Path(env["VOXWEAVE_VOICES_DIR"])
        values["engine_config"] = EngineConfig.model_validate(engine_values)
        return cls.model_validate(values)

    def device_profile(self) -> DeviceProfile:
        return get_profile(self.profile)

    def max_chunk_len(self) -> int:
        return self.chunk_size or self.device_profile().max_chunk_len

    def scheduler_policy(self) -> SchedulerPolicy:
        policy = self.device_profile().policy
        if self.chunk_timeout_s is not None:
            policy = policy.model_copy(update={"chunk_timeout_s": self.chunk_timeout_s})
        return policy
