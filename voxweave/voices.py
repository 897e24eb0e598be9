from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from voxweave.errors import UnknownVoiceError

DEFAULT_VOICE_ID = "am_fenrir"


class Gender(str, Enum):
    FEMALE = "female"
    MALE = "male"
    UNSPECIFIED = "unspecified"


class Voice(BaseModel):
    """A synthesis voice known to the engine."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1, description="Engine voice identifier (e.g. 'am_fenrir').")
    display_name: str = Field(
        min_length=1,
        description="Human-facing label; its first word doubles as the inline tag name.",
    )
    language: str = Field(default="American English")
    gender: Gender = Field(default=Gender.UNSPECIFIED)
    traits: str = Field(default="", description="Emoji badges shown beside the voice name.")
    target_quality: Optional[str] = Field(
        default=None, description="Grade of the training data for this voice."
    )
    training_duration: str = Field(
        default="", description="Rough amount of training audio, e.g. 'H hours'."
    )
    overall_grade: Optional[str] = Field(
        default=None, description="Overall listening grade published with the voice pack."
    )

    @property
    def short_name(self) -> str:
        """Lowercase tag name, e.g. 'felix' for 'Felix (American Male)'."""
        return self.display_name.split()[0].lower()


class VoiceCatalog:
    """Fixed, externally supplied set of voices with tag-name lookup."""

    def __init__(self, voices: Sequence[Voice]) -> None:
        if not voices:
            raise ValueError("A voice catalog needs at least one voice.")
        self._by_id: Dict[str, Voice] = {}
        self._by_short_name: Dict[str, Voice] = {}
        for voice in voices:
            if voice.id in self._by_id:
                raise ValueError(f"Duplicate voice id in catalog: {voice.id}")
            self._by_id[voice.id] = voice
            # First voice wins when two display names share a first word.
            self._by_short_name.setdefault(voice.short_name, voice)

    def __contains__(self, voice_id: object) -> bool:
        return voice_id in self._by_id

    def __iter__(self) -> Iterator[Voice]:
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

    @property
    def ids(self) -> List[str]:
        return list(self._by_id)

    def get(self, voice_id: str) -> Voice:
        try:
            return self._by_id[voice_id]
        except KeyError:
            raise UnknownVoiceError(voice_id) from None

    def resolve_tag(self, name: str) -> Optional[Voice]:
        """Case-insensitive lookup of an inline tag name; ``None`` when unknown."""
        return self._by_short_name.get(name.strip().lower())

    def resolve(self, name_or_id: str) -> Voice:
        """Accept either a voice id or a tag name; raise when neither matches."""
        if name_or_id in self._by_id:
            return self._by_id[name_or_id]
        voice = self.resolve_tag(name_or_id)
        if voice is None:
            raise UnknownVoiceError(name_or_id)
        return voice

    @classmethod
    def from_directory(cls, voices_dir: Path) -> "VoiceCatalog":
        """Build a catalog from reference WAV files (``<voice>.wav``) in a directory."""
        if not voices_dir.is_dir():
            raise FileNotFoundError(f"Voices directory {voices_dir} does not exist.")
        voices = [
            Voice(id=path.stem, display_name=path.stem.replace("_", " ").title())
            for path in sorted(voices_dir.glob("*.wav"))
        ]
        if not voices:
            raise ValueError(f"No reference voices (*.wav) found in {voices_dir}.")
        logger.debug(
            "voices.directory path={path} count={count}", path=voices_dir, count=len(voices)
        )
        return cls(voices)


def _kokoro(
    voice_id: str,
    display_name: str,
    traits: str,
    target_quality: str,
    training_duration: str,
    overall_grade: str,
) -> Voice:
    language = "British English" if voice_id.startswith("b") else "American English"
    gender = Gender.FEMALE if voice_id[1] == "f" else Gender.MALE
    return Voice(
        id=voice_id,
        display_name=display_name,
        language=language,
        gender=gender,
        traits=traits,
        target_quality=target_quality,
        training_duration=training_duration,
        overall_grade=overall_grade,
    )


# Kokoro-82M v1.0 English voices. Display names are the tag vocabulary.
KOKORO_VOICES: List[Voice] = [
    _kokoro("am_fenrir", "Felix (American Male)", "🚹", "B", "H hours", "C+"),
    _kokoro("af_heart", "Sarah (American Female)", "🚺❤️", "A", "", "A"),
    _kokoro("af_alloy", "Emily (American Female)", "🚺", "B", "MM minutes", "C"),
    _kokoro("af_aoede", "Madison (American Female)", "🚺", "B", "H hours", "C+"),
    _kokoro("af_bella", "Bella (American Female)", "🚺🔥", "A", "HH hours", "A-"),
    _kokoro("af_jessica", "Jessica (American Female)", "🚺", "C", "MM minutes", "D"),
    _kokoro("af_kore", "Kora (American Female)", "🚺", "B", "H hours", "C+"),
    _kokoro("af_nicole", "Nicole (American Female)", "🚺🎧", "B", "HH hours", "B-"),
    _kokoro("af_nova", "Nova (American Female)", "🚺", "B", "MM minutes", "C"),
    _kokoro("af_river", "River (American Female)", "🚺", "C", "MM minutes", "D"),
    _kokoro("af_sarah", "Laura (American Female)", "🚺", "B", "H hours", "C+"),
    _kokoro("af_sky", "Skylar (American Female)", "🚺", "B", "M minutes 🤏", "C-"),
    _kokoro("am_adam", "Adam (American Male)", "🚹", "D", "H hours", "F+"),
    _kokoro("am_echo", "Ethan (American Male)", "🚹", "C", "MM minutes", "D"),
    _kokoro("am_eric", "Eric (American Male)", "🚹", "C", "MM minutes", "D"),
    _kokoro("am_liam", "Liam (American Male)", "🚹", "C", "MM minutes", "D"),
    _kokoro("am_michael", "Michael (American Male)", "🚹", "B", "H hours", "C+"),
    _kokoro("am_onyx", "Oliver (American Male)", "🚹", "C", "MM minutes", "D"),
    _kokoro("am_puck", "Peter (American Male)", "🚹", "B", "H hours", "C+"),
    _kokoro("am_santa", "Nick (American Male)", "🚹", "C", "M minutes 🤏", "D-"),
    _kokoro("bf_alice", "Alice (British Female)", "🚺", "C", "MM minutes", "D"),
    _kokoro("bf_emma", "Emma (British Female)", "🚺", "B", "HH hours", "B-"),
    _kokoro("bf_isabella", "Isabella (British Female)", "🚺", "B", "MM minutes", "C"),
    _kokoro("bf_lily", "Lily (British Female)", "🚺", "C", "MM minutes", "D"),
    _kokoro("bm_daniel", "Daniel (British Male)", "🚹", "C", "MM minutes", "D"),
    _kokoro("bm_fable", "Frederick (British Male)", "🚹", "B", "MM minutes", "C"),
    _kokoro("bm_george", "George (British Male)", "🚹", "B", "MM minutes", "C"),
    _kokoro("bm_lewis", "Lewis (British Male)", "🚹", "C", "H hours", "D+"),
]

DEFAULT_CATALOG = VoiceCatalog(KOKORO_VOICES)
