"""Inline voice tags.

Text such as ``"[Felix] Hello there. [Sarah] How are you?"`` is lexed into
ordered segments, each bound to one voice. Tags are letters-only identifiers in
square brackets matched case-insensitively against the catalog's short names.
Bad tags never abort parsing; they degrade to warnings and the previous voice
stays in effect.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from voxweave.voices import DEFAULT_CATALOG, VoiceCatalog

_TAG_PATTERN = re.compile(r"\[([A-Za-z]+)\]")


class WarningKind(str, Enum):
    EMPTY_BEFORE_TAG = "empty segment before tag"
    UNKNOWN_TAG = "unknown voice tag"
    EMPTY_AT_END = "empty segment at end"


class ParseWarning(BaseModel):
    """Recoverable issue found while lexing tags."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: WarningKind
    message: str = Field(description="Human-readable explanation shown next to results.")
    tag: Optional[str] = Field(default=None, description="Tag text as written, if any.")
    position: int = Field(ge=0, description="Character offset where the issue starts.")


class Segment(BaseModel):
    """Contiguous span of input text attributed to one voice."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    voice: str = Field(min_length=1)
    text: str = Field(min_length=1)


class ParseResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    segments: List[Segment] = Field(default_factory=list)
    warnings: List[ParseWarning] = Field(default_factory=list)


def parse(
    text: str,
    default_voice: str,
    catalog: VoiceCatalog = DEFAULT_CATALOG,
) -> ParseResult:
    """Split ``text`` on ``[Name]`` tags into voice-attributed segments."""
    segments: List[Segment] = []
    warnings: List[ParseWarning] = []
    current_voice = default_voice
    last_end = 0
    tags_seen = 0

    for match in _TAG_PATTERN.finditer(text):
        tag = match.group(1)
        tags_seen += 1
        if match.start() > last_end:
            span = text[last_end : match.start()].strip()
            if span:
                segments.append(Segment(voice=current_voice, text=span))
            else:
                warnings.append(
                    ParseWarning(
                        kind=WarningKind.EMPTY_BEFORE_TAG,
                        message=f"Empty segment before [{tag}] tag will be skipped.",
                        tag=tag,
                        position=last_end,
                    )
                )

        voice = catalog.resolve_tag(tag)
        if voice is None:
            warnings.append(
                ParseWarning(
                    kind=WarningKind.UNKNOWN_TAG,
                    message=f"Unknown voice tag: [{tag}] will be ignored (using previous voice).",
                    tag=tag,
                    position=match.start(),
                )
            )
        else:
            current_voice = voice.id
        last_end = match.end()

    trailing = text[last_end:].strip()
    if trailing:
        segments.append(Segment(voice=current_voice, text=trailing))
    elif tags_seen and last_end < len(text):
        warnings.append(
            ParseWarning(
                kind=WarningKind.EMPTY_AT_END,
                message="Empty segment at end of text will be skipped.",
                position=last_end,
            )
        )

    segments = [segment for segment in segments if segment.text]
    logger.debug(
        "tags.parsed tags={tags} segments={segments} warnings={warnings}",
        tags=tags_seen,
        segments=len(segments),
        warnings=len(warnings),
    )
    return ParseResult(segments=segments, warnings=warnings)


def single_voice(text: str, voice: str) -> ParseResult:
    """Treat the whole text as one segment; tags are spoken literally."""
    stripped = text.strip()
    if not stripped:
        return ParseResult()
    return ParseResult(segments=[Segment(voice=voice, text=stripped)])
