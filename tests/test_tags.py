from __future__ import annotations

import pytest

from voxweave.tags import WarningKind, parse, single_voice
from voxweave.voices import Voice, VoiceCatalog


def _normalize(text: str) -> str:
    return " ".join(text.split())


def test_untagged_text_is_one_default_segment():
    result = parse("Just some narration. Nothing else!", "am_fenrir")
    assert [(s.voice, s.text) for s in result.segments] == [
        ("am_fenrir", "Just some narration. Nothing else!")
    ]
    assert result.warnings == []


def test_felix_and_sarah_switch_voices_without_warnings():
    result = parse("[Felix] Hello there. [Sarah] How are you?", "X")
    assert [(s.voice, s.text) for s in result.segments] == [
        ("am_fenrir", "Hello there."),
        ("af_heart", "How are you?"),
    ]
    assert result.warnings == []


def test_unknown_tag_keeps_previous_voice_and_warns():
    result = parse("[Zorg] Hi. Bye.", "X")
    assert [(s.voice, s.text) for s in result.segments] == [("X", "Hi. Bye.")]
    assert len(result.warnings) == 1
    warning = result.warnings[0]
    assert warning.kind == WarningKind.UNKNOWN_TAG
    assert warning.tag == "Zorg"
    assert warning.position == 0


def test_unknown_tag_mid_text_continues_current_voice():
    result = parse("[Sarah] One. [Nobody] Two.", "am_fenrir")
    assert [(s.voice, s.text) for s in result.segments] == [
        ("af_heart", "One."),
        ("af_heart", "Two."),
    ]
    assert [w.kind for w in result.warnings] == [WarningKind.UNKNOWN_TAG]


@pytest.mark.parametrize("tag", ["[felix]", "[FELIX]", "[Felix]"])
def test_tag_lookup_is_case_insensitive(tag: str):
    result = parse(f"{tag} Hi.", "af_heart")
    assert result.segments[0].voice == "am_fenrir"


def test_whitespace_between_tags_warns_empty_segment():
    result = parse("[Felix]   [Sarah] Hi.", "X")
    assert [(s.voice, s.text) for s in result.segments] == [("af_heart", "Hi.")]
    assert [w.kind for w in result.warnings] == [WarningKind.EMPTY_BEFORE_TAG]
    assert result.warnings[0].tag == "Sarah"


def test_adjacent_tags_do_not_warn():
    result = parse("[Felix][Sarah] Hi.", "X")
    assert [(s.voice, s.text) for s in result.segments] == [("af_heart", "Hi.")]
    assert result.warnings == []


def test_trailing_tag_warns_empty_segment_at_end():
    result = parse("Hello. [Sarah]   ", "am_fenrir")
    assert [(s.voice, s.text) for s in result.segments] == [("am_fenrir", "Hello.")]
    assert [w.kind for w in result.warnings] == [WarningKind.EMPTY_AT_END]


def test_blank_input_yields_no_segments():
    result = parse("   \n  ", "am_fenrir")
    assert result.segments == []
    assert result.warnings == []


def test_malformed_brackets_are_spoken_text():
    result = parse("Call [Felix 2] now. [] done.", "af_heart")
    assert len(result.segments) == 1
    assert result.segments[0].text == "Call [Felix 2] now. [] done."
    assert result.warnings == []


def test_segments_reconstruct_non_tag_content():
    text = "Intro line.\n[Felix] First part!  [Sarah] Second part? [Zorg] Third."
    result = parse(text, "am_fenrir")
    joined = " ".join(segment.text for segment in result.segments)
    stripped = text.replace("[Felix]", "").replace("[Sarah]", "").replace("[Zorg]", "")
    assert _normalize(joined) == _normalize(stripped)


def test_custom_catalog_resolves_short_names():
    catalog = VoiceCatalog([Voice(id="narrator_1", display_name="Ada Lovelace")])
    result = parse("[ada] Numbers.", "narrator_1", catalog)
    assert result.segments[0].voice == "narrator_1"


def test_single_voice_keeps_tags_literal():
    result = single_voice("  [Felix] Hello.  ", "af_heart")
    assert [(s.voice, s.text) for s in result.segments] == [("af_heart", "[Felix] Hello.")]
    assert single_voice("   ", "af_heart").segments == []
