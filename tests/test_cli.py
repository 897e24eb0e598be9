from __future__ import annotations

import io
import json
import sys

import pytest
import soundfile as sf
from loguru import logger

from voxweave.cli import VoxweaveCli


@pytest.fixture(autouse=True)
def _restore_logging(monkeypatch):
    for name in ("ENGINE", "PROFILE", "DEFAULT_VOICE", "CHUNK_SIZE", "CHUNK_TIMEOUT"):
        monkeypatch.delenv(f"VOXWEAVE_{name}", raising=False)
    yield
    logger.remove()
    logger.add(sys.stderr)


def test_say_writes_audio_and_json_metadata(tmp_path, capsys):
    out_file = tmp_path / "speech.wav"
    cli = VoxweaveCli(json_output=True, engine="tone")
    cli.say(
        text="[Felix] Hello there. [Sarah] How are you?",
        output=str(out_file),
        multi_voice=True,
        include_metadata=True,
    )

    payload = json.loads(capsys.readouterr().out)
    assert payload["status"] == "success"
    assert payload["output_file"] == str(out_file)
    assert payload["duration"] == pytest.approx(sf.info(str(out_file)).duration, abs=1e-3)
    assert payload["metadata"]["chunks"] == 2
    assert payload["metadata"]["voices"] == ["am_fenrir", "af_heart"]
    assert payload["metadata"]["warnings"] == []


def test_say_reads_file_and_prints_summary(tmp_path, capsys):
    text_file = tmp_path / "input.txt"
    text_file.write_text("A short line. Another one.")
    out_file = tmp_path / "out.wav"
    VoxweaveCli(engine="tone").say(file=str(text_file), output=str(out_file))

    assert out_file.exists()
    assert f"Audio saved to {out_file}" in capsys.readouterr().out


def test_say_without_multi_voice_omits_metadata(tmp_path, capsys):
    VoxweaveCli(json_output=True, engine="tone").say(
        text="[Felix] Hi.", output=str(tmp_path / "out.wav"), voice="Sarah"
    )
    payload = json.loads(capsys.readouterr().out)
    assert "metadata" not in payload


def test_empty_stdin_is_an_error(tmp_path, capsys, monkeypatch):
    monkeypatch.setattr(sys, "stdin", io.StringIO("   "))
    with pytest.raises(SystemExit) as excinfo:
        VoxweaveCli(json_output=True, engine="tone").say(output=str(tmp_path / "out.wav"))
    assert excinfo.value.code == 1
    payload = json.loads(capsys.readouterr().out)
    assert payload["status"] == "error"
    assert "No input text" in payload["error"]
    assert not (tmp_path / "out.wav").exists()


def test_unknown_voice_is_an_error(tmp_path, capsys):
    with pytest.raises(SystemExit):
        VoxweaveCli(json_output=True, engine="tone").say(
            text="Hello.", output=str(tmp_path / "out.wav"), voice="zorg"
        )
    payload = json.loads(capsys.readouterr().out)
    assert payload == {"status": "error", "error": "Unknown voice: zorg"}


def test_voices_lists_catalog(capsys):
    VoxweaveCli(json_output=True, engine="tone").voices()
    payload = json.loads(capsys.readouterr().out)
    assert len(payload["voices"]) == 28
    assert payload["voices"][0]["id"] == "am_fenrir"
    assert payload["voices"][0]["traits"] == "🚹"
    assert payload["voices"][0]["training_duration"] == "H hours"


def test_voices_for_chatterbox_come_from_reference_wavs(tmp_path, capsys):
    (tmp_path / "enoch.wav").write_bytes(b"")
    VoxweaveCli(engine="chatterbox", voices_dir=tmp_path).voices()
    assert "enoch" in capsys.readouterr().out
