"""
Voxweave command line (``voxweave`` / ``python -m voxweave``).

Commands:

    voxweave voices                       list the voice catalog
    voxweave say --text "[Felix] Hi."     synthesize text to an audio file

Text comes from ``--text``, ``--file`` or piped stdin. ``--json_output`` prints
machine-readable results and errors; logs go to stderr either way.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import fire
from loguru import logger

from voxweave.audio import export_audio
from voxweave.config import Settings
from voxweave.engine import create_engine
from voxweave.errors import VoxweaveError
from voxweave.progress import ProgressState
from voxweave.session import GenerationResult, Session
from voxweave.voices import DEFAULT_CATALOG, VoiceCatalog


def configure_logging(debug: bool = False, quiet: bool = False) -> None:
    """Replace loguru's default sink with one stderr sink at the chosen level."""
    logger.remove()
    level = "DEBUG" if debug else "WARNING" if quiet else "INFO"
    logger.add(sys.stderr, level=level)


class VoxweaveCli:
    """Multi-voice text-to-speech from the command line."""

    def __init__(
        self,
        debug: bool = False,
        json_output: bool = False,
        engine: Optional[str] = None,
        profile: Optional[str] = None,
        voices_dir: Optional[Path | str] = None,
    ) -> None:
        configure_logging(debug, quiet=json_output)
        self.debug = debug
        self.json_output = json_output
        settings = Settings.from_env()
        updates: Dict[str, Any] = {}
        if engine:
            updates["engine"] = engine
        if profile:
            updates["profile"] = profile
        if voices_dir:
            updates["engine_config"] = settings.engine_config.model_copy(
                update={"voices_dir": Path(voices_dir)}
            )
        self.settings = Settings.model_validate({**settings.model_dump(), **updates})

    # —————————————————— Utilities ——————————————————

    def _catalog(self) -> VoiceCatalog:
        if self.settings.engine == "chatterbox":
            return VoiceCatalog.from_directory(self.settings.engine_config.voices_dir)
        return DEFAULT_CATALOG

    def _emit(self, payload: Dict[str, Any]) -> None:
        print(json.dumps(payload, indent=2))

    def _fail(self, exc: Exception) -> None:
        if self.json_output:
            self._emit({"status": "error", "error": str(exc)})
        else:
            logger.error("cli.failed error={error}", error=exc)
        raise SystemExit(1)

    @staticmethod
    def _read_text(text: str, file: str) -> str:
        if text:
            return text
        if file:
            return Path(file).read_text(encoding="utf-8")
        if not sys.stdin.isatty():
            return sys.stdin.read()
        return ""

    @staticmethod
    def _log_progress(state: ProgressState) -> None:
        logger.info(
            "progress phase={phase} fraction={fraction:.0%} message={message}",
            phase=state.phase.value,
            fraction=state.fraction,
            message=state.message,
        )

    async def _generate(
        self,
        text: str,
        voice: Optional[str],
        multi_voice: bool,
        chunk_size: Optional[int],
    ) -> GenerationResult:
        engine = create_engine(self.settings.engine, self.settings.engine_config)
        async with Session(engine, self._catalog(), self.settings) as session:
            session.progress.subscribe(self._log_progress)
            await session.load_model()
            return await session.generate(
                text, voice=voice, multi_voice=multi_voice, max_chunk_len=chunk_size
            )

    # —————————————————— Commands ——————————————————

    def voices(self) -> None:
        """List the voices available to the configured engine."""
        try:
            catalog = self._catalog()
        except (OSError, ValueError) as exc:
            self._fail(exc)
            return
        if self.json_output:
            self._emit(
                {
                    "status": "success",
                    "voices": [voice.model_dump(mode="json") for voice in catalog],
                }
            )
            return
        for voice in catalog:
            print(f"{voice.id:<12} {voice.short_name:<10} {voice.display_name}")

    def say(
        self,
        text: str = "",
        file: str = "",
        output: str = "output.wav",
        voice: Optional[str] = None,
        multi_voice: bool = False,
        chunk_size: Optional[int] = None,
        include_metadata: bool = False,
    ) -> None:
        """Synthesize text and write the audio file.

        Args:
            text: Text to speak.
            file: Read the text from this file instead.
            output: Output path; the suffix picks the format (wav, mp3, ...).
            voice: Default voice id or tag name.
            multi_voice: Switch voices on inline ``[Name]`` tags.
            chunk_size: Maximum characters per synthesized chunk.
            include_metadata: Add generation metadata to the JSON output.
        """
        try:
            content = self._read_text(str(text), file)
            if not content.strip():
                raise ValueError("No input text provided; use --text, --file or stdin.")
            result = asyncio.run(self._generate(content, voice, multi_voice, chunk_size))
            out_file = export_audio(result.waveform, output)
        except (VoxweaveError, OSError, ValueError) as exc:
            self._fail(exc)
            return

        if self.json_output:
            payload: Dict[str, Any] = {
                "status": "success",
                "output_file": str(out_file),
                "duration": round(result.duration, 3),
            }
            if include_metadata:
                payload["metadata"] = {
                    "generation_id": result.generation_id,
                    "chunks": result.chunk_count,
                    "voices": result.voices,
                    "sample_rate": result.sample_rate,
                    "elapsed_seconds": round(result.elapsed_seconds, 3),
                    "warnings": [warning.model_dump(mode="json") for warning in result.warnings],
                }
            self._emit(payload)
            return
        print(f"Audio saved to {out_file} ({result.duration:.2f}s)")


def main() -> None:
    fire.Fire(VoxweaveCli)


if __name__ == "__main__":
    main()
