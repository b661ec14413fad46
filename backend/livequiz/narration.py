from __future__ import annotations

import asyncio
import logging
import shlex
from pathlib import Path
from typing import Protocol
from urllib import error, request
from xml.sax.saxutils import escape

from .config import Settings
from .runtime_constants import MIN_CACHED_AUDIO_BYTES
from .runtime_utils import content_hash

logger = logging.getLogger(__name__)


class NarrationError(RuntimeError):
    pass


class Narrator(Protocol):
    async def speak(self, text: str) -> bool: ...


class SilentNarrator:
    """Used when no speech backend is configured; the show runs without audio."""

    async def speak(self, text: str) -> bool:
        logger.debug("narration skipped (silent) text=%r", text[:60])
        return True


def build_ssml(text: str, voice: str, language: str) -> str:
    # Question texts may already carry SSML markup, so only bare text is escaped.
    body = text if "<" in text and ">" in text else escape(text)
    return (
        f'<speak version="1.0" xmlns="http://www.w3.org/2001/10/synthesis" xml:lang="{language}">'
        f'<voice name="{voice}">'
        f'<prosody rate="medium" pitch="medium" volume="medium">{body}</prosody>'
        "</voice>"
        "</speak>"
    )


def format_question_narration(question_number: int, text: str) -> str:
    return f"Question {question_number} : {text}"


class AzureSpeechBackend:
    def __init__(self, config: Settings) -> None:
        self.config = config
        self.url = (
            f"https://{config.azure_speech_region}.tts.speech.microsoft.com/cognitiveservices/v1"
        )

    def synthesize(self, text: str) -> bytes:
        ssml = build_ssml(text, self.config.tts_voice, self.config.tts_language)
        raw_request = request.Request(
            self.url,
            data=ssml.encode("utf-8"),
            headers={
                "Ocp-Apim-Subscription-Key": self.config.azure_speech_key,
                "Content-Type": "application/ssml+xml",
                "X-Microsoft-OutputFormat": "riff-24khz-16bit-mono-pcm",
                "User-Agent": "livequiz-narrator",
            },
            method="POST",
        )
        try:
            with request.urlopen(raw_request, timeout=self.config.tts_timeout_seconds) as response:
                audio = response.read()
        except error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="ignore")
            raise NarrationError(f"HTTP {exc.code}: {detail[:300]}") from exc
        except Exception as exc:
            raise NarrationError(str(exc)) from exc

        if len(audio) < MIN_CACHED_AUDIO_BYTES:
            raise NarrationError(f"Synthesized audio is too small ({len(audio)} bytes)")
        return audio


class CachedNarrator:
    """Synthesizes once per distinct text, then replays the cached file."""

    def __init__(self, backend: AzureSpeechBackend, config: Settings) -> None:
        self.backend = backend
        self.cache_dir = Path(config.tts_cache_dir)
        self.player_command = shlex.split(config.audio_player_command)

    def cached_path(self, text: str) -> Path:
        return self.cache_dir / f"{content_hash(text)}.wav"

    def is_cached(self, text: str) -> bool:
        path = self.cached_path(text)
        try:
            return path.stat().st_size >= MIN_CACHED_AUDIO_BYTES
        except FileNotFoundError:
            return False

    async def _ensure_audio(self, text: str) -> Path:
        path = self.cached_path(text)
        if self.is_cached(text):
            logger.debug("narration cache hit hash=%s", path.stem[:12])
            return path

        path.unlink(missing_ok=True)
        logger.info("narration cache miss, synthesizing text=%r", text[:60])
        audio = await asyncio.to_thread(self.backend.synthesize, text)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, audio)
        return path

    async def _play(self, path: Path) -> None:
        if not self.player_command:
            raise NarrationError("AUDIO_PLAYER_COMMAND is empty")
        process = await asyncio.create_subprocess_exec(
            *self.player_command,
            str(path),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        try:
            return_code = await process.wait()
        except asyncio.CancelledError:
            process.kill()
            raise
        if return_code != 0:
            raise NarrationError(f"Audio player exited with code {return_code}")

    async def speak(self, text: str) -> bool:
        if not text.strip():
            return True
        try:
            path = await self._ensure_audio(text)
            await self._play(path)
        except Exception as exc:
            logger.warning("narration failed text=%r reason=%s", text[:60], exc)
            return False
        return True


def build_narrator(config: Settings) -> Narrator:
    if not config.azure_speech_key:
        logger.info("AZURE_SPEECH_KEY is not configured, narration disabled")
        return SilentNarrator()
    return CachedNarrator(AzureSpeechBackend(config), config)
