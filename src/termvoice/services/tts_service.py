import asyncio
import logging
import os
import shutil
import sys
import tempfile
from pathlib import Path
from typing import List, Optional

import httpx

from termvoice.config import Settings

logger = logging.getLogger(__name__)

OPENAI_SPEECH_URL = "https://api.openai.com/v1/audio/speech"
DEEPGRAM_SPEAK_URL = "https://api.deepgram.com/v1/speak"

DEFAULT_MODELS = {
    "openai": "tts-1",
    "deepgram": "aura-orion-en",
}

# Candidate players in order of preference, with the arguments each needs
# to play a WAV file and exit.
_PLAYER_ARGS = {
    "afplay": [],
    "aplay": ["-q"],
    "paplay": [],
    "ffplay": ["-nodisp", "-autoexit", "-loglevel", "quiet"],
}


class SpeechBackendError(RuntimeError):
    """Raised when an utterance could not be synthesized or played."""


def detect_audio_player() -> Optional[str]:
    """Return the first available audio player for this platform."""
    if sys.platform == "darwin" and shutil.which("afplay"):
        return "afplay"
    for name in ("aplay", "paplay", "ffplay"):
        if shutil.which(name):
            return name
    return None


class SpeechBackend:
    """
    Speech collaborator used by the speech queue.

    ``speak()`` synthesizes WAV audio with the configured provider, writes it
    to a temporary file and plays it with a local player process. ``cancel()``
    kills the player immediately; cancelling the awaiting task does the same
    and removes the temporary file, so audio produced after a cancellation is
    never played.

    Providers: OpenAI speech API, Deepgram Aura, or a local command
    (``espeak``-compatible: ``<command> -w <file.wav> <text>``).
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.provider = settings.tts_provider
        self.voice = settings.tts_voice
        self.model = settings.tts_model or DEFAULT_MODELS.get(self.provider)
        self.timeout = settings.tts_timeout_seconds
        self.tts_command = settings.tts_command
        self.player = settings.audio_player or detect_audio_player()

        self.openai_api_key = (
            settings.openai_api_key.get_secret_value()
            if settings.openai_api_key else None
        )
        self.deepgram_api_key = (
            settings.deepgram_api_key.get_secret_value()
            if settings.deepgram_api_key else None
        )

        self._client = client
        self._owns_client = client is None
        self._player_proc: Optional[asyncio.subprocess.Process] = None

    @property
    def available(self) -> bool:
        """True when both synthesis credentials/tools and a player exist."""
        if not self.player:
            return False
        if self.provider == "openai":
            return bool(self.openai_api_key)
        if self.provider == "deepgram":
            return bool(self.deepgram_api_key)
        return bool(shutil.which(self.tts_command))

    def unavailable_reason(self) -> Optional[str]:
        if not self.player:
            return "no audio player found (install aplay, paplay or ffplay)"
        if self.provider == "openai" and not self.openai_api_key:
            return "OPENAI_API_KEY is not set"
        if self.provider == "deepgram" and not self.deepgram_api_key:
            return "DEEPGRAM_API_KEY is not set"
        if self.provider == "command" and not shutil.which(self.tts_command):
            return f"speech command {self.tts_command!r} not found"
        return None

    def get_http_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            logger.info("Created httpx.AsyncClient for speech synthesis")
        return self._client

    async def close(self) -> None:
        self.cancel()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def speak(self, text: str) -> None:
        """Synthesize and play one utterance; raises SpeechBackendError on failure."""
        fd, name = tempfile.mkstemp(prefix="termvoice-", suffix=".wav")
        os.close(fd)
        path = Path(name)
        try:
            if self.provider == "command":
                await self._synthesize_command(text, path)
            else:
                path.write_bytes(await self.synthesize(text))
            await self._play(path)
        finally:
            path.unlink(missing_ok=True)

    def cancel(self) -> None:
        """Kill the player process, if one is running."""
        proc = self._player_proc
        if proc is not None and proc.returncode is None:
            try:
                proc.kill()
                logger.debug("Killed audio player")
            except ProcessLookupError:
                pass

    async def synthesize(self, text: str) -> bytes:
        """Return WAV audio bytes for ``text`` from the HTTP provider."""
        if self.provider == "deepgram":
            return await self._synthesize_deepgram(text)
        return await self._synthesize_openai(text)

    async def _synthesize_openai(self, text: str) -> bytes:
        if not self.openai_api_key:
            raise SpeechBackendError("OpenAI API key not configured")

        headers = {
            "Authorization": f"Bearer {self.openai_api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "voice": self.voice,
            "input": text[:4096],
            "response_format": "wav",
        }
        try:
            response = await self.get_http_client().post(
                OPENAI_SPEECH_URL, headers=headers, json=payload, timeout=self.timeout
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"OpenAI TTS error: {e}")
            raise SpeechBackendError(str(e)) from e
        logger.info(f"OpenAI TTS synthesized {len(response.content)} bytes for text: {text[:50]}...")
        return response.content

    async def _synthesize_deepgram(self, text: str) -> bytes:
        if not self.deepgram_api_key:
            raise SpeechBackendError("Deepgram API key not configured")

        params = {
            "model": self.model,
            "encoding": "linear16",
            "container": "wav",
        }
        headers = {
            "Authorization": f"Token {self.deepgram_api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = await self.get_http_client().post(
                DEEPGRAM_SPEAK_URL,
                params=params,
                headers=headers,
                json={"text": text},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Deepgram TTS error: {e}")
            raise SpeechBackendError(str(e)) from e
        logger.info(f"Deepgram TTS synthesized {len(response.content)} bytes for text: {text[:50]}...")
        return response.content

    async def _synthesize_command(self, text: str, path: Path) -> None:
        proc = await asyncio.create_subprocess_exec(
            self.tts_command,
            "-w",
            str(path),
            text,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        try:
            returncode = await asyncio.wait_for(proc.wait(), timeout=self.timeout)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            if proc.returncode is None:
                proc.kill()
            raise
        if returncode != 0:
            logger.error(f"Speech command {self.tts_command!r} exited with {returncode}")
            raise SpeechBackendError(f"{self.tts_command} exited with {returncode}")

    def player_argv(self, path: Path) -> List[str]:
        if not self.player:
            raise SpeechBackendError("No audio player available")
        extra = _PLAYER_ARGS.get(Path(self.player).name, [])
        return [self.player, *extra, str(path)]

    async def _play(self, path: Path) -> None:
        proc = await asyncio.create_subprocess_exec(
            *self.player_argv(path),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        self._player_proc = proc
        try:
            returncode = await proc.wait()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise
        finally:
            if self._player_proc is proc:
                self._player_proc = None
        # Negative return codes mean the player was killed by cancel()
        if returncode > 0:
            logger.warning(f"Audio player exited with {returncode}")


__all__ = ["SpeechBackend", "SpeechBackendError", "detect_audio_player"]
