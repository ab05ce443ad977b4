"""
HTTP client for the voice playback service.

The service synthesizes a line and answers once playback has finished, so a
successful response doubles as the completion signal. Playback is optional:
every failure is reported as "unavailable" and the caller falls back to
pacing delays.
"""

import logging
from typing import Optional

import httpx

from app.config import get_settings

logger = logging.getLogger(__name__)


class VoiceClient:
    """
    Voice playback client.

    Service exposes:
    - POST /speak - {text, voice} -> 200 when playback completes
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        """Initialize client.

        Args:
            base_url: Voice service base URL (defaults to settings)
            timeout: Request timeout in seconds; bounds how long one line may play
        """
        settings = get_settings()
        self.base_url = base_url or settings.voice_service_url
        self.timeout = timeout or settings.http_timeout_seconds
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url or "",
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def speak(self, text: str, voice_profile: str) -> bool:
        """Play a line.

        Args:
            text: Line to speak
            voice_profile: Voice to use

        Returns:
            True once playback finished, False if playback is unavailable
        """
        if not self.is_configured or not text.strip():
            return False

        client = await self._get_client()

        try:
            response = await client.post(
                "/speak",
                json={"text": text, "voice": voice_profile},
            )
            response.raise_for_status()
            return True

        except httpx.HTTPError as e:
            logger.warning(f"Voice playback failed, using text pacing: {e}")
            return False


# Singleton
_client: Optional[VoiceClient] = None


def get_voice_client() -> Optional[VoiceClient]:
    """Get singleton VoiceClient, or None when narration is disabled."""
    global _client
    settings = get_settings()
    if not (settings.voice_enabled and settings.voice_service_url):
        return None
    if _client is None:
        _client = VoiceClient()
    return _client
