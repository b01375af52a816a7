"""ElevenLabs narration synthesis client."""

import logging
import time
from typing import List, Optional

import requests

from ..config import config
from ..errors import SynthesisFailedError
from ..models.voice import DEFAULT_VOICES, Voice

logger = logging.getLogger(__name__)


class NarrationClient:
    """Client for the ElevenLabs text-to-speech REST API.

    ``synthesize`` is treated as a pure function of its text and voice for
    caching purposes; it never consults the voiceover cache itself.
    """

    API_URL = "https://api.elevenlabs.io/v1"
    DEFAULT_MAX_RETRIES = 3
    DEFAULT_RETRY_DELAY = 1.0
    DEFAULT_TIMEOUT = 120.0

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_id: Optional[str] = None,
        session: Optional[requests.Session] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the narration client.

        Args:
            api_key: ElevenLabs API key. Defaults to ELEVENLABS_API_KEY env var.
            model_id: Speech model. Defaults to config.elevenlabs_model_id.
            session: Optional requests session (injected in tests).
            max_retries: Attempts for rate-limited or unreachable requests.
            retry_delay: Base delay between retries in seconds (exponential backoff).
            timeout: Per-request timeout in seconds.
        """
        self._api_key = api_key or config.elevenlabs_api_key
        if not self._api_key:
            raise ValueError(
                "ElevenLabs API key not provided. Set ELEVENLABS_API_KEY env var."
            )

        self._model_id = model_id or config.elevenlabs_model_id
        self._session = session or requests.Session()
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._timeout = timeout

    @property
    def model_id(self) -> str:
        return self._model_id

    def _headers(self, accept: str) -> dict:
        return {"xi-api-key": self._api_key, "Accept": accept}

    def synthesize(self, text: str, voice_id: str) -> bytes:
        """Synthesize narration audio.

        Args:
            text: Script to speak.
            voice_id: ElevenLabs voice identifier.

        Returns:
            MP3 audio bytes.

        Raises:
            SynthesisFailedError: If the service rejects the request or
                stays unavailable after all retries.
        """
        if not text or not text.strip():
            raise SynthesisFailedError("Cannot synthesize empty text", reason="bad_request")

        url = f"{self.API_URL}/text-to-speech/{voice_id}"
        body = {"text": text, "model_id": self._model_id}

        for attempt in range(self._max_retries):
            last_attempt = attempt == self._max_retries - 1
            delay = self._retry_delay * (2**attempt)

            try:
                logger.debug(
                    f"Synthesizing {len(text)} chars with voice {voice_id} "
                    f"(attempt {attempt + 1}/{self._max_retries})"
                )
                response = self._session.post(
                    url,
                    json=body,
                    headers=self._headers("audio/mpeg"),
                    timeout=self._timeout,
                )
            except requests.RequestException as e:
                if last_attempt:
                    raise SynthesisFailedError(f"Narration service unreachable: {e}", reason="transport") from e
                logger.warning(f"Connection error: {e}. Retrying in {delay:.1f}s...")
                time.sleep(delay)
                continue

            if response.status_code == 200:
                if not response.content:
                    raise SynthesisFailedError("Narration service returned no audio", reason="empty_audio")
                return response.content

            if response.status_code == 429 and not last_attempt:
                logger.warning(f"Rate limited. Retrying in {delay:.1f}s...")
                time.sleep(delay)
                continue

            raise SynthesisFailedError(
                f"Narration service error {response.status_code}: {response.text[:200]}",
                reason=_reason_for_status(response.status_code),
            )

        raise SynthesisFailedError("Max retries exceeded", reason="rate_limited")

    def list_voices(self) -> List[Voice]:
        """List voices available to this account.

        Falls back to ``DEFAULT_VOICES`` when the catalog cannot be fetched.
        """
        try:
            response = self._session.get(
                f"{self.API_URL}/voices",
                headers=self._headers("application/json"),
                timeout=self._timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching voices: {e}")
            return list(DEFAULT_VOICES)

        voices: List[Voice] = []
        for item in payload.get("voices", []):
            labels = item.get("labels") or {}
            gender = labels.get("gender")
            voices.append(Voice(
                id=item["voice_id"],
                name=item.get("name"),
                description=item.get("description") or None,
                preview_url=item.get("preview_url"),
                gender=gender.lower() if gender else None,
                accent=labels.get("accent"),
            ))
        return voices


def _reason_for_status(status_code: int) -> str:
    if status_code in (401, 403):
        return "unauthorized"
    if status_code == 429:
        return "rate_limited"
    if 400 <= status_code < 500:
        return "bad_request"
    return "server_error"
