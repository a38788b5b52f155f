"""
Conversion service client.
The converter downloads the uploaded video, extracts an MP3 and uploads it to
object storage, then answers with the public audio URL.
"""

import logging

import requests

from vidtalk.core.constants import DEFAULT_CONVERTER_URL, CONVERTER_TIMEOUT_SEC
from vidtalk.core.error_codes import ConversionError
from vidtalk.core.models import ConversionResult

logger = logging.getLogger(__name__)


class ConverterClient:
    """HTTP client for the video-to-audio conversion container."""

    def __init__(self, base_url: str = DEFAULT_CONVERTER_URL,
                 session: requests.Session | None = None,
                 timeout: int = CONVERTER_TIMEOUT_SEC):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout

    def convert(self, video_id: str, source_url: str) -> ConversionResult:
        try:
            resp = self.session.post(
                f"{self.base_url}/process",
                json={"videoId": video_id, "videoUrl": source_url},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise ConversionError(f"Conversion service unreachable: {e}")

        if not resp.ok:
            raise ConversionError(f"Video processing failed: {resp.text[:300]}")

        try:
            body = resp.json()
        except ValueError:
            raise ConversionError("Conversion service returned invalid JSON")
        if not isinstance(body, dict):
            raise ConversionError("Conversion service returned an unexpected payload")

        result = ConversionResult(
            success=bool(body.get('success')),
            audio_url=body.get('audioUrl') or body.get('mp3Url'),
            error=body.get('error'),
        )
        logger.debug("Conversion for %s: success=%s", video_id, result.success)
        return result
