"""
Converted audio download over plain HTTP.
"""

import logging

import requests

from vidtalk.core.constants import DOWNLOAD_TIMEOUT_SEC
from vidtalk.core.error_codes import DownloadError

logger = logging.getLogger(__name__)


def download_audio(audio_url: str, session: requests.Session | None = None,
                   timeout: int = DOWNLOAD_TIMEOUT_SEC) -> bytes:
    """
    Fetch the converted audio into memory.
    Returns the raw bytes.
    """
    http = session or requests
    try:
        resp = http.get(audio_url, timeout=timeout)
    except requests.exceptions.RequestException as e:
        raise DownloadError(f"Failed to download audio: {e}")

    if not resp.ok:
        raise DownloadError(f"Failed to download audio: {resp.status_code} {resp.reason}")

    data = resp.content
    logger.info("Downloaded audio: %s (%.2f MB)", audio_url, len(data) / 1024 / 1024)
    return data
