"""
Whisper speech-to-text integration.
Talks to Cloudflare Workers AI (@cf/openai/whisper) over its REST API and
normalizes each per-chunk response into a ChunkTranscript.
"""

import json
import logging
from typing import Protocol

import requests

from vidtalk.core.chunking import split_audio_bytes
from vidtalk.core.constants import CLOUDFLARE_API_BASE, WHISPER_MODEL, CHUNK_SIZE_BYTES
from vidtalk.core.error_codes import InferenceError
from vidtalk.core.merge import merge_chunk_transcripts
from vidtalk.core.models import ChunkTranscript, TranscriptionResult, WordToken

logger = logging.getLogger(__name__)


class InferenceService(Protocol):
    def transcribe(self, model_id: str, audio: bytes) -> dict: ...


class WorkersAIClient:
    """Inference service backed by the Workers AI REST endpoint."""

    def __init__(self, account_id: str, api_token: str,
                 session: requests.Session | None = None,
                 api_base: str = CLOUDFLARE_API_BASE):
        self.account_id = account_id
        self.api_token = api_token
        self.session = session or requests.Session()
        self.api_base = api_base.rstrip('/')

    def _headers(self, content_type: str | None = None) -> dict:
        headers = {"Authorization": f"Bearer {self.api_token}"}
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def verify_api_token(self) -> tuple[bool, str]:
        """
        Verify the API token with a lightweight request.
        Returns (success: bool, message: str).
        """
        try:
            resp = self.session.get(
                f"{self.api_base}/user/tokens/verify",
                headers=self._headers(),
                timeout=10,
            )
        except requests.exceptions.ConnectionError:
            return False, "Network error: could not reach Cloudflare"
        except requests.exceptions.Timeout:
            return False, "Network error: request timed out"
        except requests.exceptions.RequestException as e:
            return False, f"Network error: {e}"

        if resp.status_code == 200:
            return True, "Token verified"
        if resp.status_code in (401, 403):
            return False, "Token invalid or rejected"
        return False, f"Unexpected response: {resp.status_code}"

    def transcribe(self, model_id: str, audio: bytes) -> dict:
        """
        Run one speech-to-text inference over raw audio bytes.
        Returns the model output (the ``result`` member of the API envelope).
        """
        url = f"{self.api_base}/accounts/{self.account_id}/ai/run/{model_id}"
        # Adaptive timeout: ~1 min per 10MB, minimum 120s
        timeout_sec = max(120, int(len(audio) / (10 * 1024 * 1024) * 60) + 60)

        try:
            resp = self.session.post(
                url,
                headers=self._headers("application/octet-stream"),
                data=audio,
                timeout=timeout_sec,
            )
        except requests.exceptions.Timeout:
            raise InferenceError("Whisper request timed out")
        except requests.exceptions.ConnectionError:
            raise InferenceError("Network error connecting to Workers AI")
        except requests.exceptions.RequestException as e:
            raise InferenceError(f"Whisper request failed: {e}")

        if resp.status_code != 200:
            # Sanitize error message (never log the token)
            error_body = resp.text[:300] if resp.text else "No response body"
            raise InferenceError(f"Workers AI returned {resp.status_code}: {error_body}")

        try:
            body = resp.json()
        except (json.JSONDecodeError, ValueError):
            raise InferenceError("Failed to parse Workers AI response JSON")

        if isinstance(body, dict) and 'result' in body:
            return body['result']
        return body


def _normalize_word(raw: dict) -> WordToken:
    text = raw.get('word') or raw.get('text') or ''
    return WordToken(
        text=text,
        start=raw.get('start') or 0,
        end=raw.get('end') or 0,
        speaker=raw.get('speaker'),
        confidence=raw.get('confidence'),
    )


def normalize_transcription(raw) -> ChunkTranscript:
    """Validate a raw model response and convert it to a ChunkTranscript."""
    if not isinstance(raw, dict) or not isinstance(raw.get('text'), str):
        raise InferenceError("Invalid response from Whisper model")

    words = [_normalize_word(w) for w in raw.get('words') or [] if isinstance(w, dict)]
    return ChunkTranscript(
        text=raw['text'],
        words=words,
        language=raw.get('language'),
    )


def transcribe_chunk(service: InferenceService, audio: bytes,
                     model_id: str = WHISPER_MODEL, idx: int = 0) -> ChunkTranscript:
    """Transcribe one chunk. Any failure surfaces as InferenceError."""
    try:
        raw = service.transcribe(model_id, audio)
    except InferenceError:
        raise
    except Exception as e:
        raise InferenceError(f"Whisper call failed for chunk {idx + 1}: {e}")

    try:
        return normalize_transcription(raw)
    except InferenceError as e:
        raise InferenceError(f"{e.message} for chunk {idx + 1}")


def transcribe_audio(service: InferenceService, data: bytes,
                     model_id: str = WHISPER_MODEL,
                     chunk_size: int = CHUNK_SIZE_BYTES) -> tuple[TranscriptionResult, int]:
    """
    Split, transcribe each chunk sequentially, and merge.
    Returns (merged result, number of chunks sent).
    """
    if len(data) > chunk_size:
        logger.info("Processing large file (%.2f MB) with chunking",
                    len(data) / 1024 / 1024)

    results = []
    for chunk in split_audio_bytes(data, chunk_size):
        logger.info("Transcribing chunk %d (%d KB)", chunk.idx + 1, chunk.size // 1024)
        results.append(transcribe_chunk(service, chunk.data, model_id, chunk.idx))

    return merge_chunk_transcripts(results), len(results)
