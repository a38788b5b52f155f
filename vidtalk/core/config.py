"""
Application configuration manager.
Stores settings in a JSON file under the application support dir.
The inference API token is read from the environment, never from the file.
"""

import json
import logging
import os
from pathlib import Path

from vidtalk.core.constants import (
    CONFIG_PATH, CHUNK_SIZE_BYTES, MAX_WORDS_PER_SEGMENT,
    MAX_SEGMENT_DURATION_SEC, WHISPER_MODEL, DEFAULT_CONVERTER_URL,
    DEFAULT_LANGUAGE, DOWNLOAD_TIMEOUT_SEC, API_TOKEN_ENV,
)

# Validation bounds
_CHUNK_SIZE_MIN = 64 * 1024           # 64 KiB
_CHUNK_SIZE_MAX = 25 * 1024 * 1024    # 25 MiB, inference upload cap
_MAX_WORDS_MIN = 1
_MAX_WORDS_MAX = 200
_MAX_DURATION_MIN = 1.0
_MAX_DURATION_MAX = 600.0

logger = logging.getLogger(__name__)

_DEFAULTS = {
    'chunk_size_bytes': CHUNK_SIZE_BYTES,
    'max_words_per_segment': MAX_WORDS_PER_SEGMENT,
    'max_segment_duration_sec': MAX_SEGMENT_DURATION_SEC,
    'whisper_model': WHISPER_MODEL,
    'converter_url': DEFAULT_CONVERTER_URL,
    'cloudflare_account_id': '',
    'default_language': DEFAULT_LANGUAGE,
    'download_timeout_sec': DOWNLOAD_TIMEOUT_SEC,
}


class AppConfig:
    """Manages application configuration stored as JSON."""

    def __init__(self, config_path: Path | None = None):
        self.path = config_path or CONFIG_PATH
        self._data: dict = {}
        self.load()

    def load(self):
        """Load config from disk, merging with defaults."""
        self._data = dict(_DEFAULTS)
        if self.path.exists():
            try:
                with open(self.path, 'r') as f:
                    saved = json.load(f)
                for key, value in saved.items():
                    self._data[key] = self._validate(key, value)
            except (OSError, ValueError) as e:
                logger.warning("Failed to load config: %s", e)

    def save(self):
        """Persist config to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(self._data, f, indent=2)

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def set(self, key: str, value):
        value = self._validate(key, value)
        self._data[key] = value
        self.save()

    def _validate(self, key: str, value):
        """Validate and coerce config values to safe ranges."""
        if key == 'chunk_size_bytes':
            try:
                value = int(value)
            except (TypeError, ValueError):
                logger.warning("Invalid chunk_size_bytes %r, using default", value)
                return CHUNK_SIZE_BYTES
            return max(_CHUNK_SIZE_MIN, min(_CHUNK_SIZE_MAX, value))

        if key == 'max_words_per_segment':
            try:
                value = int(value)
            except (TypeError, ValueError):
                logger.warning("Invalid max_words_per_segment %r, using default", value)
                return MAX_WORDS_PER_SEGMENT
            return max(_MAX_WORDS_MIN, min(_MAX_WORDS_MAX, value))

        if key == 'max_segment_duration_sec':
            try:
                value = float(value)
            except (TypeError, ValueError):
                logger.warning("Invalid max_segment_duration_sec %r, using default", value)
                return MAX_SEGMENT_DURATION_SEC
            return max(_MAX_DURATION_MIN, min(_MAX_DURATION_MAX, value))

        if key == 'download_timeout_sec':
            try:
                return max(1, int(value))
            except (TypeError, ValueError):
                return DOWNLOAD_TIMEOUT_SEC

        if key == 'converter_url' and isinstance(value, str):
            return value.rstrip('/')

        return value

    def as_dict(self) -> dict:
        return dict(self._data)

    @property
    def chunk_size_bytes(self) -> int:
        return self._data.get('chunk_size_bytes', CHUNK_SIZE_BYTES)

    @property
    def max_words_per_segment(self) -> int:
        return self._data.get('max_words_per_segment', MAX_WORDS_PER_SEGMENT)

    @property
    def max_segment_duration_sec(self) -> float:
        return self._data.get('max_segment_duration_sec', MAX_SEGMENT_DURATION_SEC)

    @property
    def whisper_model(self) -> str:
        return self._data.get('whisper_model', WHISPER_MODEL)

    @property
    def converter_url(self) -> str:
        return self._data.get('converter_url', DEFAULT_CONVERTER_URL)

    @property
    def account_id(self) -> str:
        return self._data.get('cloudflare_account_id', '')

    @property
    def default_language(self) -> str:
        return self._data.get('default_language', DEFAULT_LANGUAGE)

    @property
    def download_timeout_sec(self) -> int:
        return self._data.get('download_timeout_sec', DOWNLOAD_TIMEOUT_SEC)

    @staticmethod
    def api_token() -> str | None:
        return os.environ.get(API_TOKEN_ENV) or None
