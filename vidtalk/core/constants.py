"""
Shared constants for VidTalk.
Single source of truth, imported by every other module.
"""

import pathlib

# ── Application identity ──────────────────────────────────────────────
APP_NAME = "VidTalk"
APP_VERSION = "1.0.0"

# ── Filesystem paths ─────────────────────────────────────────────────
HOME = pathlib.Path.home()

APP_SUPPORT_DIR = HOME / ".local" / "share" / "vidtalk"
LOG_DIR = HOME / ".local" / "state" / "vidtalk"
DB_PATH = APP_SUPPORT_DIR / "vidtalk.db"
CONFIG_PATH = APP_SUPPORT_DIR / "config.json"

# ── Processing job status values ─────────────────────────────────────
class JobStatus:
    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

# ── Job stage values (ordered) ────────────────────────────────────────
class JobStage:
    CONVERTING = "CONVERTING"
    DOWNLOADING_AUDIO = "DOWNLOADING_AUDIO"
    TRANSCRIBING = "TRANSCRIBING"
    SAVING_TRANSCRIPT = "SAVING_TRANSCRIPT"
    DONE = "DONE"

# ── Video status values (mirrored onto the videos table) ──────────────
class VideoStatus:
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

# ── Error codes ───────────────────────────────────────────────────────
class ErrorCode:
    CONVERSION_FAILED = "ERR_CONVERSION_FAILED"
    DOWNLOAD_FAILED = "ERR_DOWNLOAD_FAILED"
    INFERENCE_FAILED = "ERR_INFERENCE_FAILED"
    PERSISTENCE_FAILED = "ERR_PERSISTENCE_FAILED"
    UNEXPECTED = "ERR_UNEXPECTED"

# ── Audio chunking ────────────────────────────────────────────────────
CHUNK_SIZE_BYTES = 1024 * 1024        # 1 MiB per inference call
CHUNK_OVERLAP_RATIO = 0.10            # leading overlap for chunks after the first

# ── Segment grouping ──────────────────────────────────────────────────
MAX_WORDS_PER_SEGMENT = 15
MAX_SEGMENT_DURATION_SEC = 10.0
SENTENCE_END_CHARS = (".", "!", "?")

# ── Inference (Workers AI) ────────────────────────────────────────────
CLOUDFLARE_API_BASE = "https://api.cloudflare.com/client/v4"
WHISPER_MODEL = "@cf/openai/whisper"
DEFAULT_LANGUAGE = "en"
API_TOKEN_ENV = "CLOUDFLARE_API_TOKEN"

# ── Conversion service ────────────────────────────────────────────────
DEFAULT_CONVERTER_URL = "http://localhost:8080"
CONVERTER_TIMEOUT_SEC = 900           # conversion can take minutes

# ── Download ──────────────────────────────────────────────────────────
DOWNLOAD_TIMEOUT_SEC = 600
