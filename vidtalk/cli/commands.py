"""
Command-line interface for VidTalk.
"""

import argparse
import logging
import sys
from pathlib import Path
from urllib.parse import urlparse

from vidtalk.core.config import AppConfig
from vidtalk.core.constants import API_TOKEN_ENV, APP_NAME, APP_VERSION
from vidtalk.core.convert_client import ConverterClient
from vidtalk.core.db_sqlite import Database
from vidtalk.core.error_codes import JobError
from vidtalk.core.processor import ProcessorRegistry
from vidtalk.core.segments import format_timestamp
from vidtalk.core.transcribe_whisper import WorkersAIClient

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vidtalk", description=f"{APP_NAME} video transcription")
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {APP_VERSION}")
    parser.add_argument("--db", type=Path, help="Path to the SQLite database")
    parser.add_argument("--config", type=Path, help="Path to the JSON config file")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("process", help="Convert, transcribe and store a video")
    p.add_argument("source_url", help="URL of the uploaded video")
    p.add_argument("--video-id", help="Existing video id (registered if missing)")
    p.add_argument("--title", help="Title used when registering the video")

    p = sub.add_parser("status", help="Show the processing status of a video")
    p.add_argument("video_id")

    p = sub.add_parser("transcript", help="Print a video's timestamped transcript")
    p.add_argument("video_id")

    sub.add_parser("videos", help="List registered videos")
    sub.add_parser("verify-token", help="Check the Workers AI API token")
    return parser


def _inference_client(config: AppConfig) -> WorkersAIClient:
    token = config.api_token()
    if not token:
        raise SystemExit(f"{API_TOKEN_ENV} is not set")
    if not config.account_id:
        raise SystemExit("cloudflare_account_id is not configured")
    return WorkersAIClient(config.account_id, token)


def _ensure_video(db: Database, video_id: str | None, source_url: str, title: str | None) -> str:
    if video_id and db.get_video(video_id):
        return video_id
    filename = Path(urlparse(source_url).path).name or "video"
    video = db.create_video(title=title or filename, filename=filename,
                            url=source_url, video_id=video_id)
    logger.info("Registered video %s (%s)", video.id, video.title)
    return video.id


def cmd_process(args, db: Database, config: AppConfig) -> int:
    registry = ProcessorRegistry(db, ConverterClient(config.converter_url),
                                 _inference_client(config), config=config)
    video_id = _ensure_video(db, args.video_id, args.source_url, args.title)
    try:
        summary = registry.process_video(video_id, args.source_url)
    except JobError as e:
        print(f"Processing failed [{e.code}]: {e.message}", file=sys.stderr)
        return 1
    finally:
        registry.shutdown()

    print(f"Video:       {summary.video_id}")
    print(f"Audio:       {summary.audio_url}")
    print(f"Chunks:      {summary.chunk_count}")
    print(f"Words:       {summary.word_count}")
    print(f"Segments:    {summary.segment_count}")
    print(f"Characters:  {summary.transcript_length}")
    return 0


def cmd_status(args, db: Database, config: AppConfig) -> int:
    job = db.get_processing_job(args.video_id)
    status = job.as_status() if job else {"status": "idle"}
    for key, value in status.items():
        if value is not None:
            print(f"{key:>13}: {value}")
    return 0


def cmd_transcript(args, db: Database, config: AppConfig) -> int:
    found = db.get_transcript_with_segments(args.video_id)
    if found is None:
        print(f"No transcript for video {args.video_id}", file=sys.stderr)
        return 1
    if not found['segments']:
        print(found['transcript'].content)
        return 0
    for segment in found['segments']:
        print(f"[{format_timestamp(segment.start_time)}] {segment.text}")
    return 0


def cmd_videos(args, db: Database, config: AppConfig) -> int:
    for video in db.get_videos():
        print(f"{video.id}  {video.status:<10}  {video.title}")
    return 0


def cmd_verify_token(args, db: Database, config: AppConfig) -> int:
    ok, message = _inference_client(config).verify_api_token()
    print(message)
    return 0 if ok else 1


_COMMANDS = {
    "process": cmd_process,
    "status": cmd_status,
    "transcript": cmd_transcript,
    "videos": cmd_videos,
    "verify-token": cmd_verify_token,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = AppConfig(args.config)
    db = Database(args.db)
    try:
        return _COMMANDS[args.command](args, db, config)
    finally:
        db.close()
