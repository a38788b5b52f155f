"""
Per-video processing actors.

Each video identifier gets one VideoProcessor with its own worker thread and
FIFO inbox, so operations submitted to the same video run one at a time in
submission order while different videos proceed in parallel. A second
process_video call for a video that is already running is queued behind it.
"""

import logging
import queue
import threading
import uuid
from concurrent.futures import Future
from dataclasses import replace
from typing import Callable, Optional, Protocol

from vidtalk.core.constants import JobStatus, JobStage, VideoStatus
from vidtalk.core.config import AppConfig
from vidtalk.core.db_sqlite import Database, utc_now
from vidtalk.core.download_audio import download_audio
from vidtalk.core.error_codes import ConversionError, error_message, error_code_for
from vidtalk.core.models import ConversionResult, ProcessingSummary, TranscriptionResult
from vidtalk.core.models_sqlite import ProcessingJob, StoredSegment, Transcript
from vidtalk.core.segments import group_words_into_segments
from vidtalk.core.transcribe_whisper import InferenceService, transcribe_audio

logger = logging.getLogger(__name__)


class ConversionService(Protocol):
    def convert(self, video_id: str, source_url: str) -> ConversionResult: ...


Downloader = Callable[[str], bytes]

_STOP = object()
_RELOAD = object()


class ProcessorClosedError(RuntimeError):
    """Raised when work is submitted to a processor that has been closed."""


class VideoProcessor:
    """
    Stateful processor for a single video identifier.

    Construction queues a one-time load of the persisted job; every public
    method waits on that ``ready`` barrier before touching job state. A
    failed load is raised to the caller that sees it and retried on the
    next call.
    """

    def __init__(self, video_id: str, db: Database,
                 converter: ConversionService, inference: InferenceService,
                 downloader: Downloader | None = None,
                 config: AppConfig | None = None):
        self.video_id = video_id
        self.db = db
        self.converter = converter
        self.inference = inference
        self.config = config or AppConfig()
        self.downloader = downloader or self._default_downloader

        self._job: Optional[ProcessingJob] = None
        self._load_error: Optional[BaseException] = None
        self._ready = threading.Event()
        self._inbox: queue.Queue = queue.Queue()

        # Guards _pending, _closed and the load result
        self._state_lock = threading.Lock()
        self._pending = 0
        self._closed = False

        # Callbacks
        self.on_job_updated: Optional[Callable[[ProcessingJob], None]] = None
        self.on_idle: Optional[Callable[["VideoProcessor"], None]] = None

        self._worker_thread = threading.Thread(
            target=self._worker_loop, name=f"processor-{video_id}", daemon=True,
        )
        self._worker_thread.start()

    def _default_downloader(self, url: str) -> bytes:
        return download_audio(url, timeout=self.config.download_timeout_sec)

    # ── Ready barrier ─────────────────────────────────────────────────

    def _load_state(self):
        job, error = None, None
        try:
            job = self.db.get_processing_job(self.video_id) or ProcessingJob(key=self.video_id)
        except Exception as e:
            logger.error("Failed to load job state for %s: %s", self.video_id, e)
            error = e
        with self._state_lock:
            self._job = job
            self._load_error = error
            self._ready.set()

    def wait_ready(self, timeout: float | None = None):
        while True:
            if not self._ready.wait(timeout):
                raise TimeoutError(f"Processor for {self.video_id} did not become ready")
            with self._state_lock:
                if not self._ready.is_set():
                    # Another caller already scheduled a reload
                    continue
                error = self._load_error
                if error is None:
                    return
                if not self._closed:
                    self._load_error = None
                    self._ready.clear()
                    self._inbox.put(_RELOAD)
            raise error

    # ── Inbox ─────────────────────────────────────────────────────────

    def _worker_loop(self):
        """Load state, then run queued operations one at a time."""
        self._load_state()
        while True:
            item = self._inbox.get()
            if item is _STOP:
                break
            if item is _RELOAD:
                self._load_state()
                continue
            fn, future = item
            if future.set_running_or_notify_cancel():
                try:
                    future.set_result(fn())
                except BaseException as e:
                    future.set_exception(e)
            self._finish_one()

    def _finish_one(self):
        with self._state_lock:
            self._pending -= 1
            idle = self._pending == 0
        if idle and self.on_idle:
            self.on_idle(self)

    def _submit(self, fn: Callable) -> Future:
        future: Future = Future()
        with self._state_lock:
            if self._closed:
                raise ProcessorClosedError(f"Processor for {self.video_id} is closed")
            self._pending += 1
            self._inbox.put((fn, future))
        return future

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self, timeout: float | None = None):
        """Stop the worker after already-queued operations finish."""
        with self._state_lock:
            if not self._closed:
                self._closed = True
                self._inbox.put(_STOP)
        if threading.current_thread() is not self._worker_thread:
            self._worker_thread.join(timeout)

    def close_if_idle(self) -> bool:
        """Close without blocking when nothing is queued or running.
        Returns True when the processor is closed afterwards.
        """
        with self._state_lock:
            if self._pending:
                return False
            if not self._closed:
                self._closed = True
                self._inbox.put(_STOP)
            return True

    # ── Public operations ─────────────────────────────────────────────

    def submit(self, source_url: str) -> Future:
        """Queue a processing run; the future resolves to a ProcessingSummary."""
        self.wait_ready()
        return self._submit(lambda: self._process(source_url))

    def process_video(self, source_url: str) -> ProcessingSummary:
        """Run the full pipeline and block until it completes or fails."""
        return self.submit(source_url).result()

    def get_status(self) -> dict:
        """Read the persisted job fields. Never waits on a running pipeline."""
        self.wait_ready()
        return self._job.as_status()

    @property
    def job(self) -> ProcessingJob:
        self.wait_ready()
        return self._job

    # ── Job state ─────────────────────────────────────────────────────

    def _save_job(self, **changes):
        """Persist changes first, then publish them to readers."""
        job = replace(self._job, **changes)
        self.db.save_processing_job(job)
        self._job = job
        if self.on_job_updated:
            self.on_job_updated(job)

    # ── Job processing pipeline ───────────────────────────────────────

    def _process(self, source_url: str) -> ProcessingSummary:
        video_id = self.video_id

        # A retry restarts from scratch; nothing from the previous run is kept.
        self._save_job(
            status=JobStatus.PROCESSING,
            video_id=video_id,
            source_url=source_url,
            stage=None,
            started_at=utc_now(),
            completed_at=None,
            failed_at=None,
            error=None,
            error_code=None,
            audio_url=None,
        )
        logger.info("Processing video %s from %s", video_id, source_url)

        try:
            # ── Stage 1: Convert video to audio ──
            self._save_job(stage=JobStage.CONVERTING)
            audio_url = self._convert(video_id, source_url)

            # ── Stage 2: Download audio ──
            self._save_job(stage=JobStage.DOWNLOADING_AUDIO)
            audio = self.downloader(audio_url)

            # ── Stage 3: Transcribe ──
            self._save_job(stage=JobStage.TRANSCRIBING)
            transcription, chunk_count = transcribe_audio(
                self.inference, audio,
                model_id=self.config.whisper_model,
                chunk_size=self.config.chunk_size_bytes,
            )

            # ── Stage 4: Persist transcript ──
            self._save_job(stage=JobStage.SAVING_TRANSCRIPT)
            segment_count = self._save_transcription(video_id, transcription)

            # ── Stage 5: Mark completed ──
            self.db.update_video_status(video_id, VideoStatus.COMPLETED)
            self._save_job(status=JobStatus.COMPLETED,
                           stage=JobStage.DONE,
                           completed_at=utc_now(),
                           audio_url=audio_url)

        except Exception as e:
            self._handle_job_error(e)
            raise

        logger.info("Successfully processed video %s", video_id)
        return ProcessingSummary(
            video_id=video_id,
            audio_url=audio_url,
            chunk_count=chunk_count,
            word_count=transcription.word_count,
            transcript_length=len(transcription.full_text),
            segment_count=segment_count,
        )

    def _convert(self, video_id: str, source_url: str) -> str:
        result = self.converter.convert(video_id, source_url)
        if not result.success or not result.audio_url:
            raise ConversionError(result.error or "Video processing failed")
        return result.audio_url

    def _save_transcription(self, video_id: str, transcription: TranscriptionResult) -> int:
        """Write the transcript record and its ordered segments together. Returns segment count."""
        transcript = Transcript(
            id=str(uuid.uuid4()),
            video_id=video_id,
            content=transcription.full_text,
            language=transcription.language or self.config.default_language,
            created_at=utc_now(),
        )

        segments = group_words_into_segments(
            transcription.words,
            max_words_per_segment=self.config.max_words_per_segment,
            max_duration_per_segment=self.config.max_segment_duration_sec,
        )
        self.db.save_transcript(transcript, [
            StoredSegment(
                id=str(uuid.uuid4()),
                transcript_id=transcript.id,
                text=segment.text,
                start_time=segment.start_time,
                end_time=segment.end_time,
                order=segment.order,
            )
            for segment in segments
        ])
        return len(segments)

    def _handle_job_error(self, error: Exception):
        """Record the failure on the job and the video. The caller re-raises."""
        logger.error("Error processing video %s: %s", self.video_id, error, exc_info=True)
        try:
            self._save_job(status=JobStatus.FAILED,
                           error=error_message(error),
                           error_code=error_code_for(error),
                           failed_at=utc_now())
        except Exception as e:
            logger.error("Could not record failure for %s: %s", self.video_id, e)
        try:
            self.db.update_video_status(self.video_id, VideoStatus.FAILED)
        except Exception as e:
            logger.error("Could not mark video %s failed: %s", self.video_id, e)


class ProcessorRegistry:
    """
    Maps video identifiers to their VideoProcessor, creating them on demand.
    A processor is released once its inbox drains; the next run for that
    video starts a fresh one, which reloads the persisted job.
    """

    def __init__(self, db: Database, converter: ConversionService,
                 inference: InferenceService,
                 downloader: Downloader | None = None,
                 config: AppConfig | None = None):
        self.db = db
        self.converter = converter
        self.inference = inference
        self.downloader = downloader
        self.config = config or AppConfig()
        self._processors: dict[str, VideoProcessor] = {}
        self._lock = threading.Lock()

        self.on_job_updated: Optional[Callable[[ProcessingJob], None]] = None

    def __contains__(self, video_id: str) -> bool:
        with self._lock:
            return video_id in self._processors

    def get(self, video_id: str) -> VideoProcessor:
        with self._lock:
            processor = self._processors.get(video_id)
            if processor is None or processor.closed:
                processor = VideoProcessor(video_id, self.db, self.converter,
                                           self.inference, self.downloader, self.config)
                processor.on_job_updated = self._notify_job_updated
                processor.on_idle = self._release
                self._processors[video_id] = processor
            return processor

    def _release(self, processor: VideoProcessor):
        """Drop an idle processor from the map and stop its worker."""
        with self._lock:
            if self._processors.get(processor.video_id) is not processor:
                return
            if processor.close_if_idle():
                del self._processors[processor.video_id]
                logger.debug("Released idle processor for %s", processor.video_id)

    def _notify_job_updated(self, job: ProcessingJob):
        if self.on_job_updated:
            self.on_job_updated(job)

    def submit(self, video_id: str, source_url: str) -> Future:
        while True:
            processor = self.get(video_id)
            try:
                return processor.submit(source_url)
            except ProcessorClosedError:
                # Released between lookup and submit; get() builds a new one
                continue
            except Exception:
                self._release(processor)
                raise

    def process_video(self, video_id: str, source_url: str) -> ProcessingSummary:
        return self.submit(video_id, source_url).result()

    def get_status(self, video_id: str) -> dict:
        """Status of a live processor, else the stored job. Never creates a processor."""
        with self._lock:
            processor = self._processors.get(video_id)
        if processor is not None:
            return processor.get_status()
        job = self.db.get_processing_job(video_id) or ProcessingJob(key=video_id)
        return job.as_status()

    def shutdown(self, timeout: float | None = None):
        with self._lock:
            processors = list(self._processors.values())
            self._processors.clear()
        for processor in processors:
            processor.close(timeout)
