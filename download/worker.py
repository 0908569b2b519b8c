"""Video, metadata and comments operations run on background threads."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable

from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError

from comments.reader import comments_file_exists
from config.settings import COMMENTS_STAGE_TIMEOUT_SECONDS, INFO_STAGE_TIMEOUT_SECONDS
from config.store import AppSettings
from download.commands import (
    InvocationOptions,
    build_comments_argv,
    build_info_argv,
    build_lookup_opts,
    build_video_argv,
)
from download.detectors import LiveStreamDetector, default_download_detectors, default_info_detectors
from download.events import (
    EVENT_COMMENTS_FINISHED,
    EVENT_COMMENTS_PROGRESS,
    EVENT_DOWNLOAD_FINISHED,
    EVENT_DOWNLOAD_PROGRESS,
    EVENT_METADATA_FINISHED,
    EVENT_METADATA_PROGRESS,
    EventBus,
    OperationFinished,
)
from download.supervisor import Outcome, ProcessSupervisor, RunResult, SupervisorPolicy
from engine.json_utils import read_json_file, safe_json_dumps
from engine.paths import library_metadata_dir, write_error_log
from engine.tooling import resolve_ffmpeg, resolve_override, resolve_yt_dlp
from library.catalog import cleanup_old_live_metadata_files
from library.identity import IdentityIndex
from metadata.types import (
    CLASSIFICATION_LIVE,
    CLASSIFICATION_UPCOMING,
    VideoMetadata,
    classify_live_status,
    parse_video_metadata_value,
    placeholder_metadata,
)

logger = logging.getLogger(__name__)


def _log_event(level, message, **fields):
    payload = {"message": message, **fields}
    try:
        logger.log(level, safe_json_dumps(payload, sort_keys=True))
    except Exception as exc:
        logger.log(level, f"log_event_serialization_failed: {exc} message={message}")


OPERATION_VIDEO = "video"
OPERATION_METADATA = "metadata"
OPERATION_COMMENTS = "comments"

UNAVAILABLE_DELETED = "removed_or_deleted"
UNAVAILABLE_PRIVATE = "private_or_members_only"

# Known yt-dlp unavailability messages, lowercase.
_UNAVAILABLE_SIGNAL_MAP: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        UNAVAILABLE_DELETED,
        (
            "has been removed by the uploader",
            "video has been removed",
            "this video is unavailable",
            "this video has been removed",
            "account associated with this video has been terminated",
        ),
    ),
    (
        UNAVAILABLE_PRIVATE,
        (
            "private video",
            "this video is private",
            "members-only",
            "members only",
            "join this channel",
        ),
    ),
)

# Network hiccups are never reported as unavailability.
_TRANSIENT_ERROR_MARKERS: tuple[str, ...] = (
    "timed out",
    "connection reset",
    "temporary failure",
    "network error",
    "unable to download webpage",
    "http error 5",
    "too many requests",
)


def classify_unavailability(message: str | None) -> str | None:
    if not message:
        return None
    lower_msg = str(message).lower()
    if any(marker in lower_msg for marker in _TRANSIENT_ERROR_MARKERS):
        return None
    for unavailable_class, markers in _UNAVAILABLE_SIGNAL_MAP:
        if any(marker in lower_msg for marker in markers):
            return unavailable_class
    return None


def operation_id(kind: str, video_id: str) -> str:
    """Supervisor key of one operation; video downloads are keyed by the bare id."""
    if kind == OPERATION_VIDEO:
        return video_id
    return f"{kind}:{video_id}"


def _join_output(*parts: str) -> str:
    return "\n".join(part for part in parts if part)


def invocation_options(settings: AppSettings) -> InvocationOptions:
    ffmpeg_override = resolve_override(settings.ffmpeg_path)
    ffmpeg_path = resolve_ffmpeg(ffmpeg_override)
    if not ffmpeg_override and not Path(ffmpeg_path).is_file():
        ffmpeg_path = None
    return InvocationOptions(
        yt_dlp_path=resolve_yt_dlp(settings.yt_dlp_path),
        ffmpeg_path=ffmpeg_path,
        cookies_file=settings.cookies_file,
        cookies_source=settings.cookies_source,
        cookies_browser=settings.cookies_browser,
        remote_components=settings.remote_components,
    )


class DownloadService:
    """Starts operations, reports them on the event bus and owns their cancellation."""

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        bus: EventBus,
        index: IdentityIndex,
        settings_provider: Callable[[], AppSettings],
        policy: SupervisorPolicy | None = None,
        error_log_dir=None,
    ) -> None:
        self.supervisor = supervisor
        self.bus = bus
        self.index = index
        self._settings_provider = settings_provider
        self.policy = policy or supervisor.policy
        self.error_log_dir = error_log_dir

    def _settings(self) -> AppSettings:
        return self._settings_provider()

    def _output_dir(self, output_dir=None) -> Path:
        return Path(output_dir or self._settings().download_dir)

    def _spawn(self, name: str, finished_event: str, video_id: str, target, *args) -> threading.Thread:
        def _body():
            try:
                target(*args)
            except Exception as exc:
                logger.exception("operation_crashed op=%s id=%s", name, video_id)
                self.bus.finished(
                    finished_event,
                    OperationFinished(id=video_id, success=False, stderr=f"{name} failed: {exc}"),
                )

        thread = threading.Thread(target=_body, name=f"{name}-{video_id}", daemon=True)
        thread.start()
        return thread

    def _progress(self, event_name: str, video_id: str):
        def _on_line(_stream: str, line: str) -> None:
            self.bus.progress(event_name, video_id, line)

        return _on_line

    def _retry_notice(self, event_name: str, video_id: str):
        def _on_retry(attempt: int, reason: str) -> None:
            self.bus.progress(event_name, video_id, f"retrying ({reason}), attempt {attempt}")

        return _on_retry

    def _record_failure(self, kind: str, video_id: str, stdout: str, stderr: str) -> None:
        path = write_error_log(kind, video_id, stdout, stderr, self.error_log_dir)
        if path is not None:
            _log_event(logging.WARNING, "operation_error_log_written", kind=kind, id=video_id, path=str(path))

    def _read_info(self, output_dir: Path, video_id: str) -> dict | None:
        self.index.evict(video_id)
        path = self.index.resolve_info(library_metadata_dir(output_dir), video_id)
        if path is None:
            return None
        document = read_json_file(path)
        return document if isinstance(document, dict) else None

    # Video

    def start_download(self, video_id: str, url: str, output_dir=None, quality=None, is_live=False):
        self.supervisor.clear_cancel(operation_id(OPERATION_VIDEO, video_id))
        return self._spawn(
            "download",
            EVENT_DOWNLOAD_FINISHED,
            video_id,
            self.run_download,
            video_id,
            url,
            output_dir,
            quality,
            is_live,
        )

    def run_download(self, video_id: str, url: str, output_dir=None, quality=None, is_live=False) -> OperationFinished:
        settings = self._settings()
        output_dir = self._output_dir(output_dir)
        argv = build_video_argv(
            invocation_options(settings),
            url,
            output_dir,
            quality or settings.download_quality,
            is_live=is_live,
        )
        run = self.supervisor.run(
            operation_id(OPERATION_VIDEO, video_id),
            argv,
            detectors=default_download_detectors,
            policy=self.policy.with_timeout(None),
            on_line=self._progress(EVENT_DOWNLOAD_PROGRESS, video_id),
            on_retry=self._retry_notice(EVENT_DOWNLOAD_PROGRESS, video_id),
        )
        cancelled = run.outcome is Outcome.CANCELLED
        success = run.outcome is Outcome.SUCCEEDED
        unavailable = None if success or cancelled else classify_unavailability(run.stderr)
        if success:
            self.index.evict(video_id)
        elif not cancelled:
            self._record_failure(OPERATION_VIDEO, video_id, run.stdout, run.stderr)
        result = OperationFinished(
            id=video_id,
            success=success,
            stdout=run.stdout,
            stderr=run.stderr,
            cancelled=cancelled,
            is_private=unavailable == UNAVAILABLE_PRIVATE,
            is_deleted=unavailable == UNAVAILABLE_DELETED,
            attempts=len(run.attempts),
        )
        self.bus.finished(EVENT_DOWNLOAD_FINISHED, result)
        return result

    def stop_operation(self, kind: str, video_id: str) -> bool:
        """Cancel one operation; returns whether a child process was running for it."""
        return self.supervisor.cancel(operation_id(kind, video_id))

    def stop_download(self, video_id: str) -> bool:
        return self.stop_operation(OPERATION_VIDEO, video_id)

    def stop_metadata_download(self, video_id: str) -> bool:
        return self.stop_operation(OPERATION_METADATA, video_id)

    def stop_comments_download(self, video_id: str) -> bool:
        return self.stop_operation(OPERATION_COMMENTS, video_id)

    # Metadata

    def start_metadata_download(self, video_id: str, url: str, output_dir=None):
        self.supervisor.clear_cancel(operation_id(OPERATION_METADATA, video_id))
        return self._spawn(
            "metadata",
            EVENT_METADATA_FINISHED,
            video_id,
            self.run_metadata_download,
            video_id,
            url,
            output_dir,
        )

    def run_metadata_download(self, video_id: str, url: str, output_dir=None) -> OperationFinished:
        """Fetch the info record, classify the broadcast state, then fetch comments for normal videos.

        Live and upcoming broadcasts stop after the first stage and report a
        placeholder record; the comments stage never starts for them.
        """
        options = invocation_options(self._settings())
        output_dir = self._output_dir(output_dir)
        op_id = operation_id(OPERATION_METADATA, video_id)
        on_line = self._progress(EVENT_METADATA_PROGRESS, video_id)
        fetched: dict = {}

        def _info_written(_attempt) -> bool:
            document = self._read_info(output_dir, video_id)
            if document is None:
                return False
            fetched["info"] = document
            return True

        info_run = self.supervisor.run(
            op_id,
            build_info_argv(options, url, output_dir),
            detectors=default_info_detectors,
            policy=self.policy.with_timeout(INFO_STAGE_TIMEOUT_SECONDS),
            on_line=on_line,
            on_retry=self._retry_notice(EVENT_METADATA_PROGRESS, video_id),
            settle=_info_written,
        )
        info = fetched.get("info")
        if info is None and info_run.outcome is Outcome.SUCCEEDED:
            info = self._read_info(output_dir, video_id)

        classification = None
        if info_run.outcome is Outcome.LIVE_DETECTED:
            classification = CLASSIFICATION_LIVE
        elif info_run.outcome is Outcome.UPCOMING_DETECTED:
            classification = CLASSIFICATION_UPCOMING
        elif info is not None:
            classification = classify_live_status(info)

        # A cancel that arrives after the info attempt still stops the comments stage.
        cancelled = (
            info_run.outcome is Outcome.CANCELLED
            or info_run.cancel_requested
            or self.supervisor.is_cancelled(op_id)
        )
        comments_run: RunResult | None = None
        if info_run.outcome is Outcome.SUCCEEDED and classification is None and not cancelled:
            comments_run = self.supervisor.run(
                op_id,
                build_comments_argv(options, url, output_dir),
                detectors=lambda: [LiveStreamDetector()],
                policy=self.policy.with_timeout(COMMENTS_STAGE_TIMEOUT_SECONDS).single_attempt(),
                on_line=on_line,
            )
            if comments_run.outcome is Outcome.LIVE_DETECTED:
                classification = CLASSIFICATION_LIVE
            elif comments_run.outcome is Outcome.CANCELLED:
                cancelled = True
            elif not comments_run.success:
                _log_event(
                    logging.WARNING,
                    "comments_stage_failed",
                    id=video_id,
                    outcome=comments_run.outcome.value,
                )

        stdout = _join_output(info_run.stdout, comments_run.stdout if comments_run else "")
        stderr = _join_output(info_run.stderr, comments_run.stderr if comments_run else "")
        if cancelled:
            self.supervisor.clear_cancel(op_id)
        success = not cancelled and (classification is not None or info_run.outcome is Outcome.SUCCEEDED)

        metadata: VideoMetadata | None
        if classification is not None:
            metadata = placeholder_metadata(video_id, classification)
        elif info is not None:
            metadata = parse_video_metadata_value(info)
        else:
            metadata = None

        has_live_chat = None
        if success:
            cleanup_old_live_metadata_files(output_dir, video_id, self.index)
            self.index.evict(video_id)
            has_live_chat = comments_file_exists(output_dir, video_id, self.index)

        unavailable = None if success or cancelled else classify_unavailability(stderr)
        if not success and not cancelled:
            self._record_failure(OPERATION_METADATA, video_id, stdout, stderr)

        result = OperationFinished(
            id=video_id,
            success=success,
            stdout=stdout,
            stderr=stderr,
            cancelled=cancelled,
            classification=classification,
            metadata=metadata,
            has_live_chat=has_live_chat,
            is_private=unavailable == UNAVAILABLE_PRIVATE,
            is_deleted=unavailable == UNAVAILABLE_DELETED,
            attempts=len(info_run.attempts) + (len(comments_run.attempts) if comments_run else 0),
        )
        self.bus.finished(EVENT_METADATA_FINISHED, result)
        return result

    # Comments

    def start_comments_download(self, video_id: str, url: str, output_dir=None):
        self.supervisor.clear_cancel(operation_id(OPERATION_COMMENTS, video_id))
        return self._spawn(
            "comments",
            EVENT_COMMENTS_FINISHED,
            video_id,
            self.run_comments_download,
            video_id,
            url,
            output_dir,
        )

    def run_comments_download(self, video_id: str, url: str, output_dir=None) -> OperationFinished:
        """Refresh the info record and report whether a comments or chat file is on disk."""
        options = invocation_options(self._settings())
        output_dir = self._output_dir(output_dir)
        run = self.supervisor.run(
            operation_id(OPERATION_COMMENTS, video_id),
            build_info_argv(options, url, output_dir),
            detectors=default_download_detectors,
            policy=self.policy.with_timeout(None),
            on_line=self._progress(EVENT_COMMENTS_PROGRESS, video_id),
            on_retry=self._retry_notice(EVENT_COMMENTS_PROGRESS, video_id),
        )
        cancelled = run.outcome is Outcome.CANCELLED
        success = run.outcome is Outcome.SUCCEEDED
        metadata = None
        has_live_chat = None
        if success:
            info = self._read_info(output_dir, video_id)
            if info is not None:
                metadata = parse_video_metadata_value(info)
            has_live_chat = comments_file_exists(output_dir, video_id, self.index)
        elif not cancelled:
            self._record_failure(OPERATION_COMMENTS, video_id, run.stdout, run.stderr)
        result = OperationFinished(
            id=video_id,
            success=success,
            stdout=run.stdout,
            stderr=run.stderr,
            cancelled=cancelled,
            metadata=metadata,
            has_live_chat=has_live_chat,
            attempts=len(run.attempts),
        )
        self.bus.finished(EVENT_COMMENTS_FINISHED, result)
        return result

    # Single-shot lookup

    def get_video_metadata(self, url: str) -> VideoMetadata:
        """Ask yt-dlp for one video's metadata without writing anything.

        Raises:
            RuntimeError: If yt-dlp cannot extract the video.
            ValueError: If yt-dlp returns no info record.
        """
        opts = build_lookup_opts(invocation_options(self._settings()))
        try:
            with YoutubeDL(opts) as ydl:
                info = ydl.extract_info(url, download=False)
        except DownloadError as exc:
            _log_event(
                logging.WARNING,
                "metadata_lookup_failed",
                url=url,
                error=str(exc),
                unavailable=classify_unavailability(str(exc)),
            )
            raise RuntimeError(f"yt-dlp failed for {url}: {exc}") from exc
        if not isinstance(info, dict):
            raise ValueError(f"yt-dlp returned no metadata for {url}")
        return parse_video_metadata_value(ydl.sanitize_info(info))
