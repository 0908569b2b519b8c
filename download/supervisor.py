"""Run yt-dlp as a child process with retries, timeouts and mid-run classification."""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable

from config.settings import (
    PROCESS_KILL_GRACE_SECONDS,
    PROCESS_POLL_INTERVAL_SECONDS,
    READER_JOIN_TIMEOUT_SECONDS,
    YTDLP_NONE_DECODE_RETRY_MAX,
    YTDLP_NONE_DECODE_RETRY_SLEEP_SECONDS,
    YTDLP_UPCOMING_MARKER,
    YTDLP_WARNING_RETRY_MAX,
    YTDLP_WARNING_RETRY_SLEEP_SECONDS,
)
from download.commands import redact_argv
from download.detectors import STREAM_STDERR, STREAM_STDOUT, Detector, default_download_detectors
from engine.json_utils import safe_json_dumps

logger = logging.getLogger(__name__)


def _log_event(level, message, **fields):
    payload = {"message": message, **fields}
    try:
        logger.log(level, safe_json_dumps(payload, sort_keys=True))
    except Exception as exc:
        logger.log(level, f"log_event_serialization_failed: {exc} message={message}")


class Outcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    LIVE_DETECTED = "live_detected"
    UPCOMING_DETECTED = "upcoming_detected"


# Outcomes that end the retry loop no matter what the detectors saw.
_FINAL_OUTCOMES = frozenset({Outcome.CANCELLED, Outcome.LIVE_DETECTED, Outcome.UPCOMING_DETECTED})
_SUCCESS_OUTCOMES = frozenset({Outcome.SUCCEEDED, Outcome.LIVE_DETECTED, Outcome.UPCOMING_DETECTED})


@dataclass(frozen=True)
class SupervisorPolicy:
    max_attempts: int = YTDLP_WARNING_RETRY_MAX
    retry_sleep_seconds: float = YTDLP_WARNING_RETRY_SLEEP_SECONDS
    transient_retry_max: int = YTDLP_NONE_DECODE_RETRY_MAX
    transient_retry_sleep_seconds: float = YTDLP_NONE_DECODE_RETRY_SLEEP_SECONDS
    timeout_seconds: float | None = None
    kill_grace_seconds: float = PROCESS_KILL_GRACE_SECONDS
    poll_interval_seconds: float = PROCESS_POLL_INTERVAL_SECONDS
    reader_join_timeout_seconds: float = READER_JOIN_TIMEOUT_SECONDS

    def with_timeout(self, timeout_seconds: float | None) -> "SupervisorPolicy":
        return replace(self, timeout_seconds=timeout_seconds)

    def single_attempt(self) -> "SupervisorPolicy":
        return replace(self, max_attempts=1, transient_retry_max=0)


@dataclass
class AttemptResult:
    attempt: int
    outcome: Outcome
    return_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    detected: frozenset = field(default_factory=frozenset)
    spawn_failed: bool = False

    @property
    def success(self) -> bool:
        return self.outcome in _SUCCESS_OUTCOMES

    def fired(self, detector_name: str) -> bool:
        return detector_name in self.detected


@dataclass
class RunResult:
    attempts: list[AttemptResult]
    # A cancel recorded while the run was active, even if it landed after the last attempt.
    cancel_requested: bool = False

    @property
    def last(self) -> AttemptResult:
        return self.attempts[-1]

    @property
    def outcome(self) -> Outcome:
        return self.last.outcome

    @property
    def success(self) -> bool:
        return self.last.success

    @property
    def stdout(self) -> str:
        return self.last.stdout

    @property
    def stderr(self) -> str:
        return self.last.stderr


LineCallback = Callable[[str, str], None]
RetryCallback = Callable[[int, str], None]


class ProcessSupervisor:
    """Owns running children by operation id so they can be cancelled from elsewhere."""

    def __init__(self, policy: SupervisorPolicy | None = None, sleep: Callable[[float], None] = time.sleep) -> None:
        self.policy = policy or SupervisorPolicy()
        self._sleep = sleep
        self._lock = threading.Lock()
        self._processes: dict[str, subprocess.Popen] = {}
        self._cancelled: set[str] = set()

    def cancel(self, op_id: str) -> bool:
        """Mark ``op_id`` cancelled and kill its child; returns whether a child was running."""
        with self._lock:
            self._cancelled.add(op_id)
            proc = self._processes.get(op_id)
        if proc is None:
            return False
        _log_event(logging.INFO, "process_cancel_requested", op_id=op_id, pid=proc.pid)
        try:
            proc.kill()
        except OSError:
            logger.debug("process_kill_failed op_id=%s", op_id, exc_info=True)
        return True

    def is_running(self, op_id: str) -> bool:
        with self._lock:
            return op_id in self._processes

    def is_cancelled(self, op_id: str) -> bool:
        with self._lock:
            return op_id in self._cancelled

    def clear_cancel(self, op_id: str) -> bool:
        """Forget a recorded cancel for ``op_id``; returns whether one was pending."""
        with self._lock:
            if op_id not in self._cancelled:
                return False
            self._cancelled.discard(op_id)
            return True

    def _register(self, op_id: str, proc: subprocess.Popen) -> None:
        with self._lock:
            self._processes[op_id] = proc

    def _unregister(self, op_id: str) -> None:
        with self._lock:
            self._processes.pop(op_id, None)

    def _terminate(self, proc: subprocess.Popen, grace_seconds: float) -> None:
        try:
            proc.kill()
        except OSError:
            pass
        try:
            proc.wait(timeout=grace_seconds)
        except subprocess.TimeoutExpired:
            logger.warning("process_exit_wait_timeout pid=%s grace=%.1fs", proc.pid, grace_seconds)

    def run(
        self,
        op_id: str,
        argv: list[str],
        *,
        detectors: Callable[[], list[Detector]] = default_download_detectors,
        policy: SupervisorPolicy | None = None,
        on_line: LineCallback | None = None,
        on_retry: RetryCallback | None = None,
        settle: Callable[[AttemptResult], bool] | None = None,
    ) -> RunResult:
        """Run ``argv`` until it succeeds, is classified, or exhausts its retry budgets.

        ``settle`` is consulted after each successful attempt; returning True
        stops retrying even if a retryable warning was seen. A cancel recorded
        for ``op_id`` before or during the run is honored, then cleared when
        the run ends.
        """
        policy = policy or self.policy
        attempts: list[AttemptResult] = []
        warning_retries = 0
        transient_retries = 0
        while True:
            attempt_no = len(attempts) + 1
            if self.is_cancelled(op_id):
                attempts.append(AttemptResult(attempt=attempt_no, outcome=Outcome.CANCELLED))
                break
            result = self.run_attempt(op_id, argv, attempt_no, detectors=detectors, policy=policy, on_line=on_line)
            attempts.append(result)
            if result.spawn_failed or result.outcome in _FINAL_OUTCOMES:
                break
            if result.outcome is Outcome.SUCCEEDED and settle is not None and settle(result):
                break
            if result.fired("warning") and warning_retries < policy.max_attempts - 1:
                warning_retries += 1
                self._before_retry(op_id, attempt_no, "warning", policy.retry_sleep_seconds, on_retry)
                continue
            if (
                result.outcome is not Outcome.SUCCEEDED
                and result.fired("transient")
                and transient_retries < policy.transient_retry_max
            ):
                transient_retries += 1
                self._before_retry(op_id, attempt_no, "transient", policy.transient_retry_sleep_seconds, on_retry)
                continue
            break
        run = RunResult(attempts, cancel_requested=self.clear_cancel(op_id))
        _log_event(
            logging.INFO if run.success else logging.WARNING,
            "process_run_finished",
            op_id=op_id,
            outcome=run.outcome.value,
            attempts=len(attempts),
            return_code=run.last.return_code,
        )
        return run

    def _before_retry(self, op_id, attempt_no, reason, sleep_seconds, on_retry):
        _log_event(logging.INFO, "process_retry_scheduled", op_id=op_id, attempt=attempt_no, reason=reason)
        if on_retry is not None:
            try:
                on_retry(attempt_no + 1, reason)
            except Exception:
                logger.exception("retry_callback_failed op_id=%s", op_id)
        if sleep_seconds > 0:
            self._sleep(sleep_seconds)

    def run_attempt(
        self,
        op_id: str,
        argv: list[str],
        attempt_no: int = 1,
        *,
        detectors: Callable[[], list[Detector]] = default_download_detectors,
        policy: SupervisorPolicy | None = None,
        on_line: LineCallback | None = None,
    ) -> AttemptResult:
        policy = policy or self.policy
        active = detectors()
        _log_event(logging.INFO, "process_attempt_started", op_id=op_id, attempt=attempt_no, cli=redact_argv(argv))
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            _log_event(logging.ERROR, "process_spawn_failed", op_id=op_id, error=str(exc))
            return AttemptResult(
                attempt=attempt_no,
                outcome=Outcome.FAILED,
                stderr=f"failed to start {argv[0] if argv else 'process'}: {exc}",
                spawn_failed=True,
            )
        self._register(op_id, proc)

        buffers = {STREAM_STDOUT: [], STREAM_STDERR: []}
        buffer_lock = threading.Lock()
        abort = threading.Event()

        def _read(stream, stream_name):
            for raw_line in iter(stream.readline, ""):
                line = raw_line.rstrip("\r\n")
                with buffer_lock:
                    buffers[stream_name].append(line)
                for detector in active:
                    if detector.feed(line, stream_name) and detector.aborts:
                        abort.set()
                if on_line is not None:
                    try:
                        on_line(stream_name, line)
                    except Exception:
                        logger.exception("line_callback_failed op_id=%s", op_id)
            stream.close()

        readers = [
            threading.Thread(target=_read, args=(proc.stdout, STREAM_STDOUT), name="ytdlp-stdout-reader", daemon=True),
            threading.Thread(target=_read, args=(proc.stderr, STREAM_STDERR), name="ytdlp-stderr-reader", daemon=True),
        ]
        for reader in readers:
            reader.start()

        deadline = None
        if policy.timeout_seconds is not None:
            deadline = time.monotonic() + policy.timeout_seconds
        timed_out = False
        try:
            while proc.poll() is None:
                if abort.is_set() or self.is_cancelled(op_id):
                    break
                if deadline is not None and time.monotonic() >= deadline:
                    timed_out = True
                    break
                time.sleep(policy.poll_interval_seconds)
            if proc.poll() is None:
                self._terminate(proc, policy.kill_grace_seconds)
            return_code = proc.poll()
        finally:
            self._unregister(op_id)
        for reader in readers:
            reader.join(timeout=policy.reader_join_timeout_seconds)

        with buffer_lock:
            stdout_text = "\n".join(buffers[STREAM_STDOUT])
            stderr_text = "\n".join(buffers[STREAM_STDERR])
        detected = frozenset(detector.name for detector in active if detector.fired)

        if self.is_cancelled(op_id):
            outcome = Outcome.CANCELLED
        elif "live" in detected:
            outcome = Outcome.LIVE_DETECTED
        elif "upcoming" in detected or YTDLP_UPCOMING_MARKER in stderr_text:
            outcome = Outcome.UPCOMING_DETECTED
        elif timed_out:
            outcome = Outcome.TIMED_OUT
            stderr_text = f"{stderr_text}\ntimed out after {policy.timeout_seconds:g}s".lstrip("\n")
        elif return_code == 0:
            outcome = Outcome.SUCCEEDED
        else:
            outcome = Outcome.FAILED

        _log_event(
            logging.INFO,
            "process_attempt_finished",
            op_id=op_id,
            attempt=attempt_no,
            outcome=outcome.value,
            return_code=return_code,
            detected=sorted(detected),
        )
        return AttemptResult(
            attempt=attempt_no,
            outcome=outcome,
            return_code=return_code,
            stdout=stdout_text,
            stderr=stderr_text,
            detected=detected,
        )
