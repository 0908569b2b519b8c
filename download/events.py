"""In-process fire-and-forget event channel for operation progress and results.

Publishers never block: callback subscribers run inline and their failures
are logged, queue subscribers drop their oldest event when full. Nothing is
buffered for subscribers that attach later.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable

from metadata.types import VideoMetadata

logger = logging.getLogger(__name__)

EVENT_DOWNLOAD_PROGRESS = "download-progress"
EVENT_DOWNLOAD_FINISHED = "download-finished"
EVENT_METADATA_PROGRESS = "metadata-progress"
EVENT_METADATA_FINISHED = "metadata-finished"
EVENT_COMMENTS_PROGRESS = "comments-progress"
EVENT_COMMENTS_FINISHED = "comments-finished"
EVENT_TOOL_DOWNLOAD_PROGRESS = "tool-download-progress"

DEFAULT_SUBSCRIPTION_SIZE = 1000


@dataclass
class Event:
    name: str
    payload: dict[str, Any]


@dataclass
class OperationFinished:
    """Terminal report of one video, metadata or comments operation."""

    id: str
    success: bool
    stdout: str = ""
    stderr: str = ""
    cancelled: bool = False
    classification: str | None = None
    metadata: VideoMetadata | None = None
    has_live_chat: bool | None = None
    is_private: bool | None = None
    is_deleted: bool | None = None
    attempts: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "success": self.success,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "cancelled": self.cancelled,
            "classification": self.classification,
            "metadata": self.metadata.to_dict() if self.metadata is not None else None,
            "hasLiveChat": self.has_live_chat,
            "isPrivate": self.is_private,
            "isDeleted": self.is_deleted,
            "attempts": self.attempts,
        }


class Subscription:
    def __init__(self, bus: "EventBus", maxsize: int) -> None:
        self._bus = bus
        self._queue: queue.Queue[Event] = queue.Queue(maxsize=maxsize)

    def put(self, event: Event) -> None:
        while True:
            try:
                self._queue.put_nowait(event)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass

    def get(self, timeout: float | None = None) -> Event | None:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        self._bus.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *_exc) -> None:
        self.close()


class EventBus:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[Event], None]] = []
        self._subscriptions: list[Subscription] = []

    def add_listener(self, callback: Callable[[Event], None]) -> None:
        with self._lock:
            self._callbacks.append(callback)

    def remove_listener(self, callback: Callable[[Event], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def subscribe(self, maxsize: int = DEFAULT_SUBSCRIPTION_SIZE) -> Subscription:
        subscription = Subscription(self, maxsize)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def publish(self, name: str, payload: dict[str, Any]) -> None:
        event = Event(name=name, payload=payload)
        with self._lock:
            callbacks = list(self._callbacks)
            subscriptions = list(self._subscriptions)
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception("event_listener_failed event=%s", name)
        for subscription in subscriptions:
            subscription.put(event)

    def progress(self, name: str, video_id: str, line: str) -> None:
        self.publish(name, {"id": video_id, "line": line})

    def finished(self, name: str, result: OperationFinished) -> None:
        self.publish(name, result.to_dict())
