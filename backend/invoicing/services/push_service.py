"""
Push delivery - best-effort real-time events to a user or a named group.

The persisted Notification row is the source of truth. Everything here is a
latency optimisation:

1. Delivery never blocks or fails the request that triggered it
2. A failed attempt is retried a small, bounded number of times
3. A full queue or an exhausted retry budget drops the event with a log line
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any

from ..errors import TransientDeliveryError

logger = logging.getLogger(__name__)

ADMINS_GROUP = "Admins"

EVENT_RECEIVE_NOTIFICATION = "ReceiveNotification"
EVENT_NOTIFICATION_UPDATED = "NotificationUpdated"
EVENT_NOTIFICATION_DELETED = "NotificationDeleted"
EVENT_ALL_NOTIFICATIONS_READ = "AllNotificationsRead"


@dataclass
class PushEvent:
    """A named event addressed to one user id or to one group."""
    event: str
    payload: Any
    user_id: int | None = None
    group: str | None = None
    attempts: int = 0
    created_at: float = field(default_factory=time.time)

    @property
    def target(self) -> str:
        return f"user:{self.user_id}" if self.user_id is not None else f"group:{self.group}"


class PushChannel:
    """
    Transport seam. Implementations raise TransientDeliveryError (or any
    exception) when an event cannot be handed off.
    """

    def send_to_user(self, user_id: int, event: str, payload: Any) -> None:
        raise NotImplementedError

    def send_to_group(self, group: str, event: str, payload: Any) -> None:
        raise NotImplementedError

    def add_to_group(self, group: str, user_id: int) -> None:
        raise NotImplementedError

    def remove_from_group(self, group: str, user_id: int) -> None:
        raise NotImplementedError


class InMemoryPushChannel(PushChannel):
    """
    Process-local transport. Keeps the most recent events per user so a
    client (or a test) can inspect what was delivered. Group sends fan out
    to current members.
    """

    def __init__(self, history_size: int = 100):
        self._lock = threading.Lock()
        self._groups: dict[str, set[int]] = defaultdict(set)
        self._inbox: dict[int, deque] = defaultdict(lambda: deque(maxlen=history_size))

    def send_to_user(self, user_id: int, event: str, payload: Any) -> None:
        with self._lock:
            self._inbox[user_id].append((event, payload))

    def send_to_group(self, group: str, event: str, payload: Any) -> None:
        with self._lock:
            members = list(self._groups.get(group, ()))
            for user_id in members:
                self._inbox[user_id].append((event, payload))

    def add_to_group(self, group: str, user_id: int) -> None:
        with self._lock:
            self._groups[group].add(user_id)

    def remove_from_group(self, group: str, user_id: int) -> None:
        with self._lock:
            self._groups.get(group, set()).discard(user_id)

    def events_for(self, user_id: int) -> list[tuple[str, Any]]:
        with self._lock:
            return list(self._inbox.get(user_id, ()))

    def members(self, group: str) -> set[int]:
        with self._lock:
            return set(self._groups.get(group, ()))


class PushDispatcher:
    """
    Hands push events to a PushChannel.

    async_mode=True: events go on a bounded queue drained by worker threads.
    async_mode=False: the same retry loop runs inline (tests, CLI).
    """

    def __init__(
        self,
        channel: PushChannel,
        *,
        async_mode: bool = True,
        queue_size: int = 1000,
        workers: int = 2,
        max_retries: int = 2,
        backoff_base: float = 0.5,
    ):
        self.channel = channel
        self.async_mode = async_mode
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._queue: queue.Queue[PushEvent] = queue.Queue(maxsize=queue_size)
        self._workers_count = workers
        self._workers: list[threading.Thread] = []
        self._start_lock = threading.Lock()
        self._shutdown = threading.Event()

    def push_to_user(self, user_id: int, event: str, payload: Any) -> bool:
        return self._submit(PushEvent(event=event, payload=payload, user_id=user_id))

    def push_to_group(self, group: str, event: str, payload: Any) -> bool:
        return self._submit(PushEvent(event=event, payload=payload, group=group))

    def join_group(self, group: str, user_id: int) -> None:
        try:
            self.channel.add_to_group(group, user_id)
        except Exception:
            logger.warning("Could not add user %s to push group %s", user_id, group, exc_info=True)

    def leave_group(self, group: str, user_id: int) -> None:
        try:
            self.channel.remove_from_group(group, user_id)
        except Exception:
            logger.warning("Could not remove user %s from push group %s", user_id, group, exc_info=True)

    def drain(self) -> None:
        """Block until every queued event has been processed."""
        if self.async_mode:
            self._queue.join()

    def shutdown(self) -> None:
        self._shutdown.set()
        for worker in self._workers:
            worker.join(timeout=2.0)
        self._workers = []

    # ------------------------------------------------------------------

    def _submit(self, event: PushEvent) -> bool:
        if not self.async_mode:
            return self._deliver_with_retry(event)

        self._ensure_workers()
        try:
            self._queue.put_nowait(event)
            return True
        except queue.Full:
            logger.error("Push queue full, dropping %s for %s", event.event, event.target)
            return False

    def _ensure_workers(self) -> None:
        if self._workers:
            return
        with self._start_lock:
            if self._workers:
                return
            for index in range(self._workers_count):
                worker = threading.Thread(
                    target=self._worker_loop, daemon=True, name=f"push_worker_{index}"
                )
                worker.start()
                self._workers.append(worker)
            logger.info("Started %d push worker(s)", self._workers_count)

    def _worker_loop(self) -> None:
        while not self._shutdown.is_set():
            try:
                event = self._queue.get(timeout=1.0)
            except queue.Empty:
                continue
            try:
                self._deliver_with_retry(event)
            except Exception:
                logger.exception("Push worker error")
            finally:
                self._queue.task_done()

    def _deliver_with_retry(self, event: PushEvent) -> bool:
        while True:
            event.attempts += 1
            try:
                self._deliver(event)
                return True
            except Exception as exc:
                failure = exc if isinstance(exc, TransientDeliveryError) else TransientDeliveryError(str(exc))
                if event.attempts > self.max_retries:
                    logger.error(
                        "Dropping push %s for %s after %d attempt(s): %s",
                        event.event, event.target, event.attempts, failure,
                    )
                    return False
                logger.warning(
                    "Push %s for %s failed (attempt %d): %s",
                    event.event, event.target, event.attempts, failure,
                )
                if self.backoff_base > 0:
                    time.sleep(min(self.backoff_base * (2 ** (event.attempts - 1)), 10))

    def _deliver(self, event: PushEvent) -> None:
        if event.user_id is not None:
            self.channel.send_to_user(event.user_id, event.event, event.payload)
        else:
            self.channel.send_to_group(event.group, event.event, event.payload)
