"""Background workers that run slow requests and deliver their results."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

LONG_RUN_QUEUE_SIZE = 2
SEND_OUT_QUEUE_SIZE = 4
SEND_OUT_TIMEOUT = 0.02

_STOP = object()


class QueueFull(Exception):
    """Raised when a task cannot be queued within the allowed time."""


@dataclass
class RequestTask:
    """A unit of work and the callback that delivers its status."""

    work: Callable[[], int]
    send_out: Callable[[int], None]
    status: int = 0


class RequestRunner:
    """Runs queued tasks on one thread and delivers results on another."""

    def __init__(self, long_run_size: int = LONG_RUN_QUEUE_SIZE,
                 send_out_size: int = SEND_OUT_QUEUE_SIZE) -> None:
        self._long_run: queue.Queue = queue.Queue(maxsize=long_run_size)
        self._send_out: queue.Queue = queue.Queue(maxsize=send_out_size)
        self._threads: list[threading.Thread] = []

    def __enter__(self) -> "RequestRunner":
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()

    @property
    def running(self) -> bool:
        return bool(self._threads)

    def start(self) -> None:
        """Start the worker threads; calling it again has no effect."""
        if self._threads:
            return
        self._threads = [
            threading.Thread(target=self._long_loop, name="request-long", daemon=True),
            threading.Thread(target=self._send_loop, name="request-send-out", daemon=True),
        ]
        for thread in self._threads:
            thread.start()

    def stop(self) -> None:
        """Stop the worker threads after the tasks already queued."""
        if not self._threads:
            return
        long_thread, send_thread = self._threads
        self._long_run.put(_STOP)
        long_thread.join()
        self._send_out.put(_STOP)
        send_thread.join()
        self._threads = []

    @staticmethod
    def _put(q: queue.Queue, item: object, timeout: Optional[float]) -> None:
        try:
            if timeout is not None and timeout <= 0:
                q.put_nowait(item)
            else:
                q.put(item, timeout=timeout)
        except queue.Full:
            raise QueueFull("request queue is full") from None

    def push_long_run(self, task: RequestTask, timeout: Optional[float] = None) -> None:
        """Queue ``task`` for execution."""
        self._put(self._long_run, task, timeout)

    def push_send_out(self, task: RequestTask, timeout: Optional[float] = None) -> None:
        """Queue ``task`` for delivery of its status."""
        self._put(self._send_out, task, timeout)

    def _long_loop(self) -> None:
        while True:
            task = self._long_run.get()
            if task is _STOP:
                return
            try:
                task.status = task.work()
            except Exception:
                logger.exception("request task failed")
                task.status = -1
            try:
                self.push_send_out(task, SEND_OUT_TIMEOUT)
            except QueueFull:
                # Delivery queue is busy: let the callback cancel the response.
                task.status = -1
                self._deliver(task)

    def _send_loop(self) -> None:
        while True:
            task = self._send_out.get()
            if task is _STOP:
                return
            self._deliver(task)

    @staticmethod
    def _deliver(task: RequestTask) -> None:
        try:
            task.send_out(task.status)
        except Exception:
            logger.exception("send-out callback failed")