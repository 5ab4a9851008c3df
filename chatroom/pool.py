#!/usr/bin/env python3
"""Task-spawning policies for the stream server's per-connection workers."""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_futures
from typing import Any, Callable, Optional, Set

from .util import LOG


def _log_failure(future: Future) -> None:
    exc = future.exception() if not future.cancelled() else None
    if exc is not None:
        LOG.error("Worker crashed: %r", exc)


class WorkerPool:
    """Runs one blocking callable per accepted connection."""

    def submit(self, fn: Callable[..., Any], *args: Any) -> None:
        raise NotImplementedError

    def shutdown(self, wait: bool = False, timeout: Optional[float] = None) -> None:
        """Stop taking work; with ``wait``, block up to ``timeout`` seconds for running workers."""
        raise NotImplementedError


class ThreadPerConnectionPool(WorkerPool):
    """Unbounded: a fresh daemon thread per connection, no cap, no queue."""

    def __init__(self, name_prefix: str = "chat-worker") -> None:
        self.name_prefix = name_prefix
        self._threads: Set[threading.Thread] = set()
        self._lock = threading.Lock()
        self._counter = 0

    def submit(self, fn: Callable[..., Any], *args: Any) -> None:
        with self._lock:
            self._counter += 1
            name = f"{self.name_prefix}-{self._counter}"
        t = threading.Thread(target=self._run, args=(fn, args), name=name, daemon=True)
        with self._lock:
            self._threads.add(t)
        t.start()

    def _run(self, fn: Callable[..., Any], args: tuple) -> None:
        try:
            fn(*args)
        finally:
            with self._lock:
                self._threads.discard(threading.current_thread())

    @property
    def active(self) -> int:
        with self._lock:
            return len(self._threads)

    def shutdown(self, wait: bool = False, timeout: Optional[float] = None) -> None:
        if not wait:
            return
        with self._lock:
            threads = list(self._threads)
        for t in threads:
            t.join(timeout)


class BoundedWorkerPool(WorkerPool):
    """At most ``max_workers`` live sessions; extra connections wait in the executor queue."""

    def __init__(self, max_workers: int, name_prefix: str = "chat-worker") -> None:
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name_prefix)
        self._futures: Set[Future] = set()       # Submitted, not yet finished
        self._lock = threading.Lock()

    def submit(self, fn: Callable[..., Any], *args: Any) -> None:
        future = self._executor.submit(fn, *args)
        with self._lock:
            self._futures.add(future)
        future.add_done_callback(self._finished)

    def _finished(self, future: Future) -> None:
        with self._lock:
            self._futures.discard(future)
        _log_failure(future)

    def shutdown(self, wait: bool = False, timeout: Optional[float] = None) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)   # Queued connections are dropped
        if not wait:
            return
        with self._lock:
            pending = list(self._futures)
        wait_futures(pending, timeout)
