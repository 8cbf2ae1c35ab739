"""Delayed-job scheduler on top of the asyncio event loop.

Every delayed side effect of the autopilot goes through one ``Scheduler``
so that stopping the session can cancel all of it at once.

Keyed jobs hold at most one pending entry per key: a new ``schedule`` call
for the same key replaces the pending job, unless ``coalesce=True`` in
which case the pending job is kept and the new one is dropped.
"""

import asyncio
import inspect
import itertools
import logging
from typing import Any, Callable

logger = logging.getLogger("autopilot.scheduler")

Job = Callable[[], Any]


class Scheduler:
    """Keyed and anonymous delayed jobs with cancellable handles.

    Jobs may be plain callables or coroutine functions; coroutines are
    wrapped in tasks which are also cancelled by :meth:`cancel_all`.
    """

    def __init__(self) -> None:
        self._keyed: dict[str, asyncio.TimerHandle] = {}
        self._anonymous: dict[int, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()
        self._ids = itertools.count()

    # ── Submission ───────────────────────────────────────────────────────

    def schedule(
        self,
        key: str,
        job: Job,
        delay: float,
        coalesce: bool = False,
    ) -> bool:
        """Run *job* after *delay* seconds under *key*.

        Returns ``False`` when the call was coalesced into an already
        pending job, ``True`` otherwise.
        """
        pending = self._keyed.get(key)
        if pending is not None:
            if coalesce:
                return False
            pending.cancel()
        loop = asyncio.get_running_loop()
        self._keyed[key] = loop.call_later(delay, self._fire_keyed, key, job)
        return True

    def call_later(self, delay: float, job: Job) -> int:
        """Run *job* after *delay* seconds; returns a handle id."""
        loop = asyncio.get_running_loop()
        job_id = next(self._ids)
        self._anonymous[job_id] = loop.call_later(
            delay, self._fire_anonymous, job_id, job,
        )
        return job_id

    # ── Queries / cancellation ───────────────────────────────────────────

    def is_pending(self, key: str) -> bool:
        return key in self._keyed

    @property
    def pending_count(self) -> int:
        return len(self._keyed) + len(self._anonymous) + len(self._tasks)

    def cancel(self, key: str) -> bool:
        handle = self._keyed.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        """Cancel every pending job and every running job task."""
        for handle in self._keyed.values():
            handle.cancel()
        for handle in self._anonymous.values():
            handle.cancel()
        for task in self._tasks:
            task.cancel()
        self._keyed.clear()
        self._anonymous.clear()
        self._tasks.clear()

    # ── Internals ────────────────────────────────────────────────────────

    def _fire_keyed(self, key: str, job: Job) -> None:
        self._keyed.pop(key, None)
        self._run(job, key)

    def _fire_anonymous(self, job_id: int, job: Job) -> None:
        self._anonymous.pop(job_id, None)
        self._run(job, f"job-{job_id}")

    def _run(self, job: Job, name: str) -> None:
        try:
            result = job()
        except Exception as exc:
            logger.error("Scheduled job '%s' failed: %s", name, exc)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(lambda t: self._on_task_done(t, name))

    def _on_task_done(self, task: asyncio.Task, name: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Scheduled job '%s' failed: %s", name, exc)
