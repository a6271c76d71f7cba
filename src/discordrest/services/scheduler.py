"""Per-bucket queueing and release of rate-limited requests."""

from __future__ import annotations

import asyncio
import dataclasses
import functools
import itertools
import logging
from typing import Awaitable, Callable, Dict, Optional, Protocol, Set

from ..core.errors import (
    DispatchError,
    GlobalRateLimitExceeded,
    HTTPError,
    RateLimitExceeded,
    RequestCancelledError,
    RequestTimeoutError,
)
from ..core.models import DispatchResult, ExecutionOutcome, Request
from ..core.rate_limit import Bucket, BucketState, GlobalLock
from ..core.routes import RouteKey

logger = logging.getLogger(__name__)


class Executor(Protocol):
    def execute(self, request: Request) -> Awaitable[ExecutionOutcome]:
        ...


class Submission:
    """Handle for one submitted request.

    Awaiting a submission yields its :class:`DispatchResult`. Errors are
    carried on the result rather than raised, and every submission resolves
    exactly once: executed, timed out, or cancelled.
    """

    def __init__(
        self,
        scheduler: "Scheduler",
        request: Request,
        route_key: RouteKey,
        future: "asyncio.Future[DispatchResult]",
        sequence: int,
        deadline: Optional[float] = None,
    ) -> None:
        self.request = request
        self.route_key = route_key
        self.sequence = sequence
        self.deadline = deadline
        self.retries = 0
        self.rate_limited = False
        self._scheduler = scheduler
        self._future = future
        self._task: Optional[asyncio.Task[ExecutionOutcome]] = None
        self._timeout_handle: Optional[asyncio.TimerHandle] = None

    def __await__(self):
        return self._future.__await__()

    def __repr__(self) -> str:
        return f"<Submission #{self.sequence} {self.request.method.value} {self.request.url}>"

    @property
    def in_flight(self) -> bool:
        return self._task is not None

    def done(self) -> bool:
        return self._future.done()

    def result(self) -> DispatchResult:
        return self._future.result()

    def cancel(self) -> bool:
        """Withdraw the request; best effort once it is executing."""

        return self._scheduler.cancel(self)

    def add_done_callback(self, fn: Callable[[DispatchResult], None]) -> None:
        """Run ``fn`` with the final result on the event loop."""

        def _deliver(future: "asyncio.Future[DispatchResult]") -> None:
            if future.cancelled():
                fn(DispatchResult(None, 0, self.rate_limited, RequestCancelledError("Submission cancelled")))
            else:
                fn(future.result())

        self._future.add_done_callback(_deliver)

    def _resolve(self, result: DispatchResult) -> None:
        if not self._future.done():
            self._future.set_result(result)

    def _cancel_timeout(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None


class Scheduler:
    """Owns the bucket map and global lock and decides when requests fire.

    All state changes happen synchronously on the event loop (in ``submit``,
    timer callbacks and task-done callbacks), so a bucket is never observed
    half-updated and traffic on one bucket never waits on another.
    """

    def __init__(self, executor: Executor, *, max_retries: int = 1, default_retry_after: float = 1.0) -> None:
        self._executor = executor
        self._max_retries = max_retries
        self._default_retry_after = default_retry_after
        self._buckets: Dict[RouteKey, Bucket] = {}
        self._timers: Dict[RouteKey, asyncio.TimerHandle] = {}
        self._global_timer: Optional[asyncio.TimerHandle] = None
        self._sequence = itertools.count()
        self._running: Set[Submission] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.global_lock = GlobalLock()

    @property
    def executor(self) -> Executor:
        return self._executor

    @property
    def loop(self) -> Optional[asyncio.AbstractEventLoop]:
        return self._loop

    def bucket(self, route_key: RouteKey) -> Bucket:
        bucket = self._buckets.get(route_key)
        if bucket is None:
            bucket = self._buckets[route_key] = Bucket()
        return bucket

    def submit(self, request: Request, route_key: RouteKey, timeout: Optional[float] = None) -> Submission:
        """Queue ``request`` behind its bucket siblings and release what can run.

        Must be called from the event loop thread; it never blocks.
        """

        loop = self._bind_loop()
        if not request.created_at:
            request = dataclasses.replace(request, created_at=loop.time())
        bucket = self.bucket(route_key)
        deadline = loop.time() + timeout if timeout is not None else None
        submission = Submission(self, request, route_key, loop.create_future(), next(self._sequence), deadline)
        submission._future.add_done_callback(functools.partial(self._on_future_done, submission))
        self._enqueue(bucket, submission)
        self._drain(route_key, bucket)
        return submission

    def cancel(self, submission: Submission) -> bool:
        if submission.done():
            return False
        if submission._task is not None:
            submission._task.cancel()
            return True
        self._withdraw(submission)
        submission._resolve(
            DispatchResult(None, 0, submission.rate_limited, RequestCancelledError("Cancelled before dispatch"))
        )
        return True

    def close(self) -> None:
        """Cancel timers and every queued or running submission."""

        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        if self._global_timer is not None:
            self._global_timer.cancel()
            self._global_timer = None
        for bucket in self._buckets.values():
            for submission in list(bucket.queue):
                self.cancel(submission)
        for submission in list(self._running):
            self.cancel(submission)

    def _bind_loop(self) -> asyncio.AbstractEventLoop:
        loop = asyncio.get_running_loop()
        if self._loop is None or self._loop.is_closed():
            self._loop = loop
        elif self._loop is not loop:
            raise RuntimeError("Scheduler is bound to a different event loop")
        return loop

    def _enqueue(self, bucket: Bucket, submission: Submission, *, front: bool = False) -> None:
        assert self._loop is not None
        if front:
            bucket.queue.appendleft(submission)
        else:
            bucket.queue.append(submission)
        if submission.deadline is not None:
            submission._timeout_handle = self._loop.call_at(submission.deadline, self._expire, bucket, submission)
        logger.debug("Queued %r on %s (depth=%d)", submission, submission.route_key, len(bucket.queue))

    def _withdraw(self, submission: Submission) -> None:
        submission._cancel_timeout()
        bucket = self._buckets.get(submission.route_key)
        if bucket is None:
            return
        try:
            bucket.queue.remove(submission)
        except ValueError:
            pass

    def _expire(self, bucket: Bucket, submission: Submission) -> None:
        submission._timeout_handle = None
        if submission.done():
            return
        try:
            bucket.queue.remove(submission)
        except ValueError:
            return
        logger.debug("Timed out %r while queued on %s", submission, submission.route_key)
        submission._resolve(
            DispatchResult(None, 0, submission.rate_limited, RequestTimeoutError("Deadline passed while queued"))
        )

    def _on_future_done(self, submission: Submission, future: "asyncio.Future[DispatchResult]") -> None:
        if not future.cancelled():
            return
        # the awaiting task was cancelled, which cancels the future itself
        self._withdraw(submission)
        if submission._task is not None:
            submission._task.cancel()

    def _drain(self, route_key: RouteKey, bucket: Bucket) -> None:
        assert self._loop is not None
        now = self._loop.time()
        if self.global_lock.is_locked(now):
            if bucket.queue:
                self._arm_global_timer()
            return
        while bucket.queue and bucket.can_dispatch(now):
            submission = bucket.queue.popleft()
            if submission.done():
                continue
            self._dispatch(route_key, bucket, submission)
        if bucket.queue and bucket.state is BucketState.EXHAUSTED and bucket.reset_at is not None:
            self._arm_bucket_timer(route_key, bucket.reset_at)

    def _dispatch(self, route_key: RouteKey, bucket: Bucket, submission: Submission) -> None:
        assert self._loop is not None
        submission._cancel_timeout()
        bucket.begin()
        logger.debug(
            "Dispatching %r on %s after %.3fs (in_flight=%d)",
            submission,
            route_key,
            self._loop.time() - submission.request.created_at,
            bucket.in_flight,
        )
        task = self._loop.create_task(self._execute(submission.request))
        submission._task = task
        self._running.add(submission)
        task.add_done_callback(functools.partial(self._on_executed, route_key, bucket, submission))

    async def _execute(self, request: Request) -> ExecutionOutcome:
        return await self._executor.execute(request)

    def _on_executed(
        self,
        route_key: RouteKey,
        bucket: Bucket,
        submission: Submission,
        task: "asyncio.Task[ExecutionOutcome]",
    ) -> None:
        submission._task = None
        self._running.discard(submission)
        bucket.finish()
        if task.cancelled():
            submission._resolve(
                DispatchResult(None, 0, submission.rate_limited, RequestCancelledError("Cancelled while in flight"))
            )
        else:
            exc = task.exception()
            if exc is None:
                self._handle_outcome(route_key, bucket, submission, task.result())
            elif isinstance(exc, DispatchError):
                submission._resolve(DispatchResult(exc.body, exc.status_code or 0, submission.rate_limited, exc))
            else:
                logger.error("Executor raised for %r on %s", submission, route_key, exc_info=exc)
                error = DispatchError(f"Executor failed: {exc!r}")
                error.__cause__ = exc
                submission._resolve(DispatchResult(None, 0, submission.rate_limited, error))
        self._drain(route_key, bucket)

    def _handle_outcome(
        self,
        route_key: RouteKey,
        bucket: Bucket,
        submission: Submission,
        outcome: ExecutionOutcome,
    ) -> None:
        assert self._loop is not None
        now = self._loop.time()
        info = outcome.rate_limit

        if outcome.status_code != 429:
            bucket.apply(info, now, self._default_retry_after)
            error: Optional[DispatchError] = None
            if outcome.status_code >= 400:
                error = HTTPError(
                    f"{route_key} returned HTTP {outcome.status_code}",
                    status_code=outcome.status_code,
                    body=outcome.body,
                )
            submission._resolve(DispatchResult(outcome.body, outcome.status_code, submission.rate_limited, error))
            return

        submission.rate_limited = True
        retry_after = info.retry_after
        if retry_after is None:
            retry_after = info.reset_after if info.reset_after is not None else self._default_retry_after

        if info.is_global:
            self.global_lock.engage(now + retry_after)
            logger.warning("Global rate limit hit by %s; pausing all buckets for %.3fs", route_key, retry_after)
        else:
            bucket.apply(info, now, retry_after)
            bucket.exhaust(now + retry_after)
            logger.warning("Rate limited on %s; bucket paused for %.3fs", route_key, retry_after)

        if submission.done():
            return
        if submission.retries < self._max_retries:
            if submission.deadline is not None and now >= submission.deadline:
                logger.debug("Timed out %r before it could be requeued on %s", submission, route_key)
                submission._resolve(DispatchResult(None, 0, True, RequestTimeoutError("Deadline passed before retry")))
                return
            submission.retries += 1
            self._enqueue(bucket, submission, front=True)
            return

        error_cls = GlobalRateLimitExceeded if info.is_global else RateLimitExceeded
        exceeded = error_cls(
            f"{route_key} still rate limited after {submission.retries} retries",
            retry_after=retry_after,
            body=outcome.body,
        )
        submission._resolve(DispatchResult(outcome.body, 429, True, exceeded))

    def _arm_bucket_timer(self, route_key: RouteKey, when: float) -> None:
        assert self._loop is not None
        existing = self._timers.get(route_key)
        if existing is not None:
            if existing.when() == when:
                return
            existing.cancel()
        self._timers[route_key] = self._loop.call_at(when, self._on_bucket_timer, route_key)

    def _on_bucket_timer(self, route_key: RouteKey) -> None:
        self._timers.pop(route_key, None)
        bucket = self._buckets.get(route_key)
        if bucket is not None:
            self._drain(route_key, bucket)

    def _arm_global_timer(self) -> None:
        assert self._loop is not None
        if self._global_timer is not None:
            return
        self._global_timer = self._loop.call_at(self.global_lock.resume_at, self._on_global_release)

    def _on_global_release(self) -> None:
        assert self._loop is not None
        self._global_timer = None
        if self.global_lock.is_locked(self._loop.time()):
            # extended while we waited
            self._arm_global_timer()
            return
        logger.info("Global rate limit lifted")
        for route_key, bucket in list(self._buckets.items()):
            if bucket.queue:
                self._drain(route_key, bucket)
