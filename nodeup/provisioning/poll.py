"""Bounded, fixed-interval polling shared by the lifecycle and SSH waiters."""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum

from nodeup.progress import NullProgress
from nodeup.provisioning.types import PollResult

logger = logging.getLogger(__name__)


class StepKind(Enum):
    CONTINUE = "continue"
    SUCCEEDED = "succeeded"
    ABORT = "abort"


@dataclass(frozen=True)
class Step:
    """Tagged result of a single poll attempt.

    ``value`` is whatever the attempt observed (a lifecycle state, a probe
    outcome); it becomes ``PollResult.last``.
    """

    kind: StepKind
    value: object = None
    reason: str | None = None

    @classmethod
    def cont(cls, value=None):
        return cls(StepKind.CONTINUE, value)

    @classmethod
    def succeeded(cls, value=None):
        return cls(StepKind.SUCCEEDED, value)

    @classmethod
    def abort(cls, value=None, reason=None):
        return cls(StepKind.ABORT, value, reason)


def _as_step(outcome):
    if isinstance(outcome, Step):
        return outcome
    return Step.succeeded(outcome) if outcome else Step.cont(outcome)


async def poll(attempt, *, interval, max_wait, progress=None, label=None, clock=time.monotonic, sleep=asyncio.sleep):
    """Call *attempt* every *interval* seconds until it succeeds, aborts, or *max_wait* elapses.

    The deadline is fixed once at entry. The attempt always runs at least
    once, so ``max_wait=0`` means exactly one try and no sleep. Success and
    abort return immediately without sleeping; only a CONTINUE step emits a
    progress tick.

    Args:
        attempt: zero-argument coroutine function returning a ``Step`` or a bool.
        interval: seconds to sleep between attempts.
        max_wait: overall time limit in seconds.
        progress: optional ``ProgressIndicator``; its wait scope is closed on
            every exit path.
        label: text written by the progress indicator when the wait starts.
        clock, sleep: injectable for tests.

    Returns:
        PollResult describing the final attempt.
    """
    progress = progress or NullProgress()
    start = clock()
    deadline = start + max_wait
    result = PollResult()

    with progress.wait(label):
        while True:
            result.attempts += 1
            step = _as_step(await attempt())
            result.last = step.value
            result.elapsed = clock() - start

            if step.kind is StepKind.SUCCEEDED:
                result.succeeded = True
                return result
            if step.kind is StepKind.ABORT:
                result.aborted = True
                result.reason = step.reason
                return result

            progress.tick()
            if clock() >= deadline:
                break
            await sleep(interval)
            if clock() >= deadline:
                break

    result.elapsed = clock() - start
    logger.debug(f"Gave up after {result.attempts} attempt(s) in {result.elapsed:.1f}s (limit {max_wait}s)")
    return result


async def poll_until(attempt, policy, progress=None, label=None, clock=time.monotonic, sleep=asyncio.sleep):
    """``poll`` driven by a ``WaitPolicy``."""
    return await poll(
        attempt,
        interval=policy.interval,
        max_wait=policy.max_wait,
        progress=progress,
        label=label,
        clock=clock,
        sleep=sleep,
    )
