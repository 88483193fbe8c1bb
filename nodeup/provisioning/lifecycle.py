"""Instance lifecycle waiting: poll provider state until a target or terminal state."""

import asyncio
import logging
import time

from nodeup.provisioning.errors import ProvisioningError
from nodeup.provisioning.poll import Step, poll
from nodeup.provisioning.types import TERMINAL_FAILURE_STATES, LifecycleState

logger = logging.getLogger(__name__)

LIFECYCLE_POLL_INTERVAL_SECONDS = 3
DEFAULT_WAIT_FOR_RUNNING_MAX_SECONDS = 1200


async def wait_for_instance_state(
    backend,
    instance_id,
    target=LifecycleState.RUNNING,
    *,
    terminal_states=TERMINAL_FAILURE_STATES,
    interval=LIFECYCLE_POLL_INTERVAL_SECONDS,
    max_wait=DEFAULT_WAIT_FOR_RUNNING_MAX_SECONDS,
    progress=None,
    clock=time.monotonic,
    sleep=asyncio.sleep,
):
    """Poll *instance_id* until it reaches *target*.

    A terminal-failure state stops the wait at once. Whatever ended the wait,
    the last fetched state must be exactly *target*.

    Returns:
        The last Instance snapshot.

    Raises:
        ProvisioningError: terminal state reached, or still not at *target*
            when the wait ran out.
    """
    snapshot = None

    async def _attempt():
        nonlocal snapshot
        snapshot = await backend.get_instance(instance_id)
        state = snapshot.lifecycle_state
        if state == target:
            return Step.succeeded(state)
        if state in terminal_states:
            return Step.abort(state, reason=f"instance reached {state.value}")
        return Step.cont(state)

    label = f"Waiting for instance to reach {target.value.lower()} state..."
    result = await poll(_attempt, interval=interval, max_wait=max_wait, progress=progress, label=label, clock=clock, sleep=sleep)

    if snapshot is None or snapshot.lifecycle_state != target:
        last = result.last.value if result.last is not None else "unknown"
        if result.aborted:
            raise ProvisioningError(f"Instance failed to provision: {result.reason}.")
        raise ProvisioningError(
            f"Instance failed to provision: still {last} after {result.elapsed:.0f}s (limit {max_wait}s)."
        )
    return snapshot
