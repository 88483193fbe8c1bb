"""SSH readiness polling, direct or through a gateway."""

import asyncio
import logging
import time

from nodeup.provisioning.poll import Step, poll_until
from nodeup.provisioning.probe import select_prober

logger = logging.getLogger(__name__)


async def wait_for_ssh(host, port, policy, gateway=None, *, prober=None, progress=None, clock=time.monotonic, sleep=asyncio.sleep):
    """Poll SSH reachability of ``host:port`` until success or timeout.

    Every failed probe, whatever its cause, just means "not yet"; only the
    overall deadline ends the wait.

    Returns:
        True if the SSH server answered, False on timeout.
    """
    prober = prober or select_prober(gateway)

    async def _attempt():
        outcome = await prober.probe(host, port)
        if outcome.reachable:
            return Step.succeeded(outcome)
        logger.debug(f"SSH probe {host}:{port}: {outcome.status.value} {outcome.cause or ''}".rstrip())
        return Step.cont(outcome)

    result = await poll_until(_attempt, policy, progress=progress, label="Waiting for ssh access...", clock=clock, sleep=sleep)
    if not result.succeeded:
        via = f" via {gateway.address}" if gateway else ""
        logger.error(f"Timeout after {policy.max_wait}s waiting for SSH connectivity to {host}:{port}{via}")
    return result.succeeded
