"""Single-shot TCP reachability probes, direct or through an SSH gateway."""

import asyncio
import contextlib
import logging
from typing import Protocol

from nodeup.provisioning.tunnel import TUNNEL_HOST, GatewayTunnelManager
from nodeup.provisioning.types import GatewaySpec, ProbeOutcome

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 10.0
# The SSH server must announce itself within this window.
READ_TIMEOUT_SECONDS = 5.0
READ_CHUNK_BYTES = 1024


class Prober(Protocol):
    async def probe(self, host, port) -> ProbeOutcome: ...


class DirectProber:
    """Connects straight to ``host:port`` and waits for the peer to speak first.

    A listening port is not enough: the peer must send at least one byte
    (the SSH banner) within *read_timeout*.
    """

    def __init__(self, connect_timeout=CONNECT_TIMEOUT_SECONDS, read_timeout=READ_TIMEOUT_SECONDS):
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout

    async def probe(self, host, port) -> ProbeOutcome:
        writer = None
        try:
            reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=self.connect_timeout)
            try:
                data = await asyncio.wait_for(reader.read(READ_CHUNK_BYTES), timeout=self.read_timeout)
            except TimeoutError:
                return ProbeOutcome.unreachable(f"no data from {host}:{port} within {self.read_timeout}s")
            if not data:
                return ProbeOutcome.unreachable(f"{host}:{port} closed the connection without data")
            return ProbeOutcome.ok()
        except (OSError, TimeoutError) as e:
            return ProbeOutcome.error(e)
        finally:
            if writer is not None:
                writer.close()
                with contextlib.suppress(OSError):
                    await writer.wait_closed()


class TunneledProber:
    """Probes the target through a fresh gateway tunnel per call."""

    def __init__(self, gateway: GatewaySpec, tunnels=None, direct=None):
        self.gateway = gateway
        self.tunnels = tunnels or GatewayTunnelManager()
        self.direct = direct or DirectProber()

    async def probe(self, host, port) -> ProbeOutcome:
        async def _probe_local(local_port):
            return await self.direct.probe(TUNNEL_HOST, local_port)

        return await self.tunnels.with_tunnel(self.gateway, host, port, _probe_local)


def select_prober(gateway=None, tunnels=None, direct=None) -> Prober:
    """Tunneled prober when a gateway is configured, direct otherwise."""
    direct = direct or DirectProber()
    if gateway is None:
        return direct
    return TunneledProber(gateway, tunnels=tunnels, direct=direct)
