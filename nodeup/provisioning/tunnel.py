"""SSH gateway tunnels: one short-lived local forward per connectivity probe."""

import contextlib
import logging

import asyncssh

from nodeup.provisioning.errors import ConfigError
from nodeup.provisioning.types import DEFAULT_SSH_PORT, GatewaySpec, ProbeOutcome

logger = logging.getLogger(__name__)

TUNNEL_HOST = "localhost"


def parse_gateway(address, keys=None):
    """Parse a ``user@host:port`` gateway address.

    User and port are optional. IPv6 hosts are written in brackets, as in
    ``jump@[2001:db8::1]:22``. Returns None for a blank address, which
    means direct connectivity.
    """
    if not address or not address.strip():
        return None

    user, _, host_port = address.strip().rpartition("@")
    if host_port.startswith("["):
        host, bracket, rest = host_port[1:].partition("]")
        if not bracket:
            raise ConfigError(f"Invalid SSH gateway '{address}': missing ']' after IPv6 host")
        if rest and not rest.startswith(":"):
            raise ConfigError(f"Invalid SSH gateway '{address}': unexpected text after ']'")
        sep, port_text = rest[:1], rest[1:]
    else:
        host, sep, port_text = host_port.partition(":")
    if not host:
        raise ConfigError(f"Invalid SSH gateway '{address}': missing host")

    port = DEFAULT_SSH_PORT
    if sep:
        try:
            port = int(port_text)
        except ValueError:
            raise ConfigError(f"Invalid SSH gateway '{address}': port must be numeric") from None
        if not 0 < port < 65536:
            raise ConfigError(f"Invalid SSH gateway '{address}': port out of range")

    return GatewaySpec(host=host, user=user or None, port=port, keys=tuple(keys) if keys else None)


class GatewayTunnelManager:
    """Opens SSH local forwards through a gateway host.

    Gateway user and keys that are not given explicitly are left to asyncssh,
    which looks them up in the OpenSSH client configuration for the gateway
    host (``~/.ssh/config`` unless *ssh_config* names other files).
    """

    def __init__(self, connect=None, known_hosts=None, connect_timeout=10.0, ssh_config=()):
        self._connect = connect or asyncssh.connect
        self.known_hosts = known_hosts
        self.connect_timeout = connect_timeout
        self.ssh_config = ssh_config

    def connect_options(self, gateway: GatewaySpec) -> dict:
        """Keyword arguments for ``asyncssh.connect`` to reach *gateway*."""
        options = {
            "port": gateway.port,
            "known_hosts": self.known_hosts,
            "connect_timeout": self.connect_timeout,
            "config": self.ssh_config,
        }
        if gateway.user:
            options["username"] = gateway.user
        if gateway.keys:
            options["client_keys"] = list(gateway.keys)
        return options

    @contextlib.asynccontextmanager
    async def open(self, gateway: GatewaySpec, host, port):
        """Forward a local port to ``host:port`` through *gateway*; yields the local port.

        The listener and the gateway connection are closed on every exit path.
        """
        conn = await self._connect(gateway.host, **self.connect_options(gateway))
        try:
            listener = await conn.forward_local_port(TUNNEL_HOST, 0, host, port)
            try:
                local_port = listener.get_port()
                logger.debug(f"Tunnel {TUNNEL_HOST}:{local_port} -> {host}:{port} via {gateway.address}")
                yield local_port
            finally:
                listener.close()
                await listener.wait_closed()
        finally:
            conn.close()
            await conn.wait_closed()

    async def with_tunnel(self, gateway: GatewaySpec, host, port, fn):
        """Run ``await fn(local_port)`` inside a fresh tunnel.

        Network and SSH failures come back as an ERROR ``ProbeOutcome``; any
        other exception propagates after the tunnel is torn down.
        """
        try:
            async with self.open(gateway, host, port) as local_port:
                return await fn(local_port)
        except (OSError, TimeoutError, asyncssh.Error) as e:
            logger.debug(f"Tunnel via {gateway.address} to {host}:{port} failed: {e}")
            return ProbeOutcome.error(e)
