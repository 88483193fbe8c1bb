"""Server provisioning: types, polling, probes, tunnels, providers, orchestration."""

from nodeup.provisioning.bootstrap import KnifeBootstrapAgent
from nodeup.provisioning.cloud import get_backend
from nodeup.provisioning.errors import BootstrapError, ConfigError, ProvisioningError, WaitTimeoutError
from nodeup.provisioning.lifecycle import wait_for_instance_state
from nodeup.provisioning.orchestrate import Stage, create_server
from nodeup.provisioning.poll import Step, poll
from nodeup.provisioning.probe import DirectProber, TunneledProber, select_prober
from nodeup.provisioning.ssh import wait_for_ssh
from nodeup.provisioning.tunnel import GatewayTunnelManager, parse_gateway
from nodeup.provisioning.types import (
    GatewaySpec,
    LifecycleState,
    PollResult,
    ProbeOutcome,
    WaitPolicy,
)

__all__ = [
    "BootstrapError",
    "ConfigError",
    "ProvisioningError",
    "WaitTimeoutError",
    "GatewaySpec",
    "LifecycleState",
    "PollResult",
    "ProbeOutcome",
    "WaitPolicy",
    "Step",
    "poll",
    "DirectProber",
    "TunneledProber",
    "select_prober",
    "GatewayTunnelManager",
    "parse_gateway",
    "wait_for_instance_state",
    "wait_for_ssh",
    "create_server",
    "Stage",
    "get_backend",
    "KnifeBootstrapAgent",
]
