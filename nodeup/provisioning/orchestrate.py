"""Server creation: launch, wait for running, wait for SSH, stabilize, bootstrap."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from nodeup.provisioning.errors import ProvisioningError, WaitTimeoutError
from nodeup.provisioning.lifecycle import LIFECYCLE_POLL_INTERVAL_SECONDS, wait_for_instance_state
from nodeup.provisioning.ssh import wait_for_ssh
from nodeup.provisioning.types import BootstrapRequest, Instance, LaunchRequest, LifecycleState, NetworkInterface, WaitPolicy

logger = logging.getLogger(__name__)

WAIT_FOR_SSH_INTERVAL_SECONDS = 2


class Stage(Enum):
    SUBMITTED = "submitted"
    RUNNING = "running"
    NETWORK_RESOLVED = "network_resolved"
    REACHABLE = "reachable"
    STABILIZED = "stabilized"
    BOOTSTRAPPED = "bootstrapped"


@dataclass
class ServerResult:
    instance: Instance
    network_interface: NetworkInterface | None = None
    address: str | None = None
    node_name: str | None = None
    stages: list[Stage] = field(default_factory=list)


def build_launch_request(options) -> LaunchRequest:
    return LaunchRequest(
        availability_domain=options.availability_domain,
        image_id=options.image_id,
        shape=options.shape,
        subnet_id=options.subnet_id,
        compartment_id=options.compartment_id,
        display_name=options.display_name,
        hostname_label=options.hostname_label,
        metadata=options.metadata,
        ssh_user=options.ssh_user,
    )


async def resolve_network_interface(backend, instance: Instance) -> NetworkInterface:
    """Return the instance's first network interface (there should be exactly one)."""
    attachments = await backend.list_network_attachments(instance.compartment_id, instance.id)
    if not attachments:
        raise ProvisioningError(f"Instance '{instance.display_name}' has no network attachment.")
    return await backend.get_network_interface(attachments[0].network_interface_id)


def select_address(network_interface: NetworkInterface, use_private_ip=False):
    kind, address = ("private", network_interface.private_ip) if use_private_ip else ("public", network_interface.public_ip)
    if not address:
        raise ProvisioningError(f"Network interface {network_interface.id} has no {kind} IP address.")
    return address


async def create_server(options, backend, agent, *, prober=None, progress=None, clock=time.monotonic, sleep=asyncio.sleep):
    """Launch an instance and bootstrap it once SSH is up.

    Stages run strictly in order; any failure aborts the whole run.

    Args:
        options: validated ``ServerCreateOptions``.
        backend: ``ProvisioningBackend`` for the chosen provider.
        agent: bootstrap agent with ``async bootstrap(BootstrapRequest)``.
        prober: optional prober override for the SSH wait.
        progress: optional ``ProgressIndicator`` for the two waits.
        clock, sleep: injectable for tests.

    Returns:
        ServerResult with every stage reached.

    Raises:
        ProvisioningError: the instance did not reach RUNNING or has no address.
        WaitTimeoutError: SSH did not become reachable in time.
        BootstrapError: propagated from the agent.
    """
    instance = await backend.create_instance(build_launch_request(options))
    result = ServerResult(instance=instance, stages=[Stage.SUBMITTED])
    logger.info(f"Launched instance '{instance.display_name}' [{instance.id}]")

    instance = await wait_for_instance_state(
        backend,
        instance.id,
        LifecycleState.RUNNING,
        interval=LIFECYCLE_POLL_INTERVAL_SECONDS,
        max_wait=options.wait_for_running_max,
        progress=progress,
        clock=clock,
        sleep=sleep,
    )
    result.instance = instance
    result.stages.append(Stage.RUNNING)
    logger.info(f"Instance '{instance.display_name}' is now running.")

    network_interface = await resolve_network_interface(backend, instance)
    address = select_address(network_interface, options.use_private_ip)
    result.network_interface = network_interface
    result.address = address
    result.stages.append(Stage.NETWORK_RESOLVED)

    policy = WaitPolicy(interval=WAIT_FOR_SSH_INTERVAL_SECONDS, max_wait=options.wait_for_ssh_max)
    reachable = await wait_for_ssh(
        address,
        network_interface.ssh_port,
        policy,
        options.gateway,
        prober=prober,
        progress=progress,
        clock=clock,
        sleep=sleep,
    )
    if not reachable:
        raise WaitTimeoutError("Timed out while waiting for SSH access.")
    result.stages.append(Stage.REACHABLE)

    # Runs even when wait_to_stabilize is 0
    logger.debug(f"Waiting {options.wait_to_stabilize}s for the host to stabilize")
    await sleep(options.wait_to_stabilize)
    result.stages.append(Stage.STABILIZED)

    node_name = options.node_name or instance.display_name
    result.node_name = node_name
    logger.info(f"Bootstrapping with node name '{node_name}'.")
    await agent.bootstrap(
        BootstrapRequest(
            address=address,
            node_name=node_name,
            ssh_user=options.ssh_user,
            identity_file=options.identity_file,
            ssh_password=options.ssh_password,
            gateway=options.ssh_gateway,
            gateway_identity=options.gateway.keys[0] if options.gateway and options.gateway.keys else None,
            run_list=options.run_list,
            use_sudo=True,
            yes=options.yes,
        )
    )
    result.stages.append(Stage.BOOTSTRAPPED)
    logger.info(f"Created and bootstrapped node '{node_name}'.")
    return result


def server_details(result: ServerResult):
    """Ordered (label, value) rows describing a created server; empty values are skipped."""
    instance = result.instance
    nic = result.network_interface
    rows = [
        ("Display Name", instance.display_name),
        ("Instance ID", instance.id),
        ("Lifecycle State", instance.lifecycle_state.value),
        ("Region", instance.region),
        ("Shape", instance.shape),
        ("Image ID", instance.image_id),
        ("Launch Time", instance.time_created),
        ("Public IP Address", nic.public_ip if nic else None),
        ("Private IP Address", nic.private_ip if nic else None),
        ("Hostname", nic.hostname_label if nic else None),
        ("Network ID", nic.network_id if nic else None),
        ("SSH Port", str(nic.ssh_port) if nic else None),
        ("Node Name", result.node_name),
    ]
    return [(label, value) for label, value in rows if value]


def log_server_details(result: ServerResult):
    for label, value in server_details(result):
        logger.info(f"{label + ':':<20}{value}")
