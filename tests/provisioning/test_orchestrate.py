"""End-to-end tests for create_server with fake backend, prober and bootstrap agent."""

import pytest

from nodeup.provisioning.errors import BootstrapError, ProvisioningError, WaitTimeoutError
from nodeup.provisioning.orchestrate import Stage, create_server, server_details
from nodeup.provisioning.types import GatewaySpec, LifecycleState, NetworkInterface

PROVISIONING = LifecycleState.PROVISIONING
RUNNING = LifecycleState.RUNNING


async def test_create_server_full_flow(make_backend, make_prober, make_agent, make_options, clock, events, unreachable, reachable):
    backend = make_backend([PROVISIONING, PROVISIONING, RUNNING])
    prober = make_prober(unreachable, unreachable, reachable)
    agent = make_agent()

    result = await create_server(make_options(), backend, agent, prober=prober, clock=clock, sleep=clock.sleep)

    assert result.stages == [
        Stage.SUBMITTED,
        Stage.RUNNING,
        Stage.NETWORK_RESOLVED,
        Stage.REACHABLE,
        Stage.STABILIZED,
        Stage.BOOTSTRAPPED,
    ]
    assert result.address == "203.0.113.10"
    assert prober.calls == [("203.0.113.10", 22)] * 3
    assert len(agent.requests) == 1
    request = agent.requests[0]
    assert request.address == "203.0.113.10"
    assert request.node_name == "web-1"
    assert request.ssh_user == "opc"
    assert request.run_list == ["recipe[base]"]
    assert request.use_sudo is True
    assert request.gateway is None


async def test_create_server_sequencing(make_backend, make_prober, make_agent, make_options, clock, events, reachable):
    backend = make_backend([PROVISIONING, RUNNING])
    prober = make_prober(reachable)
    agent = make_agent()

    await create_server(make_options(wait_to_stabilize=40), backend, agent, prober=prober, clock=clock, sleep=clock.sleep)

    kinds = [event[0] for event in events]
    assert kinds == [
        "create",
        "get_instance",
        "sleep",
        "get_instance",
        "list_network_attachments",
        "probe",
        "sleep",
        "bootstrap",
    ]
    # lifecycle interval, then the stabilization delay
    assert clock.sleeps == [3, 40]


async def test_create_server_stabilize_sleep_runs_even_when_zero(make_backend, make_prober, make_agent, make_options, clock, reachable):
    backend = make_backend([RUNNING])

    await create_server(make_options(wait_to_stabilize=0), backend, make_agent(), prober=make_prober(reachable), clock=clock, sleep=clock.sleep)

    assert clock.sleeps == [0]


async def test_create_server_launch_request(make_backend, make_prober, make_agent, make_options, clock, reachable):
    backend = make_backend([RUNNING])
    options = make_options(display_name="web-1", hostname_label="web1", compartment_id="comp-1")

    await create_server(options, backend, make_agent(), prober=make_prober(reachable), clock=clock, sleep=clock.sleep)

    (request,) = backend.launch_requests
    assert request.availability_domain == "AD-1"
    assert request.image_id == "img-1"
    assert request.shape == "VM.Standard2.1"
    assert request.subnet_id == "subnet-1"
    assert request.hostname_label == "web1"
    assert request.compartment_id == "comp-1"
    assert request.metadata == {"ssh_authorized_keys": "ssh-ed25519 AAAA test@host"}
    assert backend.attachment_calls == [("comp-1", "inst-1")]


async def test_create_server_terminated_aborts_before_network(make_backend, make_prober, make_agent, make_options, clock, reachable):
    backend = make_backend([PROVISIONING, LifecycleState.TERMINATED])
    prober = make_prober(reachable)
    agent = make_agent()

    with pytest.raises(ProvisioningError, match="failed to provision"):
        await create_server(make_options(), backend, agent, prober=prober, clock=clock, sleep=clock.sleep)

    assert backend.attachment_calls == []
    assert backend.interface_calls == []
    assert prober.calls == []
    assert agent.requests == []


async def test_create_server_ssh_timeout(make_backend, make_prober, make_agent, make_options, clock, unreachable):
    backend = make_backend([RUNNING])
    prober = make_prober(unreachable)
    agent = make_agent()

    with pytest.raises(WaitTimeoutError, match="Timed out while waiting for SSH access"):
        await create_server(make_options(wait_for_ssh_max=0), backend, agent, prober=prober, clock=clock, sleep=clock.sleep)

    assert len(prober.calls) == 1
    assert clock.sleeps == []
    assert agent.requests == []


async def test_create_server_uses_private_ip(make_backend, make_prober, make_agent, make_options, clock, reachable):
    backend = make_backend([RUNNING])
    prober = make_prober(reachable)
    agent = make_agent()

    result = await create_server(make_options(use_private_ip=True), backend, agent, prober=prober, clock=clock, sleep=clock.sleep)

    assert result.address == "10.0.0.5"
    assert prober.calls == [("10.0.0.5", 22)]
    assert agent.requests[0].address == "10.0.0.5"


async def test_create_server_probes_published_ssh_port(make_backend, make_prober, make_agent, make_options, clock, reachable):
    nic = NetworkInterface(id="inst-1", private_ip=None, public_ip="211.21.50.85", ssh_port=57011)
    backend = make_backend([RUNNING], network_interface=nic)
    prober = make_prober(reachable)

    await create_server(make_options(), backend, make_agent(), prober=prober, clock=clock, sleep=clock.sleep)

    assert prober.calls == [("211.21.50.85", 57011)]


async def test_create_server_missing_address(make_backend, make_prober, make_agent, make_options, clock, reachable):
    nic = NetworkInterface(id="nic-1", private_ip="10.0.0.5", public_ip=None)
    backend = make_backend([RUNNING], network_interface=nic)
    prober = make_prober(reachable)

    with pytest.raises(ProvisioningError, match="no public IP"):
        await create_server(make_options(), backend, make_agent(), prober=prober, clock=clock, sleep=clock.sleep)

    assert prober.calls == []


async def test_create_server_no_network_attachment(make_backend, make_prober, make_agent, make_options, clock, reachable):
    backend = make_backend([RUNNING], attachments=[])

    with pytest.raises(ProvisioningError, match="no network attachment"):
        await create_server(make_options(), backend, make_agent(), prober=make_prober(reachable), clock=clock, sleep=clock.sleep)


async def test_create_server_bootstrap_failure_propagates(make_backend, make_prober, make_agent, make_options, clock, reachable):
    backend = make_backend([RUNNING])
    agent = make_agent(error=BootstrapError("knife bootstrap exited with code 1", returncode=1))

    with pytest.raises(BootstrapError, match="exited with code 1"):
        await create_server(make_options(), backend, agent, prober=make_prober(reachable), clock=clock, sleep=clock.sleep)

    assert len(agent.requests) == 1


async def test_create_server_explicit_node_name_and_gateway(make_backend, make_prober, make_agent, make_options, clock, reachable):
    backend = make_backend([RUNNING])
    agent = make_agent()
    options = make_options(
        node_name="chef-web",
        ssh_gateway="jump@bastion:2222",
        gateway=GatewaySpec(host="bastion", user="jump", port=2222),
        ssh_password="hunter2",
        yes=True,
    )

    result = await create_server(options, backend, agent, prober=make_prober(reachable), clock=clock, sleep=clock.sleep)

    assert result.node_name == "chef-web"
    request = agent.requests[0]
    assert request.node_name == "chef-web"
    assert request.gateway == "jump@bastion:2222"
    assert request.ssh_password == "hunter2"
    assert request.yes is True
    assert request.gateway_identity is None


async def test_create_server_passes_gateway_identity_to_agent(make_backend, make_prober, make_agent, make_options, clock, reachable):
    agent = make_agent()
    options = make_options(
        ssh_gateway="jump@bastion:2222",
        gateway=GatewaySpec(host="bastion", user="jump", port=2222, keys=("/keys/jump",)),
    )

    await create_server(options, make_backend([RUNNING]), agent, prober=make_prober(reachable), clock=clock, sleep=clock.sleep)

    assert agent.requests[0].gateway_identity == "/keys/jump"


async def test_server_details(make_backend, make_prober, make_agent, make_options, clock, reachable):
    backend = make_backend([RUNNING])

    result = await create_server(make_options(), backend, make_agent(), prober=make_prober(reachable), clock=clock, sleep=clock.sleep)
    rows = dict(server_details(result))

    assert rows["Display Name"] == "web-1"
    assert rows["Instance ID"] == "inst-1"
    assert rows["Lifecycle State"] == "RUNNING"
    assert rows["Public IP Address"] == "203.0.113.10"
    assert rows["Private IP Address"] == "10.0.0.5"
    assert rows["Hostname"] == "web-1"
    assert rows["Node Name"] == "web-1"
    assert "Image ID" not in rows
