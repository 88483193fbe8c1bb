"""Shared pytest fixtures for all test modules."""

import os
import subprocess
import sys

import pytest

from nodeup.config import ServerCreateOptions
from nodeup.provisioning.types import (
    Instance,
    LifecycleState,
    NetworkAttachment,
    NetworkInterface,
    ProbeOutcome,
)

PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))


@pytest.fixture(scope="session")
def project_root():
    """Absolute path to the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def run_cli(project_root):
    """Return a callable that invokes the nodeup CLI as a subprocess."""

    def _run(*args, env=None):
        full_env = {k: v for k, v in os.environ.items() if k != "CLOUDRIFT_API_KEY"}
        full_env.update(env or {})
        result = subprocess.run(
            [sys.executable, "-m", "nodeup.nodeup", *args],
            capture_output=True,
            text=True,
            cwd=project_root,
            env=full_env,
        )
        return result.returncode, result.stdout, result.stderr

    return _run


# ── Fakes ───────────────────────────────────────────────────────────


class FakeClock:
    """Monotonic clock that only moves when the code under test sleeps."""

    def __init__(self, events=None):
        self.now = 0.0
        self.sleeps = []
        self.events = events if events is not None else []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.events.append(("sleep", seconds))
        self.now += seconds


class FakeBackend:
    """ProvisioningBackend that replays a scripted sequence of lifecycle states."""

    name = "fake"
    required_options = ()

    def __init__(self, states, network_interface=None, attachments=None, events=None):
        self.states = list(states)
        self.network_interface = network_interface or NetworkInterface(
            id="nic-1",
            private_ip="10.0.0.5",
            public_ip="203.0.113.10",
            network_id="vcn-1",
            hostname_label="web-1",
        )
        self.attachments = attachments if attachments is not None else [NetworkAttachment("nic-1")]
        self.events = events if events is not None else []
        self.launch_requests = []
        self.get_calls = 0
        self.attachment_calls = []
        self.interface_calls = []

    def _instance(self, state):
        return Instance(id="inst-1", display_name="web-1", lifecycle_state=state, compartment_id="comp-1", shape="VM.Standard2.1")

    async def create_instance(self, request):
        self.launch_requests.append(request)
        self.events.append(("create",))
        return self._instance(LifecycleState.PROVISIONING)

    async def get_instance(self, instance_id):
        # The last scripted state repeats once the script runs out
        state = self.states[min(self.get_calls, len(self.states) - 1)]
        self.get_calls += 1
        self.events.append(("get_instance", state))
        return self._instance(state)

    async def list_network_attachments(self, compartment_id, instance_id):
        self.attachment_calls.append((compartment_id, instance_id))
        self.events.append(("list_network_attachments",))
        return self.attachments

    async def get_network_interface(self, network_interface_id):
        self.interface_calls.append(network_interface_id)
        return self.network_interface


class FakeProber:
    """Prober that replays outcomes; the last one repeats."""

    def __init__(self, outcomes, events=None):
        self.outcomes = list(outcomes)
        self.calls = []
        self.events = events if events is not None else []

    async def probe(self, host, port):
        outcome = self.outcomes[min(len(self.calls), len(self.outcomes) - 1)]
        self.calls.append((host, port))
        self.events.append(("probe", host, port))
        return outcome


class FakeAgent:
    def __init__(self, error=None, events=None):
        self.requests = []
        self.error = error
        self.events = events if events is not None else []

    async def bootstrap(self, request):
        self.requests.append(request)
        self.events.append(("bootstrap", request.address))
        if self.error:
            raise self.error


@pytest.fixture
def events():
    """Shared call log so tests can assert cross-component ordering."""
    return []


@pytest.fixture
def clock(events):
    return FakeClock(events)


@pytest.fixture
def make_backend(events):
    def _make(states, **kwargs):
        return FakeBackend(states, events=events, **kwargs)

    return _make


@pytest.fixture
def make_prober(events):
    def _make(*outcomes):
        return FakeProber(outcomes, events=events)

    return _make


@pytest.fixture
def make_agent(events):
    def _make(error=None):
        return FakeAgent(error=error, events=events)

    return _make


@pytest.fixture
def reachable():
    return ProbeOutcome.ok()


@pytest.fixture
def unreachable():
    return ProbeOutcome.unreachable("silent peer")


@pytest.fixture
def make_options(tmp_path):
    """Factory for validated ServerCreateOptions with sensible test defaults."""

    def _make(**overrides):
        values = {
            "provider": "fake",
            "image_id": "img-1",
            "shape": "VM.Standard2.1",
            "identity_file": str(tmp_path / "id_ed25519"),
            "metadata": {"ssh_authorized_keys": "ssh-ed25519 AAAA test@host"},
            "availability_domain": "AD-1",
            "subnet_id": "subnet-1",
            "ssh_user": "opc",
            "run_list": ["recipe[base]"],
            "wait_to_stabilize": 40,
            "wait_for_ssh_max": 300,
            "wait_for_running_max": 1200,
        }
        values.update(overrides)
        return ServerCreateOptions(**values)

    return _make
