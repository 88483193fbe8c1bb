"""Shared data types for provisioning, polling and providers."""

from dataclasses import dataclass, field
from enum import Enum
from numbers import Real

from nodeup.provisioning.errors import ConfigError

DEFAULT_SSH_PORT = 22


@dataclass(frozen=True)
class WaitPolicy:
    """Fixed-interval wait bounded by an overall maximum, in seconds."""

    interval: float
    max_wait: float

    def __post_init__(self):
        for name in ("interval", "max_wait"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, Real):
                raise ConfigError(f"Wait {name} must be numeric, got {value!r}")
        if self.interval <= 0:
            raise ConfigError(f"Wait interval must be greater than 0, got {self.interval}")
        if self.max_wait < 0:
            raise ConfigError(f"Wait max_wait must be 0 or greater, got {self.max_wait}")


@dataclass(frozen=True)
class GatewaySpec:
    """SSH gateway coordinates parsed from ``user@host:port``."""

    host: str
    user: str | None = None
    port: int = DEFAULT_SSH_PORT
    keys: tuple[str, ...] | None = None

    @property
    def address(self) -> str:
        """Gateway address in the ``user@host:port`` form."""
        host = f"[{self.host}]" if ":" in self.host else self.host
        address = f"{self.user}@{host}" if self.user else host
        return f"{address}:{self.port}"


class ProbeStatus(Enum):
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"
    ERROR = "error"


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of a single connectivity probe.

    ERROR carries the network failure that ended the probe. Waiters treat it
    exactly like UNREACHABLE.
    """

    status: ProbeStatus
    cause: str | None = None

    @property
    def reachable(self) -> bool:
        return self.status is ProbeStatus.REACHABLE

    @classmethod
    def ok(cls):
        return cls(ProbeStatus.REACHABLE)

    @classmethod
    def unreachable(cls, cause=None):
        return cls(ProbeStatus.UNREACHABLE, cause)

    @classmethod
    def error(cls, exc):
        return cls(ProbeStatus.ERROR, f"{type(exc).__name__}: {exc}")


class LifecycleState(Enum):
    """Canonical instance lifecycle states that providers map onto."""

    PROVISIONING = "PROVISIONING"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"
    TERMINATING = "TERMINATING"
    TERMINATED = "TERMINATED"
    UNKNOWN = "UNKNOWN"


TERMINAL_FAILURE_STATES = frozenset({LifecycleState.TERMINATING, LifecycleState.TERMINATED})


@dataclass
class PollResult:
    """Outcome of one bounded poll; owned by the caller once returned."""

    succeeded: bool = False
    last: object = None
    attempts: int = 0
    elapsed: float = 0.0
    aborted: bool = False
    reason: str | None = None

    def __bool__(self):
        return self.succeeded


@dataclass
class Instance:
    id: str
    display_name: str
    lifecycle_state: LifecycleState
    compartment_id: str | None = None
    region: str | None = None
    shape: str | None = None
    image_id: str | None = None
    time_created: str | None = None


@dataclass(frozen=True)
class NetworkAttachment:
    network_interface_id: str


@dataclass
class NetworkInterface:
    id: str
    private_ip: str | None
    public_ip: str | None
    network_id: str | None = None
    hostname_label: str | None = None
    ssh_port: int = DEFAULT_SSH_PORT


@dataclass
class LaunchRequest:
    """Everything a provider needs to launch one instance."""

    availability_domain: str | None
    image_id: str
    shape: str
    subnet_id: str | None = None
    compartment_id: str | None = None
    display_name: str | None = None
    hostname_label: str | None = None
    metadata: dict = field(default_factory=dict)
    ssh_user: str | None = None


@dataclass
class BootstrapRequest:
    """Handoff to the bootstrap agent once the host is reachable."""

    address: str
    node_name: str
    ssh_user: str
    identity_file: str
    ssh_password: str | None = None
    gateway: str | None = None
    gateway_identity: str | None = None
    run_list: list[str] = field(default_factory=list)
    use_sudo: bool = True
    yes: bool = False
