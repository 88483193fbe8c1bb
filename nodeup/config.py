"""Server-create options: YAML config file, CLI overrides and validation.

All validation runs before the first provider call.
"""

import base64
import json
import logging
import os
import re
from dataclasses import dataclass, field

import yaml

from nodeup.provisioning.errors import ConfigError
from nodeup.provisioning.tunnel import parse_gateway
from nodeup.provisioning.types import GatewaySpec

logger = logging.getLogger(__name__)

DEFAULT_SSH_USER = "opc"
DEFAULT_WAIT_TO_STABILIZE_SECONDS = 40
DEFAULT_WAIT_FOR_SSH_MAX_SECONDS = 300
DEFAULT_WAIT_FOR_RUNNING_MAX_SECONDS = 1200
SSH_PASSWORD_ENV = "NODEUP_SSH_PASSWORD"

WAIT_OPTION_DEFAULTS = {
    "wait_to_stabilize": DEFAULT_WAIT_TO_STABILIZE_SECONDS,
    "wait_for_ssh_max": DEFAULT_WAIT_FOR_SSH_MAX_SECONDS,
    "wait_for_running_max": DEFAULT_WAIT_FOR_RUNNING_MAX_SECONDS,
}

METADATA_EXAMPLE = '\'{"key1":"value1", "key2":"value2"}\''


@dataclass
class ServerCreateOptions:
    """Validated options for one ``server create`` run."""

    provider: str
    image_id: str | None
    shape: str | None
    identity_file: str
    metadata: dict
    availability_domain: str | None = None
    subnet_id: str | None = None
    compartment_id: str | None = None
    display_name: str | None = None
    hostname_label: str | None = None
    use_private_ip: bool = False
    ssh_user: str = DEFAULT_SSH_USER
    ssh_password: str | None = None
    ssh_gateway: str | None = None
    gateway: GatewaySpec | None = None
    node_name: str | None = None
    run_list: list[str] = field(default_factory=list)
    wait_to_stabilize: int = DEFAULT_WAIT_TO_STABILIZE_SECONDS
    wait_for_ssh_max: int = DEFAULT_WAIT_FOR_SSH_MAX_SECONDS
    wait_for_running_max: int = DEFAULT_WAIT_FOR_RUNNING_MAX_SECONDS
    yes: bool = False


def option_flag(name):
    """CLI flag for an option name: ``wait_for_ssh_max`` -> ``--wait-for-ssh-max``."""
    return "--" + name.replace("_", "-")


def _is_blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def load_config_file(path):
    """Load option defaults from a YAML file.

    Returns:
        dict of option values; a ``providers`` key, if present, holds
        per-provider settings.
    """
    path = os.path.expanduser(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}") from None
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file {path} is not valid YAML: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping of options")
    return {key.replace("-", "_"): value for key, value in data.items()}


def validate_required(values, names):
    missing = [option_flag(name) for name in names if _is_blank(values.get(name))]
    if missing:
        raise ConfigError(f"Missing required option(s): {', '.join(missing)}")


def validate_wait_option(name, value, default):
    """Parse a wait option in whole seconds; blank means *default*."""
    flag = option_flag(name)
    if _is_blank(value):
        return default
    try:
        seconds = int(str(value).strip())
    except ValueError:
        raise ConfigError(f"{flag} must be numeric") from None
    if seconds < 0:
        raise ConfigError(f"{flag} must be 0 or greater")
    return seconds


def validate_wait_options(values):
    return {name: validate_wait_option(name, values.get(name), default) for name, default in WAIT_OPTION_DEFAULTS.items()}


def read_file_content(path):
    """Return the contents of *path*, or None when no path is given."""
    if _is_blank(path):
        return None
    path = os.path.expanduser(path)
    try:
        with open(path) as f:
            return f.read()
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e.strerror}") from e


def merge_metadata(metadata, ssh_authorized_keys=None, user_data=None):
    """Combine ``--metadata`` JSON with the authorized-keys and user-data files.

    A key may come from the file option or from the JSON, never both. User
    data is base64 encoded.
    """
    if _is_blank(metadata):
        merged = {}
    elif isinstance(metadata, dict):
        merged = dict(metadata)
    else:
        try:
            merged = json.loads(metadata)
        except json.JSONDecodeError:
            raise ConfigError(f"Metadata value must be in JSON format. Example: {METADATA_EXAMPLE}") from None
        if not isinstance(merged, dict):
            raise ConfigError(f"Metadata value must be a JSON object. Example: {METADATA_EXAMPLE}")

    if ssh_authorized_keys:
        if "ssh_authorized_keys" in merged:
            raise ConfigError("Cannot specify ssh-authorized-keys as part of both --ssh-authorized-keys-file and --metadata.")
        merged["ssh_authorized_keys"] = ssh_authorized_keys

    if user_data:
        if "user_data" in merged:
            raise ConfigError("Cannot specify CloudInit user-data as part of both --user-data-file and --metadata.")
        merged["user_data"] = base64.b64encode(user_data.encode()).decode()

    return merged


def parse_run_list(value):
    """Split a comma/space separated run list; lists pass through."""
    if _is_blank(value):
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    return [item for item in re.split(r"[\s,]+", value) if item]


def build_options(provider, values, required=()):
    """Validate raw option *values* and build ``ServerCreateOptions``.

    Raises:
        ConfigError: on the first invalid or missing option.
    """
    validate_required(values, required)
    waits = validate_wait_options(values)

    metadata = merge_metadata(
        values.get("metadata"),
        ssh_authorized_keys=read_file_content(values.get("ssh_authorized_keys_file")),
        user_data=read_file_content(values.get("user_data_file")),
    )
    if not metadata.get("ssh_authorized_keys"):
        raise ConfigError("SSH authorized keys must be specified.")

    if _is_blank(values.get("identity_file")):
        raise ConfigError(f"Missing required option(s): {option_flag('identity_file')}")

    ssh_gateway = values.get("ssh_gateway") or None
    gateway_identity = values.get("ssh_gateway_identity")
    gateway_keys = None
    if not _is_blank(gateway_identity):
        if not ssh_gateway:
            raise ConfigError(f"{option_flag('ssh_gateway_identity')} requires {option_flag('ssh_gateway')}")
        gateway_keys = [os.path.expanduser(gateway_identity)]
        if not os.path.isfile(gateway_keys[0]):
            raise ConfigError(f"Cannot read gateway identity file {gateway_keys[0]}")

    return ServerCreateOptions(
        provider=provider,
        image_id=values.get("image_id"),
        shape=values.get("shape"),
        identity_file=os.path.expanduser(values["identity_file"]),
        metadata=metadata,
        availability_domain=values.get("availability_domain"),
        subnet_id=values.get("subnet_id"),
        compartment_id=values.get("compartment_id"),
        display_name=values.get("display_name"),
        hostname_label=values.get("hostname_label"),
        use_private_ip=bool(values.get("use_private_ip")),
        ssh_user=values.get("ssh_user") or DEFAULT_SSH_USER,
        ssh_password=values.get("ssh_password") or os.environ.get(SSH_PASSWORD_ENV) or None,
        ssh_gateway=ssh_gateway,
        gateway=parse_gateway(ssh_gateway, keys=gateway_keys),
        node_name=values.get("node_name"),
        run_list=parse_run_list(values.get("run_list")),
        yes=bool(values.get("yes")),
        **waits,
    )
