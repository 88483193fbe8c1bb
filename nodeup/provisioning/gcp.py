"""GCP provider: launch and inspect Compute Engine VMs using the gcloud CLI."""

import base64
import json
import logging
import shlex
import uuid

from nodeup.provisioning.errors import ProvisioningError
from nodeup.provisioning.shell import run_shell_cmd
from nodeup.provisioning.types import (
    Instance,
    LaunchRequest,
    LifecycleState,
    NetworkAttachment,
    NetworkInterface,
)

logger = logging.getLogger(__name__)

STATUS_MAP = {
    "PROVISIONING": LifecycleState.PROVISIONING,
    "STAGING": LifecycleState.STARTING,
    "RUNNING": LifecycleState.RUNNING,
    "SUSPENDING": LifecycleState.STOPPING,
    "SUSPENDED": LifecycleState.STOPPED,
    "STOPPING": LifecycleState.TERMINATING,
    # GCE reports a stopped VM as TERMINATED; a fresh one never recovers from it.
    "TERMINATED": LifecycleState.TERMINATED,
}

# gcloud list-flag delimiter override, see `gcloud topic escaping`
METADATA_DELIMITER = "@@"


# ── Command builders ───────────────────────────────────────────────


def _gcloud_metadata_arg(metadata, ssh_user):
    """Render launch metadata as a single ``--metadata`` flag.

    ``ssh_authorized_keys`` becomes GCE's ``ssh-keys`` (one ``user:key`` per
    line) and base64 ``user_data`` becomes plain ``user-data``.
    """
    items = {}
    for key, value in metadata.items():
        if key == "ssh_authorized_keys":
            keys = [line.strip() for line in value.splitlines() if line.strip()]
            items["ssh-keys"] = "\n".join(f"{ssh_user}:{k}" for k in keys)
        elif key == "user_data":
            items["user-data"] = base64.b64decode(value).decode()
        else:
            items[key] = str(value)
    if not items:
        return None
    body = METADATA_DELIMITER.join(f"{k}={v}" for k, v in items.items())
    return f"--metadata=^{METADATA_DELIMITER}^{body}"


def _gcloud_create_cmd(instance, request: LaunchRequest, project=None, image_project=None, extra_gcloud_args=None):
    """Build gcloud command to create an instance."""
    cmd = [
        "gcloud",
        "compute",
        "instances",
        "create",
        instance,
        "--zone",
        request.availability_domain,
        "--machine-type",
        request.shape,
        "--image",
        request.image_id,
    ]
    if image_project:
        cmd.extend(["--image-project", image_project])
    if request.subnet_id:
        cmd.extend(["--subnet", request.subnet_id])
    if request.hostname_label:
        cmd.extend(["--hostname", request.hostname_label])
    metadata_arg = _gcloud_metadata_arg(request.metadata, request.ssh_user or "nodeup")
    if metadata_arg:
        cmd.append(metadata_arg)
    if project:
        cmd.extend(["--project", project])
    if extra_gcloud_args:
        cmd.extend(shlex.split(extra_gcloud_args))
    cmd.extend(["--format", "json"])
    return cmd


def _gcloud_describe_cmd(instance, zone, project=None):
    """Build gcloud command to describe an instance as JSON."""
    cmd = ["gcloud", "compute", "instances", "describe", instance, "--zone", zone, "--format", "json"]
    if project:
        cmd.extend(["--project", project])
    return cmd


def _instance_name(request: LaunchRequest):
    raw_name = request.display_name or f"nodeup-{uuid.uuid4().hex[:8]}"
    return raw_name.lower().replace("_", "-").replace(" ", "-")


def _split_id(resource_id, parts):
    pieces = resource_id.split("/")
    if len(pieces) != parts:
        raise ProvisioningError(f"Malformed GCP resource id '{resource_id}'")
    return pieces


def _basename(url):
    return url.rsplit("/", 1)[-1] if url else None


# ── Backend ───────────────────────────────────────────────────────


class GcpBackend:
    """ProvisioningBackend for GCE.

    ``availability_domain`` is the zone, ``shape`` the machine type and
    ``image_id`` the image. Instance IDs are ``<zone>/<name>``; network
    interface IDs are ``<zone>/<name>/<nic>``.
    """

    name = "gcp"
    required_options = ("availability_domain", "image_id", "shape", "identity_file", "ssh_authorized_keys_file")

    def __init__(self, project=None, image_project=None, extra_gcloud_args=None):
        self.project = project
        self.image_project = image_project
        self.extra_gcloud_args = extra_gcloud_args

    async def _gcloud_json(self, cmd):
        rc, stdout, stderr = await run_shell_cmd(cmd)
        if rc != 0:
            raise ProvisioningError(f"gcloud failed: {stderr.strip()}")
        try:
            data = json.loads(stdout) if stdout.strip() else {}
        except json.JSONDecodeError as e:
            raise ProvisioningError(f"gcloud returned invalid JSON: {e}") from e
        # `instances create --format json` returns a list
        if isinstance(data, list):
            data = data[0] if data else {}
        return data

    async def _describe(self, zone, name):
        return await self._gcloud_json(_gcloud_describe_cmd(name, zone, self.project))

    def _to_instance(self, zone, data):
        return Instance(
            id=f"{zone}/{data['name']}",
            display_name=data["name"],
            lifecycle_state=STATUS_MAP.get(data.get("status"), LifecycleState.UNKNOWN),
            compartment_id=self.project,
            region=zone,
            shape=_basename(data.get("machineType")),
            time_created=data.get("creationTimestamp"),
        )

    async def create_instance(self, request: LaunchRequest) -> Instance:
        name = _instance_name(request)
        zone = request.availability_domain
        cmd = _gcloud_create_cmd(
            name,
            request,
            project=self.project,
            image_project=self.image_project,
            extra_gcloud_args=self.extra_gcloud_args,
        )
        data = await self._gcloud_json(cmd)
        data.setdefault("name", name)
        instance = self._to_instance(zone, data)
        instance.image_id = request.image_id
        return instance

    async def get_instance(self, instance_id) -> Instance:
        zone, name = _split_id(instance_id, 2)
        return self._to_instance(zone, await self._describe(zone, name))

    async def list_network_attachments(self, compartment_id, instance_id) -> list[NetworkAttachment]:
        zone, name = _split_id(instance_id, 2)
        data = await self._describe(zone, name)
        return [NetworkAttachment(network_interface_id=f"{zone}/{name}/{nic['name']}") for nic in data.get("networkInterfaces", [])]

    async def get_network_interface(self, network_interface_id) -> NetworkInterface:
        zone, name, nic_name = _split_id(network_interface_id, 3)
        data = await self._describe(zone, name)
        for nic in data.get("networkInterfaces", []):
            if nic.get("name") == nic_name:
                access = nic.get("accessConfigs") or [{}]
                return NetworkInterface(
                    id=network_interface_id,
                    private_ip=nic.get("networkIP"),
                    public_ip=access[0].get("natIP"),
                    network_id=_basename(nic.get("network")),
                    hostname_label=data.get("hostname"),
                )
        raise ProvisioningError(f"Network interface '{nic_name}' not found on instance '{name}'")
