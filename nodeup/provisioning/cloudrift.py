"""CloudRift provider: launch and inspect VMs via the CloudRift REST API."""

import logging
import os

import httpx

from nodeup.provisioning.errors import ConfigError, ProvisioningError
from nodeup.provisioning.types import (
    DEFAULT_SSH_PORT,
    Instance,
    LaunchRequest,
    LifecycleState,
    NetworkAttachment,
    NetworkInterface,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.cloudrift.ai"
DEFAULT_IMAGE_URL = "https://storage.googleapis.com/cloudrift-vm-disks/disks/github/ubuntu-noble-server-gpu-580-129-20251015-183936.img"
DEFAULT_CLOUDINIT_URL = "https://storage.googleapis.com/cloudrift-vm-disks/cloudinit/ubuntu-base.cloudinit"
API_VERSION = "~upcoming"

STATUS_MAP = {
    "Initializing": LifecycleState.PROVISIONING,
    "Pending": LifecycleState.PROVISIONING,
    "Active": LifecycleState.RUNNING,
    "Deactivating": LifecycleState.TERMINATING,
    "Inactive": LifecycleState.TERMINATED,
}


# ── API helpers ───────────────────────────────────────────────────


async def _api_request(method, path, data, api_key, api_url=DEFAULT_API_URL, transport=None):
    """Make an authenticated CloudRift API request.

    Wraps *data* in the versioned envelope ``{"version": ..., "data": ...}``.

    Returns:
        Parsed JSON response ``data`` dict.

    Raises:
        ProvisioningError: on transport errors and non-2xx responses.
    """
    url = f"{api_url}{path}"
    payload = {"version": API_VERSION, "data": data}
    headers = {"X-API-Key": api_key, "Content-Type": "application/json"}
    try:
        async with httpx.AsyncClient(transport=transport) as client:
            resp = await client.request(method, url, json=payload, headers=headers, timeout=60)
        resp.raise_for_status()
        body = resp.json()
    except httpx.HTTPError as e:
        raise ProvisioningError(f"CloudRift API {method} {path} failed: {e}") from e
    except ValueError as e:
        raise ProvisioningError(f"CloudRift API {method} {path} returned invalid JSON: {e}") from e
    return body.get("data", body)


async def _rent_instance(api_key, instance_type, ssh_public_keys, image_url=DEFAULT_IMAGE_URL, ports=None, api_url=DEFAULT_API_URL, transport=None):
    """Rent a new CloudRift VM instance.

    POST /api/v1/instances/rent

    Args:
        ssh_public_keys: list of public key strings (e.g. ["ssh-ed25519 AAAA..."])
    """
    data = {
        "selector": {
            "ByInstanceTypeAndLocation": {
                "instance_type": instance_type,
            },
        },
        "config": {
            "VirtualMachine": {
                "ssh_key": {"PublicKeys": ssh_public_keys},
                "image_url": image_url,
                "cloudinit_url": DEFAULT_CLOUDINIT_URL,
            },
        },
        "with_public_ip": True,
    }
    if ports:
        data["ports"] = [str(p) for p in ports]
    return await _api_request("POST", "/api/v1/instances/rent", data, api_key, api_url, transport)


async def _get_instance_info(api_key, instance_id, api_url=DEFAULT_API_URL, transport=None):
    """Get info for a single instance by ID.

    POST /api/v1/instances/list with ById selector.
    Returns the instance dict or None.
    """
    data = {"selector": {"ById": [instance_id]}}
    result = await _api_request("POST", "/api/v1/instances/list", data, api_key, api_url, transport)
    instances = result.get("instances", [])
    return instances[0] if instances else None


def _ssh_port(info):
    # Each mapping is [internal_port, external_port]
    for mapping in info.get("port_mappings", []):
        if mapping[0] == DEFAULT_SSH_PORT:
            return mapping[1]
    return DEFAULT_SSH_PORT


def _vm_name(info):
    vms = info.get("virtual_machines", [])
    return vms[0].get("name") if vms else None


# ── Backend ───────────────────────────────────────────────────────


class CloudRiftBackend:
    """ProvisioningBackend for CloudRift VMs.

    ``shape`` is the CloudRift instance type and ``image_id`` the VM image URL.
    Each instance has exactly one network attachment, keyed by the instance ID.
    """

    name = "cloudrift"
    required_options = ("shape", "identity_file", "ssh_authorized_keys_file")

    def __init__(self, api_key=None, api_url=DEFAULT_API_URL, ports=(DEFAULT_SSH_PORT,), transport=None):
        api_key = api_key or os.environ.get("CLOUDRIFT_API_KEY")
        if not api_key:
            raise ConfigError("CloudRift API key required. Use --api-key or set CLOUDRIFT_API_KEY.")
        self.api_key = api_key
        self.api_url = api_url
        self.ports = list(ports)
        self.transport = transport
        self._display_names = {}

    async def create_instance(self, request: LaunchRequest) -> Instance:
        keys = [line.strip() for line in request.metadata.get("ssh_authorized_keys", "").splitlines() if line.strip()]
        if request.metadata.get("user_data"):
            logger.warning("CloudRift VMs use a fixed cloud-init config; user data is ignored.")

        result = await _rent_instance(
            self.api_key,
            request.shape,
            keys,
            image_url=request.image_id or DEFAULT_IMAGE_URL,
            ports=self.ports,
            api_url=self.api_url,
            transport=self.transport,
        )
        instance_ids = result.get("instance_ids", [])
        if not instance_ids:
            raise ProvisioningError("No instance ID returned from CloudRift rent API.")
        instance_id = instance_ids[0]
        display_name = request.display_name or instance_id
        self._display_names[instance_id] = display_name
        return Instance(
            id=instance_id,
            display_name=display_name,
            lifecycle_state=LifecycleState.PROVISIONING,
            shape=request.shape,
            image_id=request.image_id,
        )

    async def _require_info(self, instance_id):
        info = await _get_instance_info(self.api_key, instance_id, self.api_url, self.transport)
        if info is None:
            raise ProvisioningError(f"CloudRift instance {instance_id} not found.")
        return info

    async def get_instance(self, instance_id) -> Instance:
        info = await _get_instance_info(self.api_key, instance_id, self.api_url, self.transport)
        if info is None:
            logger.warning(f"Warning: instance {instance_id} not found.")
            state = LifecycleState.UNKNOWN
            info = {}
        else:
            status = info.get("status")
            state = STATUS_MAP.get(status, LifecycleState.UNKNOWN)
        resource = info.get("resource_info", {})
        return Instance(
            id=instance_id,
            display_name=self._display_names.get(instance_id) or _vm_name(info) or instance_id,
            lifecycle_state=state,
            region=resource.get("provider_name"),
            shape=resource.get("instance_type"),
        )

    async def list_network_attachments(self, compartment_id, instance_id) -> list[NetworkAttachment]:
        return [NetworkAttachment(network_interface_id=instance_id)]

    async def get_network_interface(self, network_interface_id) -> NetworkInterface:
        info = await self._require_info(network_interface_id)
        return NetworkInterface(
            id=network_interface_id,
            private_ip=info.get("internal_ip_address"),
            public_ip=info.get("host_address"),
            network_id=info.get("node_id"),
            ssh_port=_ssh_port(info),
        )
