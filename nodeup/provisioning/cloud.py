"""Provider bridge: the backend interface and provider lookup.

All provider-specific logic lives behind ``ProvisioningBackend``; the
orchestrator only talks to this interface.
"""

from typing import Protocol

from nodeup.provisioning import cloudrift as cr_provider
from nodeup.provisioning import gcp as gcp_provider
from nodeup.provisioning.types import Instance, LaunchRequest, NetworkAttachment, NetworkInterface

PROVIDERS = ("cloudrift", "gcp")


class ProvisioningBackend(Protocol):
    name: str
    required_options: tuple[str, ...]

    async def create_instance(self, request: LaunchRequest) -> Instance: ...

    async def get_instance(self, instance_id) -> Instance: ...

    async def list_network_attachments(self, compartment_id, instance_id) -> list[NetworkAttachment]: ...

    async def get_network_interface(self, network_interface_id) -> NetworkInterface: ...


def get_backend(provider, providers_config=None, api_key=None) -> ProvisioningBackend:
    """Build the backend for *provider* from its ``providers:`` config section."""
    config = (providers_config or {}).get(provider, {}) or {}

    if provider == "cloudrift":
        return cr_provider.CloudRiftBackend(
            api_key=api_key or config.get("api_key"),
            api_url=config.get("api_url", cr_provider.DEFAULT_API_URL),
            ports=config.get("ports", (22,)),
        )
    elif provider == "gcp":
        return gcp_provider.GcpBackend(
            project=config.get("project"),
            image_project=config.get("image_project"),
            extra_gcloud_args=config.get("extra_gcloud_args"),
        )
    else:
        raise ValueError(f"Unknown provider: {provider}")
