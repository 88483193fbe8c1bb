"""`server create <provider>`: launch an instance, wait for SSH, bootstrap it with Chef."""

import asyncio
import logging
import sys

from nodeup.config import build_options, load_config_file
from nodeup.progress import ProgressIndicator
from nodeup.provisioning.bootstrap import KnifeBootstrapAgent
from nodeup.provisioning.cloud import get_backend
from nodeup.provisioning.cloudrift import DEFAULT_API_URL
from nodeup.provisioning.errors import BootstrapError, ConfigError, ProvisioningError
from nodeup.provisioning.orchestrate import create_server, log_server_details
from nodeup.redact import register_secret

logger = logging.getLogger(__name__)

# Option keys handled by the CLI itself rather than by build_options()
_CLI_ONLY = {"command", "action", "provider", "func", "config", "verbose", "api_key", "api_url", "knife"}


def collect_values(args):
    """Merge the optional --config YAML file with CLI flags (flags win).

    Returns:
        (values, providers_config) tuple.
    """
    file_values = load_config_file(args.config) if args.config else {}
    providers_config = file_values.pop("providers", None) or {}
    cli_values = {k: v for k, v in vars(args).items() if k not in _CLI_ONLY and v is not None}
    return {**file_values, **cli_values}, providers_config


# ── CLI handler ────────────────────────────────────────────────────


def handle_create(args):
    """CLI handler for 'server create <provider>'."""
    try:
        asyncio.run(_handle_create(args))
    except (ConfigError, ProvisioningError, BootstrapError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


async def _handle_create(args):
    values, providers_config = collect_values(args)
    api_url = getattr(args, "api_url", None)
    if api_url:
        providers_config.setdefault(args.provider, {})["api_url"] = api_url

    backend = get_backend(args.provider, providers_config, api_key=getattr(args, "api_key", None))
    options = build_options(args.provider, values, required=backend.required_options)
    register_secret(options.ssh_password, name="SSH password")

    result = await create_server(
        options,
        backend,
        KnifeBootstrapAgent(knife=args.knife),
        progress=ProgressIndicator(),
    )
    logger.info("")
    log_server_details(result)


# ── Registration ───────────────────────────────────────────────────


def _add_common_options(parser):
    parser.add_argument("--config", default=None, help="YAML file with option defaults (CLI flags override it)")
    parser.add_argument("--availability-domain", default=None, help="Availability domain / zone of the instance")
    parser.add_argument("--image-id", default=None, help="Image used to boot the instance")
    parser.add_argument("--shape", default=None, help="Instance shape / machine type")
    parser.add_argument("--subnet-id", default=None, help="Subnet to attach the instance to")
    parser.add_argument("--compartment-id", default=None, help="Compartment / project owning the instance")
    parser.add_argument("--display-name", default=None, help="A user-friendly name for the instance")
    parser.add_argument("--hostname-label", default=None, help="Hostname for the primary network interface")
    parser.add_argument("--metadata", default=None, help="Custom metadata key/value pairs in JSON format")
    parser.add_argument(
        "--ssh-authorized-keys-file",
        default=None,
        help="File with public SSH keys for the default user (one per line). Cannot be combined with "
        "ssh_authorized_keys in --metadata.",
    )
    parser.add_argument(
        "--user-data-file",
        default=None,
        help="Cloud-init user data file. Cannot be combined with user_data in --metadata.",
    )
    parser.add_argument("--use-private-ip", action="store_true", default=None, help="Use the private IP address for SSH and bootstrap")
    parser.add_argument("-x", "--ssh-user", default=None, help="The SSH username (default: opc)")
    parser.add_argument(
        "-P",
        "--ssh-password",
        default=None,
        help="The SSH password. It is passed to knife on its command line, where other local users can see it "
        "in the process list; prefer key authentication. Also read from NODEUP_SSH_PASSWORD.",
    )
    parser.add_argument(
        "-G",
        "--ssh-gateway",
        default=None,
        help="Gateway host (and optionally user and port) for proxying SSH: USERNAME@GATEWAY:PORT, IPv6 as USERNAME@[ADDRESS]:PORT",
    )
    parser.add_argument(
        "--ssh-gateway-identity",
        default=None,
        help="SSH identity file for the gateway (default: from ~/.ssh/config or the SSH agent)",
    )
    parser.add_argument("-i", "--identity-file", default=None, help="SSH identity file matching --ssh-authorized-keys-file")
    parser.add_argument("-N", "--node-name", default=None, help="Chef node name (default: instance display name)")
    parser.add_argument("-r", "--run-list", default=None, help="Comma-separated list of roles or recipes")
    parser.add_argument("--wait-to-stabilize", default=None, help="Seconds to pause after SSH becomes reachable (default: 40)")
    parser.add_argument("--wait-for-ssh-max", default=None, help="Maximum seconds to wait for SSH (default: 300)")
    parser.add_argument("--wait-for-running-max", default=None, help="Maximum seconds to wait for the running state (default: 1200)")
    parser.add_argument("--knife", default="knife", help="knife executable used for bootstrap (default: knife)")
    parser.add_argument("-y", "--yes", action="store_true", default=None, help="Answer yes to knife prompts")
    parser.set_defaults(func=handle_create)


def register_create_targets(subparsers):
    """Register the provider targets under 'server create'."""
    cr_parser = subparsers.add_parser("cloudrift", help="Create and bootstrap a CloudRift VM")
    cr_parser.add_argument("--api-key", default=None, help="CloudRift API key (fallback: CLOUDRIFT_API_KEY env var)")
    cr_parser.add_argument("--api-url", default=None, help=f"API base URL (default: {DEFAULT_API_URL})")
    _add_common_options(cr_parser)

    gcp_parser = subparsers.add_parser("gcp", help="Create and bootstrap a GCE VM via gcloud")
    _add_common_options(gcp_parser)
