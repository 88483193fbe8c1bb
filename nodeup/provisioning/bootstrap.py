"""Chef bootstrap handoff: run `knife bootstrap` against the new host."""

import logging

from nodeup.provisioning.errors import BootstrapError
from nodeup.provisioning.shell import run_shell_cmd
from nodeup.provisioning.types import BootstrapRequest

logger = logging.getLogger(__name__)

BOOTSTRAP_TIMEOUT_SECONDS = 3600


def build_bootstrap_cmd(request: BootstrapRequest, knife="knife"):
    """Build the ``knife bootstrap`` command line for *request*."""
    cmd = [
        knife,
        "bootstrap",
        request.address,
        "--node-name",
        request.node_name,
        "--ssh-user",
        request.ssh_user,
        "--identity-file",
        request.identity_file,
    ]
    if request.ssh_password:
        cmd.extend(["--ssh-password", request.ssh_password])
    if request.use_sudo:
        cmd.append("--sudo")
    if request.run_list:
        cmd.extend(["--run-list", ",".join(request.run_list)])
    if request.gateway:
        cmd.extend(["--ssh-gateway", request.gateway])
        if request.gateway_identity:
            cmd.extend(["--ssh-gateway-identity", request.gateway_identity])
    if request.yes:
        cmd.append("--yes")
    return cmd


class KnifeBootstrapAgent:
    """Bootstrap agent backed by Chef's knife CLI."""

    def __init__(self, knife="knife", timeout=BOOTSTRAP_TIMEOUT_SECONDS):
        self.knife = knife
        self.timeout = timeout

    async def bootstrap(self, request: BootstrapRequest):
        cmd = build_bootstrap_cmd(request, knife=self.knife)
        logger.debug(f"Running {self.knife} bootstrap for {request.address}")
        rc, _, stderr = await run_shell_cmd(cmd, timeout=self.timeout, log_output=True)
        if rc != 0:
            tail = "\n".join(stderr.strip().splitlines()[-5:])
            raise BootstrapError(f"knife bootstrap exited with code {rc}" + (f":\n{tail}" if tail else ""), returncode=rc)
