"""Error taxonomy for server provisioning."""


class ConfigError(ValueError):
    """Invalid or missing option, detected before any provisioning call."""


class ProvisioningError(RuntimeError):
    """The instance could not be brought to a usable state."""


class WaitTimeoutError(ProvisioningError):
    """A bounded wait elapsed without success."""


class BootstrapError(RuntimeError):
    """The bootstrap agent reported a failure."""

    def __init__(self, message, returncode=None):
        super().__init__(message)
        self.returncode = returncode
