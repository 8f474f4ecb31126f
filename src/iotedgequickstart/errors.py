"""Domain errors for iotedge-quickstart."""


class QuickstartError(RuntimeError):
    """Raised when the quickstart cannot continue safely."""


class ConfigurationError(QuickstartError):
    """Raised when the resolved inputs are inconsistent or incomplete."""


class SecretNotFound(QuickstartError):
    """Raised when the secret store has no entry for the requested name."""

    def __init__(self, name: str, message: str):
        super().__init__(message)
        self.name = name


class MalformedSecretValue(QuickstartError):
    """Raised when a registry secret does not hold exactly `<user> <password>`."""


class UnsupportedPlatformCombination(QuickstartError):
    """Raised when the selected bootstrapper cannot run on this host."""


class BootstrapError(QuickstartError):
    """Raised when a bootstrapper lifecycle stage fails."""

    def __init__(self, stage: str, detail: str):
        super().__init__(f"Bootstrapper stage '{stage}' failed: {detail}")
        self.stage = stage
        self.detail = detail


class VerificationTimedOut(QuickstartError):
    """Raised when the runtime did not report healthy before the deadline."""


class CleanupFailed(QuickstartError):
    """Cleanup step failure. Logged, never propagated."""
