"""Error types raised or reported by the harness.

Resource-collection failures are raised to the caller. Apply-cycle failures
are carried on ApplyResult.error so the accumulated output is never lost.
"""


class HarnessError(Exception):
    """Base class for harness errors."""


class ConfigError(HarnessError):
    """Configuration error."""


class ProvisioningError(HarnessError):
    """Resource collection creation failed; partial state was rolled back."""


class TeardownError(HarnessError):
    """Resource collection destroy failed."""


class TemplateNotFoundError(HarnessError):
    """Template path does not exist or is not a directory."""


class ToolLaunchError(HarnessError):
    """The infrastructure tool could not be started. Never retried."""


class InitError(HarnessError):
    """The tool's init step failed before any apply ran."""


class ApplyError(HarnessError):
    """Base class for apply failures."""

    def __init__(self, message: str, output: str = ''):
        super().__init__(message)
        self.output = output


class NonRetryableApplyError(ApplyError):
    """Apply failed and retry was disabled or no signature matched."""


class RetryExhaustedError(ApplyError):
    """Apply failed again after its single retry."""


class DestroyError(HarnessError):
    """Post-apply destroy failed."""

    def __init__(self, message: str, output: str = ''):
        super().__init__(message)
        self.output = output


class CloudError(HarnessError):
    """A cloud provider call returned an unusable result."""
