"""Error taxonomy for the provider daemon.

Only identity/config failures are fatal, and only at startup. Everything
else is isolated to the cycle, file, or user it happened in.
"""


class ProviderError(Exception):
    """Base class for all provider daemon errors."""


class IdentityError(ProviderError):
    """Startup cannot establish who this provider is."""


class InvalidIdentityError(IdentityError):
    """The operator secret does not derive a valid address."""


class ConfigError(IdentityError):
    """Operator configuration is missing or out of range."""


class BackendUnavailableError(ProviderError):
    """The shared data store could not be read or written."""


class ArtifactProcessingError(ProviderError):
    """Producing the encrypted artifact for one file failed."""

    def __init__(self, file_id: str, reason: str):
        super().__init__(f"artifact for file {file_id} failed: {reason}")
        self.file_id = file_id
        self.reason = reason


class ClaimConflictError(ProviderError):
    """A claim for (provider, file) already exists."""

    def __init__(self, provider_id: str, file_id: str):
        super().__init__(f"file {file_id} already claimed by provider {provider_id}")
        self.provider_id = provider_id
        self.file_id = file_id


class ReconciliationError(ProviderError):
    """Recomputing usage for one user failed."""

    def __init__(self, user_address: str, reason: str):
        super().__init__(f"usage reconciliation for {user_address} failed: {reason}")
        self.user_address = user_address
        self.reason = reason
