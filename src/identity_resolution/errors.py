class ResolutionError(Exception):
    """Base exception for resolution run failures."""


class ConfigurationError(ResolutionError):
    """Raised when run configuration is unusable, e.g. a cluster cap below one."""


class MissingInputError(ResolutionError):
    """Raised when the staging snapshot is empty or structurally broken."""


class StoreError(ResolutionError):
    """Raised when the backing store cannot complete a read or write."""


class TransientStoreError(StoreError):
    """Raised when a retryable store failure persists after all retries."""
