"""Error taxonomy shared by deploy and destroy runs."""

from __future__ import annotations


class DeployError(RuntimeError):
    """Base class for every fatal condition that aborts a run."""


class ConfigError(DeployError):
    """Required configuration is missing or malformed. Raised before any stage runs."""


class BuildError(DeployError):
    """Backend dependency install or packaging failed."""


class ProvisioningError(DeployError):
    """init/plan/apply/destroy failed, including state lock contention."""


class PublishError(DeployError):
    """Frontend install, build or bucket sync failed."""


class StorageError(DeployError):
    """Object storage rejected part of a bulk delete or upload."""
