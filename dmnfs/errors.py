"""Project-specific exception types."""

from __future__ import annotations


class DMNFSError(RuntimeError):
    """Base error for domain-level docker-machine-nfs failures."""


class UsageError(DMNFSError):
    """Raised for bad or missing command line arguments."""


class PreconditionError(DMNFSError):
    """Raised when the machine or a shared folder is not in a usable state."""


class ConfigurationError(DMNFSError):
    """Raised when the driver or its network topology cannot be resolved."""


class ExternalToolError(DMNFSError):
    """Raised when an external command or host file edit fails."""


class VerificationTimeout(DMNFSError):
    """Raised when the NFS mounts do not show up within the attempt budget."""
