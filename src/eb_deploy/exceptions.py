"""Exception hierarchy for deployment failures."""
from typing import List, Optional


class DeploymentError(Exception):
    """Base class for every error raised by the deployment pipeline."""
    pass


class PreconditionError(DeploymentError):
    """Raised when a local check fails before any remote call is made."""
    pass


class PackageSizeError(PreconditionError):
    """Raised when the deployment package exceeds the source bundle size limit."""

    def __init__(self, size_bytes: int, max_bytes: int):
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes
        size_mb = size_bytes / 1024 / 1024
        max_mb = max_bytes / 1024 / 1024
        super().__init__(
            f"Deployment package size ({size_mb:.2f} MB) exceeds the maximum allowed size "
            f"of {max_mb:.0f} MB. Please reduce the package size and try again."
        )


class BucketOwnershipError(DeploymentError):
    """Raised when the target bucket belongs to another account."""
    pass


class BucketNotFoundError(DeploymentError):
    """Raised when the bucket is missing and creating it is not allowed."""
    pass


class VersionConflictError(DeploymentError):
    """Raised when an application version label is already registered."""
    pass


class VersionLookupError(DeploymentError):
    """Raised when an existing version's source bundle cannot be resolved."""
    pass


class EnvironmentNotFoundError(DeploymentError):
    """Raised when the target environment is missing where it must exist."""
    pass


class RetryExhaustedError(DeploymentError):
    """Raised when a retried operation fails on every attempt."""

    def __init__(self, label: str, attempts: int, last_error: BaseException):
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{label} failed after {attempts} attempts: {last_error}")


class ConvergenceError(DeploymentError):
    """Base class for errors raised while waiting on an environment."""

    def __init__(self, message: str, status: Optional[str] = None,
                 health: Optional[str] = None, recent_errors: Optional[List[str]] = None):
        self.status = status
        self.health = health
        self.recent_errors = list(recent_errors or [])
        if self.recent_errors:
            message = message + "\nRecent error events:\n" + "\n".join(
                f"  - {line}" for line in self.recent_errors
            )
        super().__init__(message)


class DeploymentFailedError(ConvergenceError):
    """The platform reported a definitive failure."""
    pass


class DeploymentTimeoutError(ConvergenceError):
    """The deadline passed before the environment settled."""
    pass
