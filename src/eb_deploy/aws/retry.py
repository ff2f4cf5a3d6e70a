"""Exponential backoff for remote AWS calls."""
import re
import time
import logging
from dataclasses import dataclass
from typing import Callable, TypeVar

from botocore.exceptions import ClientError

from eb_deploy.exceptions import DeploymentError, RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar('T')

AUTH_ERROR_PATTERN = re.compile(
    r"accessdenied|access denied|not authorized|unauthorizedoperation|you do not have permission",
    re.IGNORECASE,
)
AUTH_ERROR_CODES = frozenset({
    'AccessDenied',
    'AccessDeniedException',
    'UnauthorizedOperation',
    'AuthorizationError',
})

VERSION_EXISTS_PATTERN = re.compile(r"application version .* already exists", re.IGNORECASE)
INVALID_PARAMETER_CODES = frozenset({'InvalidParameterValue', 'InvalidParameterValueException'})


@dataclass(frozen=True)
class RetryPolicy:
    """How many times, and how patiently, to retry a remote call."""
    max_retries: int = 3
    retry_delay: float = 5.0

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


def error_code(error: BaseException) -> str:
    """AWS error code for a ClientError, else the exception class name."""
    if isinstance(error, ClientError):
        return error.response.get('Error', {}).get('Code', '')
    return type(error).__name__


def is_auth_error(error: BaseException) -> bool:
    return (
        error_code(error) in AUTH_ERROR_CODES
        or bool(AUTH_ERROR_PATTERN.search(str(error)))
    )


def is_version_exists_error(error: BaseException) -> bool:
    message = str(error)
    if VERSION_EXISTS_PATTERN.search(message):
        return True
    return error_code(error) in INVALID_PARAMETER_CODES and 'already exists' in message.lower()


def is_retryable(error: BaseException) -> bool:
    """Decide whether another attempt could succeed.

    Authorization denials and version-exists conflicts repeat identically on
    every attempt. Errors raised by our own checks inside an operation are
    decisions, not faults.
    """
    if isinstance(error, DeploymentError):
        return False
    return not (is_auth_error(error) or is_version_exists_error(error))


def backoff_delay(base_delay: float, retry_number: int) -> float:
    """Delay before the retry_number-th retry (1-indexed)."""
    return base_delay * (2 ** (retry_number - 1))


def retry_with_backoff(operation: Callable[[], T], max_attempts: int, base_delay: float,
                       label: str, sleep: Callable[[float], None] = time.sleep) -> T:
    """Run operation, retrying retryable failures with exponential backoff.

    Args:
        operation: Zero-argument callable performing the remote call
        max_attempts: Total attempts, at least 1
        base_delay: Delay in seconds before the first retry; doubles each retry
        label: Human-readable operation name used in logs and errors
        sleep: Sleep function, replaceable in tests

    Returns:
        Whatever operation returns

    Raises:
        The original error for non-retryable failures, otherwise
        RetryExhaustedError once every attempt has failed
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    last_error = None
    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except Exception as e:
            if not is_retryable(e):
                raise
            last_error = e

            if attempt < max_attempts:
                delay = backoff_delay(base_delay, attempt)
                logger.warning(
                    f"{label} failed (attempt {attempt}/{max_attempts}): {str(e)}. "
                    f"Retrying in {delay:g}s..."
                )
                sleep(delay)

    error = RetryExhaustedError(label, max_attempts, last_error)
    logger.error(str(error))
    raise error from last_error


def call_with_retry(operation: Callable[[], T], policy: RetryPolicy, label: str,
                    sleep: Callable[[float], None] = time.sleep) -> T:
    """retry_with_backoff driven by a RetryPolicy."""
    return retry_with_backoff(operation, policy.max_attempts, policy.retry_delay, label, sleep=sleep)
