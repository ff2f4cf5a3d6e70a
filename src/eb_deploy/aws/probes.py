"""Read-only lookups against STS and Elastic Beanstalk."""
import time
import logging
from typing import Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from eb_deploy.aws.retry import RetryPolicy, call_with_retry
from eb_deploy.aws.utils import AWSClients
from eb_deploy.exceptions import EnvironmentNotFoundError, VersionLookupError
from eb_deploy.schemas import ArtifactLocation, EnvironmentState

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({'404', 'NotFound', 'ResourceNotFoundException'})


def is_not_found_error(error: ClientError) -> bool:
    status = error.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
    code = error.response.get('Error', {}).get('Code', '')
    return status == 404 or code in NOT_FOUND_CODES


def get_account_id(clients: AWSClients, policy: RetryPolicy,
                   sleep: Callable[[float], None] = time.sleep) -> str:
    """Resolve the caller's AWS account ID."""
    return call_with_retry(
        lambda: clients.sts.get_caller_identity()['Account'],
        policy,
        'Get AWS Account ID',
        sleep=sleep,
    )


def application_version_exists(clients: AWSClients, application_name: str, version_label: str) -> bool:
    """Check whether a version label is registered.

    Query failures count as "does not exist" so the deployment falls back to
    publishing a fresh version.
    """
    try:
        response = clients.elasticbeanstalk.describe_application_versions(
            ApplicationName=application_name,
            VersionLabels=[version_label],
        )
    except (ClientError, BotoCoreError) as e:
        logger.debug(f"Error checking application version {version_label} existence: {e}")
        return False
    return len(response.get('ApplicationVersions', [])) > 0


def get_version_location(clients: AWSClients, application_name: str, version_label: str) -> ArtifactLocation:
    """Return the S3 source bundle of an existing application version."""
    try:
        response = clients.elasticbeanstalk.describe_application_versions(
            ApplicationName=application_name,
            VersionLabels=[version_label],
        )
    except (ClientError, BotoCoreError) as e:
        raise VersionLookupError(
            f"Failed to get S3 location for application version {version_label}: {e}"
        ) from e

    versions = response.get('ApplicationVersions', [])
    if not versions:
        raise VersionLookupError(
            f"Failed to get S3 location for application version {version_label}: version not found"
        )

    source_bundle = versions[0].get('SourceBundle') or {}
    bucket = source_bundle.get('S3Bucket')
    key = source_bundle.get('S3Key')
    if not bucket or not key:
        raise VersionLookupError(
            f"Application Version {version_label} has incomplete S3 source bundle information. "
            f"Bucket {'found' if bucket else 'missing'}, Key {'found' if key else 'missing'}"
        )

    return ArtifactLocation(bucket=bucket, key=key)


def describe_environment(clients: AWSClients, application_name: str, environment_name: str) -> EnvironmentState:
    """Fetch the current environment snapshot; absent if nothing is listed.

    A recreated environment can be listed next to the Terminated record of
    its predecessor. The live record wins; Terminated is reported only when
    nothing else is listed.
    """
    response = clients.elasticbeanstalk.describe_environments(
        ApplicationName=application_name,
        EnvironmentNames=[environment_name],
        IncludeDeleted=False,
    )
    environments = response.get('Environments', [])
    if not environments:
        return EnvironmentState.absent()

    live = [e for e in environments if e.get('Status') != 'Terminated']
    return EnvironmentState.from_description((live or environments)[0])


def environment_exists(clients: AWSClients, application_name: str, environment_name: str) -> EnvironmentState:
    """Decide between update and create.

    Terminated environments and 404-style errors report exists=False. Any
    other error propagates: "could not tell" must never become "absent".
    """
    try:
        state = describe_environment(clients, application_name, environment_name)
    except ClientError as e:
        if is_not_found_error(e):
            logger.info(f"Environment {environment_name} not found: {e}")
            return EnvironmentState.absent()
        raise

    if state.status is None:
        logger.info(f"No environments found with name {environment_name}")
    else:
        logger.info(f"Environment {environment_name} found - Status: {state.status}, Health: {state.health}")
    return state


def get_environment_info(clients: AWSClients, application_name: str, environment_name: str) -> EnvironmentState:
    """Final environment snapshot; the environment must exist."""
    state = describe_environment(clients, application_name, environment_name)
    if state.status is None:
        raise EnvironmentNotFoundError(f"Environment {environment_name} not found after deployment")
    return state
