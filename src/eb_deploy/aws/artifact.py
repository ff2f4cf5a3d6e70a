"""Upload source bundles and register application versions."""
import os
import time
import logging
from pathlib import Path
from typing import Callable, Optional, Union

from botocore.exceptions import ClientError

from eb_deploy.aws.retry import RetryPolicy, call_with_retry, is_version_exists_error
from eb_deploy.aws.s3_bucket import default_bucket_name, ensure_bucket
from eb_deploy.aws.utils import AWSClients
from eb_deploy.exceptions import PackageSizeError, VersionConflictError
from eb_deploy.schemas import ArtifactLocation

logger = logging.getLogger(__name__)

# Elastic Beanstalk source bundle limit
MAX_DEPLOYMENT_PACKAGE_SIZE_BYTES = 500 * 1024 * 1024


def artifact_key(application_name: str, version_label: str, package_path: Union[str, Path]) -> str:
    """S3 key for a version: <application>/<version><extension>."""
    return f"{application_name}/{version_label}{Path(package_path).suffix}"


def version_description(commit_sha: Optional[str] = None) -> str:
    """Description recorded on a new application version."""
    return f"Deployed by eb-deploy - {commit_sha or 'manual'}"


def check_package_size(package_path: Union[str, Path]) -> int:
    """Return the package size, rejecting anything over the limit."""
    size_bytes = os.stat(package_path).st_size
    if size_bytes > MAX_DEPLOYMENT_PACKAGE_SIZE_BYTES:
        raise PackageSizeError(size_bytes, MAX_DEPLOYMENT_PACKAGE_SIZE_BYTES)
    return size_bytes


def publish_artifact(clients: AWSClients, region: str, account_id: str, application_name: str,
                     version_label: str, package_path: Union[str, Path], policy: RetryPolicy,
                     create_bucket_if_missing: bool = True, bucket_name: Optional[str] = None,
                     sleep: Callable[[float], None] = time.sleep) -> ArtifactLocation:
    """Upload the deployment package to an owned bucket.

    The size check runs before any network call.

    Returns:
        The bucket and key the package was written to
    """
    bucket = bucket_name or default_bucket_name(region, account_id)
    key = artifact_key(application_name, version_label, package_path)

    size_bytes = check_package_size(package_path)

    ensure_bucket(clients, region, bucket, account_id, create_bucket_if_missing, policy, sleep=sleep)

    logger.info("☁️  Uploading deployment package to S3")
    logger.info(f"   File size: {size_bytes / 1024 / 1024:.2f} MB")
    logger.info(f"   Destination: s3://{bucket}/{key}")

    # upload_file streams from disk in parts instead of reading the whole archive.
    call_with_retry(
        lambda: clients.s3.upload_file(
            str(package_path),
            bucket,
            key,
            ExtraArgs={'ExpectedBucketOwner': account_id},
        ),
        policy,
        'Upload to S3',
        sleep=sleep,
    )

    logger.info("✅ Upload complete")
    return ArtifactLocation(bucket=bucket, key=key)


def create_application_version(clients: AWSClients, application_name: str, version_label: str,
                               location: ArtifactLocation, policy: RetryPolicy,
                               auto_create_application: bool = True,
                               description: Optional[str] = None,
                               sleep: Callable[[float], None] = time.sleep) -> None:
    """Register the uploaded bundle as a named application version.

    Raises:
        VersionConflictError: If the label is already taken; never retried
    """
    logger.info(f"📝 Creating application version: {version_label}")
    if description is None:
        description = version_description()

    try:
        call_with_retry(
            lambda: clients.elasticbeanstalk.create_application_version(
                ApplicationName=application_name,
                VersionLabel=version_label,
                SourceBundle=location.to_source_bundle(),
                Description=description[:200],
                AutoCreateApplication=auto_create_application,
            ),
            policy,
            'Create application version',
            sleep=sleep,
        )
    except ClientError as e:
        if is_version_exists_error(e):
            raise VersionConflictError(
                f"Application version {version_label} already exists for {application_name}. "
                f"Use a new version label or enable use-existing-application-version-if-available."
            ) from e
        raise

    logger.info(f"✅ Application version {version_label} created")
