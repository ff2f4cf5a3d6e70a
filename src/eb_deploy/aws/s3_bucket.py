"""Ownership-checked S3 bucket provisioning."""
import time
import logging
from enum import Enum
from typing import Callable

from botocore.exceptions import ClientError

from eb_deploy.aws.retry import RetryPolicy, call_with_retry, error_code
from eb_deploy.aws.utils import AWSClients
from eb_deploy.exceptions import BucketNotFoundError, BucketOwnershipError

logger = logging.getLogger(__name__)

# Region where CreateBucket must not carry a LocationConstraint
S3_DEFAULT_REGION = 'us-east-1'

MISSING_CODES = frozenset({'404', 'NoSuchBucket', 'NotFound'})
FORBIDDEN_CODES = frozenset({'403', 'AccessDenied', 'Forbidden'})


class BucketProbe(str, Enum):
    """Result of an ownership-aware existence check."""
    OWNED = "owned"
    FOREIGN = "foreign"
    MISSING = "missing"


def default_bucket_name(region: str, account_id: str) -> str:
    """The bucket Elastic Beanstalk itself uses for source bundles."""
    return f"elasticbeanstalk-{region}-{account_id}"


def probe_bucket(clients: AWSClients, bucket: str, account_id: str) -> BucketProbe:
    """HeadBucket scoped to the expected owner.

    S3 answers 403 when the bucket exists under another account, 404 when it
    does not exist at all.
    """
    try:
        clients.s3.head_bucket(Bucket=bucket, ExpectedBucketOwner=account_id)
        return BucketProbe.OWNED
    except ClientError as e:
        status = e.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
        code = error_code(e)
        if status == 404 or code in MISSING_CODES:
            return BucketProbe.MISSING
        if status == 403 or code in FORBIDDEN_CODES:
            return BucketProbe.FOREIGN
        raise


def _ownership_error(bucket: str, account_id: str) -> BucketOwnershipError:
    return BucketOwnershipError(
        f"S3 bucket {bucket} exists but is not owned by account {account_id} "
        f"(or this account cannot access it). Refusing to upload; choose a different "
        f"s3-bucket-name."
    )


def create_bucket(clients: AWSClients, region: str, bucket: str, account_id: str,
                  policy: RetryPolicy, sleep: Callable[[float], None] = time.sleep) -> None:
    """Create the bucket, treating "already owned by you" as success."""

    def _create() -> None:
        params = {'Bucket': bucket}
        if region != S3_DEFAULT_REGION:
            params['CreateBucketConfiguration'] = {'LocationConstraint': region}
        try:
            clients.s3.create_bucket(**params)
        except ClientError as e:
            code = error_code(e)
            if code == 'BucketAlreadyOwnedByYou':
                logger.info(f"S3 bucket already owned by you: {bucket}")
                return
            if code == 'BucketAlreadyExists':
                raise _ownership_error(bucket, account_id) from e
            raise

    call_with_retry(_create, policy, 'Create S3 bucket', sleep=sleep)


def ensure_bucket(clients: AWSClients, region: str, bucket: str, account_id: str,
                  create_if_missing: bool, policy: RetryPolicy,
                  sleep: Callable[[float], None] = time.sleep) -> None:
    """Guarantee the bucket exists and belongs to account_id.

    Raises:
        BucketOwnershipError: If another account owns the bucket
        BucketNotFoundError: If it is missing and creation is disabled
    """
    logger.info(f"🪣 Checking S3 bucket {bucket}")
    probe = probe_bucket(clients, bucket, account_id)

    if probe == BucketProbe.OWNED:
        logger.info("✅ S3 bucket exists")
        return

    if probe == BucketProbe.FOREIGN:
        raise _ownership_error(bucket, account_id)

    if not create_if_missing:
        raise BucketNotFoundError(
            f"S3 bucket {bucket} does not exist and create-s3-bucket-if-not-exists is false"
        )

    logger.info(f"🪣 S3 bucket does not exist, creating {bucket}")
    create_bucket(clients, region, bucket, account_id, policy, sleep=sleep)

    # Closes the window between the probe and creation.
    if probe_bucket(clients, bucket, account_id) != BucketProbe.OWNED:
        raise _ownership_error(bucket, account_id)
    logger.info("✅ S3 bucket created")
