import pytest
from botocore.exceptions import ClientError

from eb_deploy.aws.probes import (
    application_version_exists,
    environment_exists,
    get_account_id,
    get_environment_info,
    get_version_location,
)
from eb_deploy.aws.retry import RetryPolicy
from eb_deploy.exceptions import EnvironmentNotFoundError, VersionLookupError
from eb_deploy.schemas import ArtifactLocation
from tests.consts import TEST_ACCOUNT_ID, TEST_APP_NAME, TEST_ENV_NAME
from tests.fixtures.aws_fixtures import client_error, environment, listing


def test_get_account_id(clients, clock):
    assert get_account_id(clients, RetryPolicy(), sleep=clock.sleep) == TEST_ACCOUNT_ID


def test_get_account_id_retries_transient_errors(clients, clock):
    clients.sts.get_caller_identity.side_effect = [
        client_error("Throttling", "Rate exceeded"),
        {"Account": TEST_ACCOUNT_ID},
    ]

    assert get_account_id(clients, RetryPolicy(max_retries=2, retry_delay=3), sleep=clock.sleep) == TEST_ACCOUNT_ID
    assert clock.sleeps == [3]


def test_application_version_exists(clients):
    clients.elasticbeanstalk.describe_application_versions.return_value = {
        "ApplicationVersions": [{"VersionLabel": "v1"}]
    }

    assert application_version_exists(clients, TEST_APP_NAME, "v1") is True
    clients.elasticbeanstalk.describe_application_versions.assert_called_once_with(
        ApplicationName=TEST_APP_NAME, VersionLabels=["v1"]
    )


def test_application_version_missing(clients):
    clients.elasticbeanstalk.describe_application_versions.return_value = {"ApplicationVersions": []}

    assert application_version_exists(clients, TEST_APP_NAME, "v1") is False


def test_application_version_query_error_counts_as_missing(clients):
    clients.elasticbeanstalk.describe_application_versions.side_effect = client_error("InternalFailure", "boom")

    assert application_version_exists(clients, TEST_APP_NAME, "v1") is False


def test_get_version_location(clients):
    clients.elasticbeanstalk.describe_application_versions.return_value = {
        "ApplicationVersions": [{"SourceBundle": {"S3Bucket": "bucket", "S3Key": "app/v1.zip"}}]
    }

    assert get_version_location(clients, TEST_APP_NAME, "v1") == ArtifactLocation("bucket", "app/v1.zip")


def test_get_version_location_missing_version(clients):
    clients.elasticbeanstalk.describe_application_versions.return_value = {"ApplicationVersions": []}

    with pytest.raises(VersionLookupError, match="version not found"):
        get_version_location(clients, TEST_APP_NAME, "v1")


def test_get_version_location_incomplete_bundle(clients):
    clients.elasticbeanstalk.describe_application_versions.return_value = {
        "ApplicationVersions": [{"SourceBundle": {"S3Bucket": "bucket"}}]
    }

    with pytest.raises(VersionLookupError, match="Bucket found, Key missing"):
        get_version_location(clients, TEST_APP_NAME, "v1")


def test_get_version_location_does_not_swallow_errors(clients):
    clients.elasticbeanstalk.describe_application_versions.side_effect = client_error("InternalFailure", "boom")

    with pytest.raises(VersionLookupError, match="boom"):
        get_version_location(clients, TEST_APP_NAME, "v1")


def test_environment_exists(clients):
    clients.elasticbeanstalk.describe_environments.return_value = environment("Ready", "Green")

    state = environment_exists(clients, TEST_APP_NAME, TEST_ENV_NAME)

    assert state.exists is True
    assert state.status == "Ready"
    assert state.health == "Green"


def test_environment_not_listed(clients):
    clients.elasticbeanstalk.describe_environments.return_value = {"Environments": []}

    assert environment_exists(clients, TEST_APP_NAME, TEST_ENV_NAME).exists is False


def test_terminated_environment_counts_as_missing(clients):
    clients.elasticbeanstalk.describe_environments.return_value = environment("Terminated", "Grey")

    state = environment_exists(clients, TEST_APP_NAME, TEST_ENV_NAME)

    assert state.exists is False
    assert state.status == "Terminated"


def test_not_found_error_counts_as_missing(clients):
    clients.elasticbeanstalk.describe_environments.side_effect = client_error("NotFound", "gone", status=404)

    assert environment_exists(clients, TEST_APP_NAME, TEST_ENV_NAME).exists is False


def test_other_environment_errors_propagate(clients):
    clients.elasticbeanstalk.describe_environments.side_effect = client_error("InternalFailure", "boom", status=500)

    with pytest.raises(ClientError):
        environment_exists(clients, TEST_APP_NAME, TEST_ENV_NAME)


def test_get_environment_info(clients):
    clients.elasticbeanstalk.describe_environments.return_value = environment("Ready", "Yellow")

    state = get_environment_info(clients, TEST_APP_NAME, TEST_ENV_NAME)

    assert state.cname == "test-env.us-east-1.elasticbeanstalk.com"
    assert state.environment_id == "e-abc123"
    assert state.health == "Yellow"


def test_get_environment_info_missing(clients):
    clients.elasticbeanstalk.describe_environments.return_value = {"Environments": []}

    with pytest.raises(EnvironmentNotFoundError):
        get_environment_info(clients, TEST_APP_NAME, TEST_ENV_NAME)


def test_live_environment_wins_over_terminated_predecessor(clients):
    clients.elasticbeanstalk.describe_environments.return_value = listing(
        environment("Terminated", "Grey", EnvironmentId="e-old"),
        environment("Ready", "Green", EnvironmentId="e-new"),
    )

    state = environment_exists(clients, TEST_APP_NAME, TEST_ENV_NAME)

    assert state.exists is True
    assert state.environment_id == "e-new"
    assert clients.elasticbeanstalk.describe_environments.call_args.kwargs["IncludeDeleted"] is False


def test_only_terminated_records_count_as_missing(clients):
    clients.elasticbeanstalk.describe_environments.return_value = listing(
        environment("Terminated", "Grey", EnvironmentId="e-old"),
        environment("Terminated", "Grey", EnvironmentId="e-older"),
    )

    state = environment_exists(clients, TEST_APP_NAME, TEST_ENV_NAME)

    assert state.exists is False
    assert state.environment_id == "e-old"
