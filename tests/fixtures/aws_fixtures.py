"""Fakes for AWS clients, errors and time."""
from types import SimpleNamespace
from unittest.mock import MagicMock

from botocore.exceptions import ClientError

from tests.consts import TEST_ACCOUNT_ID, TEST_REGION


class FakeClock:
    """Manual clock; sleep() advances it instead of blocking."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def client_error(code: str, message: str = "", status: int = 400, operation: str = "Operation") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": message},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


def make_clients(region: str = TEST_REGION) -> SimpleNamespace:
    """Stand-in for AWSClients with MagicMock service clients."""
    clients = SimpleNamespace(
        region=region,
        elasticbeanstalk=MagicMock(name="elasticbeanstalk"),
        s3=MagicMock(name="s3"),
        sts=MagicMock(name="sts"),
    )
    clients.sts.get_caller_identity.return_value = {"Account": TEST_ACCOUNT_ID}
    clients.elasticbeanstalk.describe_events.return_value = {"Events": []}
    return clients


def environment(status: str = "Ready", health: str = "Green", **extra) -> dict:
    description = {
        "EnvironmentName": extra.pop("name", "test-env"),
        "EnvironmentId": "e-abc123",
        "CNAME": "test-env.us-east-1.elasticbeanstalk.com",
        "Status": status,
        "Health": health,
    }
    description.update(extra)
    return {"Environments": [description]}


def listing(*responses: dict) -> dict:
    """Merge environment() responses into one multi-record listing."""
    return {"Environments": [env for response in responses for env in response["Environments"]]}
