from unittest.mock import MagicMock

import boto3

from eb_deploy.aws.utils import AWSClientFactory, AWSClients


def test_clients_are_bound_to_region_and_endpoint():
    session = MagicMock()

    AWSClients("eu-west-1", endpoint_url="http://localhost:4566", session=session)

    services = [c.args[0] for c in session.client.call_args_list]
    assert services == ["elasticbeanstalk", "s3", "sts"]
    for call in session.client.call_args_list:
        assert call.kwargs == {"region_name": "eu-west-1", "endpoint_url": "http://localhost:4566"}


def test_factory_caches_one_bundle_per_region():
    factory = AWSClientFactory(session=MagicMock())

    first = factory.for_region("us-east-1")
    again = factory.for_region("us-east-1")
    other = factory.for_region("eu-west-1")

    assert first is again
    assert other is not first
    assert other.region == "eu-west-1"
    assert len(factory) == 2


def test_clear_drops_cached_clients():
    factory = AWSClientFactory(session=MagicMock())
    first = factory.for_region("us-east-1")

    factory.clear()

    assert len(factory) == 0
    assert factory.for_region("us-east-1") is not first


def test_real_session_builds_boto3_clients(aws_credentials):
    clients = AWSClientFactory(session=boto3.Session()).for_region("us-west-2")

    assert clients.s3.meta.region_name == "us-west-2"
    assert clients.elasticbeanstalk.meta.service_model.service_name == "elasticbeanstalk"
