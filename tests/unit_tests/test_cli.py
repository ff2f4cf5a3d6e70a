import pytest
from click.testing import CliRunner

from eb_deploy import cli as cli_module
from eb_deploy.cli import cli
from eb_deploy.schemas import DeploymentAction, DeploymentOutcome, EnvironmentState

REQUIRED_ARGS = ["deploy", "--application-name", "test-app", "--environment-name", "test-env"]


class FakeDeployer:
    """Records the request instead of deploying."""
    instances = []

    def __init__(self, request, **kwargs):
        self.request = request
        self.kwargs = kwargs
        FakeDeployer.instances.append(self)

    def run(self):
        return DeploymentOutcome(
            action=DeploymentAction.UPDATE,
            environment=EnvironmentState(
                exists=True, status="Ready", health="Green",
                cname="test-env.us-east-1.elasticbeanstalk.com", environment_id="e-abc123",
            ),
            version_label=self.request.version_label,
        )


class FailingDeployer(FakeDeployer):
    def run(self):
        return None


@pytest.fixture
def runner(monkeypatch):
    for name in ("GITHUB_SHA", "GITHUB_OUTPUT", "AWS_ENDPOINT_URL", "EB_DEPLOY_DEPLOYMENT_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    FakeDeployer.instances = []
    return CliRunner()


def test_show_config(runner, monkeypatch):
    monkeypatch.setenv("EB_DEPLOY_DEPLOYMENT_TIMEOUT", "300")

    result = runner.invoke(cli, ["show-config"])

    assert result.exit_code == 0
    assert "Deployment Timeout: 300s" in result.output
    assert "AWS Region: us-east-1" in result.output


def test_deploy_requires_names(runner):
    result = runner.invoke(cli, ["deploy", "--application-name", "test-app"])

    assert result.exit_code == 2
    assert "--environment-name" in result.output


def test_invalid_inputs_exit_before_deploying(runner, monkeypatch):
    monkeypatch.setattr(cli_module, "ElasticBeanstalkDeployer", FakeDeployer)

    result = runner.invoke(cli, REQUIRED_ARGS + ["--aws-region", "not-a-region"])

    assert result.exit_code == 1
    assert FakeDeployer.instances == []


def test_successful_deploy_writes_outputs(runner, monkeypatch, tmp_path):
    output_file = tmp_path / "github_output"
    monkeypatch.setenv("GITHUB_OUTPUT", str(output_file))
    monkeypatch.setenv("GITHUB_SHA", "abc123")
    monkeypatch.setattr(cli_module, "ElasticBeanstalkDeployer", FakeDeployer)

    result = runner.invoke(cli, REQUIRED_ARGS + ["--no-wait-for-environment-recovery"])

    assert result.exit_code == 0, result.output
    request = FakeDeployer.instances[0].request
    assert request.version_label == "abc123"
    assert request.aws_region == "us-east-1"
    assert request.wait_for_environment_recovery is False
    assert request.wait_for_deployment is True

    assert "environment-url=test-env.us-east-1.elasticbeanstalk.com" in result.output
    written = output_file.read_text().splitlines()
    assert "deployment-action-type=update" in written
    assert "version-label=abc123" in written


def test_explicit_options_override_settings(runner, monkeypatch):
    monkeypatch.setenv("EB_DEPLOY_DEPLOYMENT_TIMEOUT", "300")
    monkeypatch.setattr(cli_module, "ElasticBeanstalkDeployer", FakeDeployer)

    result = runner.invoke(cli, REQUIRED_ARGS + [
        "--aws-region", "eu-west-1",
        "--version-label", "release-7",
        "--deployment-timeout", "600",
    ])

    assert result.exit_code == 0, result.output
    request = FakeDeployer.instances[0].request
    assert request.aws_region == "eu-west-1"
    assert request.version_label == "release-7"
    assert request.deployment_timeout == 600


def test_timestamp_label_without_commit_sha(runner, monkeypatch):
    monkeypatch.setattr(cli_module, "ElasticBeanstalkDeployer", FakeDeployer)

    result = runner.invoke(cli, REQUIRED_ARGS)

    assert result.exit_code == 0, result.output
    assert FakeDeployer.instances[0].request.version_label.startswith("v")


def test_failed_deploy_exits_non_zero(runner, monkeypatch):
    monkeypatch.setattr(cli_module, "ElasticBeanstalkDeployer", FailingDeployer)

    result = runner.invoke(cli, REQUIRED_ARGS)

    assert result.exit_code == 1
