# cli.py
import sys
import time
import click
import logging
from typing import Dict, Optional

from eb_deploy.aws.utils import AWSClientFactory
from eb_deploy.config.settings import Settings, get_settings
from eb_deploy.deploy import ElasticBeanstalkDeployer
from eb_deploy.exceptions import PreconditionError
from eb_deploy.schemas import DeploymentRequest

# Configure logging
logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # boto's debug output drowns out deployment progress
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('boto3').setLevel(logging.WARNING)


def default_version_label(settings: Settings) -> str:
    """Commit SHA when running in CI, otherwise a millisecond timestamp."""
    return settings.github_sha or f"v{int(time.time() * 1000)}"


def write_outputs(outputs: Dict[str, str], github_output: Optional[str]) -> None:
    """Print outputs and append them to the CI output file when there is one."""
    for key, value in outputs.items():
        click.echo(f"{key}={value}")

    if github_output:
        with open(github_output, 'a') as f:
            for key, value in outputs.items():
                f.write(f"{key}={value}\n")


@click.group()
def cli():
    """Deploy applications to AWS Elastic Beanstalk"""
    pass


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    print("Current Configuration:")
    print(f"  AWS Region: {settings.aws_region}")
    print(f"  AWS Endpoint: {settings.aws_endpoint_url}")
    print(f"  Deployment Timeout: {settings.deployment_timeout}s")
    print(f"  Max Retries: {settings.max_retries}")
    print(f"  Retry Delay: {settings.retry_delay}s")
    print(f"  Poll Interval: {settings.poll_interval}s")
    print(f"  Workspace Root: {settings.workspace_root}")
    print(f"  Log Level: {settings.log_level}")


@cli.command()
@click.option("--aws-region", help="AWS region, e.g. us-east-1")
@click.option("--application-name", required=True, help="Elastic Beanstalk application name")
@click.option("--environment-name", required=True, help="Elastic Beanstalk environment name")
@click.option("--version-label", help="Application version label (default: commit SHA or timestamp)")
@click.option("--deployment-package-path", help="Existing archive to deploy instead of zipping the workspace")
@click.option("--exclude-patterns", default="", help="Comma-separated globs to leave out of a built package")
@click.option("--solution-stack-name", help="Solution stack for the environment")
@click.option("--platform-arn", help="Platform ARN for the environment")
@click.option("--option-settings", help="JSON array of {Namespace, OptionName, Value}")
@click.option("--cname-prefix", help="CNAME prefix for a new environment (default: environment name)")
@click.option("--s3-bucket-name", help="Bucket for source bundles (default: elasticbeanstalk-<region>-<account>)")
@click.option("--deployment-timeout", type=int, help="Seconds to wait in each wait phase (60-3600)")
@click.option("--max-retries", type=int, help="Retries per AWS call (0-10)")
@click.option("--retry-delay", type=int, help="Base backoff delay in seconds (1-60)")
@click.option("--create-environment-if-not-exists/--no-create-environment-if-not-exists", default=True)
@click.option("--create-application-if-not-exists/--no-create-application-if-not-exists", default=True)
@click.option("--create-s3-bucket-if-not-exists/--no-create-s3-bucket-if-not-exists", default=True)
@click.option("--use-existing-application-version-if-available/--no-use-existing-application-version-if-available",
              default=False)
@click.option("--wait-for-deployment/--no-wait-for-deployment", default=True)
@click.option("--wait-for-environment-recovery/--no-wait-for-environment-recovery", default=True)
def deploy(**options):
    """Deploy an application version to an Elastic Beanstalk environment"""
    settings = get_settings()
    configure_logging(settings.log_level)

    values = {
        key: value for key, value in options.items()
        if value is not None
    }
    values.setdefault('aws_region', settings.aws_region)
    values.setdefault('version_label', default_version_label(settings))
    values.setdefault('deployment_timeout', settings.deployment_timeout)
    values.setdefault('max_retries', settings.max_retries)
    values.setdefault('retry_delay', settings.retry_delay)

    try:
        request = DeploymentRequest.build(**values)
    except PreconditionError as e:
        logger.error(f"❌ {e}")
        sys.exit(1)

    deployer = ElasticBeanstalkDeployer(
        request,
        client_factory=AWSClientFactory(endpoint_url=settings.aws_endpoint_url),
        workspace_root=settings.workspace_root,
        poll_interval=settings.poll_interval,
        commit_sha=settings.github_sha,
    )
    outcome = deployer.run()
    if outcome is None:
        sys.exit(1)

    write_outputs(outcome.as_outputs(), settings.github_output)


if __name__ == "__main__":
    cli()
