"""Elastic Beanstalk deployment orchestration."""
import time
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from eb_deploy.aws.artifact import create_application_version, publish_artifact, version_description
from eb_deploy.aws.environment import (
    build_create_request,
    build_update_request,
    create_environment,
    update_environment,
)
from eb_deploy.aws.monitoring import (
    DEFAULT_POLL_INTERVAL,
    wait_for_deployment_completion,
    wait_for_health_recovery,
)
from eb_deploy.aws.probes import (
    application_version_exists,
    environment_exists,
    get_account_id,
    get_environment_info,
    get_version_location,
)
from eb_deploy.aws.retry import RetryPolicy
from eb_deploy.aws.utils import AWSClientFactory
from eb_deploy.exceptions import PreconditionError, VersionConflictError
from eb_deploy.package import create_deployment_package
from eb_deploy.schemas import (
    ArtifactLocation,
    DeploymentAction,
    DeploymentOutcome,
    DeploymentRequest,
    EnvironmentState,
)
from eb_deploy.utils.decorators import log_operation

logger = logging.getLogger(__name__)


def check_input_conflicts(request: DeploymentRequest) -> None:
    """Warn about input combinations that are legal but probably unintended."""
    if request.deployment_package_path and request.exclude_patterns.strip():
        logger.warning(
            "Both deployment-package-path and exclude-patterns are specified. "
            "exclude-patterns will be ignored since deployment-package-path takes precedence."
        )

    if request.create_application_if_not_exists and not request.create_environment_if_not_exists:
        logger.warning(
            "create-application-if-not-exists is true, but create-environment-if-not-exists is false. "
            "The application will be created, but the environment will NOT be created if it does not exist."
        )

    if request.use_existing_application_version_if_available and request.deployment_timeout < 120:
        logger.warning(
            f"use-existing-application-version-if-available is true with a low deployment-timeout "
            f"({request.deployment_timeout}s). If a new version needs to be created, deployment may timeout."
        )

    if request.max_retries == 0:
        logger.warning(
            "max-retries is set to 0. API calls will not be retried on failure, "
            "which may cause transient errors to fail the deployment."
        )

    if not request.create_s3_bucket_if_not_exists and not request.s3_bucket_name:
        logger.warning(
            "create-s3-bucket-if-not-exists is false and no custom s3-bucket-name was provided. "
            "The default Elastic Beanstalk bucket elasticbeanstalk-<region>-<account-id> will be used; "
            "if it does not exist or is not writable, deployment will fail."
        )


class ElasticBeanstalkDeployer:
    """Runs one deployment: publish (or reuse) a version, then create or update the environment."""

    def __init__(self, request: DeploymentRequest, client_factory: Optional[AWSClientFactory] = None,
                 workspace_root: str = ".", poll_interval: float = DEFAULT_POLL_INTERVAL,
                 commit_sha: Optional[str] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.request = request
        self.client_factory = client_factory or AWSClientFactory()
        self.clients = self.client_factory.for_region(request.aws_region)
        self.workspace_root = workspace_root
        self.poll_interval = poll_interval
        self.commit_sha = commit_sha
        self.clock = clock
        self.sleep = sleep
        self.policy = RetryPolicy(max_retries=request.max_retries, retry_delay=request.retry_delay)

    @log_operation("Getting AWS account information")
    def resolve_account(self) -> str:
        account_id = get_account_id(self.clients, self.policy, sleep=self.sleep)
        logger.info("✅ AWS account verified")
        return account_id

    @log_operation("Preparing deployment package")
    def prepare_package(self) -> Path:
        return create_deployment_package(
            self.request.deployment_package_path,
            self.request.version_label,
            self.request.exclude_patterns,
            workspace_root=self.workspace_root,
        )

    @log_operation("Publishing application version")
    def publish_version(self, account_id: str) -> ArtifactLocation:
        """Upload the package and register it, or reuse an existing version."""
        req = self.request
        if application_version_exists(self.clients, req.application_name, req.version_label):
            if not req.use_existing_application_version_if_available:
                # Uploading would overwrite the bundle behind the registered version.
                raise VersionConflictError(
                    f"Application version {req.version_label} already exists for {req.application_name}. "
                    f"Use a new version label or enable use-existing-application-version-if-available."
                )
            logger.info(
                f"♻️  Version {req.version_label} already exists, skipping S3 upload and version creation"
            )
            return get_version_location(self.clients, req.application_name, req.version_label)

        package_path = self.prepare_package()
        location = publish_artifact(
            self.clients,
            req.aws_region,
            account_id,
            req.application_name,
            req.version_label,
            package_path,
            self.policy,
            create_bucket_if_missing=req.create_s3_bucket_if_not_exists,
            bucket_name=req.s3_bucket_name,
            sleep=self.sleep,
        )
        create_application_version(
            self.clients,
            req.application_name,
            req.version_label,
            location,
            self.policy,
            auto_create_application=req.create_application_if_not_exists,
            description=version_description(self.commit_sha),
            sleep=self.sleep,
        )
        return location

    @log_operation("Checking environment status")
    def probe_environment(self) -> EnvironmentState:
        return environment_exists(self.clients, self.request.application_name, self.request.environment_name)

    @log_operation("Applying environment change")
    def mutate_environment(self, environment: EnvironmentState) -> DeploymentAction:
        req = self.request
        if environment.exists:
            request = build_update_request(
                req.application_name, req.environment_name, req.version_label,
                req.option_settings, req.platform,
            )
            update_environment(self.clients, request, self.policy, sleep=self.sleep)
            return DeploymentAction.UPDATE

        if not req.create_environment_if_not_exists:
            raise PreconditionError(
                f"Environment {req.environment_name} does not exist and "
                f"create-environment-if-not-exists is false"
            )
        request = build_create_request(
            req.application_name, req.environment_name, req.version_label,
            req.option_settings, req.platform, req.cname_prefix,
        )
        create_environment(self.clients, request, self.policy, sleep=self.sleep)
        return DeploymentAction.CREATE

    @log_operation("Waiting for environment to converge")
    def await_convergence(self, action: DeploymentAction, started_at: datetime) -> None:
        """Deployment wait then health wait, each with its own full timeout."""
        req = self.request
        last_seen = started_at

        if req.wait_for_deployment:
            last_seen = wait_for_deployment_completion(
                self.clients, req.application_name, req.environment_name,
                req.deployment_timeout, action, since=started_at, policy=self.policy,
                interval=self.poll_interval, clock=self.clock, sleep=self.sleep,
            ) or started_at

        if req.wait_for_environment_recovery:
            wait_for_health_recovery(
                self.clients, req.application_name, req.environment_name,
                req.deployment_timeout, since=last_seen, policy=self.policy,
                interval=self.poll_interval, clock=self.clock, sleep=self.sleep,
            )

    @log_operation("Fetching final environment state")
    def fetch_final_state(self) -> EnvironmentState:
        return get_environment_info(self.clients, self.request.application_name, self.request.environment_name)

    def deploy(self) -> DeploymentOutcome:
        """Run every stage in order; any error aborts the run without rollback."""
        start = self.clock()
        req = self.request

        logger.info("🚀 Starting Elastic Beanstalk deployment...")
        logger.info(f"Application: {req.application_name}")
        logger.info(f"Environment: {req.environment_name}")
        logger.info(f"Version: {req.version_label}")
        logger.info(f"Region: {req.aws_region}")
        check_input_conflicts(req)

        account_id = self.resolve_account()
        location = self.publish_version(account_id)
        logger.info(f"Source bundle: s3://{location.bucket}/{location.key}")

        environment = self.probe_environment()

        started_at = datetime.now(timezone.utc)
        action = self.mutate_environment(environment)
        self.await_convergence(action, started_at)

        final_state = self.fetch_final_state()
        outcome = DeploymentOutcome(
            action=action,
            environment=final_state,
            version_label=req.version_label,
            elapsed_seconds=self.clock() - start,
        )

        logger.info(
            f"✅ Deployment successful! ({action.value}) - Total time: {outcome.elapsed_seconds:.0f}s"
        )
        return outcome

    def run(self) -> Optional[DeploymentOutcome]:
        """deploy(), logging any failure instead of raising it.

        Returns:
            The outcome, or None if the deployment failed
        """
        start = self.clock()
        try:
            return self.deploy()
        except Exception as e:
            logger.error(f"❌ Deployment failed after {self.clock() - start:.0f}s: {str(e)}")
            return None
