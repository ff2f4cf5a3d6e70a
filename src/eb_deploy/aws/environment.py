"""Create and update Elastic Beanstalk environments."""
import time
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Union

from eb_deploy.aws.retry import RetryPolicy, call_with_retry
from eb_deploy.aws.utils import AWSClients
from eb_deploy.exceptions import PreconditionError
from eb_deploy.schemas import OptionSetting, Platform, parse_option_settings

logger = logging.getLogger(__name__)

IAM_INSTANCE_PROFILE_SETTING = ('aws:autoscaling:launchconfiguration', 'IamInstanceProfile')
SERVICE_ROLE_SETTING = ('aws:elasticbeanstalk:environment', 'ServiceRole')

OptionSettingsInput = Union[str, Sequence[OptionSetting], None]


@dataclass(frozen=True)
class UpdateEnvironmentRequest:
    """Parameters for UpdateEnvironment.

    Leaving platform unset keeps the environment's current platform.
    """
    application_name: str
    environment_name: str
    version_label: str
    option_settings: Optional[Tuple[OptionSetting, ...]] = None
    platform: Optional[Platform] = None

    def to_params(self) -> Dict[str, Any]:
        params = {
            'ApplicationName': self.application_name,
            'EnvironmentName': self.environment_name,
            'VersionLabel': self.version_label,
        }
        if self.option_settings is not None:
            params['OptionSettings'] = [s.to_api() for s in self.option_settings]
        if self.platform is not None:
            params.update(self.platform.to_params())
        return params


@dataclass(frozen=True)
class CreateEnvironmentRequest:
    """Parameters for CreateEnvironment; platform and option settings are required."""
    application_name: str
    environment_name: str
    version_label: str
    cname_prefix: str
    option_settings: Tuple[OptionSetting, ...]
    platform: Platform

    def to_params(self) -> Dict[str, Any]:
        params = {
            'ApplicationName': self.application_name,
            'EnvironmentName': self.environment_name,
            'VersionLabel': self.version_label,
            'CNAMEPrefix': self.cname_prefix,
            'OptionSettings': [s.to_api() for s in self.option_settings],
        }
        params.update(self.platform.to_params())
        return params


def validate_option_settings_for_create(option_settings: Optional[Sequence[OptionSetting]]) -> None:
    """Check that a new environment gets both IAM roles it needs."""
    if not option_settings:
        raise PreconditionError(
            'option-settings is required when creating a new environment. '
            'Must include IamInstanceProfile and ServiceRole.'
        )

    present = {(s.namespace, s.option_name) for s in option_settings}

    if IAM_INSTANCE_PROFILE_SETTING not in present:
        raise PreconditionError(
            'option-settings must include IamInstanceProfile setting with Namespace '
            '"aws:autoscaling:launchconfiguration" and OptionName "IamInstanceProfile"'
        )

    if SERVICE_ROLE_SETTING not in present:
        raise PreconditionError(
            'option-settings must include ServiceRole setting with Namespace '
            '"aws:elasticbeanstalk:environment" and OptionName "ServiceRole"'
        )


def build_update_request(application_name: str, environment_name: str, version_label: str,
                         option_settings: OptionSettingsInput = None,
                         platform: Optional[Platform] = None) -> UpdateEnvironmentRequest:
    parsed = parse_option_settings(option_settings)
    return UpdateEnvironmentRequest(
        application_name=application_name,
        environment_name=environment_name,
        version_label=version_label,
        option_settings=tuple(parsed) if parsed is not None else None,
        platform=platform,
    )


def build_create_request(application_name: str, environment_name: str, version_label: str,
                         option_settings: OptionSettingsInput,
                         platform: Optional[Platform],
                         cname_prefix: Optional[str] = None) -> CreateEnvironmentRequest:
    """Validate create preconditions locally and assemble the request."""
    parsed = parse_option_settings(option_settings)
    validate_option_settings_for_create(parsed)

    if platform is None:
        raise PreconditionError(
            'Either solution-stack-name or platform-arn must be provided when creating a new environment'
        )

    return CreateEnvironmentRequest(
        application_name=application_name,
        environment_name=environment_name,
        version_label=version_label,
        cname_prefix=cname_prefix or environment_name,
        option_settings=tuple(parsed),
        platform=platform,
    )


def update_environment(clients: AWSClients, request: UpdateEnvironmentRequest, policy: RetryPolicy,
                       sleep: Callable[[float], None] = time.sleep) -> Dict[str, Any]:
    """Start an update; completion is observed by the monitoring loops."""
    logger.info(f"🔄 Updating environment: {request.environment_name}")
    response = call_with_retry(
        lambda: clients.elasticbeanstalk.update_environment(**request.to_params()),
        policy,
        'Update environment',
        sleep=sleep,
    )
    logger.info(f"✅ Environment update initiated for {request.environment_name}")
    return response


def create_environment(clients: AWSClients, request: CreateEnvironmentRequest, policy: RetryPolicy,
                       sleep: Callable[[float], None] = time.sleep) -> Dict[str, Any]:
    """Start environment creation; completion is observed by the monitoring loops."""
    logger.info(f"🆕 Creating new environment: {request.environment_name}")
    response = call_with_retry(
        lambda: clients.elasticbeanstalk.create_environment(**request.to_params()),
        policy,
        'Create environment',
        sleep=sleep,
    )
    logger.info(f"✅ Environment creation initiated for {request.environment_name}")
    return response

