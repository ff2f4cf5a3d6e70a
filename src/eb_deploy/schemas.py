###########################################
# --- Deployment request/result types --- #
###########################################

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from typing_extensions import Self

from eb_deploy.exceptions import PreconditionError

REGION_PATTERN = re.compile(r"^[a-z]{2}(-gov)?-[a-z]+-\d$")

DEFAULT_DEPLOYMENT_TIMEOUT = 900
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 5


class OptionSetting(BaseModel):
    """A single Elastic Beanstalk configuration option."""
    namespace: str = Field(alias="Namespace")
    option_name: str = Field(alias="OptionName")
    value: str = Field(alias="Value")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("value", mode="before")
    @classmethod
    def stringify_value(cls, v: Any) -> Any:
        # Numbers and booleans are common in hand-written JSON; the API wants strings.
        if isinstance(v, bool):
            return str(v).lower()
        if isinstance(v, (int, float)):
            return str(v)
        return v

    def to_api(self) -> Dict[str, str]:
        return self.model_dump(by_alias=True)


def parse_option_settings(raw: Union[str, Sequence[Any], None]) -> Optional[List[OptionSetting]]:
    """Parse option settings from their JSON wire format.

    Args:
        raw: JSON array text, a list of dicts/OptionSetting objects, or None

    Returns:
        List of OptionSetting, or None when nothing was supplied

    Raises:
        PreconditionError: If the JSON is malformed or not an array of records
    """
    if raw is None:
        return None
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PreconditionError(f"Invalid JSON in option-settings input: {e}") from e
    if not isinstance(raw, list):
        raise PreconditionError("option-settings must be a JSON array")

    settings = []
    for index, item in enumerate(raw):
        if isinstance(item, OptionSetting):
            settings.append(item)
            continue
        try:
            settings.append(OptionSetting.model_validate(item))
        except ValidationError as e:
            raise PreconditionError(
                f"option-settings entry {index} must have Namespace, OptionName and Value: {e}"
            ) from e
    return settings


@dataclass(frozen=True)
class SolutionStack:
    """Platform chosen by solution stack name."""
    name: str

    def to_params(self) -> Dict[str, str]:
        return {"SolutionStackName": self.name}


@dataclass(frozen=True)
class PlatformArn:
    """Platform chosen by platform ARN."""
    arn: str

    def to_params(self) -> Dict[str, str]:
        return {"PlatformArn": self.arn}


Platform = Union[SolutionStack, PlatformArn]


def platform_selector(solution_stack_name: Optional[str],
                      platform_arn: Optional[str]) -> Optional[Platform]:
    """Collapse the two optional platform inputs into one selector."""
    if solution_stack_name and platform_arn:
        raise PreconditionError(
            "Cannot specify both solution-stack-name and platform-arn. Use only one."
        )
    if solution_stack_name:
        return SolutionStack(solution_stack_name)
    if platform_arn:
        return PlatformArn(platform_arn)
    return None


class DeploymentRequest(BaseModel):
    """Validated, immutable input for one deployment run."""
    aws_region: str
    application_name: str = Field(min_length=1)
    environment_name: str = Field(min_length=1)
    version_label: str = Field(min_length=1)

    solution_stack_name: Optional[str] = None
    platform_arn: Optional[str] = None
    option_settings: Optional[List[OptionSetting]] = None
    cname_prefix: Optional[str] = None

    deployment_package_path: Optional[str] = None
    exclude_patterns: str = ""

    s3_bucket_name: Optional[str] = None
    create_s3_bucket_if_not_exists: bool = True
    create_environment_if_not_exists: bool = True
    create_application_if_not_exists: bool = True
    use_existing_application_version_if_available: bool = False
    wait_for_deployment: bool = True
    wait_for_environment_recovery: bool = True

    deployment_timeout: int = Field(DEFAULT_DEPLOYMENT_TIMEOUT, ge=60, le=3600)
    max_retries: int = Field(DEFAULT_MAX_RETRIES, ge=0, le=10)
    retry_delay: int = Field(DEFAULT_RETRY_DELAY, ge=1, le=60)

    model_config = ConfigDict(frozen=True)

    @field_validator("aws_region")
    @classmethod
    def check_region_format(cls, v: str) -> str:
        if not REGION_PATTERN.match(v):
            raise ValueError(f"Invalid AWS region format: {v}. Expected format like 'us-east-1'")
        return v

    @field_validator("version_label")
    @classmethod
    def check_version_label(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("version label must not be blank")
        return v

    @field_validator("solution_stack_name", "platform_arn", "s3_bucket_name",
                     "deployment_package_path", "cname_prefix", mode="before")
    @classmethod
    def empty_string_is_unset(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("option_settings", mode="before")
    @classmethod
    def parse_option_settings_input(cls, v: Any) -> Any:
        try:
            return parse_option_settings(v)
        except PreconditionError as e:
            raise ValueError(str(e)) from e

    @model_validator(mode="after")
    def check_platform_selectors_are_mutually_exclusive(self) -> Self:
        if self.solution_stack_name and self.platform_arn:
            raise ValueError("Cannot specify both solution-stack-name and platform-arn. Use only one.")
        return self

    @classmethod
    def build(cls, **values: Any) -> "DeploymentRequest":
        """Validate raw inputs, reporting failures as PreconditionError."""
        try:
            return cls(**values)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'request'}: {err['msg']}"
                for err in e.errors()
            )
            raise PreconditionError(f"Invalid deployment inputs - {problems}") from e

    @property
    def platform(self) -> Optional[Platform]:
        return platform_selector(self.solution_stack_name, self.platform_arn)


@dataclass(frozen=True)
class ArtifactLocation:
    """Where a version's source bundle lives in S3."""
    bucket: str
    key: str

    def to_source_bundle(self) -> Dict[str, str]:
        return {"S3Bucket": self.bucket, "S3Key": self.key}


@dataclass(frozen=True)
class EnvironmentState:
    """Snapshot of an environment as reported by DescribeEnvironments."""
    exists: bool
    status: Optional[str] = None
    health: Optional[str] = None
    cname: Optional[str] = None
    environment_id: Optional[str] = None

    @classmethod
    def absent(cls) -> "EnvironmentState":
        return cls(exists=False)

    @classmethod
    def from_description(cls, description: Dict[str, Any]) -> "EnvironmentState":
        status = description.get("Status")
        return cls(
            # A terminated environment cannot be updated, so it counts as missing.
            exists=status != "Terminated",
            status=status,
            health=description.get("Health"),
            cname=description.get("CNAME"),
            environment_id=description.get("EnvironmentId"),
        )


class DeploymentAction(str, Enum):
    """What the deployment did to the environment."""
    CREATE = "create"
    UPDATE = "update"


@dataclass(frozen=True)
class DeploymentOutcome:
    """Final result of a successful deployment."""
    action: DeploymentAction
    environment: EnvironmentState
    version_label: str
    elapsed_seconds: float = field(default=0.0)

    def as_outputs(self) -> Dict[str, str]:
        """Flatten into the output record published to the caller."""
        return {
            "environment-url": self.environment.cname or "",
            "environment-id": self.environment.environment_id or "",
            "environment-status": self.environment.status or "",
            "environment-health": self.environment.health or "",
            "deployment-action-type": self.action.value,
            "version-label": self.version_label,
        }
