import re
import sys
from functools import lru_cache
from typing import Optional, List, Dict

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field, SecretStr, field_validator, model_validator

from sqelf_ci.common.config.constants import (
    Platform,
    GelfProtocol,
    DEFAULT_SHORT_VERSION,
    DEFAULT_PUBLISH_BRANCH_PATTERN,
    GELF_DEFAULT_PORT,
    SEQCLI_VERSION,
)


def _detect_platform() -> Platform:
    if sys.platform.startswith("win"):
        return Platform.WINDOWS
    return Platform.LINUX


SHORT_VERSION_PATTERN = re.compile(r"^\d+(\.\d+){1,3}$")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SQELF_CI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=True)
    log_dir: Optional[str] = Field(default=None, description="Directory for a rotating JSON log file")

    short_version: str = Field(
        default=DEFAULT_SHORT_VERSION,
        description="Version stamped into packages and image tags",
    )
    platform: Platform = Field(default_factory=_detect_platform)
    is_published_build: bool = Field(
        default=False,
        validation_alias=AliasChoices("SQELF_CI_IS_PUBLISHED_BUILD", "is_published_build"),
    )
    branch: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SQELF_CI_BRANCH", "APPVEYOR_REPO_BRANCH", "branch"),
    )
    build_number: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SQELF_CI_BUILD_NUMBER", "APPVEYOR_BUILD_NUMBER", "build_number"),
    )
    publish_branch_pattern: str = Field(default=DEFAULT_PUBLISH_BRANCH_PATTERN)

    source_dir: str = Field(default=".", description="Repository checkout root")
    staging_dir: str = Field(default="./.sqelf-ci", description="Staging output root")

    required_tools_linux: List[str] = Field(default=["cargo", "rustc", "docker"])
    required_tools_windows: List[str] = Field(default=["cargo", "rustc", "dotnet"])
    minimum_tool_versions: Dict[str, str] = Field(default_factory=dict)

    build_timeout_seconds: int = Field(default=3600, ge=1)
    toolchain_timeout_seconds: int = Field(default=60, ge=1)
    windows_package_project: str = Field(default="src/Seq.Input.Gelf")

    image_repository: str = Field(default="datalust/sqelf-ci")
    test_app_repository: str = Field(default="sqelf-ci-testapp")
    server_dockerfile: str = Field(default="ci/linux-x64/Dockerfile")
    test_app_dockerfile: str = Field(default="ci/test-app/Dockerfile")
    seqcli_version: str = Field(default=SEQCLI_VERSION)

    gelf_protocol: GelfProtocol = Field(default=GelfProtocol.UDP)
    gelf_port: int = Field(default=GELF_DEFAULT_PORT, ge=1, le=65535)
    seq_host_port: int = Field(default=5341, ge=1, le=65535)
    readiness_url: Optional[str] = Field(
        default=None,
        description="Overrides http://localhost:<seq_host_port>/health",
    )
    readiness_timeout_seconds: float = Field(default=30.0, gt=0)
    readiness_poll_interval_seconds: float = Field(default=1.0, gt=0)
    emission_timeout_seconds: float = Field(default=120.0, gt=0)
    settle_delay_seconds: float = Field(default=5.0, ge=0)
    server_env: Dict[str, str] = Field(
        default_factory=dict,
        description="Extra environment for the server container, such as sqelf's metrics interval",
    )
    docker_timeout_seconds: int = Field(default=120, ge=1)

    workload_event_count: int = Field(default=50, ge=0)
    workload_include_edge_cases: bool = Field(default=True)
    workload_include_malformed: bool = Field(default=True)
    workload_seed: int = Field(default=12201)
    workload_send_delay_ms: int = Field(default=2, ge=0)

    sqelf_ready_pattern: str = Field(default=r"Setting up for (UDP|TCP)")
    sqelf_marker_pattern: str = Field(default=r"Collected GELF server metrics")
    sqelf_marker_count_property: Optional[str] = Field(default="process_ok")
    sqelf_rejection_pattern: str = Field(default=r"GELF processing failed")
    server_acceptance_pattern: str = Field(
        default=r"Ingested (?P<count>\d+) events?",
        description="Acceptance marker in the log server output; optional 'count' group",
    )
    server_error_pattern: str = Field(default=r"(?i)ingest(ion)? (failed|error)")

    docker_registry: str = Field(default="docker.io")
    docker_user: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("SQELF_CI_DOCKER_USER", "DOCKER_USER", "docker_user"),
    )
    docker_token: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("SQELF_CI_DOCKER_TOKEN", "DOCKER_TOKEN", "docker_token"),
    )
    nuget_source: str = Field(default="https://www.nuget.org/api/v2/package")
    nuget_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("SQELF_CI_NUGET_API_KEY", "NUGET_API_KEY", "nuget_api_key"),
    )
    publish_max_retries: int = Field(default=2, ge=0)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v

    @field_validator("short_version")
    @classmethod
    def validate_short_version(cls, v: str) -> str:
        v = v.strip()
        if not SHORT_VERSION_PATTERN.match(v):
            raise ValueError(f"Invalid short version: {v}")
        return v

    @field_validator("publish_branch_pattern", "sqelf_ready_pattern", "sqelf_marker_pattern",
                     "sqelf_rejection_pattern", "server_acceptance_pattern", "server_error_pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid regular expression {v!r}: {e}")
        return v

    @model_validator(mode="after")
    def validate_publish_credentials(self) -> "Settings":
        if not self.is_published_build:
            return self
        if self.platform == Platform.LINUX and not (self.docker_user and self.docker_token):
            raise ValueError("Published Linux builds require docker_user and docker_token")
        if self.platform == Platform.WINDOWS and not self.nuget_api_key:
            raise ValueError("Published Windows builds require nuget_api_key")
        return self

    def get_required_tools(self) -> List[str]:
        if self.platform == Platform.WINDOWS:
            return list(self.required_tools_windows)
        return list(self.required_tools_linux)

    def get_readiness_url(self) -> str:
        return self.readiness_url or f"http://localhost:{self.seq_host_port}/health"

    def is_windows(self) -> bool:
        return self.platform == Platform.WINDOWS

    def is_linux(self) -> bool:
        return self.platform == Platform.LINUX


@lru_cache()
def get_settings() -> Settings:
    return Settings()
