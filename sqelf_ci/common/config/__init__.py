from sqelf_ci.common.config.settings import Settings, get_settings
from sqelf_ci.common.config.logging_config import (
    setup_logging,
    get_logger,
    get_stage_logger,
    get_container_logger,
)
from sqelf_ci.common.config.constants import (
    Platform,
    PipelineStage,
    PipelineStatus,
    ArtifactKind,
    EnvironmentState,
    VerificationChannel,
    GelfProtocol,
    EdgeCase,
)

__all__ = [
    "Settings",
    "get_settings",
    "setup_logging",
    "get_logger",
    "get_stage_logger",
    "get_container_logger",
    "Platform",
    "PipelineStage",
    "PipelineStatus",
    "ArtifactKind",
    "EnvironmentState",
    "VerificationChannel",
    "GelfProtocol",
    "EdgeCase",
]
