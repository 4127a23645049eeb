from sqelf_ci.common.exceptions.base_exceptions import (
    PipelineBaseException,
    ErrorCode,
    FatalPipelineException,
    NonFatalPipelineException,
    ConfigurationError,
)
from sqelf_ci.common.exceptions.pipeline_exceptions import (
    CommandFailed,
    ToolchainMissing,
    FilesystemError,
    BuildFailure,
    ContainerBuildFailure,
    StartupTimeout,
    WorkloadFailure,
    TeardownFailure,
    VerificationFailure,
    PublishFailure,
    TransientPublishError,
)

__all__ = [
    "PipelineBaseException",
    "ErrorCode",
    "FatalPipelineException",
    "NonFatalPipelineException",
    "ConfigurationError",
    "CommandFailed",
    "ToolchainMissing",
    "FilesystemError",
    "BuildFailure",
    "ContainerBuildFailure",
    "StartupTimeout",
    "WorkloadFailure",
    "TeardownFailure",
    "VerificationFailure",
    "PublishFailure",
    "TransientPublishError",
]
