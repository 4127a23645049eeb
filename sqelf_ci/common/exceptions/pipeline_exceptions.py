from typing import Optional, Dict, Any, List

from sqelf_ci.common.exceptions.base_exceptions import (
    ErrorCode,
    FatalPipelineException,
    NonFatalPipelineException,
)


OUTPUT_EXCERPT_LIMIT = 4000


def _excerpt(output: Optional[str], limit: int = OUTPUT_EXCERPT_LIMIT) -> Optional[str]:
    if output is None:
        return None
    return output[-limit:]


class CommandFailed(FatalPipelineException):
    def __init__(
        self,
        message: str,
        command: Optional[List[str]] = None,
        exit_code: Optional[int] = None,
        output: Optional[str] = None,
        timed_out: bool = False,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        if command:
            details["command"] = command[0]
        if exit_code is not None:
            details["exit_code"] = exit_code
        if output:
            details["output_excerpt"] = _excerpt(output, 1000)
        if timed_out:
            details["timed_out"] = True
        super().__init__(
            message=message,
            error_code=ErrorCode.COMMAND_FAILED,
            details=details,
            cause=cause,
        )
        self.command = command or []
        self.exit_code = exit_code
        self.output = _excerpt(output)
        self.timed_out = timed_out


class ToolchainMissing(FatalPipelineException):
    def __init__(
        self,
        message: str,
        missing_tools: Optional[List[str]] = None,
        found_versions: Optional[Dict[str, str]] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        if missing_tools:
            details["missing_tools"] = missing_tools
        if found_versions:
            details["found_versions"] = found_versions
        super().__init__(
            message=message,
            error_code=ErrorCode.TOOLCHAIN_MISSING,
            details=details,
            cause=cause,
        )
        self.missing_tools = missing_tools or []
        self.found_versions = found_versions or {}


class FilesystemError(FatalPipelineException):
    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        if path:
            details["path"] = path
        super().__init__(
            message=message,
            error_code=ErrorCode.FILESYSTEM_ERROR,
            details=details,
            cause=cause,
        )
        self.path = path


class BuildFailure(FatalPipelineException):
    def __init__(
        self,
        message: str,
        platform: Optional[str] = None,
        exit_code: Optional[int] = None,
        diagnostics: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        if platform:
            details["platform"] = platform
        if exit_code is not None:
            details["exit_code"] = exit_code
        if diagnostics:
            details["diagnostics"] = _excerpt(diagnostics, 1000)
        super().__init__(
            message=message,
            error_code=ErrorCode.BUILD_FAILED,
            details=details,
            cause=cause,
        )
        self.platform = platform
        self.exit_code = exit_code
        self.diagnostics = _excerpt(diagnostics)


class ContainerBuildFailure(FatalPipelineException):
    def __init__(
        self,
        message: str,
        image: Optional[str] = None,
        diagnostics: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        if image:
            details["image"] = image
        if diagnostics:
            details["diagnostics"] = _excerpt(diagnostics, 1000)
        super().__init__(
            message=message,
            error_code=ErrorCode.CONTAINER_BUILD_FAILED,
            details=details,
            cause=cause,
        )
        self.image = image
        self.diagnostics = _excerpt(diagnostics)


class StartupTimeout(FatalPipelineException):
    def __init__(
        self,
        message: str,
        container: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        elapsed_seconds: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        if container:
            details["container"] = container
        if timeout_seconds is not None:
            details["timeout_seconds"] = timeout_seconds
        if elapsed_seconds is not None:
            details["elapsed_seconds"] = round(elapsed_seconds, 3)
        super().__init__(
            message=message,
            error_code=ErrorCode.ENVIRONMENT_STARTUP_TIMEOUT,
            details=details,
            cause=cause,
        )
        self.container = container
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds


class WorkloadFailure(FatalPipelineException):
    def __init__(
        self,
        message: str,
        container: Optional[str] = None,
        exit_code: Optional[int] = None,
        timed_out: bool = False,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        if container:
            details["container"] = container
        if exit_code is not None:
            details["exit_code"] = exit_code
        if timed_out:
            details["timed_out"] = True
        super().__init__(
            message=message,
            error_code=ErrorCode.WORKLOAD_FAILED,
            details=details,
            cause=cause,
        )
        self.container = container
        self.exit_code = exit_code
        self.timed_out = timed_out


class TeardownFailure(FatalPipelineException):
    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if errors:
            details["errors"] = errors
        super().__init__(
            message=message,
            error_code=ErrorCode.ENVIRONMENT_TEARDOWN_ERROR,
            details=details,
        )
        self.errors = errors or []


class VerificationFailure(FatalPipelineException):
    def __init__(
        self,
        message: str,
        report: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if report is not None:
            details["failed_channels"] = [r.channel.value for r in report.failures()]
            details["results"] = {r.channel.value: r.detail for r in report.results}
        super().__init__(
            message=message,
            error_code=ErrorCode.VERIFICATION_FAILED,
            details=details,
        )
        self.report = report


class PublishFailure(NonFatalPipelineException):
    def __init__(
        self,
        message: str,
        target: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        if target:
            details["target"] = target
        if status_code:
            details["status_code"] = status_code
        if response_body:
            details["response_body"] = response_body[:500]
        super().__init__(
            message=message,
            error_code=ErrorCode.PUBLISH_FAILED,
            details=details,
            cause=cause,
        )
        self.target = target
        self.status_code = status_code
        self.response_body = response_body


class TransientPublishError(PublishFailure):
    """An upload attempt failed in a way that is worth retrying."""
