from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime, timezone


class ErrorCode(str, Enum):
    UNKNOWN = "E0000"

    TOOLCHAIN_MISSING = "E1000"
    FILESYSTEM_ERROR = "E1100"
    BUILD_FAILED = "E1200"
    CONTAINER_BUILD_FAILED = "E1300"
    COMMAND_FAILED = "E1400"

    ENVIRONMENT_STARTUP_TIMEOUT = "E2000"
    ENVIRONMENT_TEARDOWN_ERROR = "E2001"
    WORKLOAD_FAILED = "E2100"

    VERIFICATION_FAILED = "E3000"

    PUBLISH_FAILED = "E4000"

    CONFIGURATION_ERROR = "E7000"
    INVALID_INPUT = "E7001"


class PipelineBaseException(Exception):
    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    @property
    def fatal(self) -> bool:
        return True

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code}, "
            f"details={self.details})"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code.value,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__,
            "fatal": self.fatal,
        }

    def with_context(self, **kwargs: Any) -> "PipelineBaseException":
        self.details.update(kwargs)
        return self


class FatalPipelineException(PipelineBaseException):
    """Aborts the remaining pipeline; teardown still runs."""


class NonFatalPipelineException(PipelineBaseException):
    """Reported as a warning; the run keeps its exit code."""

    @property
    def fatal(self) -> bool:
        return False


class ConfigurationError(FatalPipelineException):
    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        if field_name:
            details["field_name"] = field_name
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            details=details,
            cause=cause,
        )
        self.field_name = field_name
