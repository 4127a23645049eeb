from enum import Enum
from typing import Final


class Platform(str, Enum):
    WINDOWS = "windows"
    LINUX = "linux"


class PipelineStage(str, Enum):
    TOOLCHAIN = "toolchain"
    FILESYSTEM = "filesystem"
    NATIVE_BUILD = "native_build"
    CONTAINER_BUILD = "container_build"
    ENVIRONMENT = "environment"
    WORKLOAD = "workload"
    VERIFICATION = "verification"
    TEARDOWN = "teardown"
    ARTIFACTS = "artifacts"
    PUBLISH = "publish"


class PipelineStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


class ArtifactKind(str, Enum):
    PACKAGE = "package"
    CONTAINER_IMAGE = "container_image"
    BINARY = "binary"
    FILE = "file"


class EnvironmentState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING_AFTER_FAILURE = "stopping_after_failure"
    STOPPING_AFTER_SUCCESS = "stopping_after_success"


class VerificationChannel(str, Enum):
    SQELF_LOG = "sqelf_log"
    SEQ_LOG = "seq_log"
    CLEF_OUTPUT = "clef_output"


class GelfProtocol(str, Enum):
    UDP = "udp"
    TCP = "tcp"


class EdgeCase(str, Enum):
    OVERSIZED = "oversized"
    UNICODE = "unicode"
    ASTRAL = "astral"


DEFAULT_SHORT_VERSION: Final[str] = "99.99.99"
DEFAULT_PUBLISH_BRANCH_PATTERN: Final[str] = r"^(master|dev|release/.*)$"

GELF_DEFAULT_PORT: Final[int] = 12201
GELF_VERSION: Final[str] = "1.1"
GELF_CHUNK_MAGIC: Final[bytes] = b"\x1e\x0f"
GELF_CHUNK_HEADER_SIZE: Final[int] = 12
GELF_MAX_DATAGRAM_SIZE: Final[int] = 8192
GELF_MAX_CHUNKS: Final[int] = 128
GELF_TCP_MAX_SIZE_BYTES: Final[int] = 1024 * 256

SEQ_HTTP_PORT: Final[int] = 80
SEQCLI_VERSION: Final[str] = "5.0.165"
RUST_TOOLCHAIN: Final[str] = "stable"
LINUX_TARGET_TRIPLE: Final[str] = "x86_64-unknown-linux-gnu"
NUGET_PACKAGE_ID: Final[str] = "Seq.Input.Gelf"

STAGING_PUBLISH_DIR: Final[str] = "publish"
STAGING_LOGS_DIR: Final[str] = "logs"
STAGING_WORKLOAD_DIR: Final[str] = "workload"
STAGING_STAGE_LOGS_DIR: Final[str] = "stage-logs"

SQELF_LOG_FILE: Final[str] = "sqelf.log"
SEQ_LOG_FILE: Final[str] = "seq.log"
CLEF_OUTPUT_FILE: Final[str] = "clef.json"
WORKLOAD_PLAN_FILE: Final[str] = "plan.json"
ARTIFACT_MANIFEST_FILE: Final[str] = "artifacts.json"
RESULT_FILE: Final[str] = "result.json"

WORKLOAD_INDEX_PROPERTY: Final[str] = "workload_index"
EDGE_CASE_PROPERTY: Final[str] = "edge_case"
