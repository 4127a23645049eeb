from dataclasses import dataclass
from pathlib import Path
from typing import List, Union

from sqelf_ci.common.config.constants import (
    STAGING_PUBLISH_DIR,
    STAGING_LOGS_DIR,
    STAGING_WORKLOAD_DIR,
    STAGING_STAGE_LOGS_DIR,
    SQELF_LOG_FILE,
    SEQ_LOG_FILE,
    CLEF_OUTPUT_FILE,
    WORKLOAD_PLAN_FILE,
)
from sqelf_ci.common.config.logging_config import get_logger
from sqelf_ci.common.exceptions.pipeline_exceptions import FilesystemError
from sqelf_ci.common.utils.file_utils import ensure_directory, empty_directory


logger = get_logger(__name__)


@dataclass(frozen=True)
class StagingLayout:
    root: Path

    @property
    def publish_dir(self) -> Path:
        return self.root / STAGING_PUBLISH_DIR

    @property
    def logs_dir(self) -> Path:
        return self.root / STAGING_LOGS_DIR

    @property
    def workload_dir(self) -> Path:
        return self.root / STAGING_WORKLOAD_DIR

    @property
    def stage_logs_dir(self) -> Path:
        return self.root / STAGING_STAGE_LOGS_DIR

    @property
    def image_context_dir(self) -> Path:
        return self.root / "image-context"

    @property
    def sqelf_log(self) -> Path:
        return self.logs_dir / SQELF_LOG_FILE

    @property
    def seq_log(self) -> Path:
        return self.logs_dir / SEQ_LOG_FILE

    @property
    def clef_output(self) -> Path:
        return self.logs_dir / CLEF_OUTPUT_FILE

    @property
    def workload_plan(self) -> Path:
        return self.workload_dir / WORKLOAD_PLAN_FILE

    def stage_log(self, stage: str) -> Path:
        return self.stage_logs_dir / f"{stage}.log"

    def directories(self) -> List[Path]:
        return [self.publish_dir, self.logs_dir, self.workload_dir, self.stage_logs_dir]


class FilesystemInitializer:
    def __init__(self, root: Union[str, Path]):
        self._root = Path(root).expanduser().resolve()

    @property
    def layout(self) -> StagingLayout:
        return StagingLayout(root=self._root)

    def initialize(self) -> StagingLayout:
        self._guard()
        layout = self.layout

        try:
            ensure_directory(self._root)
            removed = empty_directory(self._root)
            for directory in layout.directories():
                ensure_directory(directory)
        except OSError as e:
            raise FilesystemError(
                message=f"Failed to prepare staging directory: {e}",
                path=str(self._root),
                cause=e,
            )

        if removed:
            logger.info(f"Removed {removed} stale entries from {self._root}")
        logger.info(f"Staging directory ready at {self._root}")
        return layout

    def _guard(self) -> None:
        root = self._root
        if root == Path(root.anchor):
            raise FilesystemError("Refusing to use a filesystem root as staging", path=str(root))
        if root == Path.home().resolve():
            raise FilesystemError("Refusing to use the home directory as staging", path=str(root))
        if root == Path.cwd().resolve() or root in Path.cwd().resolve().parents:
            raise FilesystemError(
                "Staging directory must not contain the working directory",
                path=str(root),
            )
        if root.exists() and not root.is_dir():
            raise FilesystemError("Staging path exists and is not a directory", path=str(root))
