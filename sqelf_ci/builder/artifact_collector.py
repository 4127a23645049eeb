from typing import List, Optional
from pathlib import Path
import json

from sqelf_ci.builder.filesystem import StagingLayout
from sqelf_ci.common.dto.context import BuildContext, Artifact
from sqelf_ci.common.config.constants import ArtifactKind, PipelineStage, ARTIFACT_MANIFEST_FILE
from sqelf_ci.common.config.logging_config import get_logger
from sqelf_ci.common.exceptions.pipeline_exceptions import FilesystemError
from sqelf_ci.common.utils.file_utils import get_file_size
from sqelf_ci.common.utils.hash_utils import hash_file
from sqelf_ci.common.utils.time_utils import utc_now


logger = get_logger(__name__)


class ArtifactCollector:
    """Indexes the files under the publish directory for upload by the CI host."""

    def __init__(self, pattern: str = "*"):
        self._pattern = pattern

    def collect(
        self,
        context: BuildContext,
        layout: StagingLayout,
        produced: Optional[List[Artifact]] = None,
    ) -> List[Artifact]:
        artifacts: List[Artifact] = []

        try:
            for file_path in sorted(layout.publish_dir.glob(self._pattern)):
                if not file_path.is_file():
                    continue
                artifacts.append(
                    Artifact(
                        kind=ArtifactKind.FILE,
                        reference=str(file_path),
                        produced_by=PipelineStage.ARTIFACTS,
                        publishable=False,
                        checksum_sha256=hash_file(file_path),
                        size_bytes=get_file_size(file_path),
                    )
                )

            self._write_manifest(context, layout, artifacts, produced or [])
        except OSError as e:
            raise FilesystemError(
                message=f"Failed to index staged artifacts: {e}",
                path=str(layout.publish_dir),
                cause=e,
            )

        logger.info(f"Collected {len(artifacts)} artifacts matching {self._pattern}")
        return artifacts

    def _write_manifest(
        self,
        context: BuildContext,
        layout: StagingLayout,
        files: List[Artifact],
        produced: List[Artifact],
    ) -> Path:
        manifest = {
            "build_id": context.build_id,
            "short_version": context.short_version,
            "platform": context.platform.value,
            "branch": context.branch,
            "toolchain": context.toolchain_versions,
            "created_at": utc_now().isoformat(),
            "files": [
                {
                    "name": Path(a.reference).name,
                    "sha256": a.checksum_sha256,
                    "size_bytes": a.size_bytes,
                }
                for a in files
            ],
            "produced": [a.model_dump_json_safe() for a in produced],
        }

        manifest_path = layout.root / ARTIFACT_MANIFEST_FILE
        with open(manifest_path, "w", encoding="utf-8") as f:
            json.dump(manifest, f, indent=2)
        return manifest_path
