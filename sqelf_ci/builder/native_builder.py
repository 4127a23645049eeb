from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Union
from pathlib import Path
import os
import shutil

from sqelf_ci.builder.command_runner import CommandRunner
from sqelf_ci.builder.filesystem import StagingLayout
from sqelf_ci.common.dto.context import BuildContext, Artifact
from sqelf_ci.common.config.constants import (
    Platform,
    ArtifactKind,
    PipelineStage,
    LINUX_TARGET_TRIPLE,
    NUGET_PACKAGE_ID,
)
from sqelf_ci.common.config.logging_config import get_logger
from sqelf_ci.common.exceptions.pipeline_exceptions import BuildFailure, CommandFailed
from sqelf_ci.common.utils.file_utils import copy_executable, get_file_size
from sqelf_ci.common.utils.hash_utils import hash_file


logger = get_logger(__name__)


class NativeBuilder(ABC):
    platform: Platform

    def __init__(
        self,
        runner: CommandRunner,
        source_dir: Union[str, Path],
        timeout_seconds: float = 3600,
    ):
        self._runner = runner
        self._source_dir = Path(source_dir)
        self._timeout = timeout_seconds

    @abstractmethod
    async def build(self, context: BuildContext, layout: StagingLayout) -> List[Artifact]:
        ...

    def _build_env(self) -> Dict[str, str]:
        env = os.environ.copy()
        env["CARGO_TERM_COLOR"] = "never"
        return env

    async def _run(self, cmd: List[str], layout: StagingLayout, cwd: Optional[Path] = None) -> None:
        try:
            await self._runner.run(
                cmd,
                cwd=cwd or self._source_dir,
                env=self._build_env(),
                log_path=layout.stage_log(PipelineStage.NATIVE_BUILD.value),
                timeout=self._timeout,
            )
        except CommandFailed as e:
            raise BuildFailure(
                message=f"{self.platform.value} build failed: {e.message}",
                platform=self.platform.value,
                exit_code=e.exit_code,
                diagnostics=e.output,
                cause=e,
            )

    def _artifact(self, kind: ArtifactKind, path: Path, publishable: bool) -> Artifact:
        return Artifact(
            kind=kind,
            reference=str(path),
            produced_by=PipelineStage.NATIVE_BUILD,
            publishable=publishable,
            checksum_sha256=hash_file(path),
            size_bytes=get_file_size(path),
        )

    def _require(self, path: Path, what: str) -> Path:
        if not path.is_file():
            raise BuildFailure(
                message=f"Build reported success but {what} is missing: {path}",
                platform=self.platform.value,
            )
        return path


class LinuxNativeBuilder(NativeBuilder):
    platform = Platform.LINUX

    async def build(self, context: BuildContext, layout: StagingLayout) -> List[Artifact]:
        logger.info(f"Building sqelf {context.short_version} for {LINUX_TARGET_TRIPLE}")

        await self._run(
            ["cargo", "build", "--release", "--target", LINUX_TARGET_TRIPLE],
            layout,
        )

        binary = self._require(
            self._source_dir / "target" / LINUX_TARGET_TRIPLE / "release" / "sqelf",
            "the sqelf binary",
        )
        staged = copy_executable(binary, layout.publish_dir / "sqelf")

        return [self._artifact(ArtifactKind.BINARY, staged, publishable=False)]


class WindowsNativeBuilder(NativeBuilder):
    platform = Platform.WINDOWS

    def __init__(
        self,
        runner: CommandRunner,
        source_dir: Union[str, Path],
        timeout_seconds: float = 3600,
        package_project: str = "src/Seq.Input.Gelf",
    ):
        super().__init__(runner, source_dir, timeout_seconds)
        self._package_project = self._source_dir / package_project

    async def build(self, context: BuildContext, layout: StagingLayout) -> List[Artifact]:
        logger.info(f"Building sqelf {context.short_version} package for Windows")

        await self._run(["cargo", "build", "--release"], layout)

        binary = self._require(
            self._source_dir / "target" / "release" / "sqelf.exe",
            "sqelf.exe",
        )
        try:
            shutil.copy2(binary, self._package_project / "sqelf.exe")
        except OSError as e:
            raise BuildFailure(
                message=f"Could not stage sqelf.exe into {self._package_project}: {e}",
                platform=self.platform.value,
                cause=e,
            )

        await self._run(
            [
                "dotnet", "pack",
                str(self._package_project),
                "-c", "Release",
                "-o", str(layout.publish_dir),
                f"/p:VersionPrefix={context.short_version}",
            ],
            layout,
        )

        package = self._require(
            layout.publish_dir / f"{NUGET_PACKAGE_ID}.{context.short_version}.nupkg",
            "the NuGet package",
        )
        return [self._artifact(ArtifactKind.PACKAGE, package, publishable=True)]


def select_native_builder(
    platform: Platform,
    runner: CommandRunner,
    source_dir: Union[str, Path],
    timeout_seconds: float = 3600,
    package_project: str = "src/Seq.Input.Gelf",
) -> NativeBuilder:
    if platform == Platform.WINDOWS:
        return WindowsNativeBuilder(runner, source_dir, timeout_seconds, package_project)
    if platform == Platform.LINUX:
        return LinuxNativeBuilder(runner, source_dir, timeout_seconds)
    raise ValueError(f"Unsupported platform: {platform}")
