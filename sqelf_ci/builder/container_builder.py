from typing import List, Union
from pathlib import Path

from sqelf_ci.builder.command_runner import CommandRunner
from sqelf_ci.builder.filesystem import StagingLayout
from sqelf_ci.common.dto.context import BuildContext, Artifact
from sqelf_ci.common.config.constants import Platform, ArtifactKind, PipelineStage
from sqelf_ci.common.config.logging_config import get_logger
from sqelf_ci.common.exceptions.pipeline_exceptions import CommandFailed, ContainerBuildFailure
from sqelf_ci.common.utils.file_utils import ensure_directory, copy_executable


logger = get_logger(__name__)


class ContainerBuilder:
    def __init__(
        self,
        runner: CommandRunner,
        source_dir: Union[str, Path],
        image_repository: str,
        test_app_repository: str,
        server_dockerfile: str = "ci/linux-x64/Dockerfile",
        test_app_dockerfile: str = "ci/test-app/Dockerfile",
        seqcli_version: str = "5.0.165",
        timeout_seconds: float = 1800,
    ):
        self._runner = runner
        self._source_dir = Path(source_dir)
        self._image_repository = image_repository
        self._test_app_repository = test_app_repository
        self._server_dockerfile = server_dockerfile
        self._test_app_dockerfile = test_app_dockerfile
        self._seqcli_version = seqcli_version
        self._timeout = timeout_seconds

    def server_image(self, context: BuildContext) -> str:
        return f"{self._image_repository}:{context.image_tag}"

    def test_app_image(self, context: BuildContext) -> str:
        return f"{self._test_app_repository}:{context.build_id}"

    async def build(
        self,
        context: BuildContext,
        layout: StagingLayout,
        binary: Artifact,
    ) -> List[Artifact]:
        if context.platform != Platform.LINUX:
            raise ContainerBuildFailure(
                message=f"Container images are only built on Linux, not {context.platform.value}",
            )
        if binary.kind != ArtifactKind.BINARY or not Path(binary.reference).is_file():
            raise ContainerBuildFailure(
                message=f"No sqelf binary to containerize at {binary.reference}",
            )

        image_context = self._prepare_image_context(layout, Path(binary.reference))

        server_tag = self.server_image(context)
        await self._docker_build(
            server_tag,
            self._server_dockerfile,
            layout,
            build_args={"SEQCLI_VERSION": self._seqcli_version},
            context_dir=image_context,
        )

        test_app_tag = self.test_app_image(context)
        await self._docker_build(
            test_app_tag,
            self._test_app_dockerfile,
            layout,
            build_args={},
            context_dir=self._source_dir,
        )

        return [
            Artifact(
                kind=ArtifactKind.CONTAINER_IMAGE,
                reference=server_tag,
                produced_by=PipelineStage.CONTAINER_BUILD,
                publishable=True,
            ),
            Artifact(
                kind=ArtifactKind.CONTAINER_IMAGE,
                reference=test_app_tag,
                produced_by=PipelineStage.CONTAINER_BUILD,
                publishable=False,
            ),
        ]

    def _prepare_image_context(self, layout: StagingLayout, binary: Path) -> Path:
        dockerfile_dir = (self._source_dir / self._server_dockerfile).parent
        try:
            ensure_directory(layout.image_context_dir)
            copy_executable(binary, layout.image_context_dir / "sqelf")
            for script in sorted(dockerfile_dir.glob("*.sh")):
                copy_executable(script, layout.image_context_dir / script.name)
        except OSError as e:
            raise ContainerBuildFailure(
                message=f"Could not prepare image build context: {e}",
                cause=e,
            )
        return layout.image_context_dir

    async def _docker_build(
        self,
        tag: str,
        dockerfile: str,
        layout: StagingLayout,
        build_args: dict,
        context_dir: Path,
    ) -> None:
        cmd = [
            "docker", "build",
            "--file", str(self._source_dir / dockerfile),
            "--tag", tag,
        ]
        for key, value in build_args.items():
            cmd.extend(["--build-arg", f"{key}={value}"])
        cmd.append(str(context_dir))

        logger.info(f"Building container image {tag}")
        try:
            await self._runner.run(
                cmd,
                cwd=self._source_dir,
                log_path=layout.stage_log(PipelineStage.CONTAINER_BUILD.value),
                timeout=self._timeout,
            )
        except CommandFailed as e:
            raise ContainerBuildFailure(
                message=f"docker build of {tag} failed: {e.message}",
                image=tag,
                diagnostics=e.output,
                cause=e,
            )
