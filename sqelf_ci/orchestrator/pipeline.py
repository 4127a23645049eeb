from typing import Optional, List, Dict, Callable, Awaitable, Iterator
from contextlib import AsyncExitStack, contextmanager
from pathlib import Path
import asyncio

from sqelf_ci.builder.artifact_collector import ArtifactCollector
from sqelf_ci.builder.command_runner import CommandRunner
from sqelf_ci.builder.container_builder import ContainerBuilder
from sqelf_ci.builder.filesystem import FilesystemInitializer, StagingLayout
from sqelf_ci.builder.native_builder import select_native_builder
from sqelf_ci.builder.toolchain_verifier import ToolchainVerifier
from sqelf_ci.common.config.constants import (
    ArtifactKind,
    Platform,
    PipelineStage,
    PipelineStatus,
)
from sqelf_ci.common.config.logging_config import get_logger, get_stage_logger
from sqelf_ci.common.config.settings import Settings
from sqelf_ci.common.dto.context import Artifact, BuildContext
from sqelf_ci.common.dto.result import PipelineResult, PublishOutcome, StageRecord
from sqelf_ci.common.dto.verification import VerificationReport
from sqelf_ci.common.exceptions.base_exceptions import PipelineBaseException
from sqelf_ci.common.exceptions.pipeline_exceptions import (
    ContainerBuildFailure,
    PublishFailure,
    TeardownFailure,
    VerificationFailure,
)
from sqelf_ci.common.utils.time_utils import Timer, utc_now
from sqelf_ci.notification.publisher import Publisher
from sqelf_ci.orchestrator.environment_controller import EnvironmentConfig, TestEnvironmentController
from sqelf_ci.orchestrator.readiness import HttpReadinessProbe, LogMarkerProbe, ReadinessProbe
from sqelf_ci.verification.suite import VerificationSuite
from sqelf_ci.workload.plan import WorkloadPlan


logger = get_logger(__name__)

ProbeFactory = Callable[[Settings, StagingLayout], List[ReadinessProbe]]

TEST_STAGES = (
    PipelineStage.CONTAINER_BUILD,
    PipelineStage.ENVIRONMENT,
    PipelineStage.WORKLOAD,
    PipelineStage.VERIFICATION,
    PipelineStage.TEARDOWN,
)


def default_probes(settings: Settings, layout: StagingLayout) -> List[ReadinessProbe]:
    return [
        HttpReadinessProbe(settings.get_readiness_url()),
        LogMarkerProbe(layout.sqelf_log, settings.sqelf_ready_pattern),
    ]


class BuildPipeline:
    """Runs one build from toolchain check to publish, failing fast.

    Stages run in order; the first fatal error ends the run and is the error
    the result reports. The test environment is always torn down once it has
    been started, and a publish failure is reported without failing the build.
    """

    def __init__(
        self,
        settings: Settings,
        runner: Optional[CommandRunner] = None,
        probe_factory: ProbeFactory = default_probes,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._settings = settings
        self._runner = runner or CommandRunner(default_timeout=settings.build_timeout_seconds)
        self._probe_factory = probe_factory
        self._sleep = sleep
        self.context: Optional[BuildContext] = None
        self.layout: Optional[StagingLayout] = None
        self.controller: Optional[TestEnvironmentController] = None

    async def run(self) -> PipelineResult:
        result = PipelineResult(status=PipelineStatus.RUNNING)
        settings = self._settings
        logger.info(
            f"Starting {settings.platform.value} build {settings.short_version}",
            extra={"platform": settings.platform.value},
        )

        try:
            with self._stage(result, PipelineStage.TOOLCHAIN):
                versions = await self._verify_toolchain()
            self.context = BuildContext.from_settings(settings, versions)
            result.build_id = self.context.build_id

            with self._stage(result, PipelineStage.FILESYSTEM):
                self.layout = FilesystemInitializer(settings.staging_dir).initialize()

            with self._stage(result, PipelineStage.NATIVE_BUILD):
                produced = await self._build_native()

            if self.context.platform == Platform.LINUX:
                produced = produced + await self._build_and_exercise(result, produced)
            else:
                for stage in TEST_STAGES:
                    self._skip(result, stage, "integration tests do not run on Windows")

            with self._stage(result, PipelineStage.ARTIFACTS):
                collected = ArtifactCollector().collect(self.context, self.layout, produced)
            result.artifacts = produced + collected

            result.publish = await self._publish(result, produced)
            result.status = PipelineStatus.SUCCESS

        except PipelineBaseException as e:
            result.status = PipelineStatus.FAILURE
            result.error = e.to_dict()
            self._stage_logger(result.last_stage).error(f"Build failed: {e}")
        except asyncio.CancelledError:
            result.status = PipelineStatus.CANCELLED
            logger.warning("Build cancelled")
            raise
        finally:
            result.completed_at = utc_now()
            if self.controller is not None:
                result.teardown_errors = list(self.controller.teardown_errors)

        self._log_summary(result)
        return result

    async def _verify_toolchain(self) -> Dict[str, str]:
        verifier = ToolchainVerifier(
            self._runner,
            timeout_seconds=self._settings.toolchain_timeout_seconds,
            minimum_versions=self._settings.minimum_tool_versions,
        )
        return await verifier.verify(self._settings.get_required_tools())

    async def _build_native(self) -> List[Artifact]:
        builder = select_native_builder(
            self.context.platform,
            self._runner,
            self._settings.source_dir,
            timeout_seconds=self._settings.build_timeout_seconds,
            package_project=self._settings.windows_package_project,
        )
        return await builder.build(self.context, self.layout)

    async def _build_and_exercise(self, result: PipelineResult, produced: List[Artifact]) -> List[Artifact]:
        settings = self._settings
        builder = ContainerBuilder(
            self._runner,
            settings.source_dir,
            image_repository=settings.image_repository,
            test_app_repository=settings.test_app_repository,
            server_dockerfile=settings.server_dockerfile,
            test_app_dockerfile=settings.test_app_dockerfile,
            seqcli_version=settings.seqcli_version,
            timeout_seconds=settings.build_timeout_seconds,
        )
        binary = next((a for a in produced if a.kind == ArtifactKind.BINARY), None)

        with self._stage(result, PipelineStage.CONTAINER_BUILD):
            if binary is None:
                raise ContainerBuildFailure(message="Native build produced no sqelf binary")
            images = await builder.build(self.context, self.layout, binary)

        plan = WorkloadPlan.build(
            settings.workload_event_count,
            include_edge_cases=settings.workload_include_edge_cases,
            include_malformed=settings.workload_include_malformed,
            seed=settings.workload_seed,
        )
        self.controller = TestEnvironmentController(
            self._runner,
            EnvironmentConfig.from_settings(
                settings,
                server_image=builder.server_image(self.context),
                test_app_image=builder.test_app_image(self.context),
            ),
            self.context,
            self.layout,
            probes=self._probe_factory(settings, self.layout),
            sleep=self._sleep,
        )

        try:
            async with AsyncExitStack() as stack:
                with self._stage(result, PipelineStage.ENVIRONMENT):
                    await stack.enter_async_context(self.controller.session(plan))

                with self._stage(result, PipelineStage.WORKLOAD):
                    await self.controller.wait_for_emission()
                    if settings.settle_delay_seconds:
                        await self._sleep(settings.settle_delay_seconds)
                    await self.controller.capture_server_logs()

                with self._stage(result, PipelineStage.VERIFICATION):
                    self._verify(result, plan)
        finally:
            if self.controller.stop_count:
                self._record_teardown(result)

        errors = self.controller.teardown_errors
        if errors:
            result.last_stage = PipelineStage.TEARDOWN
            raise TeardownFailure(
                message=f"Test environment was not fully removed: {'; '.join(errors)}",
                errors=list(errors),
            )
        return images

    def _verify(self, result: PipelineResult, plan: WorkloadPlan) -> VerificationReport:
        suite = VerificationSuite.from_settings(self._settings, self.layout)
        try:
            result.verification = suite.verify(plan)
        except VerificationFailure as e:
            result.verification = e.report
            raise
        return result.verification

    def _record_teardown(self, result: PipelineResult) -> None:
        errors = self.controller.teardown_errors
        record = StageRecord(
            stage=PipelineStage.TEARDOWN,
            status=PipelineStatus.SUCCESS if not errors else PipelineStatus.FAILURE,
            duration_seconds=self.controller.stop_duration_seconds,
        )
        result.stages.append(record)
        stage_logger = self._stage_logger(PipelineStage.TEARDOWN)
        if errors:
            stage_logger.warning(f"Teardown finished with {len(errors)} problems")
        else:
            stage_logger.info("Teardown complete")

    async def _publish(self, result: PipelineResult, produced: List[Artifact]) -> PublishOutcome:
        publisher = Publisher.from_settings(self._settings, self._runner)
        with self._stage(result, PipelineStage.PUBLISH) as record:
            try:
                outcome = await publisher.publish(produced, self.context)
            except PublishFailure as e:
                record.status = PipelineStatus.FAILURE
                self._stage_logger(PipelineStage.PUBLISH).warning(f"Publish failed, build still passes: {e}")
                return PublishOutcome(published=False, error=e.to_dict())

            if not outcome.published:
                record.status = PipelineStatus.SKIPPED
                record.skipped_reason = outcome.skipped_reason
            return outcome

    @contextmanager
    def _stage(self, result: PipelineResult, stage: PipelineStage) -> Iterator[StageRecord]:
        record = StageRecord(stage=stage)
        result.stages.append(record)
        result.last_stage = stage
        stage_logger = self._stage_logger(stage)
        stage_logger.info(f"Starting stage {stage.value}")

        timer = Timer().start()
        try:
            yield record
        except asyncio.CancelledError:
            record.status = PipelineStatus.CANCELLED
            raise
        except Exception:
            record.status = PipelineStatus.FAILURE
            raise
        else:
            if record.status == PipelineStatus.RUNNING:
                record.status = PipelineStatus.SUCCESS
        finally:
            record.duration_seconds = timer.stop()
            stage_logger.info(
                f"Stage {stage.value} {record.status.value} in {timer.elapsed_formatted}"
            )

    def _skip(self, result: PipelineResult, stage: PipelineStage, reason: str) -> None:
        result.stages.append(StageRecord(stage=stage, status=PipelineStatus.SKIPPED, skipped_reason=reason))
        self._stage_logger(stage).info(f"Skipping stage {stage.value}: {reason}")

    def _stage_logger(self, stage: Optional[PipelineStage]):
        build_id = self.context.build_id if self.context else "pending"
        return get_stage_logger(
            build_id,
            stage.value if stage else None,
            self._settings.platform.value,
        )

    def _log_summary(self, result: PipelineResult) -> None:
        durations = ", ".join(f"{r.stage.value}={r.duration_seconds:.1f}s" for r in result.stages)
        message = f"Build {result.build_id} finished with {result.status.value} (exit {result.exit_code}); {durations}"
        if result.status == PipelineStatus.SUCCESS:
            logger.info(message)
        else:
            logger.error(message)
        if result.publish and result.publish.error:
            logger.warning(f"Publish error: {result.publish.error.get('message')}")


def write_result(result: PipelineResult, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(result.model_dump_json(indent=2), encoding="utf-8")
    return path
