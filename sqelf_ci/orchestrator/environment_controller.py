from typing import Optional, List, Dict, Callable, Awaitable, AsyncIterator, Tuple
from dataclasses import dataclass, field
from pathlib import Path
from contextlib import asynccontextmanager
import asyncio

from sqelf_ci.builder.command_runner import CommandRunner
from sqelf_ci.builder.filesystem import StagingLayout
from sqelf_ci.common.dto.context import BuildContext
from sqelf_ci.common.config.constants import (
    EnvironmentState,
    GelfProtocol,
    GELF_DEFAULT_PORT,
    SEQ_HTTP_PORT,
    WORKLOAD_PLAN_FILE,
)
from sqelf_ci.common.config.logging_config import get_logger, get_container_logger
from sqelf_ci.common.exceptions.pipeline_exceptions import (
    CommandFailed,
    FilesystemError,
    StartupTimeout,
    WorkloadFailure,
)
from sqelf_ci.common.utils.time_utils import Deadline, Timer
from sqelf_ci.orchestrator.readiness import ReadinessProbe, check_all, all_ready, describe
from sqelf_ci.workload.plan import WorkloadPlan


logger = get_logger(__name__)

SERVER_NETWORK_ALIAS = "sqelf"
CONTAINER_GONE_MARKERS = ("No such container", "no such container", "is already in progress")
NETWORK_GONE_MARKERS = ("No such network", "not found", "no such network")
NAME_CONFLICT_MARKERS = ("is already in use",)


@dataclass
class ContainerHandle:
    name: str
    image: str
    container_id: Optional[str] = None
    owned: bool = True


@dataclass
class EnvironmentConfig:
    server_image: str
    test_app_image: str
    gelf_protocol: GelfProtocol = GelfProtocol.UDP
    gelf_port: int = GELF_DEFAULT_PORT
    seq_host_port: int = 5341
    readiness_timeout_seconds: float = 30.0
    readiness_poll_interval_seconds: float = 1.0
    emission_timeout_seconds: float = 120.0
    docker_timeout_seconds: float = 120.0
    send_delay_ms: int = 2
    server_env: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings, server_image: str, test_app_image: str) -> "EnvironmentConfig":
        return cls(
            server_image=server_image,
            test_app_image=test_app_image,
            gelf_protocol=settings.gelf_protocol,
            gelf_port=settings.gelf_port,
            seq_host_port=settings.seq_host_port,
            readiness_timeout_seconds=settings.readiness_timeout_seconds,
            readiness_poll_interval_seconds=settings.readiness_poll_interval_seconds,
            emission_timeout_seconds=settings.emission_timeout_seconds,
            docker_timeout_seconds=settings.docker_timeout_seconds,
            send_delay_ms=settings.workload_send_delay_ms,
            server_env=dict(settings.server_env),
        )


@dataclass
class TestEnvironment:
    network: str
    layout: StagingLayout
    network_created: bool = False
    plan: Optional[WorkloadPlan] = None
    server: Optional[ContainerHandle] = None
    test_app: Optional[ContainerHandle] = None
    state: EnvironmentState = EnvironmentState.STOPPED

    @property
    def sqelf_log(self) -> Path:
        return self.layout.sqelf_log

    @property
    def seq_log(self) -> Path:
        return self.layout.seq_log

    @property
    def clef_output(self) -> Path:
        return self.layout.clef_output

    def handles(self) -> List[ContainerHandle]:
        return [h for h in (self.test_app, self.server) if h is not None and h.owned]


class TestEnvironmentController:
    """Owns the lifecycle of the server-under-test and test-app containers.

    ``session()`` is the intended entry point: it guarantees that ``stop()``
    runs exactly once for every ``start()``, whichever way the body exits.
    """

    def __init__(
        self,
        runner: CommandRunner,
        config: EnvironmentConfig,
        context: BuildContext,
        layout: StagingLayout,
        probes: Optional[List[ReadinessProbe]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._runner = runner
        self._config = config
        self._context = context
        self._layout = layout
        self._probes = probes or []
        self._sleep = sleep
        self._state = EnvironmentState.STOPPED
        self._environment: Optional[TestEnvironment] = None
        self._stop_pending = False
        self.stop_count = 0
        self.stop_duration_seconds = 0.0
        self.teardown_errors: List[str] = []

    @property
    def state(self) -> EnvironmentState:
        return self._state

    @property
    def environment(self) -> Optional[TestEnvironment]:
        return self._environment

    @property
    def network_name(self) -> str:
        return f"sqelf-ci-{self._context.build_id}"

    @asynccontextmanager
    async def session(self, plan: WorkloadPlan) -> AsyncIterator[TestEnvironment]:
        failed = True
        try:
            environment = await self.start(plan)
            yield environment
            failed = False
        finally:
            self.teardown_errors = await self.stop(failed=failed)

    async def start(self, plan: WorkloadPlan) -> TestEnvironment:
        if self._state != EnvironmentState.STOPPED:
            raise RuntimeError(f"Cannot start environment in state {self._state.value}")

        self._stop_pending = True
        environment = TestEnvironment(network=self.network_name, layout=self._layout, plan=plan)
        self._environment = environment
        self._set_state(EnvironmentState.STARTING)

        try:
            plan.save(self._layout.workload_plan)
        except OSError as e:
            raise FilesystemError(
                message=f"Cannot write workload plan: {e}",
                path=str(self._layout.workload_plan),
                cause=e,
            )

        logger.info(f"Creating network {environment.network}")
        await self._docker(["network", "create", environment.network], "create network")
        environment.network_created = True

        # Handles are recorded before `docker run` so a half-created container is still torn down,
        # unless the name belonged to another container
        environment.server = ContainerHandle(
            name=f"sqelf-ci-server-{self._context.build_id}",
            image=self._config.server_image,
        )
        environment.server.container_id = await self._run_container(
            environment.server,
            self._server_run_args(environment),
        )
        await self._wait_until_ready(environment.server)

        environment.test_app = ContainerHandle(
            name=f"sqelf-ci-testapp-{self._context.build_id}",
            image=self._config.test_app_image,
        )
        environment.test_app.container_id = await self._run_container(
            environment.test_app,
            self._test_app_run_args(environment),
        )

        self._set_state(EnvironmentState.RUNNING)
        logger.info(f"Test environment {environment.network} running")
        return environment

    async def wait_for_emission(self) -> int:
        environment = self._require_running()
        handle = environment.test_app
        container_log = get_container_logger(self._context.build_id, handle.name)

        try:
            result = await self._runner.run(
                ["docker", "wait", handle.name],
                timeout=self._config.emission_timeout_seconds,
                check=False,
            )
        except CommandFailed as e:
            raise WorkloadFailure(
                message=f"Could not wait for test app: {e.message}",
                container=handle.name,
                cause=e,
            )

        if result.timed_out:
            raise WorkloadFailure(
                message=f"Test app did not finish within {self._config.emission_timeout_seconds}s",
                container=handle.name,
                timed_out=True,
            )
        if result.exit_code != 0:
            raise WorkloadFailure(
                message=f"docker wait failed: {result.output.strip()[:200]}",
                container=handle.name,
                exit_code=result.exit_code,
            )

        try:
            exit_code = int(result.output.strip().splitlines()[-1])
        except (ValueError, IndexError):
            raise WorkloadFailure(
                message=f"Unexpected docker wait output: {result.output.strip()[:200]!r}",
                container=handle.name,
            )

        if exit_code != 0:
            output = await self._container_logs(handle)
            container_log.error(f"Test app exited with {exit_code}: {output[-1000:]}")
            raise WorkloadFailure(
                message=f"Test app exited with code {exit_code}",
                container=handle.name,
                exit_code=exit_code,
            )

        container_log.info(f"Test app finished emitting {environment.plan.event_count} events")
        return exit_code

    async def capture_server_logs(self) -> str:
        environment = self._require_running()
        output = await self._container_logs(environment.server)
        self._layout.seq_log.write_text(output, encoding="utf-8")
        return output

    async def stop(self, failed: bool = False) -> List[str]:
        if not self._stop_pending:
            return []

        self._set_state(
            EnvironmentState.STOPPING_AFTER_FAILURE if failed
            else EnvironmentState.STOPPING_AFTER_SUCCESS
        )
        self.stop_count += 1
        timer = Timer().start()
        errors: List[str] = []
        environment = self._environment

        if environment is not None:
            for handle in environment.handles():
                await self._remove_container(handle, errors)
            if environment.network_created:
                await self._remove_network(environment.network, errors)

        for error in errors:
            logger.warning(f"Teardown problem: {error}")

        self._stop_pending = False
        self.stop_duration_seconds = timer.stop()
        self._set_state(EnvironmentState.STOPPED)
        logger.info(
            f"Test environment stopped after {'failure' if failed else 'success'}"
            f" with {len(errors)} teardown problems"
        )
        return errors

    def _server_run_args(self, environment: TestEnvironment) -> List[str]:
        protocol = self._config.gelf_protocol.value
        args = [
            "--network", environment.network,
            "--network-alias", SERVER_NETWORK_ALIAS,
            "--publish", f"{self._config.seq_host_port}:{SEQ_HTTP_PORT}",
            "--volume", f"{self._layout.logs_dir}:/logs",
            "--env", "ACCEPT_EULA=Y",
            "--env", f"GELF_ADDRESS={protocol}://0.0.0.0:{self._config.gelf_port}",
            "--env", "SQELF_LOG=/logs/sqelf.log",
            "--env", "CLEF_OUTPUT=/logs/clef.json",
        ]
        for key, value in sorted(self._config.server_env.items()):
            args.extend(["--env", f"{key}={value}"])
        return args

    def _test_app_run_args(self, environment: TestEnvironment) -> List[str]:
        protocol = self._config.gelf_protocol.value
        return [
            "--network", environment.network,
            "--volume", f"{self._layout.workload_dir}:/workload:ro",
            "--",
            "--plan", f"/workload/{WORKLOAD_PLAN_FILE}",
            "--address", f"{protocol}://{SERVER_NETWORK_ALIAS}:{self._config.gelf_port}",
            "--delay-ms", str(self._config.send_delay_ms),
        ]

    async def _run_container(self, handle: ContainerHandle, args: List[str]) -> str:
        if "--" in args:
            split = args.index("--")
            options, command = args[:split], args[split + 1:]
        else:
            options, command = args, []

        cmd = ["run", "--detach", "--name", handle.name, *options, handle.image, *command]
        try:
            result = await self._docker(cmd, f"start {handle.name}")
        except StartupTimeout as e:
            if any(m in e.details.get("output_excerpt", "") for m in NAME_CONFLICT_MARKERS):
                handle.owned = False
            raise
        container_id = result.strip().splitlines()[-1] if result.strip() else handle.name
        get_container_logger(self._context.build_id, handle.name).info(
            f"Started {handle.image} as {container_id[:12]}"
        )
        return container_id

    async def _wait_until_ready(self, handle: ContainerHandle) -> None:
        timeout = self._config.readiness_timeout_seconds
        deadline = Deadline(timeout)
        results = None

        while True:
            running, exit_code = await self._inspect_running(handle)
            if not running:
                output = await self._container_logs(handle)
                raise StartupTimeout(
                    message=f"{handle.name} exited (code {exit_code}) before becoming ready",
                    container=handle.name,
                    timeout_seconds=timeout,
                    elapsed_seconds=deadline.elapsed,
                    details={"logs_excerpt": output[-1000:]},
                )

            results = await check_all(self._probes)
            if all_ready(results):
                logger.info(f"{handle.name} ready after {deadline.elapsed:.1f}s")
                return

            if deadline.expired:
                raise StartupTimeout(
                    message=f"{handle.name} not ready within {timeout}s: {describe(results)}",
                    container=handle.name,
                    timeout_seconds=timeout,
                    elapsed_seconds=deadline.elapsed,
                )

            await self._sleep(min(self._config.readiness_poll_interval_seconds, max(deadline.remaining, 0.01)))

    async def _inspect_running(self, handle: ContainerHandle) -> Tuple[bool, Optional[int]]:
        try:
            result = await self._runner.run(
                ["docker", "inspect", "--format", "{{.State.Running}} {{.State.ExitCode}}", handle.name],
                timeout=self._config.docker_timeout_seconds,
                check=False,
            )
        except CommandFailed:
            return False, None

        if result.exit_code != 0:
            return False, None

        parts = result.output.strip().split()
        running = bool(parts) and parts[0] == "true"
        exit_code = None
        if len(parts) > 1 and parts[1].lstrip("-").isdigit():
            exit_code = int(parts[1])
        return running, exit_code

    async def _container_logs(self, handle: ContainerHandle) -> str:
        try:
            result = await self._runner.run(
                ["docker", "logs", handle.name],
                timeout=self._config.docker_timeout_seconds,
                check=False,
            )
        except CommandFailed as e:
            return f"<logs unavailable: {e.message}>"
        return result.output

    async def _remove_container(self, handle: ContainerHandle, errors: List[str]) -> None:
        try:
            result = await self._runner.run(
                ["docker", "rm", "--force", handle.name],
                timeout=self._config.docker_timeout_seconds,
                check=False,
            )
        except CommandFailed as e:
            errors.append(f"remove {handle.name}: {e.message}")
            return

        if result.exit_code != 0 and not any(m in result.output for m in CONTAINER_GONE_MARKERS):
            errors.append(f"remove {handle.name}: {result.output.strip()[:200]}")

    async def _remove_network(self, network: str, errors: List[str]) -> None:
        try:
            result = await self._runner.run(
                ["docker", "network", "rm", network],
                timeout=self._config.docker_timeout_seconds,
                check=False,
            )
        except CommandFailed as e:
            errors.append(f"remove network {network}: {e.message}")
            return

        if result.exit_code != 0 and not any(m in result.output for m in NETWORK_GONE_MARKERS):
            errors.append(f"remove network {network}: {result.output.strip()[:200]}")

    async def _docker(self, args: List[str], action: str) -> str:
        try:
            result = await self._runner.run(
                ["docker", *args],
                timeout=self._config.docker_timeout_seconds,
            )
        except CommandFailed as e:
            raise StartupTimeout(
                message=f"Failed to {action}: {e.message}",
                details={"output_excerpt": (e.output or "")[-1000:]},
                cause=e,
            )
        return result.output

    def _set_state(self, state: EnvironmentState) -> None:
        self._state = state
        if self._environment is not None:
            self._environment.state = state

    def _require_running(self) -> TestEnvironment:
        if self._state != EnvironmentState.RUNNING or self._environment is None:
            raise RuntimeError(f"Environment is not running (state {self._state.value})")
        return self._environment
