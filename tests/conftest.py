"""
Test fixtures for sqelf_ci.

The pipeline only talks to the outside world through ``CommandRunner`` and
readiness probes, so tests swap in a scripted runner that imitates cargo,
rustc, dotnet and the docker CLI closely enough for every stage to run.
"""
import json
from uuid import uuid4
from pathlib import Path
from typing import Optional, List, Dict, Set, Tuple, Callable

import pytest

from sqelf_ci.builder.command_runner import CommandResult
from sqelf_ci.builder.filesystem import FilesystemInitializer, StagingLayout
from sqelf_ci.common.config.constants import (
    Platform,
    LINUX_TARGET_TRIPLE,
    NUGET_PACKAGE_ID,
    SQELF_LOG_FILE,
    CLEF_OUTPUT_FILE,
    WORKLOAD_PLAN_FILE,
    WORKLOAD_INDEX_PROPERTY,
    EDGE_CASE_PROPERTY,
)
from sqelf_ci.common.config.settings import Settings
from sqelf_ci.common.dto.context import BuildContext
from sqelf_ci.common.exceptions.pipeline_exceptions import CommandFailed
from sqelf_ci.common.utils.time_utils import utc_now
from sqelf_ci.orchestrator.readiness import ProbeResult, ReadinessProbe
from sqelf_ci.workload.plan import WorkloadPlan


DEFAULT_VERSIONS = {
    "cargo": "cargo 1.75.0 (1d8b05cdd 2023-11-20)",
    "rustc": "rustc 1.75.0 (82e1608df 2023-12-21)",
    "docker": "Docker version 24.0.7, build afdd53b",
    "dotnet": "8.0.100",
}


# ── Observation channel content ─────────────────────────────────────────────

def clef_line(message: str, level: Optional[str] = None, **properties) -> str:
    record = {"@t": utc_now().isoformat(), "@m": message}
    if level:
        record["@l"] = level
    record.update(properties)
    return json.dumps(record, ensure_ascii=False)


def sqelf_log_lines(processed: int, rejected: int = 0, ready: bool = True) -> List[str]:
    lines = []
    if ready:
        lines.append(clef_line("Starting GELF server"))
        lines.append(clef_line("Setting up for UDP"))
    for _ in range(rejected):
        lines.append(clef_line("GELF processing failed", level="Error"))
    lines.append(
        json.dumps({
            "@t": utc_now().isoformat(),
            "@mt": "Collected GELF server metrics",
            "process_ok": processed,
            "process_err": rejected,
        })
    )
    return lines


def clef_output_lines(plan: WorkloadPlan, drop: Set[int] = frozenset()) -> List[str]:
    lines = []
    for event in plan.events:
        if event.index in drop:
            continue
        properties = dict(event.properties)
        properties[WORKLOAD_INDEX_PROPERTY] = event.index
        if event.edge_case is not None:
            properties[EDGE_CASE_PROPERTY] = event.edge_case.value
        properties["host"] = plan.host
        lines.append(clef_line(event.message, **properties))
    return lines


def write_channels(
    logs_dir: Path,
    plan: WorkloadPlan,
    drop: Set[int] = frozenset(),
    rejected: int = 0,
) -> str:
    """Write what a healthy server would leave behind; returns the server's console output."""
    logs_dir.mkdir(parents=True, exist_ok=True)
    delivered = plan.event_count - len(drop)
    (logs_dir / SQELF_LOG_FILE).write_text(
        "\n".join(sqelf_log_lines(delivered, rejected)) + "\n", encoding="utf-8"
    )
    output = clef_output_lines(plan, drop)
    (logs_dir / CLEF_OUTPUT_FILE).write_text(
        "".join(line + "\n" for line in output), encoding="utf-8"
    )
    return f"Log server is healthy\nIngested {delivered} events\n"


# ── Fake collaborators ─────────────────────────────────────────────────────

class FakeCommandRunner:
    """Scripted stand-in for ``CommandRunner``.

    ``failures`` maps a command key (``"cargo build"``, ``"docker run server"``,
    ``"docker network create"``...) to the ``(exit_code, output)`` it should
    produce instead of succeeding.
    """

    def __init__(self, source_dir: Path):
        self.source_dir = Path(source_dir)
        self.calls: List[List[str]] = []
        self.stdin_seen: List[str] = []
        self.failures: Dict[str, Tuple[int, str]] = {}
        self.missing_tools: Set[str] = set()
        self.versions = dict(DEFAULT_VERSIONS)
        self.containers: Dict[str, Dict] = {}
        self.networks: Set[str] = set()
        self.created_containers: List[str] = []
        self.server_exits_early = False
        self.create_before_failing = False
        self.emission_exit_code = 0
        self.emission_times_out = False
        self.drop_indexes: Set[int] = set()
        self.on_emission: Optional[Callable[["FakeCommandRunner", Path, Path], str]] = None
        self.server_output = ""
        self.push_failures_remaining = 0

    async def run(
        self,
        cmd,
        cwd=None,
        env=None,
        log_path=None,
        timeout=None,
        stdin=None,
        check=True,
        secrets=None,
    ) -> CommandResult:
        cmd = [str(part) for part in cmd]
        self.calls.append(cmd)
        if stdin is not None:
            self.stdin_seen.append(stdin)

        if cmd[0] in self.missing_tools:
            raise CommandFailed(message=f"Executable not found: {cmd[0]}", command=cmd)

        key = self.key(cmd)
        if key in self.failures:
            if key.startswith("docker run") and self.create_before_failing:
                self._register_container(cmd)
            exit_code, output = self.failures[key]
            return self._result(cmd, exit_code, output, check)

        if cmd[1:] == ["--version"]:
            return self._result(cmd, 0, self.versions.get(cmd[0], "1.0.0"), check)

        handler = getattr(self, "_" + key.replace(" ", "_").replace("-", "_"), None)
        if handler is None:
            return self._result(cmd, 0, "", check)
        return handler(cmd, check)

    @staticmethod
    def key(cmd: List[str]) -> str:
        if cmd[0] != "docker":
            return f"{cmd[0]} {cmd[1]}" if len(cmd) > 1 else cmd[0]
        if cmd[1] == "network":
            return f"docker network {cmd[2]}"
        if cmd[1] == "run":
            name = cmd[cmd.index("--name") + 1]
            return "docker run server" if "-server-" in name else "docker run testapp"
        return f"docker {cmd[1]}"

    @property
    def leftover_containers(self) -> List[str]:
        return sorted(self.containers)

    def commands(self, key: str) -> List[List[str]]:
        return [c for c in self.calls if self.key(c) == key]

    def _result(self, cmd, exit_code: int, output: str, check: bool, timed_out: bool = False) -> CommandResult:
        result = CommandResult(command=cmd, exit_code=exit_code, output=output, timed_out=timed_out)
        if check and not result.succeeded:
            raise CommandFailed(
                message=f"Command {cmd[0]} failed with exit code {exit_code}",
                command=cmd,
                exit_code=exit_code,
                output=output,
                timed_out=timed_out,
            )
        return result

    def _option(self, cmd: List[str], flag: str) -> Optional[str]:
        return cmd[cmd.index(flag) + 1] if flag in cmd else None

    def _volume(self, cmd: List[str], target: str) -> Optional[Path]:
        for i, part in enumerate(cmd):
            if part == "--volume":
                host, _, rest = cmd[i + 1].partition(":")
                if rest.split(":")[0] == target:
                    return Path(host)
        return None

    def _register_container(self, cmd: List[str]) -> str:
        name = self._option(cmd, "--name")
        image_index = next(
            i for i in range(cmd.index("--name") + 2, len(cmd))
            if not cmd[i].startswith("--") and not cmd[i - 1].startswith("--")
        )
        running = not ("-server-" in name and self.server_exits_early)
        self.containers[name] = {
            "image": cmd[image_index],
            "running": running,
            "exit_code": None if running else 1,
            "cmd": cmd,
        }
        self.created_containers.append(name)
        return name

    def _cargo_build(self, cmd, check):
        if "--target" in cmd:
            binary = self.source_dir / "target" / LINUX_TARGET_TRIPLE / "release" / "sqelf"
        else:
            binary = self.source_dir / "target" / "release" / "sqelf.exe"
        binary.parent.mkdir(parents=True, exist_ok=True)
        binary.write_bytes(b"\x7fELF fake sqelf binary")
        return self._result(cmd, 0, "    Finished release [optimized] target(s) in 42.0s\n", check)

    def _dotnet_pack(self, cmd, check):
        out_dir = Path(self._option(cmd, "-o"))
        version = next(p.split("=", 1)[1] for p in cmd if p.startswith("/p:VersionPrefix="))
        out_dir.mkdir(parents=True, exist_ok=True)
        (out_dir / f"{NUGET_PACKAGE_ID}.{version}.nupkg").write_bytes(b"PK\x03\x04 fake package")
        return self._result(cmd, 0, f"Successfully created package '{NUGET_PACKAGE_ID}.{version}.nupkg'.\n", check)

    def _docker_network_create(self, cmd, check):
        name = cmd[3]
        if name in self.networks:
            return self._result(cmd, 1, f"Error response from daemon: network with name {name} already exists", check)
        self.networks.add(name)
        return self._result(cmd, 0, uuid4().hex + "\n", check)

    def _docker_network_rm(self, cmd, check):
        name = cmd[3]
        if name not in self.networks:
            return self._result(cmd, 1, f"Error: No such network: {name}", check)
        self.networks.discard(name)
        return self._result(cmd, 0, name + "\n", check)

    def _name_conflict(self, cmd, check) -> Optional[CommandResult]:
        name = self._option(cmd, "--name")
        if name not in self.containers:
            return None
        return self._result(
            cmd,
            125,
            f"docker: Error response from daemon: Conflict. The container name \"/{name}\" is already in use.",
            check,
        )

    def _docker_run_server(self, cmd, check):
        conflict = self._name_conflict(cmd, check)
        if conflict is not None:
            return conflict
        self._register_container(cmd)
        return self._result(cmd, 0, uuid4().hex + "\n", check)

    def _docker_run_testapp(self, cmd, check):
        conflict = self._name_conflict(cmd, check)
        if conflict is not None:
            return conflict
        self._register_container(cmd)
        return self._result(cmd, 0, uuid4().hex + "\n", check)

    def _docker_inspect(self, cmd, check):
        name = cmd[-1]
        container = self.containers.get(name)
        if container is None:
            return self._result(cmd, 1, f"Error: No such object: {name}", check)
        state = "true" if container["running"] else "false"
        return self._result(cmd, 0, f"{state} {container['exit_code'] or 0}\n", check)

    def _docker_wait(self, cmd, check):
        name = cmd[-1]
        if self.emission_times_out:
            return self._result(cmd, -1, "", check, timed_out=True)
        container = self.containers.get(name)
        if container is None:
            return self._result(cmd, 1, f"Error response from daemon: No such container: {name}", check)

        container["running"] = False
        container["exit_code"] = self.emission_exit_code
        workload_dir = self._volume(container["cmd"], "/workload")
        server = next(c for n, c in self.containers.items() if "-server-" in n)
        logs_dir = self._volume(server["cmd"], "/logs")

        if self.on_emission is not None:
            self.server_output = self.on_emission(self, workload_dir, logs_dir)
        elif self.emission_exit_code == 0:
            plan = WorkloadPlan.load(workload_dir / WORKLOAD_PLAN_FILE)
            self.server_output = write_channels(
                logs_dir, plan, drop=self.drop_indexes, rejected=len(plan.rejected_frames)
            )
        return self._result(cmd, 0, f"{self.emission_exit_code}\n", check)

    def _docker_logs(self, cmd, check):
        name = cmd[-1]
        if name not in self.containers:
            return self._result(cmd, 1, f"Error: No such container: {name}", check)
        if "-server-" in name:
            return self._result(cmd, 0, self.server_output, check)
        return self._result(cmd, 0, "Emitted events\n", check)

    def _docker_rm(self, cmd, check):
        name = cmd[-1]
        if name not in self.containers:
            return self._result(cmd, 1, f"Error: No such container: {name}", check)
        del self.containers[name]
        return self._result(cmd, 0, name + "\n", check)

    def _docker_login(self, cmd, check):
        return self._result(cmd, 0, "Login Succeeded\n", check)

    def _docker_push(self, cmd, check):
        if self.push_failures_remaining:
            self.push_failures_remaining -= 1
            return self._result(cmd, 1, "received unexpected HTTP status: 503 Service Unavailable", check)
        return self._result(cmd, 0, f"{cmd[-1]}: digest: sha256:{uuid4().hex} size: 1570\n", check)


class StaticProbe(ReadinessProbe):
    """Becomes ready after ``ready_after`` checks; ``None`` means never."""

    name = "static"

    def __init__(self, ready_after: Optional[int] = 0):
        self._ready_after = ready_after
        self.checks = 0

    async def check(self) -> ProbeResult:
        self.checks += 1
        ready = self._ready_after is not None and self.checks > self._ready_after
        return ProbeResult(self.name, ready, "ready" if ready else "still starting")


class RaisingProbe(ReadinessProbe):
    name = "raising"

    async def check(self) -> ProbeResult:
        raise ConnectionRefusedError("connection refused")


async def no_sleep(_seconds: float) -> None:
    return None


def make_settings(tmp_path: Path, source_dir: Path, **overrides) -> Settings:
    values = dict(
        platform=Platform.LINUX,
        source_dir=str(source_dir),
        staging_dir=str(tmp_path / "staging"),
        readiness_timeout_seconds=2.0,
        readiness_poll_interval_seconds=0.01,
        emission_timeout_seconds=5.0,
        settle_delay_seconds=0,
        workload_event_count=50,
        workload_include_edge_cases=False,
        is_published_build=False,
        branch="feature/x",
        build_number="17",
        json_logs=False,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ── Fixtures ───────────────────────────────────────────────────────────────

@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    root = tmp_path / "src"
    (root / "src" / "Seq.Input.Gelf").mkdir(parents=True)
    (root / "ci" / "linux-x64").mkdir(parents=True)
    (root / "ci" / "linux-x64" / "run.sh").write_text("#!/usr/bin/env bash\n", encoding="utf-8")
    return root


@pytest.fixture
def runner(source_dir: Path) -> FakeCommandRunner:
    return FakeCommandRunner(source_dir)


@pytest.fixture
def layout(tmp_path: Path) -> StagingLayout:
    return FilesystemInitializer(tmp_path / "staging").initialize()


@pytest.fixture
def linux_context() -> BuildContext:
    return BuildContext(
        platform=Platform.LINUX,
        short_version="1.2.3",
        branch="dev",
        build_id="b42",
    )


@pytest.fixture
def windows_context() -> BuildContext:
    return BuildContext(
        platform=Platform.WINDOWS,
        short_version="1.2.3",
        branch="dev",
        build_id="b42",
    )


@pytest.fixture
def small_plan() -> WorkloadPlan:
    return WorkloadPlan.build(5, include_edge_cases=False, seed=7)


@pytest.fixture
def edge_plan() -> WorkloadPlan:
    return WorkloadPlan.build(3, include_edge_cases=True, seed=7)
