"""Tests for the native, container and artifact build stages."""
import asyncio
import json
from pathlib import Path

import pytest

from sqelf_ci.builder.artifact_collector import ArtifactCollector
from sqelf_ci.builder.container_builder import ContainerBuilder
from sqelf_ci.builder.native_builder import (
    LinuxNativeBuilder,
    WindowsNativeBuilder,
    select_native_builder,
)
from sqelf_ci.common.config.constants import ArtifactKind, Platform, PipelineStage
from sqelf_ci.common.dto.context import Artifact
from sqelf_ci.common.exceptions.pipeline_exceptions import BuildFailure, ContainerBuildFailure


class TestSelectNativeBuilder:
    def test_linux(self, runner, source_dir):
        assert isinstance(select_native_builder(Platform.LINUX, runner, source_dir), LinuxNativeBuilder)

    def test_windows(self, runner, source_dir):
        assert isinstance(select_native_builder(Platform.WINDOWS, runner, source_dir), WindowsNativeBuilder)


class TestLinuxNativeBuilder:
    def test_builds_and_stages_binary(self, runner, source_dir, layout, linux_context):
        artifacts = asyncio.run(LinuxNativeBuilder(runner, source_dir).build(linux_context, layout))

        assert runner.calls == [["cargo", "build", "--release", "--target", "x86_64-unknown-linux-gnu"]]
        assert len(artifacts) == 1
        binary = artifacts[0]
        assert binary.kind == ArtifactKind.BINARY
        assert not binary.publishable
        assert Path(binary.reference) == layout.publish_dir / "sqelf"
        assert binary.checksum_sha256 and binary.size_bytes > 0

    def test_compiler_failure_is_build_failure(self, runner, source_dir, layout, linux_context):
        runner.failures["cargo build"] = (101, "error[E0308]: mismatched types\n  --> src/server.rs:42:5")

        with pytest.raises(BuildFailure) as excinfo:
            asyncio.run(LinuxNativeBuilder(runner, source_dir).build(linux_context, layout))

        assert excinfo.value.exit_code == 101
        assert "mismatched types" in excinfo.value.diagnostics
        assert excinfo.value.fatal

    def test_missing_binary_after_success(self, runner, source_dir, layout, linux_context):
        runner._cargo_build = lambda cmd, check: runner._result(cmd, 0, "", check)

        with pytest.raises(BuildFailure, match="missing"):
            asyncio.run(LinuxNativeBuilder(runner, source_dir).build(linux_context, layout))


class TestWindowsNativeBuilder:
    def test_packages_with_short_version(self, runner, source_dir, layout, windows_context):
        artifacts = asyncio.run(WindowsNativeBuilder(runner, source_dir).build(windows_context, layout))

        pack = runner.commands("dotnet pack")[0]
        assert "/p:VersionPrefix=1.2.3" in pack
        assert (source_dir / "src" / "Seq.Input.Gelf" / "sqelf.exe").is_file()

        assert len(artifacts) == 1
        package = artifacts[0]
        assert package.is_package
        assert package.publishable
        assert Path(package.reference).name == "Seq.Input.Gelf.1.2.3.nupkg"

    def test_pack_failure(self, runner, source_dir, layout, windows_context):
        runner.failures["dotnet pack"] = (1, "error NU5026: The file to be packed was not found")

        with pytest.raises(BuildFailure) as excinfo:
            asyncio.run(WindowsNativeBuilder(runner, source_dir).build(windows_context, layout))

        assert "NU5026" in excinfo.value.diagnostics


def _binary(layout) -> Artifact:
    path = layout.publish_dir / "sqelf"
    path.write_bytes(b"\x7fELF")
    return Artifact(kind=ArtifactKind.BINARY, reference=str(path), produced_by=PipelineStage.NATIVE_BUILD, publishable=False)


def _container_builder(runner, source_dir) -> ContainerBuilder:
    return ContainerBuilder(
        runner,
        source_dir,
        image_repository="datalust/sqelf-ci",
        test_app_repository="sqelf-ci-testapp",
    )


class TestContainerBuilder:
    def test_builds_server_and_test_app_images(self, runner, source_dir, layout, linux_context):
        builder = _container_builder(runner, source_dir)
        images = asyncio.run(builder.build(linux_context, layout, _binary(layout)))

        assert [i.reference for i in images] == ["datalust/sqelf-ci:1.2.3-b42", "sqelf-ci-testapp:b42"]
        assert [i.publishable for i in images] == [True, False]
        assert all(i.is_image for i in images)

        server_build = runner.commands("docker build")[0]
        assert "SEQCLI_VERSION=5.0.165" in server_build
        assert server_build[-1] == str(layout.image_context_dir)
        assert (layout.image_context_dir / "sqelf").is_file()
        assert (layout.image_context_dir / "run.sh").is_file()

    def test_docker_failure(self, runner, source_dir, layout, linux_context):
        runner.failures["docker build"] = (1, "failed to solve: datalust/seq:latest: not found")
        builder = _container_builder(runner, source_dir)

        with pytest.raises(ContainerBuildFailure) as excinfo:
            asyncio.run(builder.build(linux_context, layout, _binary(layout)))

        assert excinfo.value.image == "datalust/sqelf-ci:1.2.3-b42"

    def test_refuses_windows(self, runner, source_dir, layout, windows_context):
        builder = _container_builder(runner, source_dir)

        with pytest.raises(ContainerBuildFailure):
            asyncio.run(builder.build(windows_context, layout, _binary(layout)))
        assert runner.calls == []


class TestArtifactCollector:
    def test_collects_publish_dir_and_writes_manifest(self, layout, linux_context):
        produced = [_binary(layout)]
        (layout.publish_dir / "notes.txt").write_text("release notes")

        collected = ArtifactCollector().collect(linux_context, layout, produced)

        assert sorted(Path(a.reference).name for a in collected) == ["notes.txt", "sqelf"]
        assert all(a.kind == ArtifactKind.FILE for a in collected)

        manifest = json.loads((layout.root / "artifacts.json").read_text())
        assert manifest["build_id"] == "b42"
        assert manifest["short_version"] == "1.2.3"
        assert manifest["produced"][0]["kind"] == "binary"
        assert {f["name"] for f in manifest["files"]} == {"notes.txt", "sqelf"}
