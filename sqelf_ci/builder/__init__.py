from sqelf_ci.builder.command_runner import CommandRunner, CommandResult
from sqelf_ci.builder.toolchain_verifier import ToolchainVerifier
from sqelf_ci.builder.filesystem import FilesystemInitializer, StagingLayout
from sqelf_ci.builder.native_builder import (
    NativeBuilder,
    LinuxNativeBuilder,
    WindowsNativeBuilder,
    select_native_builder,
)
from sqelf_ci.builder.container_builder import ContainerBuilder
from sqelf_ci.builder.artifact_collector import ArtifactCollector

__all__ = [
    "CommandRunner",
    "CommandResult",
    "ToolchainVerifier",
    "FilesystemInitializer",
    "StagingLayout",
    "NativeBuilder",
    "LinuxNativeBuilder",
    "WindowsNativeBuilder",
    "select_native_builder",
    "ContainerBuilder",
    "ArtifactCollector",
]
