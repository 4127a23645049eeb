from sqelf_ci.orchestrator.readiness import (
    ReadinessProbe,
    ProbeResult,
    HttpReadinessProbe,
    LogMarkerProbe,
)
from sqelf_ci.orchestrator.environment_controller import (
    ContainerHandle,
    EnvironmentConfig,
    TestEnvironment,
    TestEnvironmentController,
)
from sqelf_ci.orchestrator.pipeline import BuildPipeline

__all__ = [
    "ReadinessProbe",
    "ProbeResult",
    "HttpReadinessProbe",
    "LogMarkerProbe",
    "ContainerHandle",
    "EnvironmentConfig",
    "TestEnvironment",
    "TestEnvironmentController",
    "BuildPipeline",
]
