from typing import Optional, Dict, Any
from uuid import uuid4

from pydantic import Field, field_validator

from sqelf_ci.common.dto.base import FrozenDTO
from sqelf_ci.common.config.constants import (
    Platform,
    ArtifactKind,
    PipelineStage,
    DEFAULT_SHORT_VERSION,
)
from sqelf_ci.common.config.settings import SHORT_VERSION_PATTERN


class BuildContext(FrozenDTO):
    platform: Platform
    short_version: str = Field(default=DEFAULT_SHORT_VERSION)
    is_published_build: bool = Field(default=False)
    branch: Optional[str] = None
    toolchain_versions: Dict[str, str] = Field(default_factory=dict)
    build_id: str = Field(default_factory=lambda: uuid4().hex[:12])

    @field_validator("short_version")
    @classmethod
    def validate_short_version(cls, v: str) -> str:
        if not SHORT_VERSION_PATTERN.match(v):
            raise ValueError(f"Invalid short version: {v}")
        return v

    @field_validator("build_id")
    @classmethod
    def validate_build_id(cls, v: str) -> str:
        # Used verbatim in container, network and image tag names
        cleaned = "".join(c for c in v.lower() if c.isalnum() or c in "-_.")
        if not cleaned:
            raise ValueError(f"Invalid build id: {v!r}")
        return cleaned[:64]

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        toolchain_versions: Optional[Dict[str, str]] = None,
    ) -> "BuildContext":
        values: Dict[str, Any] = {
            "platform": settings.platform,
            "short_version": settings.short_version,
            "is_published_build": settings.is_published_build,
            "branch": settings.branch,
            "toolchain_versions": dict(toolchain_versions or {}),
        }
        if settings.build_number:
            values["build_id"] = f"b{settings.build_number}"
        return cls(**values)

    @property
    def image_tag(self) -> str:
        return f"{self.short_version}-{self.build_id}"


class Artifact(FrozenDTO):
    kind: ArtifactKind
    reference: str = Field(description="Filesystem path or image tag")
    produced_by: PipelineStage
    publishable: bool = Field(default=True)
    checksum_sha256: Optional[str] = None
    size_bytes: Optional[int] = None

    @property
    def is_image(self) -> bool:
        return self.kind == ArtifactKind.CONTAINER_IMAGE

    @property
    def is_package(self) -> bool:
        return self.kind == ArtifactKind.PACKAGE
