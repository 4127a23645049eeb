from sqelf_ci.common.dto.base import BaseDTO, FrozenDTO
from sqelf_ci.common.dto.context import BuildContext, Artifact
from sqelf_ci.common.dto.verification import VerificationResult, VerificationReport
from sqelf_ci.common.dto.clef import ClefRecord, render_template
from sqelf_ci.common.dto.result import StageRecord, PublishOutcome, PipelineResult

__all__ = [
    "BaseDTO",
    "FrozenDTO",
    "BuildContext",
    "Artifact",
    "VerificationResult",
    "VerificationReport",
    "ClefRecord",
    "render_template",
    "StageRecord",
    "PublishOutcome",
    "PipelineResult",
]
