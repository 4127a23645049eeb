from datetime import datetime
from typing import Optional, List, Dict, Any

from pydantic import Field

from sqelf_ci.common.dto.base import BaseDTO
from sqelf_ci.common.dto.context import Artifact
from sqelf_ci.common.dto.verification import VerificationReport
from sqelf_ci.common.config.constants import PipelineStage, PipelineStatus
from sqelf_ci.common.utils.time_utils import utc_now


class StageRecord(BaseDTO):
    stage: PipelineStage
    status: PipelineStatus = Field(default=PipelineStatus.RUNNING)
    duration_seconds: float = Field(default=0.0)
    skipped_reason: Optional[str] = None


class PublishOutcome(BaseDTO):
    published: bool = Field(default=False)
    skipped_reason: Optional[str] = None
    targets: List[str] = Field(default_factory=list)
    error: Optional[Dict[str, Any]] = None


class PipelineResult(BaseDTO):
    build_id: Optional[str] = None
    status: PipelineStatus = Field(default=PipelineStatus.PENDING)
    last_stage: Optional[PipelineStage] = None
    stages: List[StageRecord] = Field(default_factory=list)
    artifacts: List[Artifact] = Field(default_factory=list)
    verification: Optional[VerificationReport] = None
    publish: Optional[PublishOutcome] = None
    error: Optional[Dict[str, Any]] = None
    teardown_errors: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None

    @property
    def exit_code(self) -> int:
        return 0 if self.status == PipelineStatus.SUCCESS else 1

    def stage(self, stage: PipelineStage) -> Optional[StageRecord]:
        for record in self.stages:
            if record.stage == stage:
                return record
        return None
