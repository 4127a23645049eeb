from typing import List

from sqelf_ci.builder.filesystem import StagingLayout
from sqelf_ci.common.config.logging_config import get_logger
from sqelf_ci.common.dto.verification import VerificationReport
from sqelf_ci.common.exceptions.pipeline_exceptions import VerificationFailure
from sqelf_ci.verification.base import VerificationCheck
from sqelf_ci.verification.clef_output_check import ClefOutputCheck
from sqelf_ci.verification.server_log_check import ServerLogCheck
from sqelf_ci.verification.sqelf_log_check import SqelfLogCheck
from sqelf_ci.workload.plan import WorkloadPlan


logger = get_logger(__name__)


class VerificationSuite:
    def __init__(self, checks: List[VerificationCheck]):
        self._checks = list(checks)

    @classmethod
    def from_settings(cls, settings, layout: StagingLayout) -> "VerificationSuite":
        return cls([
            SqelfLogCheck(
                layout.sqelf_log,
                marker_pattern=settings.sqelf_marker_pattern,
                rejection_pattern=settings.sqelf_rejection_pattern,
                count_property=settings.sqelf_marker_count_property,
            ),
            ServerLogCheck(
                layout.seq_log,
                acceptance_pattern=settings.server_acceptance_pattern,
                error_pattern=settings.server_error_pattern,
            ),
            ClefOutputCheck(layout.clef_output),
        ])

    @property
    def checks(self) -> List[VerificationCheck]:
        return list(self._checks)

    def run(self, plan: WorkloadPlan) -> VerificationReport:
        results = []
        for check in self._checks:
            result = check.run(plan)
            log = logger.info if result.passed else logger.error
            log(
                f"{check.channel.value}: {'passed' if result.passed else 'failed'} - {result.detail}",
                extra={"channel": check.channel.value},
            )
            results.append(result)
        return VerificationReport(results=results)

    def verify(self, plan: WorkloadPlan) -> VerificationReport:
        report = self.run(plan)
        if not report.passed:
            raise VerificationFailure(
                message=f"Verification failed: {report.summary()}",
                report=report,
            )
        return report
