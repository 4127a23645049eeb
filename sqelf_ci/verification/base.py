from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union

from sqelf_ci.common.config.constants import VerificationChannel
from sqelf_ci.common.config.logging_config import get_logger
from sqelf_ci.common.dto.verification import VerificationResult
from sqelf_ci.workload.plan import WorkloadPlan


logger = get_logger(__name__)


class VerificationCheck(ABC):
    """One observation channel. ``run`` reports problems as a failed result and never raises."""

    channel: VerificationChannel

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def run(self, plan: WorkloadPlan) -> VerificationResult:
        if not self._path.is_file():
            return VerificationResult.fail(
                self.channel,
                f"{self._path.name} was not produced",
                records_seen=0,
                records_expected=plan.event_count,
            )

        try:
            return self._check(plan)
        except Exception as e:
            logger.error(f"Verification of {self.channel.value} raised: {e}", extra={"channel": self.channel.value})
            return VerificationResult.fail(
                self.channel,
                f"check raised {e.__class__.__name__}: {e}",
                records_expected=plan.event_count,
            )

    @abstractmethod
    def _check(self, plan: WorkloadPlan) -> VerificationResult:
        ...
