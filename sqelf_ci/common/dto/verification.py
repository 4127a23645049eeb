from typing import List, Optional

from pydantic import Field

from sqelf_ci.common.dto.base import FrozenDTO
from sqelf_ci.common.config.constants import VerificationChannel


class VerificationResult(FrozenDTO):
    channel: VerificationChannel
    passed: bool
    detail: str = ""
    records_seen: Optional[int] = None
    records_expected: Optional[int] = None

    @classmethod
    def ok(cls, channel: VerificationChannel, detail: str, **kwargs) -> "VerificationResult":
        return cls(channel=channel, passed=True, detail=detail, **kwargs)

    @classmethod
    def fail(cls, channel: VerificationChannel, detail: str, **kwargs) -> "VerificationResult":
        return cls(channel=channel, passed=False, detail=detail, **kwargs)


class VerificationReport(FrozenDTO):
    results: List[VerificationResult] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return bool(self.results) and all(r.passed for r in self.results)

    def failures(self) -> List[VerificationResult]:
        return [r for r in self.results if not r.passed]

    def get(self, channel: VerificationChannel) -> Optional[VerificationResult]:
        for result in self.results:
            if result.channel == channel:
                return result
        return None

    def summary(self) -> str:
        parts = []
        for result in self.results:
            state = "passed" if result.passed else "FAILED"
            parts.append(f"{result.channel.value}: {state} ({result.detail})")
        return "; ".join(parts)
