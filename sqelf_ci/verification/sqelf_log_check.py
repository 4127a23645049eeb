from pathlib import Path
from typing import Optional, Union, Any
import re

from sqelf_ci.common.config.constants import VerificationChannel
from sqelf_ci.common.dto.verification import VerificationResult
from sqelf_ci.verification.base import VerificationCheck
from sqelf_ci.verification.log_channel import LogEntry, read_log, excerpt
from sqelf_ci.workload.plan import WorkloadPlan


class SqelfLogCheck(VerificationCheck):
    """Checks sqelf's own diagnostics for errors and processed-message counts."""

    channel = VerificationChannel.SQELF_LOG

    def __init__(
        self,
        path: Union[str, Path],
        marker_pattern: str = r"Collected GELF server metrics",
        rejection_pattern: str = r"GELF processing failed",
        count_property: Optional[str] = "process_ok",
    ):
        super().__init__(path)
        self._marker = re.compile(marker_pattern)
        self._rejection = re.compile(rejection_pattern)
        self._count_property = count_property

    def _check(self, plan: WorkloadPlan) -> VerificationResult:
        entries = read_log(self._path)
        expected = plan.event_count
        allowed_rejections = len(plan.rejected_frames)

        errors = [e for e in entries if e.is_error]
        rejections = [e for e in errors if self._rejection.search(e.message)]
        unexpected = [e for e in errors if not self._rejection.search(e.message)]

        if unexpected:
            return VerificationResult.fail(
                self.channel,
                f"{len(unexpected)} error entries: {excerpt(unexpected)}",
                records_expected=expected,
            )
        if len(rejections) > allowed_rejections:
            return VerificationResult.fail(
                self.channel,
                f"{len(rejections)} rejected messages, at most {allowed_rejections} expected: "
                f"{excerpt(rejections)}",
                records_expected=expected,
            )

        markers = [e for e in entries if self._marker.search(e.message)]
        if not markers and expected > 0:
            return VerificationResult.fail(
                self.channel,
                f"no processing marker matching {self._marker.pattern!r} in {len(entries)} lines",
                records_seen=0,
                records_expected=expected,
            )

        counts = [c for c in (self._marker_count(m) for m in markers) if c is not None]
        if counts:
            processed = sum(counts)
            if processed != expected:
                return VerificationResult.fail(
                    self.channel,
                    f"{self._count_property} totals {processed}, expected {expected}",
                    records_seen=processed,
                    records_expected=expected,
                )
            return VerificationResult.ok(
                self.channel,
                f"{processed} messages processed, {len(rejections)} rejected",
                records_seen=processed,
                records_expected=expected,
            )

        return VerificationResult.ok(
            self.channel,
            f"{len(markers)} processing markers, no errors",
            records_expected=expected,
        )

    def _marker_count(self, entry: LogEntry) -> Optional[int]:
        if not self._count_property:
            return None
        value: Any = entry.properties.get(self._count_property)
        if value is None:
            # Metrics may be grouped under a single structured property
            for nested in entry.properties.values():
                if isinstance(nested, dict) and self._count_property in nested:
                    value = nested[self._count_property]
                    break
        if isinstance(value, bool) or value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
