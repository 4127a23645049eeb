from pathlib import Path
from typing import Union
import re

from sqelf_ci.common.config.constants import VerificationChannel
from sqelf_ci.common.dto.verification import VerificationResult
from sqelf_ci.verification.base import VerificationCheck
from sqelf_ci.verification.log_channel import read_log, excerpt
from sqelf_ci.workload.plan import WorkloadPlan


class ServerLogCheck(VerificationCheck):
    """Checks the log server's container output for ingestion errors and acceptance counts."""

    channel = VerificationChannel.SEQ_LOG

    def __init__(
        self,
        path: Union[str, Path],
        acceptance_pattern: str = r"Ingested (?P<count>\d+) events?",
        error_pattern: str = r"(?i)ingest(ion)? (failed|error)",
    ):
        super().__init__(path)
        self._acceptance = re.compile(acceptance_pattern)
        self._error = re.compile(error_pattern)

    def _check(self, plan: WorkloadPlan) -> VerificationResult:
        entries = read_log(self._path)
        expected = plan.event_count

        failures = [
            e for e in entries
            if self._error.search(e.message) and (e.is_error or not e.structured)
        ]
        if failures:
            return VerificationResult.fail(
                self.channel,
                f"{len(failures)} ingestion errors: {excerpt(failures)}",
                records_expected=expected,
            )

        accepted = 0
        for entry in entries:
            match = self._acceptance.search(entry.message)
            if not match:
                continue
            count = match.groupdict().get("count")
            accepted += int(count) if count is not None else 1

        if accepted != expected:
            return VerificationResult.fail(
                self.channel,
                f"server accepted {accepted} events, expected {expected}",
                records_seen=accepted,
                records_expected=expected,
            )

        return VerificationResult.ok(
            self.channel,
            f"server accepted {accepted} events",
            records_seen=accepted,
            records_expected=expected,
        )
