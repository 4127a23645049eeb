from collections import Counter
from typing import Optional, List, Dict, Any

from sqelf_ci.common.config.constants import VerificationChannel, WORKLOAD_INDEX_PROPERTY
from sqelf_ci.common.dto.clef import ClefRecord
from sqelf_ci.common.dto.verification import VerificationResult
from sqelf_ci.common.utils.file_utils import iter_lines
from sqelf_ci.verification.base import VerificationCheck
from sqelf_ci.workload.plan import WorkloadPlan


MISSING_INDEX_LIMIT = 20


def _workload_index(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


class ClefOutputCheck(VerificationCheck):
    """Checks the structured output sqelf produced, record by record, against the plan."""

    channel = VerificationChannel.CLEF_OUTPUT

    def _check(self, plan: WorkloadPlan) -> VerificationResult:
        records: List[ClefRecord] = []
        malformed: List[str] = []

        for number, line in enumerate(iter_lines(self._path), start=1):
            if not line.strip():
                continue
            try:
                records.append(ClefRecord.from_line(line))
            except ValueError as e:
                malformed.append(f"line {number}: {str(e).splitlines()[0][:160]}")

        expected = plan.event_count
        if malformed:
            shown = "; ".join(malformed[:3])
            return VerificationResult.fail(
                self.channel,
                f"{len(malformed)} malformed records ({shown})",
                records_seen=len(records),
                records_expected=expected,
            )

        by_index: Dict[int, ClefRecord] = {}
        seen = Counter()
        unindexed = 0
        for record in records:
            index = _workload_index(record.properties.get(WORKLOAD_INDEX_PROPERTY))
            if index is None:
                unindexed += 1
                continue
            seen[index] += 1
            by_index.setdefault(index, record)

        planned = plan.by_index()
        problems = []

        if len(records) != expected:
            problems.append(f"expected {expected} records, got {len(records)}")

        missing = sorted(set(planned) - set(seen))
        if missing:
            shown = ", ".join(str(i) for i in missing[:MISSING_INDEX_LIMIT])
            more = f" and {len(missing) - MISSING_INDEX_LIMIT} more" if len(missing) > MISSING_INDEX_LIMIT else ""
            problems.append(f"missing indexes {shown}{more}")

        duplicates = sorted(i for i, n in seen.items() if n > 1)
        if duplicates:
            problems.append(f"duplicate indexes {', '.join(str(i) for i in duplicates[:MISSING_INDEX_LIMIT])}")

        unknown = sorted(set(seen) - set(planned))
        if unknown:
            problems.append(f"unplanned indexes {', '.join(str(i) for i in unknown[:MISSING_INDEX_LIMIT])}")
        if unindexed:
            problems.append(f"{unindexed} records without {WORKLOAD_INDEX_PROPERTY}")

        for event in plan.edge_case_events():
            record = by_index.get(event.index)
            if record is None:
                continue
            sent = event.message.encode("utf-8")
            received = record.message.encode("utf-8")
            if sent != received:
                problems.append(
                    f"{event.edge_case.value} message altered "
                    f"({len(sent)} bytes sent, {len(received)} received)"
                )

        if problems:
            return VerificationResult.fail(
                self.channel,
                "; ".join(problems),
                records_seen=len(records),
                records_expected=expected,
            )

        return VerificationResult.ok(
            self.channel,
            f"{len(records)} records match the workload",
            records_seen=len(records),
            records_expected=expected,
        )
