"""Tests for the three observation-channel checks and the suite that runs them."""
import json

import pytest

from sqelf_ci.common.config.constants import (
    VerificationChannel,
    SQELF_LOG_FILE,
    SEQ_LOG_FILE,
    CLEF_OUTPUT_FILE,
)
from sqelf_ci.common.exceptions.pipeline_exceptions import VerificationFailure
from sqelf_ci.verification import (
    ClefOutputCheck,
    ServerLogCheck,
    SqelfLogCheck,
    VerificationSuite,
)
from sqelf_ci.verification.log_channel import parse_log_line
from sqelf_ci.workload.plan import WorkloadPlan

from conftest import (
    clef_line,
    clef_output_lines,
    make_settings,
    sqelf_log_lines,
    write_channels,
)


def write_lines(path, lines):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    return path


class TestLogChannel:
    def test_structured_line(self):
        entry = parse_log_line(clef_line("GELF processing failed", level="Error"), 4)
        assert entry.structured
        assert entry.is_error
        assert entry.line_number == 4

    @pytest.mark.parametrize("line, level", [
        ("[10:00:00 ERR] Ingestion failed", "Error"),
        ("2024-05-01 WARN disk is slow", "Warning"),
        ("seqcli: Ingested 3 events", None),
    ])
    def test_plain_lines(self, line, level):
        entry = parse_log_line(line)
        assert not entry.structured
        assert entry.level == level

    def test_broken_json_falls_back_to_text(self):
        entry = parse_log_line('{"@t": "2024-')
        assert not entry.structured
        assert entry.message == '{"@t": "2024-'

    def test_blank_line(self):
        assert parse_log_line("   ") is None


class TestSqelfLogCheck:
    @pytest.mark.parametrize("count", [1, 50, 1000])
    def test_processed_count_matches(self, tmp_path, count):
        plan = WorkloadPlan.build(count, include_edge_cases=False)
        path = write_lines(tmp_path / SQELF_LOG_FILE, sqelf_log_lines(count))

        result = SqelfLogCheck(path).run(plan)

        assert result.passed, result.detail
        assert result.records_seen == count

    def test_zero_events_needs_no_marker(self, tmp_path):
        plan = WorkloadPlan.build(0, include_edge_cases=False)
        path = write_lines(tmp_path / SQELF_LOG_FILE, [clef_line("Setting up for UDP")])

        assert SqelfLogCheck(path).run(plan).passed

    def test_count_mismatch(self, tmp_path, small_plan):
        path = write_lines(tmp_path / SQELF_LOG_FILE, sqelf_log_lines(4))

        result = SqelfLogCheck(path).run(small_plan)

        assert not result.passed
        assert "expected 5" in result.detail

    def test_counts_are_summed_across_markers(self, tmp_path, small_plan):
        lines = sqelf_log_lines(2) + sqelf_log_lines(3, ready=False)
        path = write_lines(tmp_path / SQELF_LOG_FILE, lines)

        assert SqelfLogCheck(path).run(small_plan).passed

    def test_nested_metrics_property(self, tmp_path, small_plan):
        line = json.dumps({
            "@t": "2024-05-01T10:00:00Z",
            "@mt": "Collected GELF server metrics {metrics}",
            "metrics": {"process_ok": 5, "process_err": 0},
        })
        path = write_lines(tmp_path / SQELF_LOG_FILE, [line])

        assert SqelfLogCheck(path).run(small_plan).passed

    def test_unexpected_error_fails(self, tmp_path, small_plan):
        lines = sqelf_log_lines(5) + [clef_line("Server failed to bind", level="Error")]
        path = write_lines(tmp_path / SQELF_LOG_FILE, lines)

        result = SqelfLogCheck(path).run(small_plan)

        assert not result.passed
        assert "Server failed to bind" in result.detail

    def test_rejections_allowed_for_malformed_frames(self, tmp_path):
        plan = WorkloadPlan.build(5, include_edge_cases=False, include_malformed=True)
        path = write_lines(tmp_path / SQELF_LOG_FILE, sqelf_log_lines(5, rejected=2))

        assert SqelfLogCheck(path).run(plan).passed

    def test_rejections_fail_without_malformed_frames(self, tmp_path, small_plan):
        path = write_lines(tmp_path / SQELF_LOG_FILE, sqelf_log_lines(5, rejected=1))

        result = SqelfLogCheck(path).run(small_plan)

        assert not result.passed
        assert "rejected" in result.detail

    def test_missing_marker(self, tmp_path, small_plan):
        path = write_lines(tmp_path / SQELF_LOG_FILE, [clef_line("Setting up for UDP")])

        result = SqelfLogCheck(path).run(small_plan)

        assert not result.passed
        assert "no processing marker" in result.detail

    def test_missing_file(self, tmp_path, small_plan):
        result = SqelfLogCheck(tmp_path / SQELF_LOG_FILE).run(small_plan)

        assert not result.passed
        assert "not produced" in result.detail


class TestServerLogCheck:
    def test_acceptance_count(self, tmp_path, small_plan):
        path = write_lines(tmp_path / SEQ_LOG_FILE, [
            "[10:00:00 INF] Seq listening on http://0.0.0.0:80",
            "seqcli: Ingested 3 events",
            "seqcli: Ingested 2 events",
        ])

        result = ServerLogCheck(path).run(small_plan)

        assert result.passed, result.detail
        assert result.records_seen == 5

    def test_count_mismatch(self, tmp_path, small_plan):
        path = write_lines(tmp_path / SEQ_LOG_FILE, ["seqcli: Ingested 4 events"])

        result = ServerLogCheck(path).run(small_plan)

        assert not result.passed
        assert "accepted 4 events, expected 5" in result.detail

    def test_ingestion_error(self, tmp_path, small_plan):
        path = write_lines(tmp_path / SEQ_LOG_FILE, [
            "seqcli: Ingested 5 events",
            "seqcli: ingestion failed: the payload could not be parsed",
        ])

        result = ServerLogCheck(path).run(small_plan)

        assert not result.passed
        assert "ingestion errors" in result.detail

    def test_structured_non_error_mention_is_ignored(self, tmp_path, small_plan):
        path = write_lines(tmp_path / SEQ_LOG_FILE, [
            clef_line("Retrying after ingestion failed earlier", level="Information"),
            "seqcli: Ingested 5 events",
        ])

        assert ServerLogCheck(path).run(small_plan).passed

    def test_marker_without_count_group(self, tmp_path, small_plan):
        path = write_lines(tmp_path / SEQ_LOG_FILE, ["accepted"] * 5)

        assert ServerLogCheck(path, acceptance_pattern=r"^accepted$").run(small_plan).passed


class TestClefOutputCheck:
    @pytest.mark.parametrize("count", [0, 1, 1000])
    def test_every_event_present(self, tmp_path, count):
        plan = WorkloadPlan.build(count, include_edge_cases=False)
        path = write_lines(tmp_path / CLEF_OUTPUT_FILE, clef_output_lines(plan))

        result = ClefOutputCheck(path).run(plan)

        assert result.passed, result.detail
        assert result.records_seen == count

    def test_edge_cases_pass(self, tmp_path, edge_plan):
        path = write_lines(tmp_path / CLEF_OUTPUT_FILE, clef_output_lines(edge_plan))

        assert ClefOutputCheck(path).run(edge_plan).passed

    def test_missing_record(self, tmp_path):
        plan = WorkloadPlan.build(50, include_edge_cases=False)
        path = write_lines(tmp_path / CLEF_OUTPUT_FILE, clef_output_lines(plan, drop={7}))

        result = ClefOutputCheck(path).run(plan)

        assert not result.passed
        assert "expected 50 records, got 49" in result.detail
        assert "missing indexes 7" in result.detail

    def test_many_missing_are_summarised(self, tmp_path):
        plan = WorkloadPlan.build(30, include_edge_cases=False)
        path = write_lines(tmp_path / CLEF_OUTPUT_FILE, clef_output_lines(plan, drop=set(range(25))))

        result = ClefOutputCheck(path).run(plan)

        assert "and 5 more" in result.detail

    def test_duplicate_record(self, tmp_path, small_plan):
        lines = clef_output_lines(small_plan)
        path = write_lines(tmp_path / CLEF_OUTPUT_FILE, lines + [lines[2]])

        result = ClefOutputCheck(path).run(small_plan)

        assert not result.passed
        assert "duplicate indexes 2" in result.detail

    def test_altered_unicode_message(self, tmp_path, edge_plan):
        lines = clef_output_lines(edge_plan)
        unicode_event = next(e for e in edge_plan.edge_case_events() if e.edge_case.value == "unicode")
        record = json.loads(lines[unicode_event.index])
        record["@m"] = record["@m"].replace("ü", "u")
        lines[unicode_event.index] = json.dumps(record, ensure_ascii=False)
        path = write_lines(tmp_path / CLEF_OUTPUT_FILE, lines)

        result = ClefOutputCheck(path).run(edge_plan)

        assert not result.passed
        assert "unicode message altered" in result.detail

    def test_malformed_line(self, tmp_path, small_plan):
        lines = clef_output_lines(small_plan) + ['{"@t": "2024-05-01T10:00:00Z", "@m": ']
        path = write_lines(tmp_path / CLEF_OUTPUT_FILE, lines)

        result = ClefOutputCheck(path).run(small_plan)

        assert not result.passed
        assert "malformed" in result.detail

    def test_string_index_is_accepted(self, tmp_path, small_plan):
        lines = []
        for line in clef_output_lines(small_plan):
            record = json.loads(line)
            record["workload_index"] = str(record["workload_index"])
            lines.append(json.dumps(record))
        path = write_lines(tmp_path / CLEF_OUTPUT_FILE, lines)

        assert ClefOutputCheck(path).run(small_plan).passed


class TestVerificationSuite:
    def test_all_channels_pass(self, tmp_path, source_dir, layout, small_plan):
        output = write_channels(layout.logs_dir, small_plan)
        layout.seq_log.write_text(output, encoding="utf-8")
        suite = VerificationSuite.from_settings(make_settings(tmp_path, source_dir), layout)

        report = suite.verify(small_plan)

        assert report.passed
        assert [r.channel for r in report.results] == [
            VerificationChannel.SQELF_LOG,
            VerificationChannel.SEQ_LOG,
            VerificationChannel.CLEF_OUTPUT,
        ]

    def test_every_check_runs_after_a_failure(self, tmp_path, source_dir, layout, small_plan):
        write_channels(layout.logs_dir, small_plan)
        suite = VerificationSuite.from_settings(make_settings(tmp_path, source_dir), layout)

        report = suite.run(small_plan)

        assert len(report.results) == 3
        assert report.failures() == [report.get(VerificationChannel.SEQ_LOG)]

    def test_verify_raises_with_report(self, tmp_path, source_dir, layout, small_plan):
        output = write_channels(layout.logs_dir, small_plan, drop={2})
        layout.seq_log.write_text(output, encoding="utf-8")
        suite = VerificationSuite.from_settings(make_settings(tmp_path, source_dir), layout)

        with pytest.raises(VerificationFailure) as exc_info:
            suite.verify(small_plan)

        report = exc_info.value.report
        assert not report.get(VerificationChannel.CLEF_OUTPUT).passed
        assert "missing indexes 2" in report.get(VerificationChannel.CLEF_OUTPUT).detail
        assert "clef_output" in exc_info.value.details["failed_channels"]
