"""
Line parsing shared by the verification checks.

The observation channels mix structured and plain output: sqelf writes its
own diagnostics as CLEF, while ``docker logs`` of the server container holds
whatever the log server and the ingestion pipe print. Each line is parsed as a
CLEF record when it looks like one and falls back to plain text otherwise.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Dict, Any, Union
import re

from sqelf_ci.common.dto.clef import ClefRecord, ERROR_LEVELS
from sqelf_ci.common.utils.file_utils import iter_lines


PLAIN_LEVEL_PATTERN = re.compile(
    r"\b(VRB|DBG|INF|WRN|ERR|FTL)\]|\b(TRACE|DEBUG|INFO|WARN(?:ING)?|ERROR|FATAL|CRITICAL)\b"
)

PLAIN_LEVEL_NAMES = {
    "VRB": "Verbose",
    "TRACE": "Verbose",
    "DBG": "Debug",
    "DEBUG": "Debug",
    "INF": "Information",
    "INFO": "Information",
    "WRN": "Warning",
    "WARN": "Warning",
    "WARNING": "Warning",
    "ERR": "Error",
    "ERROR": "Error",
    "FTL": "Fatal",
    "FATAL": "Fatal",
    "CRITICAL": "Fatal",
}


@dataclass
class LogEntry:
    line_number: int
    level: Optional[str]
    message: str
    raw: str
    structured: bool = False
    properties: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.level is not None and self.level.lower() in ERROR_LEVELS


def parse_log_line(line: str, line_number: int = 0) -> Optional[LogEntry]:
    stripped = line.strip()
    if not stripped:
        return None

    if stripped.startswith("{"):
        try:
            record = ClefRecord.from_line(stripped)
        except ValueError:
            pass
        else:
            return LogEntry(
                line_number=line_number,
                level=record.level,
                message=record.message,
                raw=line,
                structured=True,
                properties=record.properties,
            )

    match = PLAIN_LEVEL_PATTERN.search(stripped)
    level = None
    if match:
        token = match.group(1) or match.group(2)
        level = PLAIN_LEVEL_NAMES.get(token.upper())
    return LogEntry(line_number=line_number, level=level, message=stripped, raw=line)


def read_log(path: Union[str, Path]) -> List[LogEntry]:
    entries = []
    for number, line in enumerate(iter_lines(path), start=1):
        entry = parse_log_line(line, number)
        if entry is not None:
            entries.append(entry)
    return entries


def excerpt(entries: List[LogEntry], limit: int = 3, width: int = 160) -> str:
    shown = [f"line {e.line_number}: {e.message[:width]}" for e in entries[:limit]]
    if len(entries) > limit:
        shown.append(f"... {len(entries) - limit} more")
    return "; ".join(shown)
