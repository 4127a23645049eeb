"""
The deterministic workload the test app sends to the server under test.

A plan is built on the host, written into the staging directory, mounted into
the test-app container and read back by the verification suite, so both
sides agree on exactly what was emitted.
"""
import random
from pathlib import Path
from typing import Optional, List, Dict, Any, Union

from pydantic import Field

from sqelf_ci.common.dto.base import FrozenDTO
from sqelf_ci.common.config.constants import (
    EdgeCase,
    GELF_MAX_DATAGRAM_SIZE,
    WORKLOAD_INDEX_PROPERTY,
    EDGE_CASE_PROPERTY,
)


# Syslog severities used by GELF
SYSLOG_DEBUG = 7
SYSLOG_INFORMATIONAL = 6
SYSLOG_NOTICE = 5
SYSLOG_WARNING = 4

REGULAR_LEVELS = (SYSLOG_INFORMATIONAL, SYSLOG_INFORMATIONAL, SYSLOG_NOTICE, SYSLOG_WARNING, SYSLOG_DEBUG)

OVERSIZED_MESSAGE_BYTES = GELF_MAX_DATAGRAM_SIZE * 4 + 17

UNICODE_MESSAGE = (
    "Grüße aus Zürich, 世界 你好, こんにちは, Привет мир, "
    "naïve café é é, ✓ → ∞, 👋🏽 🇳🇿"
)
ASTRAL_MESSAGE = "𝔘𝔫𝔦𝔠𝔬𝔡𝔢 𝟙𝟚𝟛 🚀🛰️ 𠜎𠜱𠝹𠱓 and a trailing astral 𝄞"

REGULAR_TEMPLATES = (
    "Order {order} placed by customer {customer}",
    "Cache miss for key {key} after {elapsed} ms",
    "Request {request} completed with status {status}",
    "Worker {worker} picked up job {job}",
)


class WorkloadEvent(FrozenDTO):
    index: int = Field(ge=0)
    message: str
    level: int = Field(default=SYSLOG_INFORMATIONAL, ge=0, le=7)
    properties: Dict[str, Any] = Field(default_factory=dict)
    edge_case: Optional[EdgeCase] = None

    def additional_fields(self) -> Dict[str, Any]:
        fields = {f"_{key}": value for key, value in self.properties.items()}
        fields[f"_{WORKLOAD_INDEX_PROPERTY}"] = self.index
        if self.edge_case is not None:
            fields[f"_{EDGE_CASE_PROPERTY}"] = self.edge_case.value
        return fields


class RejectedFrame(FrozenDTO):
    kind: str
    payload: str


class WorkloadPlan(FrozenDTO):
    seed: int
    host: str = Field(default="sqelf-ci-testapp")
    events: List[WorkloadEvent] = Field(default_factory=list)
    rejected_frames: List[RejectedFrame] = Field(default_factory=list)

    @property
    def event_count(self) -> int:
        return len(self.events)

    def edge_case_events(self) -> List[WorkloadEvent]:
        return [e for e in self.events if e.edge_case is not None]

    def by_index(self) -> Dict[int, WorkloadEvent]:
        return {e.index: e for e in self.events}

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "WorkloadPlan":
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))

    @classmethod
    def build(
        cls,
        event_count: int,
        include_edge_cases: bool = True,
        include_malformed: bool = False,
        seed: int = 12201,
    ) -> "WorkloadPlan":
        rng = random.Random(seed)
        events = [_regular_event(i, rng) for i in range(event_count)]

        if include_edge_cases:
            next_index = event_count
            for edge_case, message in (
                (EdgeCase.OVERSIZED, _oversized_message(seed)),
                (EdgeCase.UNICODE, UNICODE_MESSAGE),
                (EdgeCase.ASTRAL, ASTRAL_MESSAGE),
            ):
                events.append(
                    WorkloadEvent(
                        index=next_index,
                        message=message,
                        level=SYSLOG_INFORMATIONAL,
                        edge_case=edge_case,
                    )
                )
                next_index += 1

        rejected: List[RejectedFrame] = []
        if include_malformed:
            rejected = [
                RejectedFrame(kind="invalid_json", payload='{"version": "1.1", "short_message": '),
                RejectedFrame(kind="not_an_object", payload="[1, 2, 3]"),
            ]

        return cls(seed=seed, events=events, rejected_frames=rejected)


def _regular_event(index: int, rng: random.Random) -> WorkloadEvent:
    template = REGULAR_TEMPLATES[index % len(REGULAR_TEMPLATES)]
    values = {
        "order": f"ORD-{rng.randint(10000, 99999)}",
        "customer": f"customer-{rng.randint(1, 500)}",
        "key": f"item:{rng.randint(1, 10_000)}",
        "elapsed": rng.randint(1, 2000),
        "request": f"req-{rng.getrandbits(32):08x}",
        "status": rng.choice([200, 201, 204, 304, 404]),
        "worker": rng.randint(1, 16),
        "job": rng.randint(1000, 9999),
    }
    used = {name: values[name] for name in values if "{" + name + "}" in template}
    return WorkloadEvent(
        index=index,
        message=template.format(**used),
        level=REGULAR_LEVELS[index % len(REGULAR_LEVELS)],
        properties=used,
    )


def _oversized_message(seed: int) -> str:
    # Printable, non-repeating enough that a reassembly error shifts content
    rng = random.Random(seed ^ 0x5EED)
    alphabet = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789 "
    body = "".join(rng.choice(alphabet) for _ in range(OVERSIZED_MESSAGE_BYTES))
    return f"oversized[{OVERSIZED_MESSAGE_BYTES}]:" + body
