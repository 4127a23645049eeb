from sqelf_ci.workload.plan import WorkloadPlan, WorkloadEvent, RejectedFrame
from sqelf_ci.workload.gelf import (
    GelfAddress,
    GelfSender,
    parse_address,
    build_payload,
    encode_event,
    chunk,
    frame_tcp,
)

__all__ = [
    "WorkloadPlan",
    "WorkloadEvent",
    "RejectedFrame",
    "GelfAddress",
    "GelfSender",
    "parse_address",
    "build_payload",
    "encode_event",
    "chunk",
    "frame_tcp",
]
