import argparse
import sys
import time
from typing import Optional, List

from sqelf_ci.common.config.logging_config import setup_logging, get_logger
from sqelf_ci.workload.gelf import GelfSender, encode_event, parse_address
from sqelf_ci.workload.plan import WorkloadPlan


logger = get_logger(__name__)


def emit_plan(
    plan: WorkloadPlan,
    sender: GelfSender,
    delay_seconds: float = 0.0,
) -> int:
    sent = 0
    for event in plan.events:
        sender.send(encode_event(event, plan.host))
        sent += 1
        if delay_seconds:
            time.sleep(delay_seconds)

    for frame in plan.rejected_frames:
        sender.send(frame.payload.encode("utf-8"))
        if delay_seconds:
            time.sleep(delay_seconds)

    logger.info(
        f"Emitted {sent} events and {len(plan.rejected_frames)} rejected frames "
        f"in {sender.datagrams_sent} datagrams"
    )
    return sent


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sqelf-ci-emit",
        description="Send a workload plan to a GELF endpoint",
    )
    parser.add_argument("--plan", required=True, help="Path to the workload plan JSON")
    parser.add_argument("--address", default="udp://localhost:12201",
                        help="GELF endpoint, e.g. udp://sqelf:12201 or tcp://sqelf:12201")
    parser.add_argument("--delay-ms", type=int, default=2, help="Pause between messages")
    parser.add_argument("--compress", action="store_true", help="gzip UDP payloads")
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(log_level=args.log_level.upper())

    try:
        plan = WorkloadPlan.load(args.plan)
        address = parse_address(args.address)
    except (OSError, ValueError) as e:
        logger.error(f"Invalid workload input: {e}")
        return 2

    try:
        with GelfSender(address, compress_udp=args.compress) as sender:
            emit_plan(plan, sender, delay_seconds=args.delay_ms / 1000.0)
    except OSError as e:
        logger.error(f"Failed to send workload to {address}: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
