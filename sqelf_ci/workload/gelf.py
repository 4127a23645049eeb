import gzip
import json
import random
import socket
import struct
import time
from dataclasses import dataclass
from typing import Optional, List, Dict, Any

from sqelf_ci.common.config.constants import (
    GelfProtocol,
    GELF_VERSION,
    GELF_CHUNK_MAGIC,
    GELF_CHUNK_HEADER_SIZE,
    GELF_MAX_DATAGRAM_SIZE,
    GELF_MAX_CHUNKS,
    GELF_TCP_MAX_SIZE_BYTES,
    GELF_DEFAULT_PORT,
)
from sqelf_ci.common.config.logging_config import get_logger
from sqelf_ci.workload.plan import WorkloadEvent


logger = get_logger(__name__)


@dataclass(frozen=True)
class GelfAddress:
    protocol: GelfProtocol
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.protocol.value}://{self.host}:{self.port}"


def parse_address(value: str) -> GelfAddress:
    """Parse ``udp://host:port`` / ``tcp://host:port``; no scheme means UDP."""
    protocol = GelfProtocol.UDP
    rest = value
    if value[:6] == "tcp://":
        protocol, rest = GelfProtocol.TCP, value[6:]
    elif value[:6] == "udp://":
        rest = value[6:]

    host, sep, port = rest.rpartition(":")
    if not sep:
        host, port = rest, str(GELF_DEFAULT_PORT)
    host = host.strip("[]")
    if not host:
        raise ValueError(f"Missing host in GELF address: {value!r}")
    try:
        port_number = int(port)
    except ValueError:
        raise ValueError(f"Invalid port in GELF address: {value!r}")
    if not 0 < port_number < 65536:
        raise ValueError(f"Port out of range in GELF address: {value!r}")
    return GelfAddress(protocol=protocol, host=host, port=port_number)


def build_payload(
    event: WorkloadEvent,
    host: str,
    timestamp: Optional[float] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "version": GELF_VERSION,
        "host": host,
        "short_message": event.message,
        "timestamp": round(timestamp if timestamp is not None else time.time(), 3),
        "level": event.level,
    }
    payload.update(event.additional_fields())
    return payload


def encode_event(
    event: WorkloadEvent,
    host: str,
    timestamp: Optional[float] = None,
) -> bytes:
    payload = build_payload(event, host, timestamp)
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def compress(payload: bytes) -> bytes:
    return gzip.compress(payload)


def chunk(
    payload: bytes,
    max_datagram_size: int = GELF_MAX_DATAGRAM_SIZE,
    message_id: Optional[bytes] = None,
) -> List[bytes]:
    """Split a payload into GELF UDP chunks.

    A payload that fits in one datagram is returned unchanged. Otherwise each
    chunk carries the 2-byte magic, an 8-byte message id, its sequence number
    and the sequence count.
    """
    if len(payload) <= max_datagram_size:
        return [payload]

    body_size = max_datagram_size - GELF_CHUNK_HEADER_SIZE
    if body_size <= 0:
        raise ValueError(f"Datagram size {max_datagram_size} leaves no room for data")

    count = (len(payload) + body_size - 1) // body_size
    if count > GELF_MAX_CHUNKS:
        raise ValueError(
            f"Payload of {len(payload)} bytes needs {count} chunks; GELF allows {GELF_MAX_CHUNKS}"
        )

    if message_id is None:
        message_id = struct.pack(">Q", random.getrandbits(64))
    if len(message_id) != 8:
        raise ValueError("GELF message ids are exactly 8 bytes")

    chunks = []
    for sequence in range(count):
        body = payload[sequence * body_size:(sequence + 1) * body_size]
        header = GELF_CHUNK_MAGIC + message_id + bytes([sequence, count])
        chunks.append(header + body)
    return chunks


def frame_tcp(payload: bytes, max_size: int = GELF_TCP_MAX_SIZE_BYTES) -> bytes:
    if b"\x00" in payload:
        raise ValueError("TCP GELF payloads cannot contain NUL bytes")
    if len(payload) > max_size:
        raise ValueError(f"Payload of {len(payload)} bytes exceeds the {max_size} byte TCP limit")
    return payload + b"\x00"


class GelfSender:
    def __init__(
        self,
        address: GelfAddress,
        compress_udp: bool = False,
        max_datagram_size: int = GELF_MAX_DATAGRAM_SIZE,
        connect_timeout: float = 10.0,
    ):
        self._address = address
        self._compress = compress_udp
        self._max_datagram_size = max_datagram_size
        self._connect_timeout = connect_timeout
        self._socket: Optional[socket.socket] = None
        self.datagrams_sent = 0
        self.frames_sent = 0

    def __enter__(self) -> "GelfSender":
        self.open()
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def open(self) -> None:
        if self._address.protocol == GelfProtocol.TCP:
            self._socket = socket.create_connection(
                (self._address.host, self._address.port),
                timeout=self._connect_timeout,
            )
        else:
            self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            self._socket.connect((self._address.host, self._address.port))
        logger.info(f"Connected GELF sender to {self._address}")

    def close(self) -> None:
        if self._socket is not None:
            self._socket.close()
            self._socket = None

    def send(self, payload: bytes) -> None:
        if self._socket is None:
            raise RuntimeError("GELF sender is not open")

        if self._address.protocol == GelfProtocol.TCP:
            self._socket.sendall(frame_tcp(payload))
            self.frames_sent += 1
            return

        data = compress(payload) if self._compress else payload
        for datagram in chunk(data, self._max_datagram_size):
            self._socket.send(datagram)
            self.datagrams_sent += 1
        self.frames_sent += 1
