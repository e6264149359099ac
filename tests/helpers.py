"""Snapshot builders and a minimal MQTT broker shared across test modules."""
from __future__ import annotations

import socket
import threading
import time

from hostwatch.models import (
    CpuInfo,
    LoadAverage,
    MemoryInfo,
    NetworkInfo,
    RealtimeData,
)


def make_snapshot(timestamp: int = 1700000000) -> RealtimeData:
    return RealtimeData(
        timestamp=timestamp,
        cpu=CpuInfo(total_usage=12.5, core_usage=[10.0, 15.0]),
        memory=MemoryInfo(
            total_kb=8_000_000,
            used_kb=2_000_000,
            free_kb=6_000_000,
            used_percent=25.0,
            swap_total_kb=0,
            swap_used_kb=0,
            swap_free_kb=0,
            swap_used_percent=0.0,
        ),
        disks=[],
        network=NetworkInfo(
            interfaces=[], rx_speed_kbps=0.0, tx_speed_kbps=0.0, total_rx_gb=0.0, total_tx_gb=0.0
        ),
        load_average=LoadAverage(one=0.1, five=0.2, fifteen=0.3),
        uptime_secs=3600,
    )


CONNECT, PUBLISH, PINGREQ, DISCONNECT = 1, 3, 12, 14


def _split_packet(buffer: bytes) -> tuple[int, bytes, bytes] | None:
    """Cut one MQTT control packet off ``buffer``: (header byte, body, rest)."""
    length, multiplier, index = 0, 1, 1
    while True:
        if index >= len(buffer):
            return None
        byte = buffer[index]
        length += (byte & 0x7F) * multiplier
        multiplier *= 128
        index += 1
        if not byte & 0x80:
            break
    if len(buffer) < index + length:
        return None
    return buffer[0], buffer[index:index + length], buffer[index + length:]


class FakeBroker:
    """Single-client MQTT 3.1.1 broker on localhost that records PUBLISH topics.

    Accepts every CONNECT, acknowledges QoS 1 publishes and answers pings;
    nothing is routed anywhere.
    """

    def __init__(self) -> None:
        self._server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._server.bind(("127.0.0.1", 0))
        self._server.listen(1)
        self._server.settimeout(0.2)
        self.port = self._server.getsockname()[1]
        self.published: list[tuple[str, bytes]] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    @property
    def topics(self) -> list[str]:
        with self._lock:
            return [topic for topic, _ in self.published]

    def wait_for_topics(self, expected: set[str], timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if expected <= set(self.topics):
                return True
            time.sleep(0.05)
        return False

    def close(self) -> None:
        self._stop.set()
        self._thread.join(timeout=2)
        self._server.close()

    def _serve(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self._server.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            with conn:
                self._handle(conn)

    def _handle(self, conn: socket.socket) -> None:
        conn.settimeout(0.2)
        buffer = b""
        while not self._stop.is_set():
            try:
                data = conn.recv(4096)
            except socket.timeout:
                continue
            except OSError:
                return
            if not data:
                return
            buffer += data
            while True:
                packet = _split_packet(buffer)
                if packet is None:
                    break
                header, body, buffer = packet
                kind = header >> 4
                if kind == CONNECT:
                    conn.sendall(b"\x20\x02\x00\x00")
                elif kind == PUBLISH:
                    self._record(conn, header, body)
                elif kind == PINGREQ:
                    conn.sendall(b"\xd0\x00")
                elif kind == DISCONNECT:
                    return

    def _record(self, conn: socket.socket, header: int, body: bytes) -> None:
        topic_len = int.from_bytes(body[:2], "big")
        topic = body[2:2 + topic_len].decode("utf-8")
        offset = 2 + topic_len
        if (header >> 1) & 0x03:
            # PUBACK echoes the packet identifier
            conn.sendall(b"\x40\x02" + body[offset:offset + 2])
            offset += 2
        with self._lock:
            self.published.append((topic, body[offset:]))
