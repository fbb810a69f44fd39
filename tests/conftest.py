import struct

import pytest

from mccheck import protocols
from mccheck.varint import pack_varint


class FakeStream:
    """在内存中回放服务器字节流的 TCP 连接"""

    def __init__(self, response: bytes = b"", latency: int = 3) -> None:
        self.buffer = bytearray(response)
        self.latency = latency
        self.writes: list[bytes] = []
        self.closed = False

    def write(self, data: bytes) -> None:
        self.writes.append(bytes(data))

    def read(self, size: int) -> bytes:
        if len(self.buffer) < size:
            raise ConnectionAbortedError
        data = bytes(self.buffer[:size])
        del self.buffer[:size]
        return data

    def peek(self, size: int) -> bytes:
        if len(self.buffer) < size:
            raise ConnectionAbortedError
        return bytes(self.buffer[:size])

    def read_available(self, size: int) -> bytes:
        data = bytes(self.buffer[:size])
        del self.buffer[:size]
        return data

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class FakeDatagram(FakeStream):
    """按顺序回放数据报的 UDP 连接，没有数据报时视为超时"""

    def __init__(self, datagrams: list[bytes], latency: int = 0) -> None:
        super().__init__(latency=latency)
        self.datagrams = list(datagrams)

    def read(self, size: int) -> bytes:
        if not self.datagrams:
            raise TimeoutError
        return self.datagrams.pop(0)[:size]

    def peek(self, size: int) -> bytes:
        if not self.datagrams:
            raise TimeoutError
        return self.datagrams[0][:size]

    read_available = read


def kick_packet(text: str) -> bytes:
    return b"\xff" + struct.pack(">H", len(text)) + text.encode("utf-16-be")


def json_response(body: bytes, packet_id: int = 0) -> bytes:
    packet = pack_varint(packet_id) + pack_varint(len(body)) + body
    return pack_varint(len(packet)) + packet


@pytest.fixture
def fake_open(monkeypatch):
    """让 `SlpQuery.query` 使用给定的假连接"""

    def install(conn):
        monkeypatch.setattr(protocols, "open_connection", lambda *args: conn)
        return conn

    return install
