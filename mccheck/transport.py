import errno
import socket
from abc import ABC, abstractmethod
from time import monotonic, perf_counter
from typing import Literal

from .models import ConnStatus

TransportKind = Literal["tcp", "udp"]

_UNREACHABLE_ERRNOS = {errno.EHOSTUNREACH, errno.ENETUNREACH}


class Connection(ABC):
    """
    一次协议尝试所持有的连接。

    所有阻塞操作共用同一个截止时间，超时覆盖整个握手与读取过程。
    子类需要实现 `read` 与 `peek`，`peek` 不能消耗数据。
    """

    def __init__(self, sock: socket.socket, deadline: float, latency: int) -> None:
        self.sock = sock
        self.deadline = deadline
        self.latency = latency
        """建立连接所用的时间（毫秒）"""

    def _arm(self) -> None:
        remaining = self.deadline - monotonic()
        if remaining <= 0:
            raise TimeoutError("deadline exceeded")
        self.sock.settimeout(remaining)

    def write(self, data: bytes | bytearray) -> None:
        self._arm()
        self.sock.sendall(data)

    @abstractmethod
    def read(self, size: int) -> bytes: ...

    @abstractmethod
    def peek(self, size: int) -> bytes: ...

    def read_available(self, size: int) -> bytes:
        """读取至多 `size` 个字节，连接关闭时返回空字节串"""
        return self.read(size)

    def close(self) -> None:
        self.sock.close()

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class StreamConnection(Connection):
    """TCP 连接，`read` 读取恰好 `size` 个字节"""

    def __init__(self, sock: socket.socket, deadline: float, latency: int) -> None:
        super().__init__(sock, deadline, latency)
        self._buffer = bytearray()

    def _fill(self, size: int) -> None:
        while len(self._buffer) < size:
            self._arm()
            if chunk := self.sock.recv(size - len(self._buffer)):
                self._buffer += chunk
            else:
                raise ConnectionAbortedError("connection closed while waiting for data")

    def read(self, size: int) -> bytes:
        self._fill(size)
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def peek(self, size: int) -> bytes:
        self._fill(size)
        return bytes(self._buffer[:size])

    def read_available(self, size: int) -> bytes:
        if self._buffer:
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
            return data
        self._arm()
        return self.sock.recv(size)


class DatagramConnection(Connection):
    """UDP 连接，每次 `read` 取走一个数据报（超出 `size` 的部分被丢弃）"""

    def read(self, size: int) -> bytes:
        self._arm()
        return self.sock.recv(size)

    def peek(self, size: int) -> bytes:
        self._arm()
        return self.sock.recv(size, socket.MSG_PEEK)


def open_connection(
    address: str, port: int, kind: TransportKind, timeout: float
) -> Connection:
    """
    建立到服务器的连接并测量延迟。

    :param address: 服务器地址
    :param port: 服务器端口
    :param kind: `tcp` 或 `udp`
    :param timeout: 本次尝试的总超时时间（秒）

    :returns: 已连接的 `Connection`
    :raises OSError: 连接失败，交由 `classify_connect_error` 分类
    """
    deadline = monotonic() + timeout
    start_time = perf_counter()

    if kind == "tcp":
        sock = socket.create_connection((address, port), timeout=timeout)
        latency = round((perf_counter() - start_time) * 1000)
        return StreamConnection(sock, deadline, latency)

    family, socktype, proto, _, sockaddr = socket.getaddrinfo(
        address, port, type=socket.SOCK_DGRAM
    )[0]
    sock = socket.socket(family, socktype, proto)
    try:
        sock.settimeout(timeout)
        sock.connect(sockaddr)
    except BaseException:
        sock.close()
        raise
    latency = round((perf_counter() - start_time) * 1000)
    return DatagramConnection(sock, deadline, latency)


def classify_connect_error(exc: BaseException) -> ConnStatus:
    """将建立连接时的异常映射为连接状态"""
    # invalid hostnames fail inside the idna codec before any lookup happens
    if isinstance(exc, (socket.gaierror, UnicodeError)):
        return ConnStatus.UNKNOWN
    if isinstance(exc, TimeoutError):
        return ConnStatus.TIMEOUT
    if isinstance(exc, ConnectionRefusedError):
        return ConnStatus.CONNFAIL
    if isinstance(exc, OSError) and exc.errno in _UNREACHABLE_ERRNOS:
        return ConnStatus.CONNFAIL
    return ConnStatus.UNKNOWN
