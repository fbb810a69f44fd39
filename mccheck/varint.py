import struct
from typing import Callable

MAX_VARINT_SIZE = 5
"""varint 最多占用的字节数"""


def unpack_varint(read: Callable[[int], bytes]) -> tuple[int, int]:
    """
    从字节源中逐字节读取一个 varint。

    字节源在遇到结束字节之前耗尽时返回 0（不会抛出异常），调用方需要结合上下文判断。
    超过 `MAX_VARINT_SIZE` 个字节的部分会被直接截断。

    :param read: 形如 `read(1)` 的函数，返回空字节串表示没有更多数据
    :returns: (数值, 已读取的字节数)
    """
    data = 0
    for i in range(MAX_VARINT_SIZE):
        ordinal = read(1)

        if len(ordinal) == 0:
            return 0, i

        byte = ordinal[0]
        data |= (byte & 0x7F) << 7 * i

        if not byte & 0x80:
            return data, i + 1

    return data, MAX_VARINT_SIZE


def pack_varint(data: int) -> bytes:
    """Small helper method for packing a varint from an int."""
    # negative values are sent as their 32-bit two's complement
    if data < 0:
        data &= 0xFFFFFFFF
    ordinal = b""

    while True:
        byte = data & 0x7F
        data >>= 7
        ordinal += struct.pack("B", byte | (0x80 if data > 0 else 0))

        if data == 0:
            break

    return ordinal


def pack_string(text: str) -> bytes:
    """varint 长度前缀的 UTF-8 字符串"""
    raw = text.encode("utf-8")
    return pack_varint(len(raw)) + raw
