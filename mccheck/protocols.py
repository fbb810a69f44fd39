# minestat.py - A Minecraft server status checker
# Copyright (C) 2016-2023 Lloyd Dilley, Felix Ern (MindSolve)
# http://www.dilley.me/
#
# This program is free software; you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation; either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License along
# with this program; if not, write to the Free Software Foundation, Inc.,
# 51 Franklin Street, Fifth Floor, Boston, MA 02110-1301 USA.

# 协议细节参见
# https://minecraft.wiki/w/Minecraft_Wiki:Projects/wiki.vg_merge#Project_pages
# （Server List Ping / Raknet Protocol / Query）

import base64
import binascii
import contextlib
import random
import struct
from abc import ABC, abstractmethod
from time import time

import ujson

from .models import ConnStatus, SlpProtocols, StatusBuilder
from .motd import motd_strip_formatting
from .transport import Connection, classify_connect_error, open_connection
from .utils import handle_exception
from .varint import pack_string, pack_varint, unpack_varint

NUM_FIELDS = 6
"""legacy / extended legacy 响应的字段数"""
NUM_FIELDS_BETA = 3
"""beta 响应的字段数"""
NUM_FIELDS_BEDROCK = 9
"""基岩版响应中至少需要的字段数（到游戏模式为止）"""

BETA_VERSION = ">=1.8b/1.3"
"""beta 协议不返回版本号，使用此固定值"""

KICK_PACKET_ID = 0xFF
LEGACY_PING_HOST_CHANNEL = "MC|PingHost"
LEGACY_PROTOCOL_VERSION = 0x4E
"""extended legacy 握手中携带的协议号（78，即 1.6.4）"""

JSON_PROTOCOL_VERSION = 0
"""JSON 握手中携带的协议号，仅用于探测时任意值均可"""
JSON_NEXT_STATE_STATUS = 1

RAKNET_UNCONNECTED_PING = 0x01
RAKNET_UNCONNECTED_PONG = 0x1C
RAKNET_MAGIC = bytes.fromhex("00ffff00fefefefefdfdfdfd12345678")
RAKNET_CLIENT_GUID = 0x02
BEDROCK_PACKET_OFFSET = 35
"""pong 包中服务器 ID 字符串之前的字节数 (1 + 8 + 8 + 16 + 2)"""

QUERY_MAGIC = b"\xfe\xfd"
QUERY_HANDSHAKE = 0x09
QUERY_STAT = 0x00
QUERY_HANDSHAKE_SIZE = 18
"""握手响应的读取长度 (1 + 4 + 最长 13 字节的挑战令牌)"""
QUERY_HANDSHAKE_OFFSET = 5
"""挑战令牌在握手响应中的偏移 (1 + 4)"""
QUERY_STAT_OFFSET = 16
"""键值对在 full stat 响应中的偏移 (1 + 4 + 11 字节填充)"""
QUERY_PLAYER_SECTION = b"\x00\x00\x01player_\x00\x00"
QUERY_REQUIRED_KEYS = ("hostname", "version", "numplayers", "maxplayers")


def _parse_count(value) -> int:
    count = int(value)
    if count < 0:
        raise ValueError(f"negative player count: {count}")
    return count


class SlpQuery(ABC):
    """
    所有协议共用的查询流程：建立连接、执行握手、解析响应、关闭连接。

    子类只需实现 `exchange()`。任何传输或解析错误都会被转换为 `ConnStatus`，
    不会抛出到调用方。
    """

    protocol: SlpProtocols

    def __init__(self, debug: bool = False) -> None:
        self.debug = debug

    def query(
        self, address: str, port: int, timeout: float, builder: StatusBuilder
    ) -> ConnStatus:
        """
        对服务器执行一次完整的查询。

        :param address: 服务器地址
        :param port: 服务器端口
        :param timeout: 本次尝试的总超时时间（秒）
        :param builder: 用于写入解析结果的 `StatusBuilder`
        """
        try:
            conn = open_connection(address, port, self.protocol.transport, timeout)
        except (OSError, UnicodeError) as e:
            handle_exception(e, self.debug)
            return classify_connect_error(e)

        builder.latency = conn.latency

        with conn:
            try:
                result = self.exchange(conn, builder)
            except TimeoutError:
                return ConnStatus.TIMEOUT
            except (
                OSError,
                ValueError,
                KeyError,
                TypeError,
                IndexError,
                AttributeError,
                struct.error,
            ) as e:
                handle_exception(e, self.debug)
                return ConnStatus.UNKNOWN

        if result is ConnStatus.SUCCESS:
            builder.slp_protocol = self.protocol
        return result

    @abstractmethod
    def exchange(self, conn: Connection, builder: StatusBuilder) -> ConnStatus: ...


def read_kick_payload(conn: Connection) -> str | None:
    """
    读取 beta / legacy / extended legacy 共用的 kick 包。

    :returns: 解码后的 UTF-16BE 文本，包 ID 不是 0xFF 时返回 None
    """
    packet_id = conn.read(1)
    if packet_id[0] != KICK_PACKET_ID:
        return None

    # payload length in UTF-16 code units (unsigned big-endian short)
    (content_len,) = struct.unpack(">H", conn.read(2))
    return conn.read(content_len * 2).decode("utf-16-be")


def parse_beta_payload(payload_str: str, builder: StatusBuilder) -> ConnStatus:
    # MOTD§current§max; the MOTD itself may contain '§'
    payload_list = payload_str.rsplit("§", 2)
    if len(payload_list) < NUM_FIELDS_BETA:
        return ConnStatus.UNKNOWN

    builder.motd = payload_list[0]
    builder.stripped_motd = motd_strip_formatting(payload_list[0])
    builder.current_players = _parse_count(payload_list[1])
    builder.max_players = _parse_count(payload_list[2])
    builder.version = BETA_VERSION

    builder.online = True
    return ConnStatus.SUCCESS


def parse_legacy_payload(payload_str: str, builder: StatusBuilder) -> ConnStatus:
    """
    解析 legacy 和 extended legacy 的响应文本。

    文本包含 6 个由 NUL 分隔的字段：
    固定前缀 `§1`、协议版本、服务器版本、MOTD、在线人数、最大人数
    """
    payload_list = payload_str.split("\x00")
    if len(payload_list) < NUM_FIELDS:
        return ConnStatus.UNKNOWN

    builder.protocol_version = int(payload_list[1])
    builder.version = payload_list[2]
    builder.motd = payload_list[3]
    builder.stripped_motd = motd_strip_formatting(payload_list[3])
    builder.current_players = _parse_count(payload_list[4])
    builder.max_players = _parse_count(payload_list[5])

    builder.online = True
    return ConnStatus.SUCCESS


def parse_json_payload(payload_raw: bytes, builder: StatusBuilder) -> ConnStatus:
    """
    Helper method for parsing the modern JSON-based SLP protocol.

    :param payload_raw: The raw SLP payload, without header and string length
    """
    try:
        payload_obj = ujson.loads(payload_raw.decode("utf8"))
    except (UnicodeDecodeError, ujson.JSONDecodeError):
        return ConnStatus.UNKNOWN

    if not isinstance(payload_obj, dict):
        return ConnStatus.UNKNOWN

    builder.json_data = payload_obj

    version = payload_obj.get("version") or {}
    if version.get("protocol") is not None:
        builder.protocol_version = int(version["protocol"])
    if version.get("name") is not None:
        builder.version = str(version["name"])

    # The motd might be a string directly, not a json object
    builder.motd = payload_obj.get("description")
    builder.stripped_motd = motd_strip_formatting(builder.motd)

    players = payload_obj.get("players") or {}
    if players.get("online") is not None:
        builder.current_players = _parse_count(players["online"])
    if players.get("max") is not None:
        builder.max_players = _parse_count(players["max"])

    favicon = payload_obj.get("favicon")
    if favicon and "base64," in favicon:
        builder.favicon_b64 = favicon.split("base64,")[1]
        with contextlib.suppress(binascii.Error):
            builder.favicon = base64.b64decode(builder.favicon_b64)

    if (
        not builder.version
        or not builder.motd
        or builder.current_players is None
        or builder.max_players is None
    ):
        return ConnStatus.UNKNOWN

    builder.online = True
    return ConnStatus.SUCCESS


def parse_bedrock_payload(payload_str: str, builder: StatusBuilder) -> ConnStatus:
    """
    解析基岩版的服务器 ID 字符串。

    字段依次为：版本类型、MOTD 第一行、协议版本、版本名、在线人数、最大人数、
    服务器 ID、MOTD 第二行、游戏模式、游戏模式（数字）、IPv4 端口、IPv6 端口
    """
    payload = payload_str.split(";")
    if len(payload) < NUM_FIELDS_BEDROCK:
        return ConnStatus.UNKNOWN

    edition, motd_1, protocol_version, version = payload[:4]

    builder.protocol_version = int(protocol_version)
    builder.version = f"{version} {payload[7]} ({edition})"
    builder.motd = motd_1
    builder.stripped_motd = motd_strip_formatting(motd_1)
    builder.current_players = _parse_count(payload[4])
    builder.max_players = _parse_count(payload[5])
    builder.gamemode = payload[8]

    builder.online = True
    return ConnStatus.SUCCESS


def parse_plugins(raw_plugins: str) -> list[str]:
    """
    解析 Query 协议返回的插件列表。

    Bukkit 及其衍生服务端的格式为
    `Paper on 1.19.3-R0.1-SNAPSHOT: Essentials 2.19.7; EssentialsChat 2.19.7`，
    冒号之前的服务端信息会被丢弃。不含冒号时整个字符串作为唯一元素返回。
    """
    segments = raw_plugins.split(":", 1)
    if len(segments) == 1:
        return [raw_plugins]
    return [plugin.strip() for plugin in segments[1].split(";") if plugin.strip()]


def parse_query_payload(data: bytes, builder: StatusBuilder) -> ConnStatus:
    """
    解析 full stat 响应（已去掉 16 字节的头部）。

    :param data: 键值对部分与玩家列表部分
    """
    raw_stats, found, raw_players = data.partition(QUERY_PLAYER_SECTION)

    stat_list = raw_stats.split(b"\x00")
    stats = {
        key.decode("utf-8"): value
        for key, value in zip(stat_list[0::2], stat_list[1::2])
    }

    if any(key not in stats for key in QUERY_REQUIRED_KEYS):
        return ConnStatus.UNKNOWN

    # the motd is named "hostname" in the Query protocol
    builder.motd = stats["hostname"].decode("iso_8859_1")
    builder.stripped_motd = motd_strip_formatting(builder.motd)
    builder.version = stats["version"].decode("utf-8")
    builder.current_players = _parse_count(stats["numplayers"])
    builder.max_players = _parse_count(stats["maxplayers"])

    # vanilla servers send an empty plugin list
    if raw_plugins := stats.get("plugins", b"").decode("utf-8"):
        builder.plugins = parse_plugins(raw_plugins)

    if found:
        builder.player_list = [
            player.decode("utf-8") for player in raw_players.split(b"\x00") if player
        ]

    builder.online = True
    return ConnStatus.SUCCESS


class BetaQuery(SlpQuery):
    """
    Minecraft Beta 1.8 to Release 1.3 SLP protocol

    1. Client sends 0xFE (server list ping)
    2. Server responds with a kick packet (0xFF), the payload length and
       3 fields delimited by '§': MOTD, current players, max players
    """

    protocol = SlpProtocols.BETA

    def exchange(self, conn: Connection, builder: StatusBuilder) -> ConnStatus:
        conn.write(b"\xfe")

        payload_str = read_kick_payload(conn)
        if payload_str is None:
            return ConnStatus.UNKNOWN
        return parse_beta_payload(payload_str, builder)


class LegacyQuery(SlpQuery):
    """
    Minecraft 1.4-1.5 SLP query, server response contains more info than beta SLP

    1. Client sends 0xFE 0x01
    2. Server responds with a kick packet whose payload holds 6 NUL delimited fields
    """

    protocol = SlpProtocols.LEGACY

    def request(self, builder: StatusBuilder) -> bytes:
        return b"\xfe\x01"

    def exchange(self, conn: Connection, builder: StatusBuilder) -> ConnStatus:
        conn.write(self.request(builder))

        payload_str = read_kick_payload(conn)
        if payload_str is None:
            return ConnStatus.UNKNOWN
        return parse_legacy_payload(payload_str, builder)


class ExtendedLegacyQuery(LegacyQuery):
    """
    Minecraft 1.6 SLP query, extended legacy ping protocol.
    All modern servers are currently backwards compatible with this protocol.
    """

    protocol = SlpProtocols.EXTENDED_LEGACY

    def request(self, builder: StatusBuilder) -> bytes:
        hostname = builder.address.encode("utf-16-be")

        # 0xFE server list ping, 0x01 ping payload, 0xFA plugin message
        req_data = bytearray([0xFE, 0x01, 0xFA])
        req_data += struct.pack(">H", len(LEGACY_PING_HOST_CHANNEL))
        req_data += LEGACY_PING_HOST_CHANNEL.encode("utf-16-be")
        # byte count of the rest of the data
        req_data += struct.pack(">H", 7 + len(hostname))
        req_data += bytes([LEGACY_PROTOCOL_VERSION])
        # hostname length in UTF-16 code units
        req_data += struct.pack(">H", len(hostname) // 2)
        req_data += hostname
        req_data += struct.pack(">i", builder.port)
        return bytes(req_data)


class JsonQuery(SlpQuery):
    """
    Method for querying a modern (MC Java >= 1.7) server with the SLP protocol.

    1. Client sends a handshake packet (protocol version, address, port,
       next state 1) followed by an empty status request
    2. Server responds with packet 0x00 carrying the status as JSON text
    """

    protocol = SlpProtocols.JSON

    def exchange(self, conn: Connection, builder: StatusBuilder) -> ConnStatus:
        req_data = pack_varint(0x00)
        req_data += pack_varint(JSON_PROTOCOL_VERSION)
        req_data += pack_string(builder.address)
        req_data += struct.pack(">H", builder.port)
        req_data += pack_varint(JSON_NEXT_STATE_STATUS)

        # Prepend full packet length, then the empty "Request" packet
        conn.write(pack_varint(len(req_data)) + req_data)
        conn.write(b"\x01\x00")

        # full packet length, not needed
        unpack_varint(conn.read_available)

        packet_id, _ = unpack_varint(conn.read_available)
        if packet_id != 0:
            return ConnStatus.UNKNOWN

        content_len, _ = unpack_varint(conn.read_available)
        return parse_json_payload(self._recv_json(conn, content_len), builder)

    @staticmethod
    def _recv_json(conn: Connection, size: int) -> bytes:
        payload = bytearray()
        while len(payload) < size:
            if chunk := conn.read_available(size - len(payload)):
                payload += chunk
            else:
                raise ConnectionAbortedError("connection closed while reading JSON payload")
        return bytes(payload)


class BedrockQuery(SlpQuery):
    """
    用于查询基岩版服务器（Minecraft PE、Windows 10 或教育版）的方法。
    该协议基于 RakNet 协议的 Unconnected Ping / Unconnected Pong。
    """

    protocol = SlpProtocols.BEDROCK_RAKNET

    def exchange(self, conn: Connection, builder: StatusBuilder) -> ConnStatus:
        req_data = bytes([RAKNET_UNCONNECTED_PING])
        # current unix timestamp in ms as signed long (64-bit) LE-encoded
        req_data += struct.pack("<q", int(time() * 1000))
        req_data += RAKNET_MAGIC
        req_data += struct.pack("<q", RAKNET_CLIENT_GUID)
        conn.write(req_data)

        if conn.peek(1)[:1] != bytes([RAKNET_UNCONNECTED_PONG]):
            return ConnStatus.UNKNOWN

        header = conn.peek(BEDROCK_PACKET_OFFSET)
        if len(header) < BEDROCK_PACKET_OFFSET:
            return ConnStatus.UNKNOWN
        (id_len,) = struct.unpack(">H", header[-2:])

        payload = conn.read(BEDROCK_PACKET_OFFSET + id_len)[BEDROCK_PACKET_OFFSET:]
        return parse_bedrock_payload(payload.decode("utf-8"), builder)


class FullStatQuery(SlpQuery):
    """
    用于通过 fullstat Query / GameSpot4 / UT3 协议查询 Minecraft Java 版服务器。
    需要在服务器的 "server.properties" 中开启 `enable-query=true`。

    1. 发送握手请求，接收挑战令牌
    2. 发送 full stat 请求（带 4 字节填充；basic stat 不包含版本号）
    3. 接收键值对与玩家列表
    """

    protocol = SlpProtocols.QUERY

    def exchange(self, conn: Connection, builder: StatusBuilder) -> ConnStatus:
        session_id = random.randint(0, 0x7FFFFFFF) & 0x0F0F0F0F
        session_id_bytes = struct.pack(">l", session_id)

        conn.write(QUERY_MAGIC + bytes([QUERY_HANDSHAKE]) + session_id_bytes)

        if conn.peek(1)[:1] != bytes([QUERY_HANDSHAKE]):
            return ConnStatus.UNKNOWN

        handshake_res = conn.read(QUERY_HANDSHAKE_SIZE)
        challenge_token = handshake_res[QUERY_HANDSHAKE_OFFSET:].split(b"\x00", 1)[0]
        # the token is sent back as a big-endian int32
        challenge_token_bytes = struct.pack(">L", int(challenge_token) & 0xFFFFFFFF)

        req_packet = QUERY_MAGIC + bytes([QUERY_STAT]) + session_id_bytes
        req_packet += challenge_token_bytes
        req_packet += b"\x00\x00\x00\x00"
        conn.write(req_packet)

        if conn.peek(1)[:1] != bytes([QUERY_STAT]):
            return ConnStatus.UNKNOWN

        raw_res = conn.read(4096)
        return parse_query_payload(raw_res[QUERY_STAT_OFFSET:], builder)


PROTOCOLS: dict[SlpProtocols, type[SlpQuery]] = {
    SlpProtocols.BETA: BetaQuery,
    SlpProtocols.LEGACY: LegacyQuery,
    SlpProtocols.EXTENDED_LEGACY: ExtendedLegacyQuery,
    SlpProtocols.JSON: JsonQuery,
    SlpProtocols.BEDROCK_RAKNET: BedrockQuery,
    SlpProtocols.QUERY: FullStatQuery,
}


def get_protocol(protocol: SlpProtocols, debug: bool = False) -> SlpQuery:
    """根据请求的协议返回对应的查询实现，`ALL` 不对应任何实现"""
    try:
        return PROTOCOLS[protocol](debug)
    except KeyError:
        raise ValueError(f"no single query implements {protocol}") from None
