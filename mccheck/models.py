from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConnStatus(Enum):
    """
    包含可能的连接状态
    - `SUCCESS`：指定的 SLP 连接成功（请求和响应解析正常）
    - `CONNFAIL`：无法建立到服务器的套接字连接。服务器离线、主机名或端口错误？
    - `TIMEOUT`：连接超时。（服务器负载过高？防火墙规则是否正确？）
    - `UNKNOWN`：连接已建立，但服务器使用了未知或不支持的 SLP 协议
    """

    def __str__(self) -> str:
        return str(self.name)

    @property
    def label(self) -> str:
        """对外展示的固定状态字符串"""
        return _STATUS_LABELS[self]

    SUCCESS = 0
    """指定的 SLP 连接成功（请求和响应解析正常）"""

    CONNFAIL = -1
    """无法建立与服务器的套接字连接。（服务器离线，主机名或端口错误？）"""

    TIMEOUT = -2
    """连接超时。（服务器负载过高？防火墙规则是否正确？）"""

    UNKNOWN = -3
    """连接已建立，但服务器使用了未知或不支持的 SLP 协议"""


_STATUS_LABELS = {
    ConnStatus.SUCCESS: "Success",
    ConnStatus.CONNFAIL: "Fail",
    ConnStatus.TIMEOUT: "Timeout",
    ConnStatus.UNKNOWN: "Unknown",
}


class SlpProtocols(Enum):
    """
    包含可能的 SLP（服务器列表 Ping）协议。

    - `ALL`：按固定顺序尝试所有协议，直到收到可接受的响应或失败为止。
    - `BETA`：Minecraft Beta 1.8 到 Release 1.3，只有 MOTD 和玩家数。
    - `LEGACY`：Minecraft 1.4 和 1.5，第一个包含服务器版本号的协议。
    - `EXTENDED_LEGACY`：Minecraft 1.6，握手中带有主机名与端口。
    - `JSON`：Minecraft 1.7+，使用（包装的）JSON 作为负载。
    - `BEDROCK_RAKNET`：基岩版/教育版的 RakNet Unconnected Ping。
    - `QUERY`：Query / GameSpot4 / UT3 协议，需要服务器开启 `enable-query`。
    """

    def __str__(self) -> str:
        return str(self.name)

    ALL = 5
    """尝试所有协议，只作为请求值使用，不会出现在结果中"""

    QUERY = 6
    """Query / GameSpot4 / UT3 协议。*自 Minecraft 1.9 起可用*"""

    BEDROCK_RAKNET = 4
    """Minecraft 基岩版/教育版协议"""

    JSON = 3
    """最新且当前支持的 SLP 协议。*自 Minecraft 1.7 起可用*"""

    EXTENDED_LEGACY = 2
    """上一代 SLP 协议。*自 Minecraft 1.6 起可用*"""

    LEGACY = 1
    """传统 SLP 协议。*自 Minecraft 1.4 起可用*"""

    BETA = 0
    """第一个 SLP 协议。*自 Minecraft Beta 1.8 起可用*"""

    @property
    def transport(self) -> Literal["tcp", "udp"]:
        """该协议使用的传输层"""
        if self in (SlpProtocols.BEDROCK_RAKNET, SlpProtocols.QUERY):
            return "udp"
        return "tcp"


class StatusBuilder:
    """单次协议尝试过程中逐步填充的可变状态，最终由会话转换为 `StatusResult`"""

    def __init__(self, address: str, port: int) -> None:
        self.address: str = address
        """实际连接的地址"""
        self.port: int = port
        """实际连接的端口"""
        self.online: bool = False
        """在线或离线"""
        self.protocol_version: int | None = None
        """服务器协议版本"""
        self.version: str | None = None
        """服务器版本号"""
        self.motd: str | dict | list | None = None
        """当天消息，保持服务器响应原样（包括格式代码/JSON）"""
        self.stripped_motd: str | None = None
        """每日消息，已去除所有格式（人类可读）"""
        self.current_players: int | None = None
        """当前在线玩家人数"""
        self.max_players: int | None = None
        """最大玩家容量"""
        self.player_list: list[str] | None = None
        """在线玩家列表，仅由 Query 协议返回"""
        self.plugins: list[str] | None = None
        """插件列表，仅由 Query 协议返回"""
        self.gamemode: str | None = None
        """基岩版特有：当前游戏模式"""
        self.json_data: dict | None = None
        """JSON 协议返回的完整响应"""
        self.favicon_b64: str | None = None
        """JSON 响应中的 base64 图标（已去掉 data URI 前缀）"""
        self.favicon: bytes | None = None
        """解码后的图标数据"""
        self.latency: int | None = None
        """到服务器的延迟时间（毫秒）"""
        self.slp_protocol: SlpProtocols | None = None
        """产生结果的协议"""

    def build(self, status: ConnStatus) -> "StatusResult":
        return StatusResult(
            address=self.address,
            port=self.port,
            online=self.online,
            protocol_version=self.protocol_version,
            version=self.version,
            motd=self.motd,
            stripped_motd=self.stripped_motd,
            current_players=self.current_players,
            max_players=self.max_players,
            player_list=self.player_list,
            plugins=self.plugins,
            gamemode=self.gamemode,
            json_data=self.json_data,
            favicon_b64=self.favicon_b64,
            favicon=self.favicon,
            latency=self.latency,
            slp_protocol=self.slp_protocol,
            connection_status=status,
        )


class StatusResult(BaseModel):
    """一次查询的不可变结果快照"""

    model_config = ConfigDict(frozen=True)

    address: str
    port: int
    online: bool = False
    protocol_version: int | None = None
    version: str | None = None
    motd: str | dict[str, Any] | list[Any] | None = None
    stripped_motd: str | None = None
    current_players: int | None = Field(default=None, ge=0)
    max_players: int | None = Field(default=None, ge=0)
    player_list: list[str] | None = None
    plugins: list[str] | None = None
    gamemode: str | None = None
    json_data: dict[str, Any] | None = None
    favicon_b64: str | None = None
    favicon: bytes | None = None
    latency: int | None = Field(default=None, ge=0)
    slp_protocol: SlpProtocols | None = None
    connection_status: ConnStatus = ConnStatus.UNKNOWN

    @property
    def status_label(self) -> str:
        """`Success`、`Fail`、`Timeout` 或 `Unknown`"""
        return self.connection_status.label


class PollRequest(BaseModel):
    """一次查询会话的输入，创建后不可修改"""

    model_config = ConfigDict(frozen=True)

    address: str = Field(min_length=1)
    port: int | None = Field(default=None, ge=0, le=65535)
    timeout: float = Field(default=5, gt=0)
    query_protocol: SlpProtocols = SlpProtocols.ALL
    debug: bool = False
    resolve_srv: bool = True

    @field_validator("address")
    @classmethod
    def _strip_address(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("address must not be blank")
        return value
