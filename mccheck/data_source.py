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

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from loguru import logger

from .configs import VERSION, config
from .models import ConnStatus, PollRequest, SlpProtocols, StatusBuilder, StatusResult
from .protocols import get_protocol
from .utils import DEFAULT_TCP_PORT, resolve_srv

Attempt = Callable[[SlpProtocols], tuple[ConnStatus, StatusBuilder]]


@dataclass(frozen=True)
class ProbeStep:
    """自动探测计划中的一步"""

    protocol: SlpProtocols
    skip_after_success: bool = False
    """上一步成功时跳过"""
    skip_when_online: bool = False
    """已经有任何一步成功时跳过"""


# 注意：此处 Java 版本的顺序非常重要。
# 某些较老的 MC 版本在接收到无法识别的数据包后的几秒钟内不接受新的数据包。
# 较新的服务器仍然会响应旧的 SLP 请求，因此后面成功的协议会覆盖前面的结果。
AUTO_PLAN: tuple[ProbeStep, ...] = (
    # Minecraft 1.4 & 1.5 (legacy SLP)
    ProbeStep(SlpProtocols.LEGACY),
    # Minecraft Beta 1.8 to Release 1.3 (beta SLP)
    ProbeStep(SlpProtocols.BETA, skip_after_success=True),
    # Minecraft 1.6 (extended legacy SLP)
    ProbeStep(SlpProtocols.EXTENDED_LEGACY),
    # Minecraft 1.7+ (JSON SLP)
    ProbeStep(SlpProtocols.JSON),
    # Minecraft Bedrock/Pocket/Education Edition (MCPE/MCEE)
    ProbeStep(SlpProtocols.BEDROCK_RAKNET, skip_when_online=True),
    # Minecraft 1.9+ (QUERY SLP)
    ProbeStep(SlpProtocols.QUERY, skip_when_online=True),
)


class ProbeState:
    """
    探测过程的状态机。

    - `CONNFAIL`：主机不可达，终止剩余的所有步骤
    - `TIMEOUT` / `UNKNOWN`：继续尝试下一种协议
    - `SUCCESS`：记录结果，后续成功的协议会覆盖它
    """

    def __init__(self) -> None:
        self.last: ConnStatus | None = None
        """最近一步的结果"""
        self.best: StatusBuilder | None = None
        """最近一次成功的结果"""
        self.latency: int | None = None
        """最近一次成功建立连接时测得的延迟"""
        self.attempted: list[SlpProtocols] = []
        """已经尝试过的协议，按顺序排列"""

    @property
    def online(self) -> bool:
        return self.best is not None

    @property
    def aborted(self) -> bool:
        return self.last is ConnStatus.CONNFAIL

    def should_run(self, step: ProbeStep) -> bool:
        if self.aborted:
            return False
        if step.skip_after_success and self.last is ConnStatus.SUCCESS:
            return False
        return not (step.skip_when_online and self.online)

    def record(
        self, protocol: SlpProtocols, status: ConnStatus, builder: StatusBuilder
    ) -> None:
        self.attempted.append(protocol)
        self.last = status
        if builder.latency is not None:
            self.latency = builder.latency
        if status is ConnStatus.SUCCESS and builder.online:
            self.best = builder

    @property
    def status(self) -> ConnStatus:
        """最终状态：只要有一步成功即为 `SUCCESS`，否则为最后一步的结果"""
        if self.online:
            return ConnStatus.SUCCESS
        return self.last or ConnStatus.UNKNOWN


def run_plan(plan: Iterable[ProbeStep], attempt: Attempt) -> ProbeState:
    """
    按顺序执行探测计划。

    :param plan: 探测步骤
    :param attempt: 执行单个协议查询的函数，返回 (状态, 结果)
    """
    state = ProbeState()
    for step in plan:
        if not state.should_run(step):
            continue
        status, builder = attempt(step.protocol)
        state.record(step.protocol, status, builder)
    return state


class MineStat:
    VERSION = VERSION
    """MineStat 版本"""
    DEFAULT_TCP_PORT = DEFAULT_TCP_PORT
    """SLP 查询的默认 TCP 端口"""
    DEFAULT_BEDROCK_PORT = 19132
    """Bedrock/MCPE 服务器的默认 UDP 端口"""

    def __init__(
        self,
        address: str,
        port: int | None = None,
        timeout: float | None = None,
        query_protocol: SlpProtocols = SlpProtocols.ALL,
        debug: bool | None = None,
        resolve_srv: bool | None = None,
    ) -> None:
        """
        Minecraft 状态检查器,支持 Minecraft Java 版和基岩版/Education/PE 服务器。

        创建时立即执行一次查询，结果保存在 `result` 中。

        :param address: Minecraft 服务器的地址。
        :param port: Minecraft 服务器的端口。默认为自动检测
        :param timeout: 每次协议尝试的超时时间。默认读取配置（5 秒）
        :param query_protocol: 使用的协议。详见 `SlpProtocols`。默认为 ALL
        :param debug: 是否在日志中输出内部错误。默认读取配置
        :param resolve_srv: 是否解析 SRV 记录。默认读取配置
        """
        self.request = PollRequest(
            address=address,
            port=port or None,
            timeout=config.timeout if timeout is None else timeout,
            query_protocol=query_protocol,
            debug=config.debug if debug is None else debug,
            resolve_srv=config.resolve_srv if resolve_srv is None else resolve_srv,
        )

        self.address: str = self.request.address
        """SRV 解析后实际连接的地址"""
        self.port: int | None = self.request.port
        """SRV 解析后的端口，None 表示按协议使用默认端口"""

        if self.request.resolve_srv and self.port in (None, self.DEFAULT_TCP_PORT):
            self._redirect_srv()

        self.state: ProbeState | None = None
        self.result: StatusResult = self._poll()

    def _redirect_srv(self) -> None:
        """SRV 记录只在未指定端口（或使用默认端口）时生效"""
        self.address, srv_port = resolve_srv(
            self.address,
            self.port or self.DEFAULT_TCP_PORT,
            self.request.timeout,
            self.request.debug,
        )
        if srv_port != self.DEFAULT_TCP_PORT:
            self.port = srv_port

    @property
    def try_all(self) -> bool:
        return self.request.query_protocol is SlpProtocols.ALL

    def port_for(self, protocol: SlpProtocols) -> int:
        """某个协议实际使用的端口"""
        if protocol is SlpProtocols.BEDROCK_RAKNET:
            if self.port is None or (self.try_all and self.port == self.DEFAULT_TCP_PORT):
                return self.DEFAULT_BEDROCK_PORT
            return self.port
        return self.port or self.DEFAULT_TCP_PORT

    def attempt(self, protocol: SlpProtocols) -> tuple[ConnStatus, StatusBuilder]:
        """使用单个协议查询一次，结果写入新的 `StatusBuilder`"""
        builder = StatusBuilder(self.address, self.port_for(protocol))
        status = get_protocol(protocol, self.request.debug).query(
            builder.address, builder.port, self.request.timeout, builder
        )
        if self.request.debug:
            logger.debug(f"{protocol} {builder.address}:{builder.port} -> {status}")
        return status, builder

    def _poll(self) -> StatusResult:
        if self.try_all:
            plan = AUTO_PLAN
        else:
            plan = (ProbeStep(self.request.query_protocol),)

        self.state = run_plan(plan, self.attempt)

        if self.state.best is not None:
            return self.state.best.build(ConnStatus.SUCCESS)

        last_protocol = (self.state.attempted or [plan[0].protocol])[-1]
        builder = StatusBuilder(self.address, self.port_for(last_protocol))
        builder.latency = self.state.latency
        return builder.build(self.state.status)

    @property
    def online(self) -> bool:
        return self.result.online

    @property
    def connection_status(self) -> ConnStatus:
        return self.result.connection_status


def poll(
    address: str,
    port: int | None = None,
    timeout: float | None = None,
    query_protocol: SlpProtocols = SlpProtocols.ALL,
    debug: bool | None = None,
    resolve_srv: bool | None = None,
) -> StatusResult:
    """查询服务器状态并返回结果快照，参数同 `MineStat`"""
    return MineStat(address, port, timeout, query_protocol, debug, resolve_srv).result
