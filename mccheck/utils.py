import re
import traceback

import dns.exception
import dns.resolver
import idna
from loguru import logger

DEFAULT_TCP_PORT = 25565
"""SLP 查询的默认 TCP 端口"""


def handle_exception(e: BaseException, debug: bool = False) -> None:
    """
    在调试模式下将被吞掉的异常输出到日志，不影响调用方的控制流。

    :param e: 捕获到的异常
    :param debug: 是否启用调试模式
    """
    if not debug:
        return
    error_message = "".join(traceback.format_exception(type(e), e, e.__traceback__))
    logger.error(f"[CrashHandle]{e!r}\n{error_message}")


def parse_host(host_name: str) -> tuple[str, int]:
    """
    解析主机名（可选端口）。

    如果主机名中未指定端口，则端口号为 0（自动）。

    :params host_name: 主机名，可能包含端口，IPv6 地址需要写在方括号中。

    :returns: 一个元组，包含主机的地址与端口号
    """
    pattern = r"(?:\[(.+?)\]|(.+?))(?:[:：](\d+))?$"
    if not (match := re.match(pattern, host_name.strip())):
        return host_name, 0

    address = match[1] or match[2]
    port = int(match[3]) if match[3] else 0

    return address, port


def is_validity_address(address: str) -> bool:
    """判断给定的地址是否为有效的域名或IP地址。"""
    return is_domain(address) or is_ipv4(address) or is_ipv6(address)


def is_domain(address: str) -> bool:
    """
    判断给定的地址是否为域名。

    :params address: 需要验证的地址。

    :returns: 如果地址为域名则返回True，否则返回False。
    """
    try:
        punycode_address = idna.encode(address, uts46=True).decode("utf-8")
    except idna.IDNAError:
        return False

    domain_pattern = re.compile(
        r"^(?!-)(?:[A-Za-z0-9-]{1,63}\.)+(?:[A-Za-z]{2,}|xn--[A-Za-z0-9-]{2,})$|^(localhost)$"
    )
    return bool(domain_pattern.match(punycode_address))


def is_ipv4(address: str) -> bool:
    ipv4_pattern = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$")
    if not ipv4_pattern.match(address):
        return False

    return all(0 <= int(part) <= 255 for part in address.split("."))


def is_ipv6(address: str) -> bool:
    # 只做形式判断，`::` 最多出现一次
    if address.count("::") > 1 or ":" not in address:
        return False
    address = address.split("%", 1)[0]
    groups = address.split(":")
    if "." in groups[-1]:
        if not is_ipv4(groups.pop()):
            return False
        groups.append("0")
        groups.append("0")
    if len(groups) > 8 or ("::" not in address and len(groups) != 8):
        return False
    return all(re.fullmatch(r"[0-9A-Fa-f]{0,4}", group) for group in groups)


def resolve_srv(
    address: str, port: int, timeout: float = 5, debug: bool = False
) -> tuple[str, int]:
    """
    解析 `_minecraft._tcp` SRV 记录，得到实际的服务器地址与端口。

    只有域名才会解析 SRV 记录；解析失败时原样返回传入的地址与端口。

    :params address: 服务器地址
    :params port: 无法解析时使用的端口
    :params timeout: DNS 查询的超时时间（秒）
    :params debug: 是否输出解析错误

    :returns: (地址, 端口)
    """
    if not is_domain(address):
        return address, port

    query_name = f"_minecraft._tcp.{idna.encode(address, uts46=True).decode('utf-8')}"
    try:
        resolver = dns.resolver.Resolver()
        resolver.lifetime = timeout
        srv_response = resolver.resolve(query_name, "SRV")
    except dns.exception.DNSException as e:
        handle_exception(e, debug)
        return address, port

    for rdata in srv_response:
        srv_address = str(rdata.target).rstrip(".")  # type: ignore
        srv_port = int(rdata.port)  # type: ignore
        if debug:
            logger.debug(f"SRV {query_name} -> {srv_address}:{srv_port}")
        return srv_address, srv_port

    return address, port
