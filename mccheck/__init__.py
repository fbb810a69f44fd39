from .configs import VERSION
from .data_source import AUTO_PLAN, MineStat, ProbeState, ProbeStep, poll, run_plan
from .models import ConnStatus, PollRequest, SlpProtocols, StatusBuilder, StatusResult
from .motd import motd_strip_formatting
from .utils import parse_host, resolve_srv
from .varint import pack_varint, unpack_varint

__version__ = VERSION

__all__ = [
    "AUTO_PLAN",
    "ConnStatus",
    "MineStat",
    "PollRequest",
    "ProbeState",
    "ProbeStep",
    "SlpProtocols",
    "StatusBuilder",
    "StatusResult",
    "VERSION",
    "motd_strip_formatting",
    "pack_varint",
    "parse_host",
    "poll",
    "resolve_srv",
    "run_plan",
    "unpack_varint",
]
