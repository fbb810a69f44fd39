import os
from collections.abc import Mapping

from pydantic import BaseModel, Field

ENV_PREFIX = "MCC_"


class ScopedConfig(BaseModel):
    timeout: float = Field(default=5, gt=0)
    """每次协议尝试的超时时间（秒）"""
    debug: bool = Field(default=False)
    """是否在日志中输出内部错误"""
    resolve_srv: bool = Field(default=True)
    """查询前是否解析 `_minecraft._tcp` SRV 记录"""


class Config(BaseModel):
    mcc: ScopedConfig = Field(default_factory=ScopedConfig)
    """MCCheck Config"""


def load_config(environ: Mapping[str, str] | None = None) -> ScopedConfig:
    """
    从环境变量读取配置，例如 `MCC_TIMEOUT=3`、`MCC_DEBUG=true`。

    :param environ: 环境变量映射，默认为 `os.environ`
    """
    environ = os.environ if environ is None else environ
    scoped = {
        key[len(ENV_PREFIX) :].lower(): value
        for key, value in environ.items()
        if key.upper().startswith(ENV_PREFIX)
        and key[len(ENV_PREFIX) :].lower() in ScopedConfig.model_fields
    }
    return Config.model_validate({"mcc": scoped}).mcc
