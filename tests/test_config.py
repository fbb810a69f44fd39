import pytest
from pydantic import ValidationError

from mccheck.config import ScopedConfig, load_config
from mccheck.models import ConnStatus, PollRequest, SlpProtocols


class TestLoadConfig:
    """从环境变量读取配置"""

    def test_defaults(self):
        config = load_config({})
        assert config == ScopedConfig()
        assert config.timeout == 5
        assert config.debug is False
        assert config.resolve_srv is True

    def test_values_from_environment(self):
        config = load_config({"MCC_TIMEOUT": "2.5", "MCC_DEBUG": "true", "MCC_RESOLVE_SRV": "0", "PATH": "/bin"})
        assert config.timeout == 2.5
        assert config.debug is True
        assert config.resolve_srv is False

    def test_unknown_keys_ignored(self):
        assert load_config({"MCC_LANGUAGE": "en"}) == ScopedConfig()

    def test_invalid_timeout(self):
        with pytest.raises(ValidationError):
            load_config({"MCC_TIMEOUT": "-1"})


class TestPollRequest:
    """会话输入"""

    def test_defaults(self):
        request = PollRequest(address="mc.example.com")
        assert request.port is None
        assert request.timeout == 5
        assert request.query_protocol is SlpProtocols.ALL

    def test_frozen(self):
        request = PollRequest(address="mc.example.com")
        with pytest.raises(ValidationError):
            request.port = 25566


class TestStatusLabels:
    @pytest.mark.parametrize(
        ("status", "label"),
        [
            (ConnStatus.SUCCESS, "Success"),
            (ConnStatus.CONNFAIL, "Fail"),
            (ConnStatus.TIMEOUT, "Timeout"),
            (ConnStatus.UNKNOWN, "Unknown"),
        ],
    )
    def test_label(self, status, label):
        assert status.label == label
