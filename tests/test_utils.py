import dns.resolver
import pytest

from mccheck import utils
from mccheck.utils import (
    is_domain,
    is_ipv4,
    is_ipv6,
    is_validity_address,
    parse_host,
    resolve_srv,
)


class TestParseHost:
    """解析 `host:port`"""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("mc.example.com", ("mc.example.com", 0)),
            ("mc.example.com:25570", ("mc.example.com", 25570)),
            ("mc.example.com：25570", ("mc.example.com", 25570)),
            ("127.0.0.1:19132", ("127.0.0.1", 19132)),
            ("[::1]:25565", ("::1", 25565)),
            ("[2001:db8::1]", ("2001:db8::1", 0)),
        ],
    )
    def test_parse(self, raw, expected):
        assert parse_host(raw) == expected


class TestAddressType:
    """地址类型判断"""

    def test_ipv4(self):
        assert is_ipv4("192.168.1.1")
        assert not is_ipv4("256.1.1.1")
        assert not is_ipv4("mc.example.com")

    @pytest.mark.parametrize("address", ["::1", "2001:db8::1", "fe80::1%eth0", "::ffff:10.0.0.1", "1:2:3:4:5:6:7:8"])
    def test_ipv6(self, address):
        assert is_ipv6(address)

    @pytest.mark.parametrize("address", ["1.2.3.4", "1:2:3", "1::2::3", "g::1", "example.com"])
    def test_not_ipv6(self, address):
        assert not is_ipv6(address)

    def test_domain(self):
        assert is_domain("mc.example.com")
        assert is_domain("localhost")
        assert is_domain("我的世界.中国")
        assert not is_domain("1.2.3.4")
        assert not is_domain("-bad.example.com")

    def test_validity(self):
        assert is_validity_address("mc.example.com")
        assert not is_validity_address("not an address")


class FakeRecord:
    def __init__(self, target, port):
        self.target = target
        self.port = port


class TestResolveSrv:
    """SRV 解析"""

    def test_ip_is_not_resolved(self, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("resolver should not be used")

        monkeypatch.setattr(dns.resolver, "Resolver", fail)
        assert resolve_srv("127.0.0.1", 25565) == ("127.0.0.1", 25565)

    def test_record_found(self, monkeypatch):
        queries = []

        class Resolver:
            lifetime = None

            def resolve(self, name, rdtype):
                queries.append((name, rdtype))
                return [FakeRecord("play.example.com.", 25570)]

        monkeypatch.setattr(dns.resolver, "Resolver", Resolver)
        assert resolve_srv("example.com", 25565) == ("play.example.com", 25570)
        assert queries == [("_minecraft._tcp.example.com", "SRV")]

    def test_lookup_failure_falls_back(self, monkeypatch):
        class Resolver:
            lifetime = None

            def resolve(self, name, rdtype):
                raise dns.resolver.NXDOMAIN

        monkeypatch.setattr(dns.resolver, "Resolver", Resolver)
        assert resolve_srv("example.com", 25565, debug=True) == ("example.com", 25565)


@pytest.fixture
def error_log():
    messages = []
    handler_id = utils.logger.add(messages.append, level="ERROR", format="{message}")
    yield messages
    utils.logger.remove(handler_id)


class TestHandleException:
    def test_silent_without_debug(self, error_log):
        utils.handle_exception(ValueError("boom"))
        assert error_log == []

    def test_reports_in_debug(self, error_log):
        try:
            raise ValueError("boom")
        except ValueError as e:
            utils.handle_exception(e, debug=True)
        assert len(error_log) == 1
        assert "ValueError" in error_log[0]
        assert "boom" in error_log[0]
