"""
证书检查器测试
"""
import socket
import pytest
from datetime import datetime, timezone, timedelta

from esxi_cert_manager.exceptions import EmptyChainError, TLSConnectionError
from esxi_cert_manager.services.certificate_inspector import CertificateInspector

from doubles import FakeTLSDialer, certificate_with_remaining, make_certificate


class TestCertificateInspector:
    """证书检查器测试类"""

    def test_read_certificate_default_port(self):
        """测试未指定端口时使用443"""
        test_cert = make_certificate(common_name="esxi.example.com")
        dialer = FakeTLSDialer([[test_cert.der]])
        inspector = CertificateInspector(dialer=dialer)

        observed = inspector.read_certificate("esxi.example.com")

        assert dialer.calls == [("esxi.example.com", 443)]
        assert observed.subject_cn == "esxi.example.com"
        assert dialer.connections[0].closed is True

    def test_read_certificate_custom_port(self):
        """测试 host:port 形式的地址"""
        test_cert = make_certificate()
        dialer = FakeTLSDialer([[test_cert.der]])
        inspector = CertificateInspector(dialer=dialer)

        inspector.read_certificate("esxi.example.com:8443")

        assert dialer.calls == [("esxi.example.com", 8443)]

    def test_read_certificate_ipv6(self):
        """测试带端口的IPv6地址"""
        test_cert = make_certificate()
        dialer = FakeTLSDialer([[test_cert.der]])
        inspector = CertificateInspector(dialer=dialer)

        inspector.read_certificate("[fe80::1]:9443")

        assert dialer.calls == [("fe80::1", 9443)]

    def test_uses_leaf_certificate(self):
        """测试证书链中只使用第一个（叶子）证书"""
        leaf = make_certificate(common_name="leaf.example.com")
        intermediate = make_certificate(common_name="intermediate.example.com")
        dialer = FakeTLSDialer([[leaf.der, intermediate.der]])
        inspector = CertificateInspector(dialer=dialer)

        observed = inspector.read_certificate("esxi.example.com")

        assert observed.subject_cn == "leaf.example.com"

    def test_connection_refused(self):
        """测试连接被拒绝"""
        dialer = FakeTLSDialer([ConnectionRefusedError("Connection refused")])
        inspector = CertificateInspector(dialer=dialer)

        with pytest.raises(TLSConnectionError, match="连接 esxi.example.com 失败") as exc_info:
            inspector.read_certificate("esxi.example.com")

        assert isinstance(exc_info.value.__cause__, ConnectionRefusedError)
        assert "管理服务" in exc_info.value.suggestion

    def test_dns_failure(self):
        """测试DNS解析失败"""
        dialer = FakeTLSDialer([socket.gaierror(-2, "Name or service not known")])
        inspector = CertificateInspector(dialer=dialer)

        with pytest.raises(TLSConnectionError):
            inspector.read_certificate("missing.example.com")

    def test_tls_connection_error_is_connection_error(self):
        """测试连接错误同时是内置的 ConnectionError"""
        dialer = FakeTLSDialer([socket.timeout("timed out")])
        inspector = CertificateInspector(dialer=dialer)

        with pytest.raises(ConnectionError):
            inspector.read_certificate("esxi.example.com")

    def test_empty_chain(self):
        """测试握手成功但没有证书"""
        dialer = FakeTLSDialer([[]])
        inspector = CertificateInspector(dialer=dialer)

        with pytest.raises(EmptyChainError, match="没有返回任何证书"):
            inspector.read_certificate("esxi.example.com")

    def test_unparseable_certificate(self):
        """测试无法解析的证书数据"""
        dialer = FakeTLSDialer([[b"not a certificate"]])
        inspector = CertificateInspector(dialer=dialer)

        with pytest.raises(EmptyChainError):
            inspector.read_certificate("esxi.example.com")

    def test_check_expiration_fresh_certificate(self):
        """测试新证书不需要续期"""
        now = datetime.now(timezone.utc)
        not_before = now - timedelta(days=10)
        test_cert = make_certificate(not_before=not_before, not_after=not_before + timedelta(days=90))
        inspector = CertificateInspector(dialer=FakeTLSDialer([[test_cert.der]]))

        result = inspector.check_expiration("esxi.example.com", 0.33)

        assert result.needs_renewal is False
        assert result.percent_remaining == pytest.approx(0.888, abs=0.01)
        assert result.certificate.not_after == test_cert.cert.not_valid_after_utc

    def test_check_expiration_old_certificate(self):
        """测试老证书需要续期"""
        test_cert = certificate_with_remaining(0.22)
        inspector = CertificateInspector(dialer=FakeTLSDialer([[test_cert.der]]))

        result = inspector.check_expiration("esxi.example.com", 0.33)

        assert result.needs_renewal is True
        assert result.percent_remaining == pytest.approx(0.22, abs=0.01)

    def test_check_expiration_propagates_connection_error(self):
        """测试检查过期时连接失败会向上抛出"""
        inspector = CertificateInspector(dialer=FakeTLSDialer([ConnectionResetError("reset")]))

        with pytest.raises(TLSConnectionError):
            inspector.check_expiration("esxi.example.com", 0.33)
