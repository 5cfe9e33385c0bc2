"""
证书检查服务
"""
import logging
from typing import Optional

from cryptography import x509

from ..exceptions import EmptyChainError, TLSConnectionError
from ..interfaces import TLSDialerInterface
from ..models import InspectionResult, ObservedCertificate, split_host_port
from .error_handler import ConnectionErrorHandler
from .lifetime_calculator import LifetimeCalculator, observe_certificate
from .tls_dialer import SocketTLSDialer


class CertificateInspector:
    """读取远程主机当前部署的证书并计算剩余生命周期"""

    def __init__(self, dialer: Optional[TLSDialerInterface] = None,
                 logger: Optional[logging.Logger] = None):
        """
        初始化证书检查器

        Args:
            dialer: TLS拨号器，默认使用标准库实现
            logger: 日志器
        """
        self.dialer = dialer or SocketTLSDialer()
        self.logger = logger or logging.getLogger(__name__)
        self.error_handler = ConnectionErrorHandler(self.logger)

    def read_certificate(self, host_address: str) -> ObservedCertificate:
        """
        读取主机的叶子证书

        Args:
            host_address: 主机地址，可带端口（默认443）

        Returns:
            ObservedCertificate: 证书信息

        Raises:
            TLSConnectionError: 连接失败
            EmptyChainError: 握手成功但没有返回证书
        """
        host, port = split_host_port(host_address)

        try:
            with self.dialer.dial(host, port) as conn:
                chain = conn.peer_certificates()
        except OSError as e:
            raise TLSConnectionError(
                f"连接 {host_address} 失败: {e}",
                suggestion=self.error_handler.suggested_action(e)
            ) from e

        if not chain:
            raise EmptyChainError(f"{host_address} 没有返回任何证书")

        try:
            cert = x509.load_der_x509_certificate(chain[0])
        except ValueError as e:
            raise EmptyChainError(f"{host_address} 返回的证书无法解析: {e}") from e

        return observe_certificate(cert)

    def check_expiration(self, host_address: str, threshold: float) -> InspectionResult:
        """
        检查证书是否需要续期

        Args:
            host_address: 主机地址
            threshold: 续期阈值（剩余生命周期比例）

        Returns:
            InspectionResult: 检查结果
        """
        self.logger.info(f"检查 {host_address} 的证书，阈值 {threshold:.2f}")

        cert = self.read_certificate(host_address)

        self.logger.info(f"证书主题: {cert.subject_cn}")
        self.logger.info(f"颁发者: {cert.issuer}")
        self.logger.info(f"生效时间: {cert.not_before.isoformat()}")
        self.logger.info(f"过期时间: {cert.not_after.isoformat()}")

        calculator = LifetimeCalculator(threshold)
        percent = calculator.percent_remaining(cert.not_before, cert.not_after)
        needs_renewal = calculator.needs_renewal(percent)

        self.logger.info(f"证书剩余生命周期 {percent * 100:.2f}%")
        if needs_renewal:
            self.logger.info(f"证书需要续期 (剩余 {percent * 100:.2f}%，阈值 {threshold * 100:.2f}%)")
        else:
            self.logger.info(f"证书暂不需要续期 ({percent * 100:.2f}% > {threshold * 100:.2f}%)")

        return InspectionResult(
            needs_renewal=needs_renewal,
            certificate=cert,
            percent_remaining=percent
        )
