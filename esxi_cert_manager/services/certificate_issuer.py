"""
证书签发服务
"""
import logging
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import SignatureAlgorithmOID

from ..exceptions import IssuanceError
from ..interfaces import CertificateObtainerInterface
from ..models import ALLOWED_KEY_SIZES, DEFAULT_KEY_SIZE, CachedCertificateRecord, RenewalConfig
from .certificate_cache import CertificateCache


class CertificateIssuer:
    """
    获取新证书

    先查询本地缓存，未命中时委托签发服务完成账户注册、DNS-01 验证和证书申请，
    成功后写入缓存。本层不做任何重试。
    """

    def __init__(self, obtainer: CertificateObtainerInterface, cache: CertificateCache,
                 logger: Optional[logging.Logger] = None):
        """
        初始化证书签发器

        Args:
            obtainer: 签发服务
            cache: 证书缓存
            logger: 日志器
        """
        self.obtainer = obtainer
        self.cache = cache
        self.logger = logger or logging.getLogger(__name__)

    def obtain(self, config: RenewalConfig) -> CachedCertificateRecord:
        """
        获取证书和私钥

        Args:
            config: 运行配置

        Returns:
            CachedCertificateRecord: 证书记录（包含缓存文件路径和内容）

        Raises:
            IssuanceError: 签发失败
        """
        cached = self.cache.get(config.host)
        if cached is not None:
            return cached

        self.logger.info("没有可用的缓存证书，开始签发新证书...")

        key = self.generate_private_key(config.key_size)

        self.logger.info(f"为主机名 {config.host} 申请证书（RSA 私钥）")
        try:
            issued = self.obtainer.obtain(config.host, key)
        except IssuanceError:
            raise
        except Exception as e:
            raise IssuanceError(
                f"签发证书失败: {e}",
                suggestion="检查 Route53 权限、域名托管区域和 ACME 服务状态"
            ) from e

        self._check_signature_algorithm(issued.certificate_pem)

        try:
            return self.cache.put(config.host, issued.certificate_pem, issued.private_key_pem)
        except OSError as e:
            raise IssuanceError(f"写入证书缓存失败: {e}") from e

    @staticmethod
    def effective_key_size(key_size: int) -> int:
        """只接受 2048 或 4096 位，其他值一律按 4096 处理"""
        return key_size if key_size in ALLOWED_KEY_SIZES else DEFAULT_KEY_SIZE

    def generate_private_key(self, key_size: int) -> rsa.RSAPrivateKey:
        """
        生成 RSA 私钥

        不常用的密钥长度会被改为 4096 并记录警告
        """
        effective = self.effective_key_size(key_size)
        if effective != key_size:
            self.logger.warning(f"不常用的密钥长度 {key_size}，改用 {effective} 位")
            key_size = effective

        self.logger.info(f"生成 {key_size} 位 RSA 私钥")
        return rsa.generate_private_key(public_exponent=65537, key_size=key_size)

    def _check_signature_algorithm(self, cert_pem: bytes):
        try:
            cert = x509.load_pem_x509_certificate(cert_pem)
        except ValueError as e:
            self.logger.warning(f"无法解析签发的证书: {e}")
            return

        if cert.signature_algorithm_oid != SignatureAlgorithmOID.RSA_WITH_SHA256:
            self.logger.warning("签发的证书未使用 SHA256WithRSA 签名算法")
        else:
            self.logger.info("已确认证书使用 SHA256WithRSA 签名算法")
