"""
证书缓存服务
"""
import os
import logging
from typing import Optional

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import SignatureAlgorithmOID

from ..models import CACHE_FRESHNESS_THRESHOLD, CachedCertificateRecord, default_cache_dir
from .lifetime_calculator import LifetimeCalculator, signature_algorithm_name


class CertificateCache:
    """
    本地证书缓存

    按主机名保存上一次签发的证书和私钥，文件权限为 0600。
    缓存条目的新鲜度要求（剩余 50% 以上）比续期阈值更严格。
    """

    def __init__(self, cache_dir: Optional[str] = None, force: bool = False,
                 logger: Optional[logging.Logger] = None):
        """
        初始化证书缓存

        Args:
            cache_dir: 缓存目录，默认为系统临时目录下的 esxi-cert-cache
            force: 为True时完全绕过缓存读取
            logger: 日志器
        """
        self.cache_dir = cache_dir or default_cache_dir()
        self.force = force
        self.logger = logger or logging.getLogger(__name__)

    def paths_for(self, hostname: str):
        """返回主机对应的证书和私钥路径"""
        cert_path = os.path.join(self.cache_dir, f"{hostname}-cert.pem")
        key_path = os.path.join(self.cache_dir, f"{hostname}-key.pem")
        return cert_path, key_path

    def get(self, hostname: str) -> Optional[CachedCertificateRecord]:
        """
        查找可复用的缓存证书

        Args:
            hostname: 主机名

        Returns:
            Optional[CachedCertificateRecord]: 命中时返回缓存记录，否则返回None
        """
        if self.force:
            self.logger.info("已启用强制续期，跳过证书缓存")
            return None

        cert_path, key_path = self.paths_for(hostname)

        if not os.path.isfile(cert_path) or not os.path.isfile(key_path):
            return None

        try:
            with open(cert_path, 'rb') as f:
                cert_data = f.read()
            with open(key_path, 'rb') as f:
                key_data = f.read()
        except OSError as e:
            self.logger.warning(f"读取缓存证书失败: {e}")
            return None

        try:
            cert = x509.load_pem_x509_certificate(cert_data)
        except ValueError as e:
            self.logger.warning(f"解析缓存证书失败: {e}")
            return None

        try:
            key = serialization.load_pem_private_key(key_data, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            self.logger.warning(f"解析缓存私钥失败: {e}")
            return None

        spki = (serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo)
        if key.public_key().public_bytes(*spki) != cert.public_key().public_bytes(*spki):
            self.logger.warning("缓存私钥与缓存证书不匹配")
            return None

        self.logger.debug(f"缓存证书签名算法: {signature_algorithm_name(cert)}")
        if cert.signature_algorithm_oid != SignatureAlgorithmOID.RSA_WITH_SHA256:
            self.logger.info("缓存证书未使用 SHA256WithRSA 签名，需要重新签发")
            return None

        percent = LifetimeCalculator.percent_remaining(cert.not_valid_before_utc, cert.not_valid_after_utc)

        # NaN 或超出 [0, 1] 的值说明证书异常，视为未命中
        if CACHE_FRESHNESS_THRESHOLD < percent <= 1:
            self.logger.info(f"使用缓存证书（剩余生命周期 {percent * 100:.1f}%，SHA256WithRSA 签名）")
            return CachedCertificateRecord(
                hostname=hostname,
                cert_path=cert_path,
                key_path=key_path,
                certificate=cert_data,
                private_key=key_data
            )

        self.logger.info(f"缓存证书即将过期（剩余 {percent * 100:.1f}%），将重新签发")
        return None

    def put(self, hostname: str, cert_bytes: bytes, key_bytes: bytes) -> CachedCertificateRecord:
        """
        保存证书和私钥到缓存

        Args:
            hostname: 主机名
            cert_bytes: PEM证书
            key_bytes: PEM私钥

        Returns:
            CachedCertificateRecord: 保存后的缓存记录
        """
        os.makedirs(self.cache_dir, mode=0o700, exist_ok=True)
        cert_path, key_path = self.paths_for(hostname)

        self._write_private(cert_path, cert_bytes)
        self._write_private(key_path, key_bytes)

        self.logger.info(f"证书已缓存到 {self.cache_dir}")
        return CachedCertificateRecord(
            hostname=hostname,
            cert_path=cert_path,
            key_path=key_path,
            certificate=cert_bytes,
            private_key=key_bytes
        )

    @staticmethod
    def _write_private(path: str, data: bytes):
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        # 覆盖已有文件时 os.open 不会修改权限
        os.chmod(path, 0o600)
