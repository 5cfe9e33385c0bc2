"""
证书生命周期计算服务
"""
import math
from datetime import datetime, timezone
from typing import Optional

from cryptography import x509
from cryptography.x509.oid import SignatureAlgorithmOID

from ..models import ObservedCertificate


SIGNATURE_ALGORITHM_NAMES = {
    SignatureAlgorithmOID.RSA_WITH_SHA1: "sha1WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA224: "sha224WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA256: "sha256WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA384: "sha384WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA512: "sha512WithRSAEncryption",
    SignatureAlgorithmOID.RSASSA_PSS: "RSASSA-PSS",
    SignatureAlgorithmOID.ECDSA_WITH_SHA1: "ecdsa-with-SHA1",
    SignatureAlgorithmOID.ECDSA_WITH_SHA224: "ecdsa-with-SHA224",
    SignatureAlgorithmOID.ECDSA_WITH_SHA256: "ecdsa-with-SHA256",
    SignatureAlgorithmOID.ECDSA_WITH_SHA384: "ecdsa-with-SHA384",
    SignatureAlgorithmOID.ECDSA_WITH_SHA512: "ecdsa-with-SHA512",
    SignatureAlgorithmOID.ED25519: "ed25519",
}


class LifetimeCalculator:
    """证书剩余生命周期计算器"""

    def __init__(self, threshold: float):
        """
        初始化生命周期计算器

        Args:
            threshold: 剩余生命周期比例阈值，小于等于该值时需要续期
        """
        self.threshold = threshold

    @staticmethod
    def percent_remaining(not_before: datetime, not_after: datetime,
                          now: Optional[datetime] = None) -> float:
        """
        计算证书剩余生命周期比例

        Args:
            not_before: 生效时间
            not_after: 过期时间
            now: 当前时间，默认为UTC当前时间

        Returns:
            float: (NotAfter - Now) / (NotAfter - NotBefore)；证书格式异常时返回 NaN
        """
        now = now or datetime.now(timezone.utc)
        total = (not_after - not_before).total_seconds()
        if total <= 0:
            return math.nan

        remaining = (not_after - now).total_seconds()
        return remaining / total

    def needs_renewal(self, percent: float) -> bool:
        """
        判断是否需要续期

        超出 [0, 1] 的值或 NaN 说明证书异常，一律视为需要续期
        """
        if math.isnan(percent) or percent < 0 or percent > 1:
            return True
        return percent <= self.threshold

    def days_until_expiry(self, not_after: datetime) -> int:
        """计算距离过期的天数（负数表示已过期）"""
        delta = not_after - datetime.now(timezone.utc)
        return delta.days


def observe_certificate(cert: x509.Certificate) -> ObservedCertificate:
    """
    从 x509 证书对象提取需要的字段

    Args:
        cert: cryptography 证书对象

    Returns:
        ObservedCertificate: 证书信息
    """
    return ObservedCertificate(
        subject_cn=_common_name(cert.subject),
        issuer=_issuer_name(cert.issuer),
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        signature_algorithm=signature_algorithm_name(cert),
    )


def signature_algorithm_name(cert: x509.Certificate) -> str:
    """返回证书签名算法名称，如 sha256WithRSAEncryption；未知算法返回OID"""
    oid = cert.signature_algorithm_oid
    return SIGNATURE_ALGORITHM_NAMES.get(oid, oid.dotted_string)


def _common_name(name: x509.Name) -> str:
    attrs = name.get_attributes_for_oid(x509.NameOID.COMMON_NAME)
    if attrs:
        return str(attrs[0].value)
    return name.rfc4514_string()


def _issuer_name(name: x509.Name) -> str:
    # 优先组织名称，其次通用名称
    for oid in (x509.NameOID.ORGANIZATION_NAME, x509.NameOID.COMMON_NAME):
        attrs = name.get_attributes_for_oid(oid)
        if attrs:
            return str(attrs[0].value)
    return "Unknown Issuer"
