"""
ACME签发服务

使用 acme 库与 Let's Encrypt 交互，通过 Route53 完成 DNS-01 验证。
"""
import time
import logging
from datetime import datetime, timedelta
from typing import List, Optional

import josepy as jose
from acme import challenges, client, crypto_util, messages
from acme import errors as acme_errors
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ..interfaces import CertificateObtainerInterface
from ..models import ACME_PRODUCTION_URL, DEFAULT_KEY_SIZE, IssuedCertificate
from .route53_dns import Route53DNSProvider


USER_AGENT = "esxi-cert-manager"


class ACMEDNSCertificateObtainer(CertificateObtainerInterface):
    """基于 ACME v2 + DNS-01 的证书签发服务"""

    def __init__(self, email: str, dns_provider: Route53DNSProvider,
                 directory_url: str = ACME_PRODUCTION_URL, key_size: int = DEFAULT_KEY_SIZE,
                 propagation_delay: float = 10.0, timeout: int = 300,
                 logger: Optional[logging.Logger] = None):
        """
        初始化ACME签发服务

        Args:
            email: ACME账户联系邮箱
            dns_provider: Route53 DNS服务
            directory_url: ACME目录地址
            key_size: 证书私钥长度
            propagation_delay: TXT记录同步后额外等待的时间（秒）
            timeout: 验证和签发的最长等待时间（秒）
        """
        self.email = email
        self.dns_provider = dns_provider
        self.directory_url = directory_url
        self.key_size = key_size
        self.propagation_delay = propagation_delay
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def obtain(self, domain: str, account_key) -> IssuedCertificate:
        """
        注册账户、完成 DNS-01 验证并签发证书

        Args:
            domain: 证书域名
            account_key: ACME账户的 RSA 私钥

        Returns:
            IssuedCertificate: 证书链（PEM）和证书私钥（PEM）
        """
        acme_client = self._create_client(account_key)
        self._register(acme_client)

        # 证书私钥不能与账户私钥相同
        cert_key = rsa.generate_private_key(public_exponent=65537, key_size=self.key_size)
        cert_key_pem = cert_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
        csr_pem = crypto_util.make_csr(cert_key_pem, [domain])

        order = acme_client.new_order(csr_pem)
        self.logger.info(f"已创建ACME订单: {domain}")

        records: List[str] = []
        try:
            pending = []
            for authz in order.authorizations:
                challenge = self._select_dns_challenge(authz)
                identifier = authz.body.identifier.value
                record_name = challenge.chall.validation_domain_name(identifier)
                validation = challenge.chall.validation(acme_client.net.key)
                records.append(self.dns_provider.create_txt_record(record_name, validation))
                pending.append(challenge)

            if pending and self.propagation_delay:
                self.logger.debug(f"等待 {self.propagation_delay} 秒让DNS记录传播")
                time.sleep(self.propagation_delay)

            for challenge in pending:
                acme_client.answer_challenge(challenge, challenge.chall.response(acme_client.net.key))

            deadline = datetime.now() + timedelta(seconds=self.timeout)
            finalized = acme_client.poll_and_finalize(order, deadline)
        finally:
            for record_name in records:
                try:
                    self.dns_provider.delete_txt_record(record_name)
                except Exception as e:
                    self.logger.warning(f"清理TXT记录 {record_name} 失败: {e}")

        self.logger.info(f"成功签发证书: {domain}")
        return IssuedCertificate(
            certificate_pem=finalized.fullchain_pem.encode('utf-8'),
            private_key_pem=cert_key_pem
        )

    def _create_client(self, account_key) -> client.ClientV2:
        net = client.ClientNetwork(jose.JWKRSA(key=account_key), user_agent=USER_AGENT)
        directory = client.ClientV2.get_directory(self.directory_url, net)
        return client.ClientV2(directory, net=net)

    def _register(self, acme_client: client.ClientV2):
        registration = messages.NewRegistration.from_data(
            email=self.email or None,
            terms_of_service_agreed=True
        )
        try:
            acme_client.new_account(registration)
            self.logger.info("已注册ACME账户")
        except acme_errors.ConflictError as conflict:
            self.logger.info(f"ACME账户已存在: {conflict.location}")
            existing = messages.RegistrationResource(uri=conflict.location, body=messages.Registration())
            acme_client.net.account = acme_client.query_registration(existing)

    @staticmethod
    def _select_dns_challenge(authz: messages.AuthorizationResource) -> messages.ChallengeBody:
        for challenge in authz.body.challenges:
            if isinstance(challenge.chall, challenges.DNS01):
                return challenge
        raise ValueError(f"{authz.body.identifier.value} 没有可用的 DNS-01 验证")
