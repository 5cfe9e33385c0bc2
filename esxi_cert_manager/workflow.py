"""
证书续期主流程
"""
import time
from dataclasses import asdict, dataclass
from typing import Optional

from .exceptions import CertManagerError, IssuanceError
from .models import REMOTE_ACCESS_SERVICE, RenewalConfig, RunResult
from .services.acme_issuance import ACMEDNSCertificateObtainer
from .services.certificate_cache import CertificateCache
from .services.certificate_inspector import CertificateInspector
from .services.certificate_issuer import CertificateIssuer
from .services.installation_validator import InstallationValidator
from .services.logger import LoggerService
from .services.remote_installer import RemoteInstaller
from .services.renewal_decision import RenewalDecisionEngine
from .services.route53_dns import Route53DNSProvider
from .services.service_lifecycle import ServiceLifecycleManager
from .services.ssh_executor import SSHRemoteExecutor
from .services.vsphere_service_control import VSphereServiceControl
from .version import get_update_notification, version_string


@dataclass
class WorkflowDependencies:
    """主流程依赖的组件"""
    credential_checker: Route53DNSProvider
    decision_engine: RenewalDecisionEngine
    issuer: CertificateIssuer
    installer: RemoteInstaller
    lifecycle: ServiceLifecycleManager
    validator: InstallationValidator


def build_default_dependencies(config: RenewalConfig) -> WorkflowDependencies:
    """
    创建生产环境使用的组件

    Args:
        config: 运行配置

    Returns:
        WorkflowDependencies: 组件集合
    """
    dns_provider = Route53DNSProvider(
        access_key_id=config.aws_key_id,
        secret_access_key=config.aws_secret_key,
        session_token=config.aws_session_token,
        region_name=config.aws_region
    )
    inspector = CertificateInspector()
    obtainer = ACMEDNSCertificateObtainer(
        email=config.email,
        dns_provider=dns_provider,
        directory_url=config.acme_directory_url,
        key_size=CertificateIssuer.effective_key_size(config.key_size)
    )
    cache = CertificateCache(cache_dir=config.cache_dir, force=config.force)
    executor = SSHRemoteExecutor(
        host=config.host,
        username=config.esxi_username,
        password=config.esxi_password
    )
    service_control = VSphereServiceControl(
        host=config.host,
        username=config.esxi_username,
        password=config.esxi_password
    )

    return WorkflowDependencies(
        credential_checker=dns_provider,
        decision_engine=RenewalDecisionEngine(inspector),
        issuer=CertificateIssuer(obtainer, cache),
        installer=RemoteInstaller(executor),
        lifecycle=ServiceLifecycleManager(service_control),
        validator=InstallationValidator(inspector)
    )


class CertificateRenewalWorkflow:
    """
    证书续期流程

    依次执行：验证AWS凭证、检查证书、签发证书、开启SSH服务、安装证书、
    关闭SSH服务、验证新证书。流程中的致命错误会被记录并体现在
    RunResult.success 中，不会向外抛出。
    """

    def __init__(self, config: RenewalConfig, dependencies: Optional[WorkflowDependencies] = None,
                 logger_service: Optional[LoggerService] = None):
        """
        初始化续期流程

        Args:
            config: 运行配置
            dependencies: 组件集合，默认使用生产组件
            logger_service: 日志服务
        """
        self.config = config
        self.deps = dependencies or build_default_dependencies(config)
        self.logger_service = logger_service or LoggerService(log_level=config.log_level)
        self.logger = self.logger_service.logger

    def run(self) -> RunResult:
        """
        执行续期流程

        Returns:
            RunResult: 运行结果
        """
        start = time.monotonic()
        config = self.config
        result = RunResult(success=True, hostname=config.hostname)
        stage = "启动"

        self.logger.info(f"启动 {version_string()}")
        self._announce_updates()
        self.logger_service.log_run_start(config.hostname)
        self.logger_service.log_configuration_info(asdict(config))

        try:
            stage = "验证AWS凭证"
            self.deps.credential_checker.verify_credentials()

            stage = "检查证书"
            decision = self.deps.decision_engine.decide(config)
            result.decision = decision.decision
            self.logger_service.log_decision(decision.decision, decision.inspection)

            if not decision.should_renew:
                return result

            stage = "签发证书"
            self.logger.info("开始生成新证书...")
            record = self.deps.issuer.obtain(config)
            self.logger.info(f"证书已生成: {record.cert_path}")
            cert_bytes, key_bytes = self._read_record(record)

            stage = "安装证书"
            self._install(cert_bytes, key_bytes, result)

            stage = "验证证书"
            validation = self.deps.validator.validate(config.hostname, decision.inspection.certificate)
            result.rotated = validation.rotated
            self.logger_service.log_validation(validation.rotated)
            if not validation.rotated:
                result.warnings.append("在超时时间内未能确认新证书生效")

        except CertManagerError as e:
            result.success = False
            result.errors.append(f"{stage}: {e}")
            self.logger_service.log_error(stage, e)

        finally:
            result.execution_time = time.monotonic() - start
            self.logger_service.log_run_end()
            self.logger_service.log_execution_summary()

        return result

    def _install(self, cert_bytes: bytes, key_bytes: bytes, result: RunResult):
        """在SSH服务开启的窗口内安装证书，结束后总是关闭SSH服务"""
        lifecycle = self.deps.lifecycle
        try:
            was_running = lifecycle.ensure_running(REMOTE_ACCESS_SERVICE)

            try:
                self.logger.info("上传证书到ESXi服务器...")
                attempt = self.deps.installer.install(self.config, cert_bytes, key_bytes)
            finally:
                if not lifecycle.stop_if_no_longer_needed(REMOTE_ACCESS_SERVICE, was_running):
                    message = f"未能停止 {REMOTE_ACCESS_SERVICE} 服务"
                    result.warnings.append(message)
                    self.logger_service.log_warning(message)
        finally:
            lifecycle.close()

        for warning in attempt.warnings:
            message = f"{warning.step}: {warning.message}"
            result.warnings.append(message)
            self.logger_service.log_warning(message)

        self.logger.info("证书上传成功")

    def _read_record(self, record):
        if record.certificate and record.private_key:
            return record.certificate, record.private_key

        try:
            with open(record.cert_path, 'rb') as f:
                cert_bytes = f.read()
            with open(record.key_path, 'rb') as f:
                key_bytes = f.read()
        except OSError as e:
            raise IssuanceError(f"读取证书文件失败: {e}") from e

        return cert_bytes, key_bytes

    def _announce_updates(self):
        if not self.config.check_updates:
            return

        message = get_update_notification()
        if message:
            self.logger.info(message)
            print(message)


def run_renewal(config: RenewalConfig, logger_service: Optional[LoggerService] = None) -> RunResult:
    """使用生产组件执行一次续期流程"""
    return CertificateRenewalWorkflow(config, logger_service=logger_service).run()
