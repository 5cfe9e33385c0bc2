"""
远程证书安装服务
"""
import logging
from typing import List, Optional

from ..exceptions import (
    PermissionApplyError,
    PrimaryServiceRestartError,
    RemoteCommandError,
    SecondaryServiceRestartError,
    UploadError,
)
from ..interfaces import RemoteExecutorInterface
from ..models import (
    BACKUP_SUFFIX,
    PRIMARY_SERVICE,
    REMOTE_CERT_PATH,
    REMOTE_KEY_PATH,
    SECONDARY_SERVICE,
    InstallationAttempt,
    RenewalConfig,
    StepOutcome,
)


class RemoteInstaller:
    """
    在远程主机上替换证书

    步骤依次为：备份、上传、设置权限、重启服务。只有上传失败或主服务重启失败
    会中止安装；每条命令使用独立的远程会话。
    """

    def __init__(self, executor: RemoteExecutorInterface,
                 primary_service: str = PRIMARY_SERVICE,
                 secondary_service: str = SECONDARY_SERVICE,
                 cert_path: str = REMOTE_CERT_PATH,
                 key_path: str = REMOTE_KEY_PATH,
                 logger: Optional[logging.Logger] = None):
        self.executor = executor
        self.primary_service = primary_service
        self.secondary_service = secondary_service
        self.cert_path = cert_path
        self.key_path = key_path
        self.logger = logger or logging.getLogger(__name__)
        self.last_attempt: Optional[InstallationAttempt] = None

    def install(self, config: RenewalConfig, cert_bytes: bytes, key_bytes: bytes) -> InstallationAttempt:
        """
        安装证书

        Args:
            config: 运行配置
            cert_bytes: PEM证书
            key_bytes: PEM私钥

        Returns:
            InstallationAttempt: 各步骤结果

        Raises:
            UploadError: 上传证书或私钥失败
            PrimaryServiceRestartError: 主管理服务重启失败
        """
        self.logger.info(f"开始在 {config.host} 上安装证书")
        self.logger.debug(f"证书长度: {len(cert_bytes)} 字节，私钥长度: {len(key_bytes)} 字节")

        attempt = InstallationAttempt()
        self.last_attempt = attempt

        attempt.backup = self.backup_existing()
        self.upload(cert_bytes, key_bytes, outcomes=attempt.upload)
        attempt.permissions = self.apply_permissions()
        self.restart_services(outcomes=attempt.restarts)

        for warning in attempt.warnings:
            self.logger.debug(f"非致命步骤失败: {warning.step}: {warning.message}")

        self.logger.info("证书安装完成")
        return attempt

    def backup_existing(self) -> List[StepOutcome]:
        """备份现有证书和私钥，失败只记录警告"""
        self.logger.info("备份现有证书...")
        outcomes = []

        for path in (self.cert_path, self.key_path):
            command = f"cp -f {path} {path}{BACKUP_SUFFIX}"
            try:
                self._run(command)
                outcomes.append(StepOutcome(step=command, succeeded=True))
                self.logger.debug(f"备份命令 '{command}' 完成")
            except RemoteCommandError as e:
                # 新主机上可能还没有证书
                self.logger.warning(f"备份现有证书失败: {e}")
                outcomes.append(StepOutcome(step=command, succeeded=False, message=str(e)))

        return outcomes

    def upload(self, cert_bytes: bytes, key_bytes: bytes,
               outcomes: Optional[List[StepOutcome]] = None) -> List[StepOutcome]:
        """上传证书和私钥，任一失败即中止；步骤结果追加到 outcomes"""
        self.logger.info("上传新的证书和私钥...")
        outcomes = [] if outcomes is None else outcomes

        for data, path, label in ((cert_bytes, self.cert_path, "证书"), (key_bytes, self.key_path, "私钥")):
            command = f"cat > {path}"
            try:
                self._run(command, stdin=data)
            except RemoteCommandError as e:
                outcomes.append(StepOutcome(step=command, succeeded=False, fatal=True, message=str(e)))
                raise UploadError(f"上传{label}到 {path} 失败: {e}") from e

            self.logger.debug(f"已复制 {len(data)} 字节到 {path}")
            outcomes.append(StepOutcome(step=command, succeeded=True))

        return outcomes

    def apply_permissions(self) -> List[StepOutcome]:
        """设置文件权限和属主，失败只记录警告"""
        commands = [
            f"chmod 644 {self.cert_path}",
            f"chmod 600 {self.key_path}",
            f"chown root:root {self.cert_path} {self.key_path}",
        ]
        outcomes = []

        for command in commands:
            try:
                self._run(command)
                outcomes.append(StepOutcome(step=command, succeeded=True))
                self.logger.debug(f"权限命令 '{command}' 完成")
            except RemoteCommandError as e:
                error = PermissionApplyError(f"权限命令 '{command}' 失败: {e}")
                self.logger.warning(error.message)
                outcomes.append(StepOutcome(step=command, succeeded=False, message=error.message))

        return outcomes

    def restart_services(self, outcomes: Optional[List[StepOutcome]] = None) -> List[StepOutcome]:
        """
        重启管理服务

        主服务失败是致命错误；集群相关服务在独立主机上失败属于预期情况
        """
        self.logger.info("重启ESXi服务...")
        outcomes = [] if outcomes is None else outcomes
        primary_error = None

        for service in (self.primary_service, self.secondary_service):
            command = f"{service} restart"
            self.logger.info(f"执行: {command}")
            try:
                self._run(command)
                self.logger.info(f"命令 '{command}' 执行成功")
                outcomes.append(StepOutcome(step=command, succeeded=True))
            except RemoteCommandError as e:
                self.logger.warning(f"命令 '{command}' 失败: {e}")
                if self._is_secondary(command):
                    error = SecondaryServiceRestartError(str(e))
                    self.logger.info(f"{self.secondary_service} 重启失败在独立ESXi主机上属于正常情况")
                    outcomes.append(StepOutcome(step=command, succeeded=False, message=error.message))
                else:
                    primary_error = PrimaryServiceRestartError(f"重启 {service} 失败: {e}")
                    outcomes.append(StepOutcome(step=command, succeeded=False, fatal=True, message=str(e)))

        if primary_error is not None:
            raise primary_error

        self.logger.info("ESXi服务重启完成")
        return outcomes

    def _is_secondary(self, target: str) -> bool:
        name = self.secondary_service.rsplit('/', 1)[-1]
        return name in target

    def _run(self, command: str, stdin: Optional[bytes] = None) -> str:
        with self.executor.new_session() as session:
            return session.run(command, stdin=stdin)
