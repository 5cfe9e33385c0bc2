"""
证书安装验证服务
"""
import time
import logging
from datetime import timedelta
from typing import Callable, Optional

from ..exceptions import EmptyChainError, TLSConnectionError
from ..models import (
    MAX_VALIDATION_DURATION,
    ROTATION_TOLERANCE,
    VALIDATION_POLL_INTERVAL,
    ObservedCertificate,
    ValidationResult,
)
from .certificate_inspector import CertificateInspector


class InstallationValidator:
    """轮询远程主机，直到部署的证书发生变化或超时"""

    def __init__(self, inspector: CertificateInspector,
                 logger: Optional[logging.Logger] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        """
        初始化安装验证器

        Args:
            inspector: 证书检查器（复用其TLS读取能力）
            logger: 日志器
            sleep: 休眠函数
            clock: 单调时钟
        """
        self.inspector = inspector
        self.logger = logger or logging.getLogger(__name__)
        self.sleep = sleep
        self.clock = clock

    @staticmethod
    def has_rotated(previous: ObservedCertificate, current: ObservedCertificate) -> bool:
        """过期时间相差超过一小时才视为新证书，避免时钟偏差造成误判"""
        return abs(current.not_after - previous.not_after) > ROTATION_TOLERANCE

    def validate(self, host_address: str, previous_cert: ObservedCertificate,
                 max_duration: timedelta = MAX_VALIDATION_DURATION,
                 poll_interval: timedelta = VALIDATION_POLL_INTERVAL) -> ValidationResult:
        """
        验证新证书是否已生效

        连接失败视为暂时性故障（服务可能仍在重启），继续轮询；
        超时返回 rotated=False，不抛出异常。

        Args:
            host_address: 主机地址
            previous_cert: 安装前的证书
            max_duration: 最长轮询时间
            poll_interval: 轮询间隔

        Returns:
            ValidationResult: 验证结果
        """
        self.logger.info(f"验证 {host_address} 上的证书安装情况")

        interval = poll_interval.total_seconds()
        deadline = self.clock() + max_duration.total_seconds()
        attempts = 0

        while self.clock() < deadline:
            attempts += 1
            try:
                current = self.inspector.read_certificate(host_address)
            except TLSConnectionError as e:
                self.inspector.error_handler.log_connection_error(host_address, e)
                self.logger.warning(f"连接 {host_address} 失败，{interval:g} 秒后重试...")
                self._wait(deadline, interval)
                continue
            except EmptyChainError as e:
                self.logger.warning(f"{e}，{interval:g} 秒后重试...")
                self._wait(deadline, interval)
                continue

            if self.has_rotated(previous_cert, current):
                self.logger.info(
                    f"检测到新证书！旧过期时间: {previous_cert.not_after.isoformat()}，"
                    f"新过期时间: {current.not_after.isoformat()}"
                )
                return ValidationResult(rotated=True, attempts=attempts, new_certificate=current)

            self.logger.debug(f"证书尚未更新，{interval:g} 秒后再次检查...")
            self._wait(deadline, interval)

        self.logger.warning(f"验证超时（{max_duration}）")
        return ValidationResult(rotated=False, attempts=attempts)

    def _wait(self, deadline: float, interval: float):
        # 不超过截止时间
        remaining = deadline - self.clock()
        if remaining > 0:
            self.sleep(min(interval, remaining))
