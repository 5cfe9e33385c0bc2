"""
续期决策服务
"""
import logging
from typing import Optional

from ..models import DecisionResult, RenewalConfig, RenewalDecision
from .certificate_inspector import CertificateInspector


class RenewalDecisionEngine:
    """综合检查结果、强制续期和演练模式得出续期决策"""

    def __init__(self, inspector: CertificateInspector, logger: Optional[logging.Logger] = None):
        self.inspector = inspector
        self.logger = logger or logging.getLogger(__name__)

    def decide(self, config: RenewalConfig) -> DecisionResult:
        """
        计算本次运行的续期决策

        Args:
            config: 运行配置

        Returns:
            DecisionResult: 决策结果；演练模式下 should_renew 恒为False

        Raises:
            TLSConnectionError: 无法连接主机
            EmptyChainError: 主机没有返回证书
        """
        if config.dry_run:
            self.logger.info("演练模式：只检查证书过期情况")

        inspection = self.inspector.check_expiration(config.hostname, config.threshold)

        if config.force:
            self.logger.info("已启用强制续期，忽略过期阈值检查")
            decision = RenewalDecision.FORCED_RENEWAL
        elif inspection.needs_renewal:
            decision = RenewalDecision.NEEDS_RENEWAL
        else:
            decision = RenewalDecision.UP_TO_DATE

        result = DecisionResult(decision=decision, inspection=inspection, dry_run=config.dry_run)

        if config.dry_run:
            self.logger.info(f"演练模式结果: {decision.value}，不会签发或安装证书")
        elif decision == RenewalDecision.UP_TO_DATE:
            self.logger.info(
                f"{config.hostname} 的证书仍然有效（过期时间 "
                f"{inspection.certificate.not_after.isoformat()}），暂不需要续期"
            )

        return result
