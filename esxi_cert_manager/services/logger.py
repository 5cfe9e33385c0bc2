"""
日志服务
"""
import os
import sys
import logging
import traceback
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from ..models import InspectionResult, RenewalDecision


LOG_LEVELS = {
    'ERROR': logging.ERROR,
    'WARN': logging.WARNING,
    'WARNING': logging.WARNING,
    'INFO': logging.INFO,
    'DEBUG': logging.DEBUG,
}


def parse_log_level(level: Optional[str]) -> int:
    """解析日志级别名称，未知值按 INFO 处理"""
    return LOG_LEVELS.get((level or '').upper(), logging.INFO)


class LoggerService:
    """日志服务实现"""

    def __init__(self, logger_name: str = "esxi_cert_manager", log_level: Optional[str] = None,
                 log_file: Optional[str] = None):
        """
        初始化日志服务

        Args:
            logger_name: 日志器名称
            log_level: 日志级别，如果为None则从环境变量读取
            log_file: 日志文件路径（以 0600 权限创建），为None时只输出到控制台
        """
        self.logger_name = logger_name
        self.log_level = log_level or os.getenv('LOG_LEVEL', 'INFO')
        self.log_file = log_file

        # 配置日志器
        self.logger = logging.getLogger(logger_name)
        self._configure_logger()

        # 执行统计
        self.execution_stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            'start_time': None,
            'end_time': None,
            'hostname': None,
            'decision': None,
            'percent_remaining': None,
            'rotated': None,
            'warnings': [],
            'errors': []
        }

    def _configure_logger(self):
        """配置日志器"""
        level = parse_log_level(self.log_level)
        self.logger.setLevel(level)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        # 避免重复添加处理器
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(level)
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

        if self.log_file:
            self._add_file_handler(level, formatter)

        # 防止日志传播到根日志器
        self.logger.propagate = False

    def _add_file_handler(self, level: int, formatter: logging.Formatter):
        log_path = os.path.abspath(self.log_file)
        for handler in self.logger.handlers:
            if isinstance(handler, logging.FileHandler) and handler.baseFilename == log_path:
                return

        try:
            # 先以 0600 权限创建文件，再交给 FileHandler 追加写入
            fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
            os.close(fd)
            handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
        except OSError as e:
            print(f"打开日志文件失败: {e}", file=sys.stderr)
            return

        handler.setLevel(level)
        handler.setFormatter(formatter)
        self.logger.addHandler(handler)
        self.logger.info(f"日志写入 {log_path}，级别 {logging.getLevelName(level)}")

    def log_run_start(self, hostname: str):
        """
        记录运行开始

        Args:
            hostname: 目标主机
        """
        self.execution_stats['start_time'] = datetime.now(timezone.utc)
        self.execution_stats['hostname'] = hostname

        self.logger.info(f"开始检查 {hostname} 的证书")
        self.logger.info(f"开始时间: {self.execution_stats['start_time'].isoformat()}")

    def log_decision(self, decision: RenewalDecision, inspection: InspectionResult):
        """
        记录续期决策

        Args:
            decision: 续期决策
            inspection: 证书检查结果
        """
        self.execution_stats['decision'] = decision.value
        self.execution_stats['percent_remaining'] = inspection.percent_remaining

        cert = inspection.certificate
        message = (
            f"续期决策: {decision.value} - 主题: {cert.subject_cn}, "
            f"过期时间: {cert.not_after.isoformat()}, "
            f"剩余: {inspection.percent_remaining * 100:.2f}%, "
            f"颁发者: {cert.issuer}"
        )
        if decision == RenewalDecision.UP_TO_DATE:
            self.logger.info(message)
        else:
            self.logger.warning(message)

    def log_validation(self, rotated: bool):
        """记录安装验证结果"""
        self.execution_stats['rotated'] = rotated
        if rotated:
            self.logger.info("新证书验证成功！")
        else:
            self.log_warning("在超时时间内未能确认新证书生效")

    def log_warning(self, message: str):
        """记录非致命问题"""
        self.execution_stats['warnings'].append(message)
        self.logger.warning(message)

    def log_error(self, stage: str, error: Exception):
        """
        记录错误信息

        Args:
            stage: 出错的阶段
            error: 异常对象
        """
        error_info = {
            'stage': stage,
            'error_type': type(error).__name__,
            'error_message': str(error),
            'suggestion': getattr(error, 'suggestion', None),
            'timestamp': datetime.now(timezone.utc).isoformat()
        }

        self.execution_stats['errors'].append(error_info)

        self.logger.error(f"{stage} 失败: {type(error).__name__}: {str(error)}")
        if error_info['suggestion']:
            self.logger.error(f"建议: {error_info['suggestion']}")

        # 详细的堆栈跟踪（调试级别）
        self.logger.debug(f"{stage} 错误堆栈跟踪:\n{traceback.format_exc()}")

    def log_run_end(self):
        """记录运行结束"""
        self.execution_stats['end_time'] = datetime.now(timezone.utc)

        if self.execution_stats['start_time']:
            duration = (self.execution_stats['end_time'] - self.execution_stats['start_time']).total_seconds()
        else:
            duration = 0

        self.logger.info("证书检查完成")
        self.logger.info(f"结束时间: {self.execution_stats['end_time'].isoformat()}")
        self.logger.info(f"总执行时间: {duration:.2f} 秒")

    def log_configuration_info(self, config: Dict[str, Any]):
        """
        记录配置信息

        Args:
            config: 配置信息字典
        """
        safe_config = self._sanitize_config(config)

        self.logger.info("系统配置信息:")
        for key, value in safe_config.items():
            self.logger.info(f"  {key}: {value}")

    def _sanitize_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        清理配置信息中的敏感数据

        Args:
            config: 原始配置

        Returns:
            Dict[str, Any]: 清理后的配置
        """
        safe_config = {}
        for key, value in config.items():
            key_lower = key.lower()

            is_sensitive = (
                key_lower in ('password', 'secret', 'token', 'key') or
                key_lower.endswith('_password') or
                key_lower.endswith('_secret') or
                key_lower.endswith('_secret_key') or
                key_lower.endswith('_token') or
                key_lower.endswith('_key_id')
            )

            if is_sensitive and isinstance(value, str) and value:
                # 只显示前几个字符
                safe_config[key] = value[:3] + "***" if len(value) > 6 else "***"
            else:
                safe_config[key] = value

        return safe_config

    def get_execution_summary(self) -> Dict[str, Any]:
        """
        获取执行摘要

        Returns:
            Dict[str, Any]: 执行摘要信息
        """
        stats = self.execution_stats
        duration = 0
        if stats['start_time'] and stats['end_time']:
            duration = (stats['end_time'] - stats['start_time']).total_seconds()

        return {
            'hostname': stats['hostname'],
            'start_time': stats['start_time'].isoformat() if stats['start_time'] else None,
            'end_time': stats['end_time'].isoformat() if stats['end_time'] else None,
            'duration_seconds': duration,
            'decision': stats['decision'],
            'percent_remaining': stats['percent_remaining'],
            'rotated': stats['rotated'],
            'warning_count': len(stats['warnings']),
            'error_count': len(stats['errors']),
            'errors': stats['errors']
        }

    def log_execution_summary(self):
        """记录执行摘要"""
        summary = self.get_execution_summary()

        self.logger.info("=" * 50)
        self.logger.info("执行摘要")
        self.logger.info("=" * 50)

        self.logger.info(f"主机: {summary['hostname']}")
        self.logger.info(f"执行时长: {summary['duration_seconds']:.2f} 秒")
        if summary['decision']:
            self.logger.info(f"续期决策: {summary['decision']}")
        if summary['rotated'] is not None:
            self.logger.info(f"证书已更新: {'是' if summary['rotated'] else '未确认'}")
        self.logger.info(f"警告数量: {summary['warning_count']}")

        if summary['errors']:
            self.logger.info(f"错误数量: {summary['error_count']}")
            for i, error in enumerate(summary['errors'], 1):
                self.logger.info(f"  错误 {i}: {error['stage']} - {error['error_type']}: {error['error_message']}")

        self.logger.info("=" * 50)

    def reset_stats(self):
        """重置执行统计"""
        self.execution_stats = self._empty_stats()
