"""
错误处理服务
"""
import socket
import ssl
from datetime import datetime, timezone
from typing import Any, Dict
import logging


class ConnectionErrorHandler:
    """TLS连接错误处理器"""

    def __init__(self, logger: logging.Logger = None):
        """
        初始化连接错误处理器

        Args:
            logger: 日志器，默认使用模块日志器
        """
        self.logger = logger or logging.getLogger(__name__)

        # 可视为暂时性故障的错误类型（例如远程服务正在重启）
        self.transient_errors = {
            socket.timeout,
            socket.gaierror,
            ConnectionRefusedError,
            ConnectionResetError,
            OSError,
            ssl.SSLError
        }

        # 明确不是暂时性故障的错误类型
        self.permanent_errors = {
            ssl.CertificateError,
            ValueError,
            TypeError
        }

    def is_transient(self, error: BaseException) -> bool:
        """
        判断错误是否属于暂时性故障

        Args:
            error: 异常对象

        Returns:
            bool: 是否为暂时性故障
        """
        cause = error.__cause__ or error
        error_type = type(cause)

        if any(issubclass(error_type, permanent) for permanent in self.permanent_errors):
            return False

        if any(issubclass(error_type, transient) for transient in self.transient_errors):
            return True

        error_message = str(cause).lower()
        transient_messages = [
            'timeout',
            'timed out',
            'connection refused',
            'connection reset',
            'network is unreachable',
            'no route to host',
            'temporary failure',
        ]

        return any(msg in error_message for msg in transient_messages)

    def describe(self, host: str, error: BaseException) -> Dict[str, Any]:
        """
        生成连接错误的描述信息

        Args:
            host: 目标主机
            error: 异常对象

        Returns:
            Dict[str, Any]: 错误信息
        """
        cause = error.__cause__ or error
        return {
            'host': host,
            'error_type': type(cause).__name__,
            'error_message': str(cause),
            'is_transient': self.is_transient(error),
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'suggested_action': self.suggested_action(cause)
        }

    def suggested_action(self, error: BaseException) -> str:
        """
        获取错误的建议处理方案

        Args:
            error: 异常对象

        Returns:
            str: 建议的处理方案
        """
        error_message = str(error).lower()

        if isinstance(error, socket.timeout):
            return "检查网络连接，或确认远程服务是否仍在重启"
        elif isinstance(error, socket.gaierror):
            return "检查主机名是否正确，DNS服务器是否可用"
        elif isinstance(error, ConnectionRefusedError):
            return "检查目标主机的管理服务是否运行，端口是否正确"
        elif isinstance(error, ssl.SSLError):
            if 'handshake failure' in error_message:
                return "TLS握手失败，检查TLS版本兼容性"
            return "TLS连接问题，检查主机的TLS配置"
        elif 'network is unreachable' in error_message:
            return "网络不可达，检查网络连接和路由"
        elif 'no route to host' in error_message:
            return "无法路由到主机，检查防火墙和网络配置"
        else:
            return "检查网络连接和主机状态"

    def log_connection_error(self, host: str, error: BaseException) -> Dict[str, Any]:
        """
        记录连接错误并返回描述信息

        暂时性故障记为警告，其余记为错误
        """
        error_info = self.describe(host, error)

        if error_info['is_transient']:
            self.logger.warning(
                f"连接 {host} 失败（暂时性）: {error_info['error_message']}，"
                f"建议: {error_info['suggested_action']}"
            )
        else:
            self.logger.error(
                f"连接 {host} 失败: {error_info['error_message']}，"
                f"建议: {error_info['suggested_action']}"
            )

        return error_info
