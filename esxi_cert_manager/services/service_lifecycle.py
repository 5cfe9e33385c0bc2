"""
远程服务生命周期管理
"""
import time
import logging
from typing import Optional

from ..exceptions import ServiceControlError
from ..interfaces import ServiceControlInterface
from ..models import SERVICE_SETTLE_DELAY


class ServiceLifecycleManager:
    """在安装窗口前后管理远程访问服务"""

    def __init__(self, service_control: ServiceControlInterface,
                 settle_delay: float = SERVICE_SETTLE_DELAY,
                 logger: Optional[logging.Logger] = None):
        """
        初始化服务生命周期管理器

        Args:
            service_control: 远程服务控制
            settle_delay: 启动服务后等待的秒数
            logger: 日志器
        """
        self.service_control = service_control
        self.settle_delay = settle_delay
        self.logger = logger or logging.getLogger(__name__)

    def ensure_running(self, service_name: str) -> bool:
        """
        确保服务正在运行

        Args:
            service_name: 服务名称，如 TSM-SSH

        Returns:
            bool: 调用前服务是否已在运行

        Raises:
            ServiceControlError: 查询或启动服务失败，或服务不存在
        """
        self.logger.info(f"检查 {service_name} 服务状态...")

        try:
            services = self.service_control.list_services()
        except ServiceControlError:
            raise
        except Exception as e:
            raise ServiceControlError(f"获取服务列表失败: {e}") from e

        service = next((s for s in services if s.key == service_name), None)
        if service is None:
            raise ServiceControlError(f"找不到 {service_name} 服务")

        self.logger.debug(f"{service_name} 服务状态: running={service.running}")

        if service.running:
            self.logger.info(f"{service_name} 服务已在运行")
            return True

        self.logger.info(f"启动 {service_name} 服务...")
        try:
            self.service_control.start(service_name)
        except ServiceControlError:
            raise
        except Exception as e:
            raise ServiceControlError(f"启动 {service_name} 服务失败: {e}") from e

        time.sleep(self.settle_delay)

        self.logger.info(f"{service_name} 服务启动成功")
        return False

    def stop_if_no_longer_needed(self, service_name: str, was_already_running: bool = False) -> bool:
        """
        安装窗口结束后停止服务

        无论服务原本是否在运行都会停止，was_already_running 仅用于日志。
        停止失败只记录警告。

        Returns:
            bool: 是否成功停止
        """
        if was_already_running:
            self.logger.debug(f"{service_name} 服务在安装前已在运行，仍将其停止")

        self.logger.info(f"停止 {service_name} 服务...")
        try:
            self.service_control.stop(service_name)
        except Exception as e:
            self.logger.warning(f"停止 {service_name} 服务失败: {e}")
            return False

        self.logger.info(f"{service_name} 服务已停止")
        return True

    def close(self):
        """释放服务控制连接"""
        try:
            self.service_control.close()
        except Exception as e:
            self.logger.debug(f"关闭服务控制连接时出错: {e}")
