"""
vSphere 服务控制（SOAP API）
"""
import logging
from typing import List, Optional

from pyVim.connect import Disconnect, SmartConnect
from pyVmomi import vim

from ..exceptions import ServiceControlError
from ..interfaces import ServiceControlInterface
from ..models import RemoteService


class VSphereServiceControl(ServiceControlInterface):
    """通过 pyVmomi 管理ESXi主机服务"""

    def __init__(self, host: str, username: str, password: str, port: int = 443,
                 logger: Optional[logging.Logger] = None):
        """
        初始化服务控制

        Args:
            host: ESXi 主机
            username: 用户名
            password: 密码
            port: SOAP API 端口
        """
        self.host = host
        self.username = username
        self.password = password
        self.port = port
        self.logger = logger or logging.getLogger(__name__)
        self._si = None
        self._service_system = None

    def connect(self):
        """连接 SOAP API 并定位主机服务系统"""
        if self._service_system is not None:
            return self._service_system

        self.logger.info("连接ESXi SOAP API以管理服务...")
        try:
            self._si = SmartConnect(
                host=self.host,
                user=self.username,
                pwd=self.password,
                port=self.port,
                disableSslCertValidation=True
            )
        except Exception as e:
            raise ServiceControlError(
                f"连接ESXi SOAP API失败: {e}",
                suggestion="检查ESXi用户名、密码以及443端口是否可达"
            ) from e

        content = self._si.RetrieveContent()
        view = content.viewManager.CreateContainerView(content.rootFolder, [vim.HostSystem], True)
        try:
            hosts = list(view.view)
        finally:
            view.Destroy()

        if not hosts:
            self.close()
            raise ServiceControlError("找不到ESXi主机系统")

        self._service_system = hosts[0].configManager.serviceSystem
        self.logger.info("已连接ESXi SOAP API")
        return self._service_system

    def close(self):
        if self._si is not None:
            try:
                Disconnect(self._si)
            except Exception as e:
                self.logger.debug(f"断开SOAP连接时出错: {e}")
        self._si = None
        self._service_system = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def list_services(self) -> List[RemoteService]:
        service_system = self.connect()
        return [
            RemoteService(key=service.key, label=service.label, running=bool(service.running))
            for service in service_system.serviceInfo.service
        ]

    def start(self, name: str):
        service_system = self.connect()
        try:
            service_system.StartService(id=name)
        except vim.fault.VimFault as e:
            raise ServiceControlError(f"启动 {name} 服务失败: {e.msg}") from e

    def stop(self, name: str):
        service_system = self.connect()
        try:
            service_system.StopService(id=name)
        except vim.fault.VimFault as e:
            raise ServiceControlError(f"停止 {name} 服务失败: {e.msg}") from e
