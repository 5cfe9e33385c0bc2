"""
vSphere 服务控制测试
"""
import pytest
from unittest.mock import patch, MagicMock

from pyVmomi import vim

from esxi_cert_manager.exceptions import ServiceControlError
from esxi_cert_manager.services.vsphere_service_control import VSphereServiceControl


def _service(key, running):
    service = MagicMock()
    service.key = key
    service.label = key
    service.running = running
    return service


class TestVSphereServiceControl:
    """vSphere 服务控制测试类"""

    def setup_method(self):
        """测试前准备"""
        self.service_system = MagicMock()
        self.service_system.serviceInfo.service = [
            _service("TSM-SSH", False),
            _service("ntpd", True),
        ]
        host = MagicMock()
        host.configManager.serviceSystem = self.service_system

        self.si = MagicMock()
        content = self.si.RetrieveContent.return_value
        self.view = content.viewManager.CreateContainerView.return_value
        self.view.view = [host]

        self.control = VSphereServiceControl("esxi.example.com", "root", "s3cret!", logger=MagicMock())

    @patch('esxi_cert_manager.services.vsphere_service_control.SmartConnect')
    def test_list_services(self, mock_connect):
        """测试获取服务列表"""
        mock_connect.return_value = self.si

        services = self.control.list_services()

        assert [(s.key, s.running) for s in services] == [("TSM-SSH", False), ("ntpd", True)]
        kwargs = mock_connect.call_args.kwargs
        assert kwargs['host'] == "esxi.example.com"
        assert kwargs['user'] == "root"
        assert kwargs['disableSslCertValidation'] is True
        self.view.Destroy.assert_called_once()

    @patch('esxi_cert_manager.services.vsphere_service_control.SmartConnect')
    def test_connection_is_reused(self, mock_connect):
        """测试多次调用只建立一次连接"""
        mock_connect.return_value = self.si

        self.control.list_services()
        self.control.start("TSM-SSH")
        self.control.stop("TSM-SSH")

        assert mock_connect.call_count == 1
        self.service_system.StartService.assert_called_once_with(id="TSM-SSH")
        self.service_system.StopService.assert_called_once_with(id="TSM-SSH")

    @patch('esxi_cert_manager.services.vsphere_service_control.SmartConnect')
    def test_connect_failure(self, mock_connect):
        """测试登录失败"""
        mock_connect.side_effect = vim.fault.InvalidLogin()

        with pytest.raises(ServiceControlError, match="连接ESXi SOAP API失败"):
            self.control.list_services()

    @patch('esxi_cert_manager.services.vsphere_service_control.Disconnect')
    @patch('esxi_cert_manager.services.vsphere_service_control.SmartConnect')
    def test_no_host_system(self, mock_connect, mock_disconnect):
        """测试找不到主机系统"""
        mock_connect.return_value = self.si
        self.view.view = []

        with pytest.raises(ServiceControlError, match="找不到ESXi主机系统"):
            self.control.list_services()

        mock_disconnect.assert_called_once_with(self.si)

    @patch('esxi_cert_manager.services.vsphere_service_control.SmartConnect')
    def test_start_fault(self, mock_connect):
        """测试启动服务时API返回错误"""
        mock_connect.return_value = self.si
        self.service_system.StartService.side_effect = vim.fault.InvalidState(msg="service busy")

        with pytest.raises(ServiceControlError, match="启动 TSM-SSH 服务失败"):
            self.control.start("TSM-SSH")

    @patch('esxi_cert_manager.services.vsphere_service_control.Disconnect')
    @patch('esxi_cert_manager.services.vsphere_service_control.SmartConnect')
    def test_close(self, mock_connect, mock_disconnect):
        """测试关闭连接"""
        mock_connect.return_value = self.si

        with self.control as control:
            control.list_services()

        mock_disconnect.assert_called_once_with(self.si)
        assert self.control._si is None

    @patch('esxi_cert_manager.services.vsphere_service_control.Disconnect')
    def test_close_without_connection(self, mock_disconnect):
        """测试未连接时关闭不做任何事"""
        self.control.close()

        mock_disconnect.assert_not_called()
