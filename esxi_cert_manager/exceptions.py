"""
异常定义
"""
from typing import Optional


class CertManagerError(Exception):
    """证书管理基础异常"""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)


class TLSConnectionError(CertManagerError, ConnectionError):
    """TLS连接失败"""
    pass


class EmptyChainError(CertManagerError):
    """握手成功但服务器没有返回证书"""
    pass


class IssuanceError(CertManagerError):
    """证书签发失败"""
    pass


class UploadError(CertManagerError):
    """证书文件上传失败"""
    pass


class PermissionApplyError(CertManagerError):
    """远程文件权限设置失败（非致命）"""
    pass


class PrimaryServiceRestartError(CertManagerError):
    """主管理服务重启失败"""
    pass


class SecondaryServiceRestartError(CertManagerError):
    """集群相关服务重启失败（独立主机上属于预期情况）"""
    pass


class ServiceControlError(CertManagerError):
    """远程服务注册表操作失败"""
    pass


class ConfigurationError(CertManagerError):
    """配置无效"""
    pass


class CredentialValidationError(CertManagerError):
    """AWS凭证验证失败"""
    pass


class RemoteCommandError(CertManagerError):
    """远程命令执行失败"""

    def __init__(self, command: str, exit_status: Optional[int] = None, output: str = "",
                 suggestion: Optional[str] = None):
        self.command = command
        self.exit_status = exit_status
        self.output = output
        message = f"远程命令 '{command}' 执行失败"
        if exit_status is not None:
            message += f"（退出码 {exit_status}）"
        if output:
            message += f": {output.strip()}"
        super().__init__(message, suggestion)
