"""
服务接口定义
"""
from abc import ABC, abstractmethod
from typing import List, Optional
from .models import IssuedCertificate, RemoteService


class TLSConnectionInterface(ABC):
    """TLS连接接口"""

    @abstractmethod
    def peer_certificates(self) -> List[bytes]:
        """返回对端证书链（DER格式，叶子证书在前）"""
        pass

    @abstractmethod
    def close(self):
        """关闭连接"""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class TLSDialerInterface(ABC):
    """TLS拨号接口"""

    @abstractmethod
    def dial(self, host: str, port: int) -> TLSConnectionInterface:
        """建立TLS连接（不验证证书链）"""
        pass


class CertificateObtainerInterface(ABC):
    """证书签发接口"""

    @abstractmethod
    def obtain(self, domain: str, account_key) -> IssuedCertificate:
        """为指定域名签发证书"""
        pass


class RemoteSessionInterface(ABC):
    """远程会话接口"""

    @abstractmethod
    def run(self, command: str, stdin: Optional[bytes] = None) -> str:
        """执行远程命令，失败时抛出 RemoteCommandError"""
        pass

    def close(self):
        """关闭会话"""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class RemoteExecutorInterface(ABC):
    """远程执行接口"""

    @abstractmethod
    def new_session(self) -> RemoteSessionInterface:
        """打开一个新的远程会话"""
        pass


class ServiceControlInterface(ABC):
    """远程服务控制接口"""

    @abstractmethod
    def list_services(self) -> List[RemoteService]:
        """列出远程主机上的服务"""
        pass

    @abstractmethod
    def start(self, name: str):
        """启动服务"""
        pass

    @abstractmethod
    def stop(self, name: str):
        """停止服务"""
        pass

    def close(self):
        """释放连接，默认无操作"""
        pass
