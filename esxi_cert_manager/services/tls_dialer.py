"""
TLS拨号服务
"""
import socket
import ssl
from typing import List

from ..interfaces import TLSConnectionInterface, TLSDialerInterface


class SocketTLSConnection(TLSConnectionInterface):
    """基于标准库 ssl 的TLS连接"""

    def __init__(self, ssl_sock: ssl.SSLSocket):
        self._sock = ssl_sock

    def peer_certificates(self) -> List[bytes]:
        # 未验证模式下只能拿到叶子证书
        der = self._sock.getpeercert(binary_form=True)
        return [der] if der else []

    def close(self):
        self._sock.close()


class SocketTLSDialer(TLSDialerInterface):
    """生产环境TLS拨号器"""

    def __init__(self, timeout: int = 10):
        """
        初始化TLS拨号器

        Args:
            timeout: 连接超时时间（秒）
        """
        self.timeout = timeout

    def dial(self, host: str, port: int) -> SocketTLSConnection:
        # 只读取证书，不做信任校验
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

        sock = socket.create_connection((host, port), timeout=self.timeout)
        try:
            ssl_sock = context.wrap_socket(sock, server_hostname=host)
        except Exception:
            sock.close()
            raise

        return SocketTLSConnection(ssl_sock)
