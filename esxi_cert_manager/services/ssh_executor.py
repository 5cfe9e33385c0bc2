"""
SSH远程执行服务
"""
import os
import subprocess
import logging
from typing import List, Optional

from ..exceptions import RemoteCommandError
from ..interfaces import RemoteExecutorInterface, RemoteSessionInterface


def mask_password(password: str) -> str:
    """日志中隐藏密码"""
    if len(password) <= 2:
        return "****"
    return "*" * len(password)


class SSHSession(RemoteSessionInterface):
    """单个SSH会话，每条命令一个独立的 ssh 进程"""

    def __init__(self, executor: 'SSHRemoteExecutor'):
        self.executor = executor

    def run(self, command: str, stdin: Optional[bytes] = None) -> str:
        """
        执行远程命令

        Args:
            command: 远程命令
            stdin: 写入远程命令标准输入的数据

        Returns:
            str: 命令输出（标准输出和标准错误合并）

        Raises:
            RemoteCommandError: 命令失败或超时
        """
        args = self.executor.build_ssh_command(command)
        env = dict(os.environ, SSHPASS=self.executor.password)

        try:
            result = subprocess.run(
                args,
                input=stdin if stdin is not None else b"",
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                env=env,
                timeout=self.executor.command_timeout
            )
        except subprocess.TimeoutExpired as e:
            raise RemoteCommandError(command, output=f"超时（{self.executor.command_timeout}秒）") from e
        except OSError as e:
            raise RemoteCommandError(
                command, output=str(e),
                suggestion="确认本机已安装 ssh 和 sshpass"
            ) from e

        output = result.stdout.decode('utf-8', errors='replace')
        if result.returncode != 0:
            raise RemoteCommandError(command, result.returncode, output)
        return output


class SSHRemoteExecutor(RemoteExecutorInterface):
    """通过 sshpass + ssh 执行远程命令"""

    def __init__(self, host: str, username: str, password: str, port: int = 22,
                 connect_timeout: int = 30, command_timeout: int = 120,
                 logger: Optional[logging.Logger] = None):
        """
        初始化SSH执行器

        Args:
            host: 远程主机
            username: 用户名
            password: 密码（通过 SSHPASS 环境变量传递，不出现在命令行中）
            port: SSH端口
            connect_timeout: 连接超时（秒）
            command_timeout: 单条命令的最长执行时间（秒）
        """
        self.host = host
        self.username = username
        self.password = password
        self.port = port
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.logger = logger or logging.getLogger(__name__)

        self.logger.debug(f"SSH连接: {username}@{host}:{port}")
        self.logger.debug(f"SSH密码: {mask_password(password)}")

    def build_ssh_command(self, command: str) -> List[str]:
        """构造 ssh 命令行"""
        return [
            'sshpass', '-e',
            'ssh',
            '-o', 'StrictHostKeyChecking=no',
            '-o', 'UserKnownHostsFile=/dev/null',
            '-o', 'LogLevel=ERROR',
            '-o', f'ConnectTimeout={self.connect_timeout}',
            '-o', 'PreferredAuthentications=password,keyboard-interactive',
            '-p', str(self.port),
            f'{self.username}@{self.host}',
            command
        ]

    def new_session(self) -> SSHSession:
        return SSHSession(self)
