"""
配置管理服务
"""
import os
import re
import sys
import json
import ipaddress
import logging
from dataclasses import fields
from typing import Any, Dict, List, Mapping, Optional

from ..exceptions import ConfigurationError
from ..models import (
    ALLOWED_KEY_SIZES,
    DEFAULT_KEY_SIZE,
    DEFAULT_THRESHOLD,
    RenewalConfig,
    default_cache_dir,
    split_host_port,
)
from .logger import LOG_LEVELS


SOURCE_DEFAULT = "default"
SOURCE_CONFIG_FILE = "config_file"
SOURCE_ENV = "environment"
SOURCE_FLAG = "command_line"

# 配置键与环境变量的对应关系
ENV_MAPPINGS = {
    'hostname': 'ESXI_HOSTNAME',
    'domain': 'AWS_ROUTE53_DOMAIN',
    'email': 'EMAIL',
    'threshold': 'CERT_THRESHOLD',
    'log_file': 'LOG_FILE',
    'log_level': 'LOG_LEVEL',
    'aws_key_id': 'AWS_ACCESS_KEY_ID',
    'aws_secret_key': 'AWS_SECRET_ACCESS_KEY',
    'aws_session_token': 'AWS_SESSION_TOKEN',
    'aws_region': 'AWS_REGION',
    'dry_run': 'DRY_RUN',
    'force': 'FORCE_RENEWAL',
    'key_size': 'CERT_KEY_SIZE',
    'esxi_username': 'ESXI_USERNAME',
    'esxi_password': 'ESXI_PASSWORD',
    'acme_staging': 'ACME_STAGING',
    'cache_dir': 'CERT_CACHE_DIR',
    'check_updates': 'CHECK_UPDATES',
}

FLOAT_KEYS = {'threshold'}
INT_KEYS = {'key_size'}
BOOL_KEYS = {'dry_run', 'force', 'acme_staging', 'check_updates'}

TRUE_VALUES = {'1', 't', 'true', 'yes', 'on'}
FALSE_VALUES = {'0', 'f', 'false', 'no', 'off'}

HOSTNAME_PATTERN = re.compile(
    r'^(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$'
)


def default_log_file() -> str:
    """默认日志文件名：<程序名>.log"""
    program = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "esxi-cert-manager"
    return f"{program}.log"


def parse_bool(value: str) -> bool:
    """
    解析布尔字符串

    Raises:
        ValueError: 无法识别的取值
    """
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValueError(f"无效的布尔值: {value}")


class ConfigManager:
    """
    按优先级合并配置

    优先级从低到高：默认值 < 配置文件 < 环境变量 < 命令行参数。
    每个值都会记录其来源，便于调试。
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        """
        初始化配置管理器

        Args:
            environ: 环境变量映射，默认使用 os.environ
        """
        self.logger = logging.getLogger(__name__)
        self.environ = os.environ if environ is None else environ
        self.values: Dict[str, Any] = {}
        self.sources: Dict[str, str] = {}

    def set(self, key: str, value: Any, source: str):
        self.values[key] = value
        self.sources[key] = source

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def get_source(self, key: str) -> Optional[str]:
        return self.sources.get(key)

    def load_defaults(self):
        """加载默认配置"""
        self.set('threshold', DEFAULT_THRESHOLD, SOURCE_DEFAULT)
        self.set('key_size', DEFAULT_KEY_SIZE, SOURCE_DEFAULT)
        self.set('log_level', 'INFO', SOURCE_DEFAULT)
        self.set('aws_region', 'us-east-1', SOURCE_DEFAULT)
        self.set('dry_run', False, SOURCE_DEFAULT)
        self.set('force', False, SOURCE_DEFAULT)
        self.set('acme_staging', False, SOURCE_DEFAULT)
        self.set('cache_dir', default_cache_dir(), SOURCE_DEFAULT)
        self.set('check_updates', False, SOURCE_DEFAULT)

    def load_config_file(self, file_path: Optional[str]):
        """
        从JSON文件加载配置

        文件不存在不是错误。

        Args:
            file_path: 配置文件路径

        Raises:
            ConfigurationError: 文件无法读取或格式错误
        """
        if not file_path:
            return

        if not os.path.exists(file_path):
            self.logger.debug(f"配置文件 {file_path} 不存在，跳过")
            return

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except OSError as e:
            raise ConfigurationError(f"读取配置文件 {file_path} 失败: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"解析配置文件 {file_path} 失败: {e}",
                suggestion="配置文件必须是JSON对象"
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"配置文件 {file_path} 必须是JSON对象")

        for key, value in data.items():
            if key not in ENV_MAPPINGS:
                self.logger.warning(f"忽略未知的配置项: {key}")
                continue
            if value is None or value == "":
                continue
            self.set(key, value, SOURCE_CONFIG_FILE)

        self.logger.debug(f"已从配置文件加载配置: {file_path}")

    def load_environment_variables(self):
        """从环境变量加载配置，类型无法解析的值会被忽略"""
        for key, env_var in ENV_MAPPINGS.items():
            value = self.environ.get(env_var)
            if not value:
                continue

            try:
                if key in FLOAT_KEYS:
                    converted = float(value)
                elif key in INT_KEYS:
                    converted = int(value)
                elif key in BOOL_KEYS:
                    converted = parse_bool(value)
                else:
                    converted = value
            except ValueError:
                self.logger.warning(f"环境变量 {env_var} 的值无效，已忽略: {value}")
                continue

            self.set(key, converted, SOURCE_ENV)

    def load_flags(self, flags: Mapping[str, Any]):
        """
        加载命令行参数

        Args:
            flags: 显式指定的参数，值为 None 表示未指定
        """
        for key, value in flags.items():
            if key in ENV_MAPPINGS and value is not None:
                self.set(key, value, SOURCE_FLAG)

    def build_config(self) -> RenewalConfig:
        """
        生成最终配置

        Raises:
            ConfigurationError: 配置值类型错误
        """
        known = {f.name for f in fields(RenewalConfig)}
        kwargs = {key: value for key, value in self.values.items() if key in known}
        kwargs.setdefault('hostname', "")

        try:
            if 'threshold' in kwargs:
                kwargs['threshold'] = float(kwargs['threshold'])
            if 'key_size' in kwargs:
                kwargs['key_size'] = int(kwargs['key_size'])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"配置值类型错误: {e}") from e

        for key in BOOL_KEYS & kwargs.keys():
            value = kwargs[key]
            if isinstance(value, str):
                try:
                    kwargs[key] = parse_bool(value)
                except ValueError as e:
                    raise ConfigurationError(f"配置项 {key} 的值无效: {value}") from e
            else:
                kwargs[key] = bool(value)

        config = RenewalConfig(**kwargs)
        if not config.log_file:
            config.log_file = default_log_file()
        return config

    def validate_config(self, config: RenewalConfig) -> List[str]:
        """
        验证最终配置

        Args:
            config: 待验证的配置

        Returns:
            List[str]: 错误列表，为空表示验证通过
        """
        errors = []

        if not config.hostname:
            errors.append("必须指定主机名 (--hostname)")
        elif not self._validate_host_address(config.hostname):
            errors.append(f"主机名格式无效: {config.hostname}")

        # 试运行也需要验证AWS凭证
        if not config.aws_key_id or not config.aws_secret_key:
            errors.append("必须提供Route53的AWS凭证 (--aws-key-id / --aws-secret-key)")

        if config.dry_run and config.force:
            errors.append("--dry-run 和 --force 不能同时使用")

        if not config.dry_run:
            if not config.domain:
                errors.append("Route53 DNS验证需要指定域名 (--domain)")
            if not config.email:
                errors.append("ACME注册需要指定邮箱 (--email)")
            if not config.esxi_username or not config.esxi_password:
                errors.append("上传证书需要ESXi用户名和密码 (--esxi-user / --esxi-pass)")

        if config.key_size not in ALLOWED_KEY_SIZES:
            errors.append(f"无效的密钥长度 {config.key_size}，必须是 2048 或 4096")

        if not 0 < config.threshold < 1:
            errors.append(f"无效的阈值 {config.threshold:.2f}，必须在 0 和 1 之间")

        if config.log_level.upper() not in LOG_LEVELS:
            errors.append(
                f"无效的日志级别 {config.log_level}，必须是以下之一: {', '.join(LOG_LEVELS)}"
            )

        return errors

    def load(self, config_file: Optional[str] = None,
             flags: Optional[Mapping[str, Any]] = None) -> RenewalConfig:
        """
        按优先级加载并验证配置

        Args:
            config_file: 配置文件路径
            flags: 命令行参数

        Returns:
            RenewalConfig: 验证通过的配置

        Raises:
            ConfigurationError: 配置无效
        """
        self.load_defaults()
        self.load_config_file(config_file)
        self.load_environment_variables()
        self.load_flags(flags or {})

        config = self.build_config()
        errors = self.validate_config(config)
        if errors:
            raise ConfigurationError(
                "配置验证失败: " + "; ".join(errors),
                suggestion="使用 --help 查看可用参数"
            )

        self.log_config_sources()
        return config

    def log_config_sources(self):
        """记录每个配置值的来源（调试用）"""
        self.logger.debug("配置来源:")
        for key in sorted(self.values):
            value = self.values[key]
            if key in ('aws_secret_key', 'aws_session_token', 'esxi_password') and value:
                value = "***"
            self.logger.debug(f"  {key}: {value} (来自 {self.sources[key]})")

    def _validate_host_address(self, address: str) -> bool:
        """
        验证主机地址格式（DNS名称或IP，可带端口）

        Args:
            address: 主机地址

        Returns:
            bool: 是否有效
        """
        host, port = split_host_port(address)
        if not 0 < port < 65536:
            return False

        try:
            ipaddress.ip_address(host)
            return True
        except ValueError:
            pass

        if len(host) > 253:
            return False
        return bool(HOSTNAME_PATTERN.match(host))
