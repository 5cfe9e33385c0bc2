"""
数据模型定义
"""
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, List


# 远程主机上的证书路径
REMOTE_SSL_DIR = "/etc/vmware/ssl"
REMOTE_CERT_PATH = f"{REMOTE_SSL_DIR}/rui.crt"
REMOTE_KEY_PATH = f"{REMOTE_SSL_DIR}/rui.key"
BACKUP_SUFFIX = ".backup"

# 远程服务
REMOTE_ACCESS_SERVICE = "TSM-SSH"
PRIMARY_SERVICE = "/etc/init.d/hostd"
SECONDARY_SERVICE = "/etc/init.d/vpxa"

# 运行参数
DEFAULT_THRESHOLD = 0.33
DEFAULT_KEY_SIZE = 4096
ALLOWED_KEY_SIZES = (2048, 4096)
CACHE_FRESHNESS_THRESHOLD = 0.5
MAX_VALIDATION_DURATION = timedelta(minutes=5)
VALIDATION_POLL_INTERVAL = timedelta(seconds=30)
SERVICE_SETTLE_DELAY = 3.0
ROTATION_TOLERANCE = timedelta(hours=1)
DEFAULT_TLS_PORT = 443

ACME_PRODUCTION_URL = "https://acme-v02.api.letsencrypt.org/directory"
ACME_STAGING_URL = "https://acme-staging-v02.api.letsencrypt.org/directory"


def default_cache_dir() -> str:
    """默认的证书缓存目录"""
    return os.path.join(tempfile.gettempdir(), "esxi-cert-cache")


class RenewalDecision(Enum):
    """续期决策"""
    UP_TO_DATE = "up_to_date"
    NEEDS_RENEWAL = "needs_renewal"
    FORCED_RENEWAL = "forced_renewal"


@dataclass
class RenewalConfig:
    """单次运行的完整配置"""
    hostname: str
    domain: str = ""
    email: str = ""
    threshold: float = DEFAULT_THRESHOLD
    log_file: str = ""
    log_level: str = "INFO"
    aws_key_id: str = ""
    aws_secret_key: str = ""
    aws_session_token: str = ""
    aws_region: str = "us-east-1"
    dry_run: bool = False
    force: bool = False
    key_size: int = DEFAULT_KEY_SIZE
    esxi_username: str = ""
    esxi_password: str = ""
    acme_staging: bool = False
    cache_dir: str = field(default_factory=default_cache_dir)
    check_updates: bool = False

    @property
    def host(self) -> str:
        """去掉端口后的主机名"""
        return split_host_port(self.hostname)[0]

    @property
    def acme_directory_url(self) -> str:
        return ACME_STAGING_URL if self.acme_staging else ACME_PRODUCTION_URL


def split_host_port(address: str, default_port: int = DEFAULT_TLS_PORT):
    """
    拆分 host:port 形式的地址

    Args:
        address: 主机地址，可带端口
        default_port: 未指定端口时使用的端口

    Returns:
        tuple: (主机, 端口)
    """
    if address.startswith('['):
        # IPv6 形式 [::1]:443
        host, _, rest = address[1:].partition(']')
        if rest.startswith(':') and rest[1:].isdigit():
            return host, int(rest[1:])
        return host, default_port

    if address.count(':') == 1:
        host, port = address.split(':')
        if port.isdigit():
            return host, int(port)

    return address, default_port


@dataclass
class ObservedCertificate:
    """从远程主机读取到的证书信息"""
    subject_cn: str
    issuer: str
    not_before: datetime
    not_after: datetime
    signature_algorithm: str

    @property
    def total_lifetime(self) -> timedelta:
        return self.not_after - self.not_before


@dataclass
class InspectionResult:
    """证书检查结果"""
    needs_renewal: bool
    certificate: ObservedCertificate
    percent_remaining: float


@dataclass
class CachedCertificateRecord:
    """缓存中的证书记录"""
    hostname: str
    cert_path: str
    key_path: str
    certificate: bytes = b""
    private_key: bytes = b""


@dataclass
class IssuedCertificate:
    """签发服务返回的证书和私钥（PEM格式）"""
    certificate_pem: bytes
    private_key_pem: bytes


@dataclass
class DecisionResult:
    """续期决策及其依据"""
    decision: RenewalDecision
    inspection: InspectionResult
    dry_run: bool = False

    @property
    def should_renew(self) -> bool:
        """是否继续执行签发和安装"""
        if self.dry_run:
            return False
        return self.decision in (RenewalDecision.NEEDS_RENEWAL, RenewalDecision.FORCED_RENEWAL)


@dataclass
class RemoteService:
    """远程服务状态"""
    key: str
    label: str = ""
    running: bool = False


@dataclass
class StepOutcome:
    """安装过程中单个步骤的结果"""
    step: str
    succeeded: bool
    fatal: bool = False
    message: str = ""


@dataclass
class InstallationAttempt:
    """一次安装调用的各步骤结果"""
    backup: List[StepOutcome] = field(default_factory=list)
    upload: List[StepOutcome] = field(default_factory=list)
    permissions: List[StepOutcome] = field(default_factory=list)
    restarts: List[StepOutcome] = field(default_factory=list)

    @property
    def warnings(self) -> List[StepOutcome]:
        """非致命的失败步骤"""
        steps = self.backup + self.upload + self.permissions + self.restarts
        return [step for step in steps if not step.succeeded and not step.fatal]

    @property
    def succeeded(self) -> bool:
        steps = self.upload + self.restarts
        return not any(step.fatal for step in steps)


@dataclass
class ValidationResult:
    """安装验证结果"""
    rotated: bool
    attempts: int = 0
    new_certificate: Optional[ObservedCertificate] = None


@dataclass
class RunResult:
    """一次运行的结果统计"""
    success: bool
    hostname: str
    decision: Optional[RenewalDecision] = None
    rotated: Optional[bool] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    execution_time: float = 0.0
