"""
命令行入口
"""
import sys
import argparse
from typing import List, Optional

from .exceptions import ConfigurationError
from .services.config_manager import ConfigManager
from .services.logger import LoggerService
from .version import version_string
from .workflow import CertificateRenewalWorkflow


EXIT_SUCCESS = 0
EXIT_FAILURE = 1

EPILOG = """
示例:
  只检查证书过期情况:
    esxi-cert-manager --hostname esxi.example.com --aws-key-id KEY --aws-secret-key SECRET --dry-run

  在需要时续期证书:
    esxi-cert-manager --hostname esxi.example.com --domain example.com --email admin@example.com \\
      --aws-key-id KEY --aws-secret-key SECRET --esxi-user root --esxi-pass PASSWORD

  强制续期并使用 2048 位密钥:
    esxi-cert-manager --hostname esxi.example.com --domain example.com --email admin@example.com \\
      --aws-key-id KEY --aws-secret-key SECRET --esxi-user root --esxi-pass PASSWORD --force --key-size 2048

所有参数也可以通过环境变量（如 ESXI_HOSTNAME、AWS_ACCESS_KEY_ID）或 --config 指定的JSON文件提供。
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="esxi-cert-manager",
        description="检查ESXi主机的TLS证书，在需要时通过 Let's Encrypt（Route53 DNS-01 验证）续期并安装",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EPILOG
    )

    # 所有参数默认值为 None，以便区分"未指定"和"显式指定"
    parser.add_argument('--hostname', help='ESXi 主机名，可带端口')
    parser.add_argument('--domain', help='Route53 DNS 验证使用的域名')
    parser.add_argument('--email', help='ACME 注册邮箱')
    parser.add_argument('--threshold', type=float, help='剩余有效期比例低于该值时续期（默认 0.33）')
    parser.add_argument('--log', dest='log_file', help='日志文件路径（默认 <程序名>.log）')
    parser.add_argument('--log-level', help='日志级别: ERROR, WARN, INFO, DEBUG（默认 INFO）')
    parser.add_argument('--aws-key-id', help='Route53 使用的 AWS Access Key ID')
    parser.add_argument('--aws-secret-key', help='Route53 使用的 AWS Secret Access Key')
    parser.add_argument('--aws-session-token', help='AWS 会话令牌（可选）')
    parser.add_argument('--aws-region', help='AWS 区域（默认 us-east-1）')
    parser.add_argument('--dry-run', action='store_true', default=None, help='只检查证书，不续期')
    parser.add_argument('--force', action='store_true', default=None, help='忽略阈值强制续期')
    parser.add_argument('--key-size', type=int, help='RSA 密钥长度: 2048 或 4096（默认 4096）')
    parser.add_argument('--esxi-user', dest='esxi_username', help='ESXi 用户名')
    parser.add_argument('--esxi-pass', dest='esxi_password', help='ESXi 密码')
    parser.add_argument('--config', dest='config_file', help='JSON 配置文件路径')
    parser.add_argument('--staging', dest='acme_staging', action='store_true', default=None,
                        help="使用 Let's Encrypt 测试环境")
    parser.add_argument('--cache-dir', help='证书缓存目录')
    parser.add_argument('--check-updates', action='store_true', default=None, help='启动时检查新版本')
    parser.add_argument('--version', action='store_true', help='显示版本信息并退出')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    命令行入口

    Args:
        argv: 命令行参数，默认使用 sys.argv[1:]

    Returns:
        int: 退出码
    """
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser()

    if not argv:
        parser.print_help()
        return EXIT_SUCCESS

    args = parser.parse_args(argv)

    if args.version:
        print(version_string())
        return EXIT_SUCCESS

    flags = vars(args).copy()
    config_file = flags.pop('config_file')
    flags.pop('version')

    try:
        config = ConfigManager().load(config_file=config_file, flags=flags)
    except ConfigurationError as e:
        print(f"参数错误: {e}", file=sys.stderr)
        if e.suggestion:
            print(f"建议: {e.suggestion}", file=sys.stderr)
        return EXIT_FAILURE

    logger_service = LoggerService(log_level=config.log_level, log_file=config.log_file)
    result = CertificateRenewalWorkflow(config, logger_service=logger_service).run()

    if not result.success:
        logger_service.logger.error(f"续期流程失败: {'; '.join(result.errors)}")
        return EXIT_FAILURE

    return EXIT_SUCCESS


if __name__ == '__main__':
    sys.exit(main())
