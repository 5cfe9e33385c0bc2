"""
版本信息与更新检查
"""
import os
import sys
import platform
import logging
from typing import Dict, Optional

import requests
from packaging.version import InvalidVersion, Version


__version__ = "1.4.0"

GITHUB_OWNER = "ozskywalker"
GITHUB_REPO = "lab-update-esxi-cert"
UPDATE_CHECK_TIMEOUT = 10

logger = logging.getLogger(__name__)


def get_version_info() -> Dict[str, str]:
    """
    获取版本信息

    构建信息可以通过 ESXI_CERT_MANAGER_COMMIT / ESXI_CERT_MANAGER_BUILD_DATE 覆盖
    """
    return {
        'version': __version__,
        'commit': os.getenv('ESXI_CERT_MANAGER_COMMIT', 'unknown'),
        'build_date': os.getenv('ESXI_CERT_MANAGER_BUILD_DATE', 'unknown'),
        'python_version': platform.python_version(),
        'platform': f"{sys.platform}/{platform.machine()}",
    }


def version_string() -> str:
    info = get_version_info()
    return (
        f"esxi-cert-manager {info['version']} (commit: {info['commit']}, "
        f"构建日期: {info['build_date']}, Python {info['python_version']}, {info['platform']})"
    )


def fetch_latest_release(owner: str = GITHUB_OWNER, repo: str = GITHUB_REPO,
                         timeout: float = UPDATE_CHECK_TIMEOUT) -> Dict[str, str]:
    """
    查询GitHub上的最新发布版本

    Returns:
        Dict[str, str]: 包含 version 和 url

    Raises:
        requests.RequestException: 请求失败
        ValueError: 响应内容无效
    """
    url = f"https://api.github.com/repos/{owner}/{repo}/releases/latest"
    response = requests.get(url, timeout=timeout, headers={'Accept': 'application/vnd.github+json'})
    response.raise_for_status()

    data = response.json()
    if not isinstance(data, dict):
        raise ValueError("发布信息格式无效")
    tag = data.get('tag_name')
    if not tag:
        raise ValueError("发布信息中没有版本标签")

    return {
        'version': tag.lstrip('v'),
        'url': data.get('html_url', f"https://github.com/{owner}/{repo}/releases/latest"),
    }


def get_update_notification(current: str = __version__) -> Optional[str]:
    """
    获取单行的更新提示

    已是最新版本或检查失败时返回 None，不会打断正常运行。
    """
    try:
        latest = fetch_latest_release()
        if Version(latest['version']) <= Version(current):
            return None
    except (requests.RequestException, ValueError, InvalidVersion) as e:
        logger.debug(f"检查更新失败: {e}")
        return None

    return f"发现新版本: {current} → {latest['version']} - 下载地址: {latest['url']}"
