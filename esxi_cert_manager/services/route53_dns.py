"""
AWS Route53 DNS服务（DNS-01 验证）
"""
import time
import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import CredentialValidationError, IssuanceError


class Route53DNSProvider:
    """
    Route53 TXT 记录管理

    需要以下权限:
    - route53:ListHostedZonesByName
    - route53:ChangeResourceRecordSets
    - route53:ListResourceRecordSets
    - route53:GetChange
    """

    def __init__(self, access_key_id: str = "", secret_access_key: str = "",
                 session_token: str = "", region_name: str = "us-east-1",
                 zone_id: str = "", propagation_timeout: int = 120, poll_interval: int = 4,
                 logger: Optional[logging.Logger] = None):
        """
        初始化Route53服务

        Args:
            access_key_id: AWS Access Key ID，为空时使用默认凭证链
            secret_access_key: AWS Secret Access Key
            session_token: AWS 会话令牌（可选）
            region_name: AWS区域（Route53是全局服务，但SDK需要区域）
            zone_id: 托管区域ID，为空时自动检测
            propagation_timeout: 等待变更同步的最长时间（秒）
            poll_interval: 查询变更状态的间隔（秒）
        """
        self.zone_id = zone_id
        self.region_name = region_name
        self.propagation_timeout = propagation_timeout
        self.poll_interval = poll_interval
        self.logger = logger or logging.getLogger(__name__)

        session_kwargs = {'region_name': region_name}
        if access_key_id and secret_access_key:
            session_kwargs.update(
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                aws_session_token=session_token or None
            )
        self.session = boto3.session.Session(**session_kwargs)
        self.client = self.session.client('route53')

    def verify_credentials(self) -> dict:
        """
        通过 STS GetCallerIdentity 验证AWS凭证

        Returns:
            dict: 调用者身份信息

        Raises:
            CredentialValidationError: 凭证无效
        """
        self.logger.debug("验证AWS凭证...")
        try:
            identity = self.session.client('sts').get_caller_identity()
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            error_msg = e.response.get('Error', {}).get('Message', str(e))
            raise CredentialValidationError(
                f"AWS凭证验证失败 ({error_code}): {error_msg}",
                suggestion="检查 AWS Access Key ID 和 Secret Access Key"
            ) from e
        except BotoCoreError as e:
            raise CredentialValidationError(f"AWS凭证验证失败: {e}") from e

        self.logger.debug(f"AWS凭证验证成功: {identity.get('Arn')}")
        return identity

    def get_zone_id(self, domain: str) -> Optional[str]:
        """
        查找域名所在的托管区域

        依次尝试越来越短的域名后缀，Route53 区域名以点结尾
        """
        if self.zone_id:
            return self.zone_id

        parts = domain.rstrip('.').split('.')
        try:
            for i in range(len(parts) - 1):
                zone_name = '.'.join(parts[i:]) + '.'
                response = self.client.list_hosted_zones_by_name(DNSName=zone_name, MaxItems='1')

                for zone in response.get('HostedZones', []):
                    if zone['Name'] == zone_name and not zone.get('Config', {}).get('PrivateZone'):
                        zone_id = zone['Id'].replace('/hostedzone/', '')
                        self.logger.info(f"找到Route53托管区域: {zone_name} ({zone_id})")
                        return zone_id
        except ClientError as e:
            error_msg = e.response.get('Error', {}).get('Message', str(e))
            raise IssuanceError(f"查询托管区域失败: {error_msg}") from e

        return None

    def create_txt_record(self, name: str, value: str, ttl: int = 60) -> str:
        """
        创建（或更新）TXT 记录并等待同步

        Args:
            name: 记录名，如 _acme-challenge.esxi.example.com
            value: 记录值
            ttl: TTL（秒）

        Returns:
            str: 记录名（不带结尾的点），用于删除
        """
        domain = name.replace('_acme-challenge.', '', 1)
        zone_id = self.get_zone_id(domain)
        if not zone_id:
            raise IssuanceError(
                f"找不到域名 {domain} 的托管区域",
                suggestion="确认该域名托管在Route53中"
            )
        self.zone_id = zone_id

        record_name = name.rstrip('.')
        change_batch = {
            'Comment': 'ACME DNS-01 challenge',
            'Changes': [{
                'Action': 'UPSERT',
                'ResourceRecordSet': {
                    'Name': record_name,
                    'Type': 'TXT',
                    'TTL': ttl,
                    'ResourceRecords': [{'Value': f'"{value}"'}],
                },
            }],
        }

        try:
            response = self.client.change_resource_record_sets(HostedZoneId=zone_id, ChangeBatch=change_batch)
        except ClientError as e:
            error_msg = e.response.get('Error', {}).get('Message', str(e))
            raise IssuanceError(f"创建TXT记录失败: {error_msg}") from e

        change_id = response['ChangeInfo']['Id']
        self.logger.info(f"已创建Route53 TXT记录: {record_name} (变更: {change_id})")
        self._wait_for_change(change_id)
        return record_name

    def delete_txt_record(self, record_name: str) -> bool:
        """删除 TXT 记录，记录不存在时视为成功"""
        if not self.zone_id:
            return False

        try:
            response = self.client.list_resource_record_sets(
                HostedZoneId=self.zone_id,
                StartRecordName=record_name,
                StartRecordType='TXT',
                MaxItems='1'
            )
            records = response.get('ResourceRecordSets', [])
            if (not records or records[0]['Name'].rstrip('.') != record_name.rstrip('.')
                    or records[0]['Type'] != 'TXT'):
                self.logger.warning(f"TXT记录不存在（可能已删除）: {record_name}")
                return True

            self.client.change_resource_record_sets(
                HostedZoneId=self.zone_id,
                ChangeBatch={
                    'Comment': 'ACME DNS-01 challenge cleanup',
                    'Changes': [{'Action': 'DELETE', 'ResourceRecordSet': records[0]}],
                }
            )
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', '')
            if error_code == 'InvalidChangeBatch':
                self.logger.warning(f"TXT记录不存在（可能已删除）: {record_name}")
                return True
            error_msg = e.response.get('Error', {}).get('Message', str(e))
            raise IssuanceError(f"删除TXT记录失败: {error_msg}") from e

        self.logger.info(f"已删除Route53 TXT记录: {record_name}")
        return True

    def _wait_for_change(self, change_id: str):
        elapsed = 0
        while elapsed < self.propagation_timeout:
            status = self.client.get_change(Id=change_id)['ChangeInfo']['Status']
            if status == 'INSYNC':
                self.logger.debug(f"Route53变更 {change_id} 已同步")
                return

            self.logger.debug(f"Route53变更 {change_id} 状态: {status}")
            time.sleep(self.poll_interval)
            elapsed += self.poll_interval

        self.logger.warning(f"Route53变更 {change_id} 在 {self.propagation_timeout} 秒内未完成同步")
