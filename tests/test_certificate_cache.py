"""
证书缓存测试
"""
import os
import stat
import pytest

from cryptography.hazmat.primitives import hashes

from esxi_cert_manager.services.certificate_cache import CertificateCache

from doubles import certificate_with_remaining, make_certificate


class TestCertificateCache:
    """证书缓存测试类"""

    @pytest.fixture(autouse=True)
    def _cache_dir(self, tmp_path):
        self.cache_dir = str(tmp_path / "esxi-cert-cache")
        self.cache = CertificateCache(cache_dir=self.cache_dir)

    def _store(self, test_cert, hostname="esxi.example.com"):
        return self.cache.put(hostname, test_cert.pem, test_cert.key_pem)

    def test_paths_for(self):
        """测试缓存文件命名"""
        cert_path, key_path = self.cache.paths_for("esxi.example.com")

        assert cert_path == os.path.join(self.cache_dir, "esxi.example.com-cert.pem")
        assert key_path == os.path.join(self.cache_dir, "esxi.example.com-key.pem")

    def test_fresh_certificate_is_reused(self):
        """测试剩余60%的缓存证书会被复用"""
        test_cert = certificate_with_remaining(0.6)
        self._store(test_cert)

        record = self.cache.get("esxi.example.com")

        assert record is not None
        assert record.certificate == test_cert.pem
        assert record.private_key == test_cert.key_pem
        assert record.cert_path.endswith("esxi.example.com-cert.pem")

    def test_half_used_certificate_is_not_reused(self):
        """测试剩余40%的缓存证书不会被复用（比续期阈值更严格）"""
        self._store(certificate_with_remaining(0.4))

        assert self.cache.get("esxi.example.com") is None

    def test_expired_certificate_is_not_reused(self):
        """测试已过期的缓存证书"""
        self._store(certificate_with_remaining(-0.1))

        assert self.cache.get("esxi.example.com") is None

    def test_not_yet_valid_certificate_is_not_reused(self):
        """测试尚未生效的缓存证书"""
        self._store(certificate_with_remaining(1.2))

        assert self.cache.get("esxi.example.com") is None

    def test_force_bypasses_cache(self):
        """测试强制续期时忽略缓存"""
        self._store(certificate_with_remaining(0.9))
        forced = CertificateCache(cache_dir=self.cache_dir, force=True)

        assert forced.get("esxi.example.com") is None

    def test_ecdsa_certificate_is_not_reused(self):
        """测试非RSA签名的缓存证书"""
        self._store(make_certificate(key_type="ec"))

        assert self.cache.get("esxi.example.com") is None

    def test_sha384_certificate_is_not_reused(self):
        """测试非SHA256签名的缓存证书"""
        self._store(make_certificate(hash_algorithm=hashes.SHA384()))

        assert self.cache.get("esxi.example.com") is None

    def test_missing_key_file(self):
        """测试只有证书文件没有私钥文件"""
        record = self._store(certificate_with_remaining(0.9))
        os.remove(record.key_path)

        assert self.cache.get("esxi.example.com") is None

    def test_missing_cache_dir(self):
        """测试缓存目录不存在"""
        assert self.cache.get("esxi.example.com") is None
        assert not os.path.exists(self.cache_dir)

    def test_corrupted_certificate(self):
        """测试损坏的缓存证书"""
        self.cache.put("esxi.example.com", b"garbage", b"garbage")

        assert self.cache.get("esxi.example.com") is None

    def test_corrupted_key_file(self):
        """测试证书有效但私钥文件损坏"""
        test_cert = certificate_with_remaining(0.9)
        self.cache.put("esxi.example.com", test_cert.pem, b"not a key at all")

        assert self.cache.get("esxi.example.com") is None

    def test_truncated_key_file(self):
        """测试私钥文件被截断"""
        test_cert = certificate_with_remaining(0.9)
        self.cache.put("esxi.example.com", test_cert.pem, test_cert.key_pem[:200])

        assert self.cache.get("esxi.example.com") is None

    def test_key_not_matching_certificate(self):
        """测试私钥与证书不匹配"""
        test_cert = certificate_with_remaining(0.9)
        other_key = make_certificate(key_type="ec").key_pem
        self.cache.put("esxi.example.com", test_cert.pem, other_key)

        assert self.cache.get("esxi.example.com") is None

    def test_get_is_idempotent(self):
        """测试多次读取缓存结果一致"""
        self._store(certificate_with_remaining(0.8))

        first = self.cache.get("esxi.example.com")
        second = self.cache.get("esxi.example.com")

        assert first == second

    def test_hosts_are_cached_separately(self):
        """测试不同主机的缓存互不影响"""
        self._store(certificate_with_remaining(0.8), hostname="esxi01.example.com")

        assert self.cache.get("esxi01.example.com") is not None
        assert self.cache.get("esxi02.example.com") is None

    def test_put_sets_owner_only_permissions(self):
        """测试缓存文件权限为0600，目录权限为0700"""
        record = self._store(certificate_with_remaining(0.8))

        assert stat.S_IMODE(os.stat(record.cert_path).st_mode) == 0o600
        assert stat.S_IMODE(os.stat(record.key_path).st_mode) == 0o600
        assert stat.S_IMODE(os.stat(self.cache_dir).st_mode) & 0o077 == 0

    def test_put_overwrites_existing_entry(self):
        """测试覆盖已有缓存并修正权限"""
        record = self._store(certificate_with_remaining(0.8))
        os.chmod(record.cert_path, 0o644)
        newer = certificate_with_remaining(0.95)

        self._store(newer)

        with open(record.cert_path, 'rb') as f:
            assert f.read() == newer.pem
        assert stat.S_IMODE(os.stat(record.cert_path).st_mode) == 0o600
