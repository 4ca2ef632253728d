"""
Tests for resolving acme.sh working directories and reading certificates from them.
"""
from __future__ import annotations

from datetime import datetime
from pathlib import Path

from certsync.services.acme_locator import AcmeLocator
from certsync.services.cron_log import CronLog
from certsync.services.ssl_service import SSLService

from conftest import make_certificate, write_acme_files


def _acme_home(config) -> Path:
    return Path(config.ACME_SH_PATH).parent


class TestResolveWorkingDir:

    def test_defaults_to_install_dir(self, config):
        locator = AcmeLocator(config)
        assert locator.resolve_working_dir("Example.COM") == _acme_home(config) / "example.com"

    def test_reads_working_dir_from_env_file(self, config, tmp_path):
        (_acme_home(config) / "acme.sh.env").write_text(
            'export LE_WORKING_DIR="/srv/acme"\nalias acme.sh="/srv/acme/acme.sh"\n'
        )
        locator = AcmeLocator(config)
        assert locator.resolve_working_dir("example.com") == Path("/srv/acme/example.com")

    def test_empty_env_value_falls_back(self, config):
        (_acme_home(config) / "acme.sh.env").write_text('export LE_WORKING_DIR=""\n')
        locator = AcmeLocator(config)
        assert locator.resolve_working_dir("example.com") == _acme_home(config) / "example.com"

    def test_ecc_suffix(self, config):
        locator = AcmeLocator(config.model_copy(update={"LETSENCRYPT_ECC": 384}))
        assert locator.resolve_working_dir("example.com").name == "example.com_ecc"
        assert locator.resolve_working_dir("example.com", prefer_ecc=False).name == "example.com"

    def test_locate_falls_back_to_plain_dir_when_ecc_missing(self, config):
        locator = AcmeLocator(config.model_copy(update={"LETSENCRYPT_ECC": 256}))
        assert locator.locate_working_dir("example.com").name == "example.com"

        (_acme_home(config) / "example.com_ecc").mkdir()
        assert locator.locate_working_dir("example.com").name == "example.com_ecc"


class TestFilesystemCertNewer:

    def test_newer_certificate(self, config):
        cert_pem, key_pem = make_certificate("example.com", datetime(2030, 6, 1))
        write_acme_files(_acme_home(config) / "example.com", "example.com", cert_pem, key_pem)
        locator = AcmeLocator(config)

        assert locator.is_filesystem_cert_newer("example.com", datetime(2030, 1, 1))
        assert locator.is_filesystem_cert_newer("example.com", None)

    def test_equal_or_older_certificate_is_not_newer(self, config):
        cert_pem, key_pem = make_certificate("example.com", datetime(2030, 6, 1))
        write_acme_files(_acme_home(config) / "example.com", "example.com", cert_pem, key_pem)
        locator = AcmeLocator(config)

        assert not locator.is_filesystem_cert_newer("example.com", datetime(2030, 6, 1))
        assert not locator.is_filesystem_cert_newer("example.com", datetime(2031, 1, 1))

    def test_missing_certificate(self, config):
        assert not AcmeLocator(config).is_filesystem_cert_newer("missing.example.com", None)

    def test_corrupt_certificate(self, config):
        write_acme_files(_acme_home(config) / "example.com", "example.com", "garbage")
        assert not AcmeLocator(config).is_filesystem_cert_newer("example.com", None)


class TestReadCertificateFiles:

    def test_reads_all_artifacts(self, config):
        cert_pem, key_pem = make_certificate("example.com", datetime(2030, 6, 1))
        write_acme_files(_acme_home(config) / "example.com", "example.com", cert_pem, key_pem)

        files = AcmeLocator(config).read_certificate_files("EXAMPLE.com", CronLog(None))

        assert files.crt == cert_pem
        assert files.key == key_pem
        assert files.chain == "CHAIN"
        assert files.fullchain == cert_pem + "CHAIN"
        assert files.csr == "CSR"

    def test_missing_files_are_none(self, config):
        cert_pem, _ = make_certificate("example.com", datetime(2030, 6, 1))
        write_acme_files(_acme_home(config) / "example.com", "example.com", cert_pem, with_extras=False)

        files = AcmeLocator(config).read_certificate_files("example.com", CronLog(None))

        assert files.crt == cert_pem
        assert files.chain is None
        assert files.fullchain is None
        assert files.csr is None

    def test_undecodable_file_is_none(self, config):
        cert_pem, key_pem = make_certificate("example.com", datetime(2030, 6, 1))
        folder = _acme_home(config) / "example.com"
        write_acme_files(folder, "example.com", cert_pem, key_pem)
        (folder / "example.com.cer").write_bytes(b"\x30\x82\xff\xfe")

        locator = AcmeLocator(config)
        files = locator.read_certificate_files("example.com", CronLog(None))

        assert files.crt is None
        assert files.key == key_pem
        assert locator.get_filesystem_expiration("example.com") is None

    def test_missing_folder(self, config):
        files = AcmeLocator(config).read_certificate_files("example.com", CronLog(None))
        assert files.crt is None and files.key is None

    def test_ecc_falls_back_to_plain_files_per_file(self, config):
        ecc_config = config.model_copy(update={"LETSENCRYPT_ECC": 256})
        cert_pem, key_pem = make_certificate("example.com", datetime(2030, 6, 1))
        ecc_dir = _acme_home(config) / "example.com_ecc"
        ecc_dir.mkdir()
        (ecc_dir / "example.com.cer").write_text(cert_pem)
        write_acme_files(_acme_home(config) / "example.com", "example.com", "OLD", key_pem)

        files = AcmeLocator(ecc_config).read_certificate_files("example.com", CronLog(None))

        assert files.crt == cert_pem
        assert files.key == key_pem
        assert files.chain == "CHAIN"


class TestSSLService:

    def test_expiration_is_naive_utc(self):
        cert_pem, _ = make_certificate("example.com", datetime(2030, 6, 1, 12, 30))
        expiration = SSLService.get_expiration(cert_pem)
        assert expiration == datetime(2030, 6, 1, 12, 30)
        assert expiration.tzinfo is None

    def test_unparsable_certificate(self):
        assert SSLService.get_expiration("not a certificate") is None
        assert SSLService.get_expiration("") is None
