"""Locating acme.sh certificate artifacts on disk"""
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Optional

from certsync.core.config import Settings, settings as default_settings
from certsync.schemas.certificate import CertificateFiles
from certsync.services.cron_log import CronLog
from certsync.services.ssl_service import SSLService

logger = logging.getLogger(__name__)

ENV_FILE_NAME = "acme.sh.env"
ECC_SUFFIX = "_ecc"

_WORKING_DIR_RE = re.compile(r'LE_WORKING_DIR=["\']?([^"\'\n]*)')


class AcmeLocator:
    """Resolves acme.sh working directories and reads the files in them"""

    def __init__(self, config: Settings = default_settings):
        self.settings = config

    @property
    def install_dir(self) -> Path:
        return Path(self.settings.ACME_SH_PATH).parent

    def _base_dir(self) -> Path:
        """LE_WORKING_DIR from acme.sh.env, falling back to the install directory"""
        env_file = self.install_dir / ENV_FILE_NAME
        if env_file.is_file():
            try:
                content = env_file.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Could not read {env_file}: {e}")
                return self.install_dir
            for match in _WORKING_DIR_RE.finditer(content):
                value = match.group(1).strip()
                if value:
                    return Path(value)
        return self.install_dir

    def resolve_working_dir(self, domain: str, prefer_ecc: bool = True) -> Path:
        name = domain.lower()
        if self.settings.use_ecc and prefer_ecc:
            name += ECC_SUFFIX
        return self._base_dir() / name

    def locate_working_dir(self, domain: str) -> Path:
        """ECC directory if it exists, otherwise the plain one"""
        preferred = self.resolve_working_dir(domain)
        if self.settings.use_ecc and not preferred.is_dir():
            return self.resolve_working_dir(domain, prefer_ecc=False)
        return preferred

    def certificate_path(self, domain: str) -> Path:
        return self.locate_working_dir(domain) / f"{domain.lower()}.cer"

    def get_filesystem_expiration(self, domain: str) -> Optional[datetime]:
        cert_file = self.certificate_path(domain)
        if not cert_file.is_file():
            return None
        try:
            return SSLService.get_expiration(cert_file.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read certificate {cert_file}: {e}")
            return None

    def is_filesystem_cert_newer(self, domain: str, reference: Optional[datetime] = None) -> bool:
        """Whether acme.sh holds a certificate valid beyond ``reference``"""
        return SSLService.is_newer(self.get_filesystem_expiration(domain), reference)

    def read_certificate_files(self, domain: str, log: CronLog) -> CertificateFiles:
        domain = domain.lower()
        folder = self.resolve_working_dir(domain)
        folder_noecc = self.resolve_working_dir(domain, prefer_ecc=False) if self.settings.use_ecc else None

        if not folder.is_dir() and not (folder_noecc and folder_noecc.is_dir()):
            log.error(f"Could not find certificate-folder '{folder}'")
            return CertificateFiles()

        files = {
            "crt": f"{domain}.cer",
            "key": f"{domain}.key",
            "chain": "ca.cer",
            "fullchain": "fullchain.cer",
            "csr": f"{domain}.csr",
        }
        result = {}
        for slot, filename in files.items():
            path = folder / filename
            if not path.is_file() and folder_noecc is not None and (folder_noecc / filename).is_file():
                log.warning("ECC certificates activated but found only non-ecc file", str(folder_noecc / filename))
                path = folder_noecc / filename
            if path.is_file():
                try:
                    result[slot] = path.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError) as e:
                    log.error(f"Could not read file '{path}'", str(e))
                    result[slot] = None
            else:
                log.error(f"Could not find file '{filename}' in '{folder}'")
                result[slot] = None
        return CertificateFiles(**result)
