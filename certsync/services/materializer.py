"""Persisting certificates written by acme.sh"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from certsync.core.config import Settings, settings as default_settings
from certsync.models.certificate import CertificateRecord, PLATFORM_DOMAIN_ID
from certsync.models.domain import SSLRedirect
from certsync.schemas.certificate import CertificateFiles, DomainCertificateRequest
from certsync.services.acme_locator import AcmeLocator
from certsync.services.cron_log import CronLog
from certsync.services.domain_service import DomainService
from certsync.services.ssl_service import SSLService

logger = logging.getLogger(__name__)


class CertificateMaterializer:
    """Reads acme.sh artifacts and upserts them as the domain's certificate record"""

    def __init__(
        self,
        db: AsyncSession,
        config: Settings = default_settings,
        locator: Optional[AcmeLocator] = None,
        domains: Optional[DomainService] = None,
    ):
        self.db = db
        self.settings = config
        self.locator = locator or AcmeLocator(config)
        self.domains = domains or DomainService(db)

    @staticmethod
    def build_upsert(dialect: str, domain_id: int, values: Dict[str, Any], created_at: datetime):
        """
        INSERT of a certificate record that updates ``values`` when the
        domain already has one
        """
        if dialect in ("mysql", "mariadb"):
            stmt = mysql.insert(CertificateRecord).values(domain_id=domain_id, created_at=created_at, **values)
            return stmt.on_duplicate_key_update({key: stmt.inserted[key] for key in values})

        if dialect == "postgresql":
            stmt = postgresql.insert(CertificateRecord)
        elif dialect == "sqlite":
            stmt = sqlite.insert(CertificateRecord)
        else:
            raise NotImplementedError(f"Certificate upsert is not supported on {dialect}")
        stmt = stmt.values(domain_id=domain_id, created_at=created_at, **values)
        return stmt.on_conflict_do_update(
            index_elements=[CertificateRecord.domain_id],
            set_={key: stmt.excluded[key] for key in values},
        )

    async def upsert_record(self, domain_id: int, files: CertificateFiles, expirationdate: datetime):
        """Replace the certificate record of ``domain_id`` in one statement"""
        now = datetime.utcnow()
        values = {
            "ssl_cert_file": files.crt,
            "ssl_key_file": files.key,
            "ssl_ca_file": files.chain,
            "ssl_cert_chainfile": files.chain,
            "ssl_fullchain_file": files.fullchain,
            "ssl_csr_file": files.csr,
            "expirationdate": expirationdate,
            "updated_at": now,
        }
        dialect = self.db.get_bind().dialect.name
        await self.db.execute(self.build_upsert(dialect, domain_id, values, now))

    async def materialize(self, request: DomainCertificateRequest, log: CronLog, acme_output: Optional[List[str]] = None) -> bool:
        """
        Store the certificate acme.sh holds for ``request``.

        Returns False without touching storage when no parsable leaf
        certificate exists; the candidate is then picked up again next run.
        """
        output = "\n".join(acme_output or [])
        files = self.locator.read_certificate_files(request.domain, log)

        if not files.crt:
            log.error(f"Could not get Let's Encrypt certificate for {request.domain}", output or None)
            await self.db.commit()
            return False

        expirationdate = SSLService.get_expiration(files.crt)
        if expirationdate is None:
            log.error(f"Got non-successful Let's Encrypt response for {request.domain}", output or None)
            await self.db.commit()
            return False

        await self.upsert_record(request.domain_id, files, expirationdate)

        if request.ssl_redirect == SSLRedirect.AFTER_CERTIFICATE.value:
            if request.domain_id == PLATFORM_DOMAIN_ID:
                log.info("Platform redirect is configured through PLATFORM_SSL_REDIRECT, leaving it unchanged")
            elif await self.domains.enable_ssl_redirect(request.domain_id):
                log.info(f"Enabled SSL redirect for {request.domain}")

        log.success(f"Updated Let's Encrypt certificate for {request.domain}", f"Valid until: {expirationdate}")
        await self.db.commit()
        return True
