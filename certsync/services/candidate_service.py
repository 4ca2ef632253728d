"""Selection of domains needing certificate issuance or renewal"""
import logging
from datetime import datetime
from typing import List, Optional, Union
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from certsync.core.config import Settings, settings as default_settings
from certsync.models.certificate import CertificateRecord, PLATFORM_DOMAIN_ID
from certsync.models.customer import Customer
from certsync.models.domain import Domain
from certsync.schemas.certificate import DomainCertificateRequest
from certsync.services.acme_locator import AcmeLocator

logger = logging.getLogger(__name__)

PLATFORM_LOGINNAME = "platform.panel"


class CandidateService:
    """Builds the issue and renew work lists; nothing is cached between calls"""

    def __init__(self, db: AsyncSession, config: Settings = default_settings, locator: Optional[AcmeLocator] = None):
        self.db = db
        self.settings = config
        self.locator = locator or AcmeLocator(config)

    def _managed_domains_query(self):
        return (
            select(Domain, Customer, CertificateRecord)
            .join(Customer, Domain.customer_id == Customer.id)
            .outerjoin(CertificateRecord, CertificateRecord.domain_id == Domain.id)
            .where(
                Customer.deactivated.is_(False),
                Domain.letsencrypt.is_(True),
                Domain.aliasdomain.is_(None),
                Domain.iswildcarddomain.is_(False),
            )
            .order_by(Domain.id)
            .execution_options(populate_existing=True)
        )

    @staticmethod
    def _to_request(domain: Domain, customer: Customer, record: Optional[CertificateRecord]) -> DomainCertificateRequest:
        return DomainCertificateRequest(
            loginname=customer.loginname,
            domain=domain.domain,
            domain_id=domain.id,
            documentroot=domain.documentroot or "",
            wwwserveralias=bool(domain.wwwserveralias),
            ssl_redirect=domain.ssl_redirect,
            expirationdate=record.expirationdate if record else None,
            ssl_cert_file=record.ssl_cert_file if record else None,
            ssl_key_file=record.ssl_key_file if record else None,
            ssl_ca_file=record.ssl_ca_file if record else None,
            ssl_csr_file=record.ssl_csr_file if record else None,
            record_id=record.id if record else None,
        )

    def platform_request(self, record: Optional[CertificateRecord] = None) -> DomainCertificateRequest:
        """Request for the platform's own management vhost"""
        return DomainCertificateRequest(
            loginname=PLATFORM_LOGINNAME,
            domain=self.settings.PLATFORM_HOSTNAME,
            domain_id=PLATFORM_DOMAIN_ID,
            documentroot=self.settings.PLATFORM_INSTALL_DIR,
            wwwserveralias=False,
            ssl_redirect=self.settings.PLATFORM_SSL_REDIRECT,
            expirationdate=record.expirationdate if record else None,
            ssl_cert_file=record.ssl_cert_file if record else None,
            ssl_key_file=record.ssl_key_file if record else None,
            ssl_ca_file=record.ssl_ca_file if record else None,
            ssl_csr_file=record.ssl_csr_file if record else None,
            record_id=record.id if record else None,
        )

    async def get_platform_record(self) -> Optional[CertificateRecord]:
        result = await self.db.execute(
            select(CertificateRecord)
            .where(CertificateRecord.domain_id == PLATFORM_DOMAIN_ID)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def issue_platform_vhost(self) -> bool:
        """The platform vhost has neither a stored nor an adoptable certificate"""
        if not self.settings.PLATFORM_LETSENCRYPT_ENABLED:
            return False
        if await self.get_platform_record() is not None:
            return False
        return not self.locator.is_filesystem_cert_newer(self.settings.PLATFORM_HOSTNAME, datetime.utcnow())

    async def issue_domains(self) -> List[DomainCertificateRequest]:
        """Domains without a certificate or with an unknown expiration"""
        result = await self.db.execute(
            self._managed_domains_query().where(CertificateRecord.expirationdate.is_(None))
        )
        return [self._to_request(domain, customer, record) for domain, customer, record in result.all()]

    async def renew_platform_vhost(self) -> Optional[CertificateRecord]:
        """Stored platform certificate that acme.sh has already renewed on disk"""
        if not self.settings.PLATFORM_LETSENCRYPT_ENABLED:
            return None
        record = await self.get_platform_record()
        if record is not None and self.locator.is_filesystem_cert_newer(self.settings.PLATFORM_HOSTNAME, record.expirationdate):
            return record
        return None

    async def renew_domains(self, check: bool = False) -> Union[List[DomainCertificateRequest], bool]:
        """
        Domains with a known certificate expiration.

        With ``check`` only report whether any of them has a newer certificate
        on disk than recorded.
        """
        result = await self.db.execute(
            self._managed_domains_query().where(CertificateRecord.expirationdate.isnot(None))
        )
        requests = [self._to_request(domain, customer, record) for domain, customer, record in result.all()]
        if check:
            return any(
                self.locator.is_filesystem_cert_newer(request.domain, request.expirationdate)
                for request in requests
            )
        return requests

    async def needs_run(self) -> bool:
        """Cheap check whether a full run would have anything to do"""
        if await self.issue_platform_vhost():
            logger.info("Platform vhost needs a certificate")
            return True
        issue = await self.issue_domains()
        if issue:
            logger.info(f"{len(issue)} domains need a certificate")
            return True
        if await self.renew_platform_vhost() is not None:
            logger.info("Platform vhost certificate was renewed on disk")
            return True
        if await self.renew_domains(check=True):
            logger.info("Domain certificates were renewed on disk")
            return True
        return False
