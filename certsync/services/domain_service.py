"""Domain service"""
from typing import List, Set
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from certsync.models.domain import Domain, IPAddress, SSLRedirect, domain_to_ip
from certsync.models.certificate import PLATFORM_DOMAIN_ID


class DomainService:
    """Domain reads and the flag updates the certificate run is allowed to make"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_alias_domains(self, domain_id: int) -> List[Domain]:
        """Alias domains sharing the certificate of ``domain_id``"""
        result = await self.db.execute(
            select(Domain)
            .where(
                Domain.aliasdomain == domain_id,
                Domain.letsencrypt.is_(True),
                Domain.iswildcarddomain.is_(False),
            )
            .order_by(Domain.id)
        )
        return list(result.scalars().all())

    async def get_ips_of_domain(self, domain_id: int) -> Set[str]:
        """IPs the platform serves the domain on; every platform IP for the platform vhost"""
        if domain_id == PLATFORM_DOMAIN_ID:
            query = select(IPAddress.ip).distinct()
        else:
            query = (
                select(IPAddress.ip)
                .join(domain_to_ip, domain_to_ip.c.id_ipandports == IPAddress.id)
                .where(domain_to_ip.c.id_domain == domain_id)
                .distinct()
            )
        result = await self.db.execute(query)
        return set(result.scalars().all())

    async def disable_letsencrypt(self, domain_id: int) -> bool:
        """Turn off certificate automation. Returns False if it was already off"""
        result = await self.db.execute(
            update(Domain)
            .where(Domain.id == domain_id, Domain.letsencrypt.is_(True))
            .values(letsencrypt=False)
        )
        await self.db.flush()
        return result.rowcount > 0

    async def enable_ssl_redirect(self, domain_id: int) -> bool:
        """Switch a pending redirect to enabled"""
        result = await self.db.execute(
            update(Domain)
            .where(Domain.id == domain_id, Domain.ssl_redirect == SSLRedirect.AFTER_CERTIFICATE.value)
            .values(ssl_redirect=SSLRedirect.ENABLED.value)
        )
        await self.db.flush()
        return result.rowcount > 0
