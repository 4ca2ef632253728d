"""Subject alternative names and DNS pre-validation"""
import ipaddress
import logging
import re
from functools import partial
from typing import Callable, Iterable, List, Optional, Set

import dns.exception
import dns.resolver
from sqlalchemy.ext.asyncio import AsyncSession

from certsync.core.config import Settings, settings as default_settings
from certsync.core.exceptions import ConfigurationError
from certsync.models.certificate import PLATFORM_DOMAIN_ID
from certsync.models.domain import SSLRedirect
from certsync.schemas.certificate import DomainCertificateRequest
from certsync.services.cron_log import CronLog
from certsync.services.domain_service import DomainService

logger = logging.getLogger(__name__)

DOMAIN_RE = re.compile(
    r"^(?=.{1,253}$)[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?)+$"
)

Resolver = Callable[[str], Set[str]]


def validate_domain(name: str) -> bool:
    """Syntactic hostname check (at least two labels)"""
    return bool(name) and DOMAIN_RE.match(name) is not None


def _normalize_ip(value: str) -> Optional[str]:
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def make_resolver(nameservers: Optional[List[str]] = None) -> Optional[dns.resolver.Resolver]:
    """
    Resolver using ``nameservers``, or the system configuration when none are given.

    A malformed nameserver is a configuration error. A host without a usable
    resolver configuration gets None, so every lookup finds nothing.
    """
    if nameservers:
        resolver = dns.resolver.Resolver(configure=False)
        try:
            resolver.nameservers = nameservers
        except ValueError as e:
            raise ConfigurationError(f"Invalid LETSENCRYPT_DNS_NAMESERVERS: {e}") from e
        return resolver
    try:
        return dns.resolver.Resolver()
    except dns.exception.DNSException as e:
        logger.error(f"No usable system DNS resolver, DNS validation will not match: {e}")
        return None


def resolve_host_ips(hostname: str, resolver: Optional[dns.resolver.Resolver]) -> Set[str]:
    """A and AAAA records of ``hostname``; empty on any resolution failure"""
    ips = set()
    if resolver is None:
        return ips
    for rdtype in ("A", "AAAA"):
        try:
            answers = resolver.resolve(hostname, rdtype)
        except dns.exception.DNSException as e:
            logger.debug(f"No {rdtype} records for {hostname}: {e}")
            continue
        ips.update(r.to_text() for r in answers)
    return ips


class SANService:
    """Builds the SAN list of a certificate request and prunes it by DNS"""

    def __init__(
        self,
        db: AsyncSession,
        config: Settings = default_settings,
        resolver: Optional[Resolver] = None,
        domains: Optional[DomainService] = None,
    ):
        self.db = db
        self.settings = config
        self.domains = domains or DomainService(db)
        if resolver is None:
            dns_resolver = make_resolver(config.dns_nameservers) if config.LETSENCRYPT_DNS_CHECK else None
            resolver = partial(resolve_host_ips, resolver=dns_resolver)
        self.resolver = resolver

    @staticmethod
    def should_skip(request: DomainCertificateRequest) -> bool:
        return request.ssl_redirect == SSLRedirect.BROKEN.value

    @staticmethod
    def needs_force(request: DomainCertificateRequest) -> bool:
        """A certificate is stored but its expiration is unknown, e.g. after the SAN set changed"""
        return bool(request.ssl_cert_file) and request.expirationdate is None

    @staticmethod
    def _append(sans: List[str], name: str, log: CronLog):
        name = name.strip().lower()
        if name and name not in sans:
            log.info(f"Adding SAN entry: {name}")
            sans.append(name)

    async def build_san_list(self, request: DomainCertificateRequest, log: CronLog) -> List[str]:
        common_name = request.domain.strip().lower()
        log.info(f"Adding common-name: {common_name}")
        sans = [common_name]

        if request.wwwserveralias:
            self._append(sans, f"www.{common_name}", log)

        if request.domain_id == PLATFORM_DOMAIN_ID:
            for alias in self.settings.platform_aliases:
                if validate_domain(alias):
                    self._append(sans, alias, log)
                else:
                    log.warning(f"Ignoring invalid platform alias '{alias}'")
        else:
            for alias in await self.domains.get_alias_domains(request.domain_id):
                self._append(sans, alias.domain, log)
                if alias.wwwserveralias:
                    self._append(sans, f"www.{alias.domain}", log)
        return sans

    async def validate_dns(self, sans: Iterable[str], domain_id: int, log: CronLog) -> List[str]:
        """
        Drop every SAN that does not resolve to an IP of the domain.

        A mismatch disables certificate automation for the domain permanently
        so the next runs do not request the same failing certificate again.
        """
        sans = list(sans)
        if not self.settings.LETSENCRYPT_DNS_CHECK or not sans:
            return sans

        our_ips = {ip for ip in map(_normalize_ip, await self.domains.get_ips_of_domain(domain_id)) if ip}
        valid = []
        for san in sans:
            log.info(f"Validating DNS of {san}")
            try:
                resolved = self.resolver(san) or ()
            except dns.exception.DNSException as e:
                log.warning(f"DNS lookup of {san} failed: {e}")
                resolved = ()
            domain_ips = {ip for ip in map(_normalize_ip, resolved) if ip}
            if our_ips & domain_ips:
                valid.append(san)
                continue

            log.warning(f"Skipping Let's Encrypt generation for {san} due to no system known IP address via DNS check")
            if await self.domains.disable_letsencrypt(domain_id):
                log.warning(f"Let's Encrypt deactivated for domain {san}")
        if len(valid) != len(sans):
            await self.db.commit()
        return valid
