"""X.509 certificate helpers"""
import logging
from typing import Optional
from datetime import datetime, timezone
from cryptography import x509

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1)


class SSLService:
    """Parsing of PEM certificates written by acme.sh"""

    @staticmethod
    def _normalize_cert_dt(dt: Optional[datetime]) -> Optional[datetime]:
        """Convert to naive UTC, the way expiration dates are stored"""
        if dt is None:
            return None
        if dt.tzinfo is not None:
            return dt.astimezone(timezone.utc).replace(tzinfo=None)
        return dt

    @staticmethod
    def _not_after(cert: x509.Certificate) -> datetime:
        # cryptography >= 42 exposes the timezone-aware variant
        try:
            return cert.not_valid_after_utc
        except AttributeError:
            return cert.not_valid_after.replace(tzinfo=timezone.utc)

    @staticmethod
    def get_expiration(cert_pem: Optional[str]) -> Optional[datetime]:
        """notAfter of the certificate as naive UTC, None if it cannot be parsed"""
        if not cert_pem:
            return None
        try:
            cert = x509.load_pem_x509_certificate(cert_pem.encode())
            return SSLService._normalize_cert_dt(SSLService._not_after(cert))
        except ValueError as e:
            logger.error(f"Failed to parse certificate: {e}")
            return None

    @staticmethod
    def is_newer(expiration: Optional[datetime], reference: Optional[datetime]) -> bool:
        """Whether ``expiration`` is strictly later than ``reference`` (None = epoch)"""
        if expiration is None:
            return False
        reference = SSLService._normalize_cert_dt(reference) or EPOCH
        return SSLService._normalize_cert_dt(expiration) > reference
