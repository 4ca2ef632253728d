"""Certificate models"""
from datetime import datetime
from sqlalchemy import Column, Integer, DateTime, Text

from certsync.core.database import Base

# Certificate record identifier of the platform's own vhost
PLATFORM_DOMAIN_ID = 0


class CertificateRecord(Base):
    """
    Stored certificate of one domain.

    domain_id 0 belongs to the platform vhost, which has no row in ``domains``,
    so the column carries a unique index instead of a foreign key.
    """
    __tablename__ = "domain_ssl_settings"

    id = Column(Integer, primary_key=True, index=True)
    domain_id = Column(Integer, unique=True, nullable=False, index=True)

    # PEM data as written by acme.sh
    ssl_cert_file = Column(Text, nullable=True)
    ssl_key_file = Column(Text, nullable=True)
    ssl_ca_file = Column(Text, nullable=True)
    ssl_cert_chainfile = Column(Text, nullable=True)
    ssl_fullchain_file = Column(Text, nullable=True)
    ssl_csr_file = Column(Text, nullable=True)

    # Validity (naive UTC)
    expirationdate = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
