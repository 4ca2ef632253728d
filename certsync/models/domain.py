"""Domain models"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, Table, Text
from sqlalchemy.orm import relationship
import enum

from certsync.core.database import Base


class SSLRedirect(int, enum.Enum):
    """Values of Domain.ssl_redirect"""
    DISABLED = 0
    ENABLED = 1
    BROKEN = 2  # redirect misconfigured, never issue certificates
    AFTER_CERTIFICATE = 3  # enable redirect once a certificate exists


domain_to_ip = Table(
    "domain_to_ip",
    Base.metadata,
    Column("id_domain", Integer, ForeignKey("domains.id", ondelete="CASCADE"), primary_key=True),
    Column("id_ipandports", Integer, ForeignKey("ips_and_ports.id", ondelete="CASCADE"), primary_key=True),
)


class Domain(Base):
    """Domain model"""
    __tablename__ = "domains"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    domain = Column(String(255), unique=True, nullable=False, index=True)
    documentroot = Column(Text, nullable=False, default="")

    # Certificate automation
    letsencrypt = Column(Boolean, default=False, nullable=False)
    iswildcarddomain = Column(Boolean, default=False, nullable=False)
    wwwserveralias = Column(Boolean, default=True, nullable=False)
    aliasdomain = Column(Integer, ForeignKey("domains.id"), nullable=True, index=True)
    ssl_redirect = Column(Integer, default=SSLRedirect.DISABLED.value, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    customer = relationship("Customer", back_populates="domains")
    parent = relationship("Domain", remote_side=[id], back_populates="aliases")
    aliases = relationship("Domain", back_populates="parent")
    ips = relationship("IPAddress", secondary=domain_to_ip, back_populates="domains")


class IPAddress(Base):
    """IP/port combination the platform serves on"""
    __tablename__ = "ips_and_ports"

    id = Column(Integer, primary_key=True, index=True)
    ip = Column(String(39), nullable=False, index=True)
    port = Column(Integer, default=80, nullable=False)
    ssl = Column(Boolean, default=False, nullable=False)

    # Relationships
    domains = relationship("Domain", secondary=domain_to_ip, back_populates="ips")
