"""Certificate run log models"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, Enum as SQLEnum
import enum

from certsync.core.database import Base


class CertificateLogLevel(str, enum.Enum):
    """Log level"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class CertificateLog(Base):
    """Per-tenant certificate log entry"""
    __tablename__ = "certificate_logs"

    id = Column(Integer, primary_key=True, index=True)
    loginname = Column(String(50), nullable=False, index=True)
    domain_id = Column(Integer, nullable=True, index=True)

    level = Column(SQLEnum(CertificateLogLevel), default=CertificateLogLevel.INFO, nullable=False)
    message = Column(Text, nullable=False)
    details = Column(Text, nullable=True)  # e.g. captured acme.sh output

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
