"""Customer (tenant) model"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.orm import relationship

from certsync.core.database import Base


class Customer(Base):
    """Hosting customer owning domains"""
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    loginname = Column(String(50), unique=True, nullable=False, index=True)
    deactivated = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    domains = relationship("Domain", back_populates="customer", cascade="all, delete-orphan")
