from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Index
from database import Base

from .enums import IPStatus


class IPAddress(Base):
    """SQLAlchemy model for a single IPv4 address inside a network."""

    __tablename__ = "ip_addresses"

    id = Column(Integer, primary_key=True, index=True)

    # Unique across the whole system, not just per network
    address = Column(String(15), unique=True, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=IPStatus.AVAILABLE.value)
    description = Column(Text, nullable=True)

    network_id = Column(Integer, ForeignKey("networks.id"), nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_ip_address_network_id", "network_id"),
        Index("idx_ip_address_status", "status"),
    )

    def __repr__(self):
        return f"<IPAddress(id={self.id}, address={self.address}, status={self.status})>"
