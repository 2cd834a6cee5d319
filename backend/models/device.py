from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from database import Base

from .enums import DeviceSource


class Device(Base):
    """
    SQLAlchemy model for a device occupying (at most) one IP address.

    The Device <-> IPAddress link is stored only here, on ip_address_id.
    The unique constraint keeps it zero-or-one on both sides.
    """

    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(255), nullable=False)
    mac_address = Column(String(17), unique=True, nullable=True, index=True)  # lowercase
    hostname = Column(String(255), nullable=True)
    vendor = Column(String(255), nullable=True)  # vendor or model string

    # Data provenance
    source = Column(String(20), nullable=False, default=DeviceSource.MANUAL.value)
    last_seen = Column(DateTime, nullable=True)

    ip_address_id = Column(
        Integer, ForeignKey("ip_addresses.id"), unique=True, nullable=True
    )

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_device_source", "source"),
    )

    def __repr__(self):
        return f"<Device(id={self.id}, name={self.name}, mac={self.mac_address}, source={self.source})>"
