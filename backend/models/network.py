from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from database import Base


class Network(Base):
    """
    SQLAlchemy model for a managed subnet.

    The CIDR is the natural key used by the inventory sync. A network
    owns its IPAddress rows; see services/networks.py for the
    cascade-aware delete.
    """

    __tablename__ = "networks"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(255), nullable=False)
    cidr = Column(String(18), unique=True, nullable=False, index=True)  # e.g. "10.0.1.0/24"
    prefix_length = Column(Integer, nullable=False)
    vlan_id = Column(Integer, nullable=True)  # 802.1Q VLAN ID
    gateway = Column(String(15), nullable=True)
    description = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_network_vlan_id", "vlan_id"),
    )

    def __repr__(self):
        return f"<Network(id={self.id}, name={self.name}, cidr={self.cidr})>"
