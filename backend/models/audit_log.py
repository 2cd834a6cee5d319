from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from database import Base

from .enums import AuditSource


class AuditLog(Base):
    """Append-only record of a mutation. Never updated or deleted."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    action = Column(String(20), nullable=False)  # CREATE/UPDATE/DELETE/SYNC/POPULATE
    entity_type = Column(String(50), nullable=False)  # Network/IPAddress/Device/Setting
    entity_id = Column(String(64), nullable=True)
    entity_name = Column(String(255), nullable=True)
    changes = Column(Text, nullable=True)  # JSON-encoded change set
    source = Column(String(20), nullable=False, default=AuditSource.USER.value)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_audit_log_created_at", "created_at"),
        Index("idx_audit_log_entity_type", "entity_type"),
        Index("idx_audit_log_action", "action"),
    )

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action={self.action}, entity={self.entity_type}:{self.entity_id})>"
