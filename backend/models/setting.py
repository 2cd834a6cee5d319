from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text
from database import Base


class Setting(Base):
    """Key/value setting persisted from the settings page."""

    __tablename__ = "settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Setting(key={self.key})>"
