from sqlalchemy import Column, String, DateTime, JSON, func
from spamdetective.database import Base


class SettingEntry(Base):
    """One detection setting (flat key -> bool/int)."""
    __tablename__ = "settings"

    key = Column(String(64), primary_key=True)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
