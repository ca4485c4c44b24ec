"""
Domain allow/deny list entries.
"""

import enum

from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint, func
from spamdetective.database import Base


class ListType(str, enum.Enum):
    WHITELIST = "whitelist"
    SUSPICIOUS = "suspicious"


class DomainEntry(Base):
    __tablename__ = "domain_lists"
    __table_args__ = (UniqueConstraint("list_type", "domain", name="uq_list_domain"),)

    id = Column(Integer, primary_key=True, index=True)
    list_type = Column(String(16), nullable=False, index=True)  # whitelist | suspicious
    domain = Column(String(253), nullable=False)                 # always lowercase
    created_at = Column(DateTime(timezone=True), server_default=func.now())
