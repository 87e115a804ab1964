"""
Setting model — small JSON key/value store for persisted fallbacks.
"""
from sqlalchemy import Column, Text, DateTime, JSON
from sqlalchemy.sql import func

from minerchecker.database import Base


class Setting(Base):
    __tablename__ = 'settings'

    key = Column(Text, primary_key=True)
    value = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
