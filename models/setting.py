from sqlalchemy import Column, DateTime, Integer, JSON, String
from sqlalchemy.sql import func

from models.base import Base


class Setting(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True)
    key = Column(String(64), unique=True, nullable=False)  # e.g. "default_transfer_warehouse"
    value = Column(JSON, nullable=True)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
