from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func

from models.base import Base


class SyncState(Base):
    __tablename__ = "sync_state"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(32), unique=True, nullable=False)  # our TIN

    watermark = Column(DateTime, nullable=True)    # end of the last fetched window (naive UTC)
    last_run_at = Column(DateTime, nullable=True)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
