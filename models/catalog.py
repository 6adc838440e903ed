from sqlalchemy import Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from models.base import Base


class CatalogItem(Base):
    __tablename__ = "items"

    id = Column(Integer, primary_key=True)
    code = Column(String(32), unique=True, index=True, nullable=False)
    name = Column(String(512), nullable=False)
    unit = Column(String(64), nullable=True)

    # canonical merge target; transfers always reference the parent
    parent_id = Column(Integer, ForeignKey("items.id"), nullable=True)

    parent = relationship("CatalogItem", remote_side=[id])
