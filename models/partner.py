from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from models.base import Base


class Account(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    type = Column(String(32), nullable=False, default="bank")
    bank = Column(String(255), nullable=True)
    number = Column(String(64), nullable=True)
    currency = Column(String(8), nullable=False, default="amd")
    internal = Column(Boolean, nullable=False, default=False)


class Warehouse(Base):
    __tablename__ = "warehouses"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    address = Column(String(512), nullable=True)
    type = Column(String(32), nullable=True)  # "supplier" for auto-created ones


class Partner(Base):
    __tablename__ = "partners"

    id = Column(Integer, primary_key=True)
    tin = Column(String(32), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    address = Column(String(512), nullable=True)
    type = Column(String(32), nullable=False, default="supplier")

    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=True)

    account = relationship("Account")
    warehouse = relationship("Warehouse")
