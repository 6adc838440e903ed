from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from models.base import Base
from models.catalog import CatalogItem


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True)
    invoice_id = Column(String(140), unique=True, index=True, nullable=False)  # tax service "id"

    serial_no = Column(String(64), nullable=True)
    type = Column(String(64), nullable=True)
    sort = Column(String(64), nullable=True)
    approval_state = Column(String(64), nullable=True)
    status = Column(String(64), nullable=True)
    correction_state = Column(String(64), nullable=True)
    correction_type = Column(String(64), nullable=True)

    created_at = Column(DateTime, index=True, nullable=True)
    issued_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    dealt_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    supplier_tin = Column(String(32), index=True, nullable=True)
    buyer_tin = Column(String(32), index=True, nullable=True)
    delivery_address = Column(String(512), nullable=True)
    destination_address = Column(String(512), nullable=True)

    env_tax = Column(Float, nullable=True)
    total_value = Column(Float, nullable=True)
    total_vat_amount = Column(Float, nullable=True)
    total = Column(Float, nullable=True)

    cancellation_reason = Column(Text, nullable=True)
    canceled_notified = Column(String(64), nullable=True)
    ben_canceled_notified = Column(String(64), nullable=True)
    ben_issued_notified = Column(String(64), nullable=True)
    user_name = Column(String(255), nullable=True)
    final_use = Column(Boolean, nullable=True)
    has_codes = Column(Boolean, nullable=True)
    additional_info = Column(Text, nullable=True)
    other_data = Column(Text, nullable=True)

    # operator-owned; sync never resets it
    seen = Column(Boolean, nullable=False, default=False)

    synced_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.seq_no",
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"
    __table_args__ = (
        UniqueConstraint("invoice_id", "seq_no", name="uq_invoice_item_seq"),
    )

    id = Column(Integer, primary_key=True)
    invoice_id = Column(String(140), ForeignKey("invoices.invoice_id", ondelete="CASCADE"), index=True, nullable=False)

    seq_no = Column(Integer, nullable=False)
    name = Column(String(512), nullable=True)
    unit = Column(String(64), nullable=True)

    quantity = Column(Float, nullable=True)
    unit_price = Column(Float, nullable=True)
    total_value = Column(Float, nullable=True)
    classifier_id = Column(String(64), nullable=True)
    deal_type = Column(String(64), nullable=True)
    vat_rate = Column(Float, nullable=True)
    vat_amount = Column(Float, nullable=True)
    total = Column(Float, nullable=True)
    inc_env_tax = Column(Boolean, nullable=True)
    other_data = Column(Text, nullable=True)

    item_id = Column(Integer, ForeignKey("items.id"), nullable=True)  # resolved catalog item

    invoice = relationship("Invoice", back_populates="items")
    item = relationship(CatalogItem)
