from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from gatesim.db.base_class import Base

class Invoice(Base):
    __tablename__ = "invoice"

    invoice_id = Column(String(255), primary_key=True, index=True) # Issued by QPay
    order_id = Column(String(40), ForeignKey("order.id"), nullable=False, unique=True, index=True) # One invoice per order

    qr_image = Column(Text, nullable=True) # base64 PNG
    qr_text = Column(Text, nullable=True)
    short_url = Column(String(512), nullable=True)
    deeplinks = Column(JSON, nullable=False, default=list) # [{name, description, link, logo}]
    amount_mnt = Column(Integer, nullable=False)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="invoice")

    def __repr__(self):
        return f"<Invoice(invoice_id='{self.invoice_id}', order_id='{self.order_id}', amount_mnt={self.amount_mnt})>"
