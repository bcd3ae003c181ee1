from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from gatesim.db.base_class import Base

class Order(Base):
    __tablename__ = "order"

    id = Column(String(40), primary_key=True, index=True) # e.g., "GS1737360000000A1B2"
    contact_email = Column(String(255), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("user_account.id"), nullable=True, index=True) # Guest checkout leaves this empty

    total_amount = Column(Integer, nullable=False) # Whole MNT
    currency = Column(String(3), nullable=False, default="MNT")

    status = Column(String(50), nullable=False, default="pending", index=True)
    # e.g., pending, paid, provisioning, completed, provisioning_failed, cancelled, failed, refunded, deleted

    payment_method = Column(String(50), nullable=False, default="qpay")
    payment_id = Column(String(255), nullable=True, index=True) # QPay invoice id once paid

    items = Column(JSON, nullable=False, default=list) # [{sku, name, price, quantity, metadata}]
    esim = Column(JSON, nullable=True) # {iccid, lpa, qr_data, qr_url} after provisioning
    provisioning_error = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    user = relationship("User", back_populates="orders")
    invoice = relationship("Invoice", back_populates="order", uselist=False)

    def __repr__(self):
        return f"<Order(id='{self.id}', contact_email='{self.contact_email}', total={self.total_amount}, status='{self.status}')>"
