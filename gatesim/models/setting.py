from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.sql import func
from gatesim.db.base_class import Base

class Setting(Base):
    __tablename__ = "setting"

    key = Column(String(100), primary_key=True) # e.g., "pricing_config"
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Setting(key='{self.key}')>"
