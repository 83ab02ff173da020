from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from ..core.database import Base

class Shop(Base):
    __tablename__ = "shops"
    
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    address = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    
    # Relationships
    caisses = relationship("Caisse", back_populates="shop", cascade="all, delete-orphan")
    promotions = relationship("Promotion", back_populates="shop", cascade="all, delete-orphan")
    
    def __repr__(self):
        return f"<Shop(id={self.id}, name={self.name})>"

class Caisse(Base):
    """Cashier account attached to a shop till."""
    __tablename__ = "caisses"
    
    id = Column(Integer, primary_key=True, index=True)
    shop_id = Column(Integer, ForeignKey("shops.id", ondelete="CASCADE"), nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    phone = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, nullable=True)
    image_url = Column(String, nullable=True)
    hashed_password = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    
    # Relationships
    shop = relationship("Shop", back_populates="caisses")
    
    def __repr__(self):
        return f"<Caisse(id={self.id}, phone={self.phone}, shop_id={self.shop_id})>"
