from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey
from sqlalchemy.sql import func
from ..core.database import Base

class Cashback(Base):
    """Running cashback balance of a user."""
    __tablename__ = "cashbacks"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    amount = Column(Float, default=0.0, nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    
    __mapper_args__ = {"version_id_col": version}
    
    def __repr__(self):
        return f"<Cashback(id={self.id}, user_id={self.user_id}, amount={self.amount})>"

class UserCashback(Base):
    """Minimum cashback balance a user needs before generating a voucher."""
    __tablename__ = "user_cashbacks"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    amount = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    
    def __repr__(self):
        return f"<UserCashback(user_id={self.user_id}, threshold={self.amount})>"
