import enum

from sqlalchemy import Column, Integer, String, Float, Date, DateTime, ForeignKey
from sqlalchemy.sql import func
from ..core.database import Base

class VoucherState(enum.IntEnum):
    ACTIVE = 1
    REDEEMED = 2

class Voucher(Base):
    __tablename__ = "vouchers"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    caisse_id = Column(Integer, ForeignKey("caisses.id", ondelete="SET NULL"), nullable=True)  # redeeming cashier
    amount = Column(Float, default=0.0, nullable=False)
    expirate_date = Column(Date, nullable=True)
    
    # Filled in on redemption only
    ticket_date = Column(String, nullable=True)
    ticket_number = Column(String, nullable=True)
    ticket_amount = Column(Float, nullable=True)
    ticket_cashback = Column(Float, nullable=True)
    
    state = Column(Integer, default=VoucherState.ACTIVE, nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    
    __mapper_args__ = {"version_id_col": version}
    
    def __repr__(self):
        return f"<Voucher(id={self.id}, user_id={self.user_id}, amount={self.amount}, state={self.state})>"
