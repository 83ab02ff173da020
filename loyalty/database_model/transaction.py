from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey
from sqlalchemy.sql import func
from ..core.database import Base

class TransactionFidelityCard(Base):
    """Purchase ticket validated at a till for a loyalty-card holder."""
    __tablename__ = "transaction_fidelity_cards"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    caisse_id = Column(Integer, ForeignKey("caisses.id", ondelete="SET NULL"), nullable=True)
    payment_type = Column(Integer, default=1, nullable=False)
    ticket_date = Column(String, nullable=False)
    ticket_number = Column(String, nullable=False, index=True)
    ticket_amount = Column(Float, nullable=False)
    ticket_cashback = Column(Float, nullable=False)
    state = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    
    def __repr__(self):
        return f"<TransactionFidelityCard(id={self.id}, ticket={self.ticket_number}, user_id={self.user_id})>"
