from sqlalchemy import Column, Integer, Float, DateTime
from sqlalchemy.sql import func
from ..core.database import Base

# Both tables hold a single row with id=1
SINGLETON_ID = 1

class Setting(Base):
    __tablename__ = "settings"
    
    id = Column(Integer, primary_key=True)
    cashback_amount = Column(Float, default=0.0, nullable=False)
    voucher_durate = Column(Integer, nullable=True)  # days a voucher stays valid
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    
    def __repr__(self):
        return f"<Setting(cashback_amount={self.cashback_amount}, voucher_durate={self.voucher_durate})>"

class SettingSponsoring(Base):
    __tablename__ = "setting_sponsorings"
    
    id = Column(Integer, primary_key=True)
    godfather_amount = Column(Float, default=0.0, nullable=False)  # sponsor bonus
    godson_amount = Column(Float, default=0.0, nullable=False)  # referred user bonus
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    
    def __repr__(self):
        return f"<SettingSponsoring(godfather={self.godfather_amount}, godson={self.godson_amount})>"
