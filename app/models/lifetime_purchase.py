from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.db.base import Base
from app.models.status import LifetimeStatus


class LifetimePurchase(Base):
    __tablename__ = "lifetime_purchases"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    email = Column(String, nullable=True, index=True)
    checkout_session_id = Column(String(255), nullable=False, unique=True)
    payment_intent_id = Column(String(255), nullable=True, unique=True)
    amount_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), default="BRL")
    payment_method = Column(String(32), nullable=True)  # card, pix
    status = Column(String(16), nullable=False, default=LifetimeStatus.PENDING)  # pending, completed
    promo_code = Column(String(64), nullable=True)
    purchased_at = Column(DateTime(timezone=True), nullable=True)
    linked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
