from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.db.base import Base
from app.models.status import PixStatus


class PixPayment(Base):
    """Uma tentativa de pagamento PIX (um QR code emitido)."""

    __tablename__ = "pix_payments"

    id = Column(Integer, primary_key=True, index=True)
    payment_intent_id = Column(String(255), nullable=False, unique=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    email = Column(String, nullable=True, index=True)
    phone = Column(String(32), nullable=True)
    plan_type = Column(String(16), nullable=False)  # monthly, annual
    amount_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), default="BRL")
    # pending -> paid | failed | expired (terminais)
    status = Column(String(16), nullable=False, default=PixStatus.PENDING)
    is_bundle = Column(Boolean, default=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    linked_to_user_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
