from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.db.base import Base


class PaymentTransaction(Base):
    """Uma linha por fatura/cobrança paga. Somente inserção."""

    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, index=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    external_subscription_id = Column(String(255), nullable=True, index=True)
    # Chave de deduplicação de reentregas do webhook
    external_invoice_id = Column(String(255), nullable=True, unique=True)
    external_payment_id = Column(String(255), nullable=True, index=True)
    external_charge_id = Column(String(255), nullable=True)
    status = Column(String(16), nullable=False)
    amount_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), default="BRL")
    payment_method = Column(String(32), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
