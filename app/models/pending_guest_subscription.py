from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.db.base import Base
from app.models.status import SubscriptionStatus


class PendingGuestSubscription(Base):
    """Assinatura comprada sem conta (guest checkout), aguardando vínculo por email."""

    __tablename__ = "pending_guest_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, nullable=False, index=True)
    phone = Column(String(32), nullable=True)
    external_subscription_id = Column(String(255), nullable=False, unique=True)
    external_customer_id = Column(String(255), nullable=True)
    checkout_session_id = Column(String(255), nullable=True, index=True)
    price_id = Column(String(255), nullable=True)
    status = Column(String(16), nullable=False, default=SubscriptionStatus.PENDING)
    amount_cents = Column(Integer, nullable=True)
    currency = Column(String(3), default="BRL")
    is_bundle = Column(Boolean, default=False)
    # Preenchido uma única vez; depois disso a linha fica inerte
    linked_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    linked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
