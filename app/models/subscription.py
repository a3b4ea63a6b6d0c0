from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, text
from sqlalchemy.sql import func
from app.db.base import Base
from app.models.status import SubscriptionStatus


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    # Nulo apenas enquanto a compra ainda não foi vinculada a um usuário
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    external_subscription_id = Column(String(255), nullable=False, unique=True)  # sub_... ou pix_<intent>
    external_customer_id = Column(String(255), nullable=True, index=True)
    checkout_session_id = Column(String(255), nullable=True, index=True)
    price_id = Column(String(255), nullable=True)
    status = Column(String(16), nullable=False, default=SubscriptionStatus.PENDING)  # pending, active, past_due, canceled
    payment_method = Column(String(32), nullable=True)  # card, pix
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    amount_cents = Column(Integer, nullable=True)
    currency = Column(String(3), default="BRL")
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        # No máximo uma assinatura ativa por usuário
        Index(
            "uq_subscriptions_one_active_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )
