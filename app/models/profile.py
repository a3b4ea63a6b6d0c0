from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import Base
from app.models.status import PlanType, ProfileStatus


class Profile(Base):
    """Estado de plano do usuário. Escrito apenas pelo ActivationService."""

    __tablename__ = "profiles"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    email = Column(String, nullable=False, index=True)
    plan_type = Column(String(16), nullable=False, default=PlanType.FREE)  # free, pro, admin, lifetime
    subscription_status = Column(String(16), nullable=False, default=ProfileStatus.NONE)
    # Assinatura que concedeu o status atual; cancelamentos de outras assinaturas não afetam o perfil
    current_subscription_id = Column(Integer, ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True)
    subscription_expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="profile")
