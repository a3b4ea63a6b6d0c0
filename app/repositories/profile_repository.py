from datetime import datetime
from typing import Optional

from sqlalchemy import and_, exists, or_, update
from sqlalchemy.orm import Session

from app.models.profile import Profile
from app.models.status import PlanType, ProfileStatus, SubscriptionStatus
from app.models.subscription import Subscription


class ProfileRepository:
    """
    Acesso à tabela profiles.
    Os métodos mark_* são compare-and-set: uma única instrução UPDATE com a
    pré-condição no WHERE. O retorno é o número de linhas alteradas (0 ou 1).
    """

    def __init__(self, db: Session):
        self.db = db

    def get_by_user_id(self, user_id: int) -> Optional[Profile]:
        return self.db.query(Profile).filter(Profile.user_id == user_id).first()

    def create(self, user_id: int, email: str) -> Profile:
        profile = Profile(
            user_id=user_id,
            email=email,
            plan_type=PlanType.FREE,
            subscription_status=ProfileStatus.NONE,
        )
        self.db.add(profile)
        self.db.flush()
        return profile

    def get_or_create(self, user_id: int, email: str) -> Profile:
        profile = self.get_by_user_id(user_id)
        if profile:
            return profile
        return self.create(user_id, email)

    def mark_active(self, user_id: int, subscription_id: int, expires_at: Optional[datetime]) -> int:
        # admin/lifetime nunca são rebaixados para pro; a assinatura precisa estar ativa no momento da escrita
        subscription_is_active = exists().where(
            and_(
                Subscription.id == subscription_id,
                Subscription.status == SubscriptionStatus.ACTIVE,
            )
        )
        stmt = (
            update(Profile)
            .where(
                Profile.user_id == user_id,
                Profile.plan_type.notin_(PlanType.PROTECTED),
                or_(
                    Profile.current_subscription_id.is_(None),
                    Profile.current_subscription_id != subscription_id,
                    Profile.subscription_status != ProfileStatus.ACTIVE,
                    Profile.plan_type != PlanType.PRO,
                ),
                subscription_is_active,
            )
            .values(
                plan_type=PlanType.PRO,
                subscription_status=ProfileStatus.ACTIVE,
                current_subscription_id=subscription_id,
                subscription_expires_at=expires_at,
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def sync_expiry(self, user_id: int, subscription_id: int, expires_at: Optional[datetime]) -> int:
        """Renovação: só avança a data de expiração do plano concedido por esta assinatura."""
        if expires_at is None:
            return 0
        stmt = (
            update(Profile)
            .where(
                Profile.user_id == user_id,
                Profile.current_subscription_id == subscription_id,
                Profile.subscription_status == ProfileStatus.ACTIVE,
            )
            .values(subscription_expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def mark_past_due(self, user_id: int, subscription_id: int) -> int:
        stmt = (
            update(Profile)
            .where(
                Profile.user_id == user_id,
                Profile.current_subscription_id == subscription_id,
                Profile.subscription_status == ProfileStatus.ACTIVE,
                Profile.plan_type.notin_(PlanType.PROTECTED),
            )
            .values(subscription_status=ProfileStatus.PAST_DUE)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def mark_canceled(self, user_id: int, subscription_id: int) -> int:
        # Só o cancelamento da assinatura que concedeu o acesso derruba o plano
        stmt = (
            update(Profile)
            .where(
                Profile.user_id == user_id,
                Profile.current_subscription_id == subscription_id,
                Profile.subscription_status != ProfileStatus.CANCELED,
                Profile.plan_type.notin_(PlanType.PROTECTED),
            )
            .values(
                plan_type=PlanType.FREE,
                subscription_status=ProfileStatus.CANCELED,
                subscription_expires_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def mark_lifetime(self, user_id: int) -> int:
        stmt = (
            update(Profile)
            .where(
                Profile.user_id == user_id,
                Profile.plan_type.notin_((PlanType.LIFETIME, PlanType.ADMIN)),
            )
            .values(
                plan_type=PlanType.LIFETIME,
                subscription_status=ProfileStatus.ACTIVE,
                current_subscription_id=None,
                subscription_expires_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def refresh(self, profile: Profile) -> Profile:
        self.db.refresh(profile)
        return profile
