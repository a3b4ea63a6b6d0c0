from datetime import datetime
from typing import List, Optional

from sqlalchemy import exists, update
from sqlalchemy.orm import Session, aliased

from app.models.status import SubscriptionStatus
from app.models.subscription import Subscription


class SubscriptionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, subscription_id: int) -> Optional[Subscription]:
        return self.db.query(Subscription).filter(Subscription.id == subscription_id).first()

    def get_by_external_id(self, external_subscription_id: str) -> Optional[Subscription]:
        if not external_subscription_id:
            return None
        return (
            self.db.query(Subscription)
            .filter(Subscription.external_subscription_id == external_subscription_id)
            .first()
        )

    def get_by_checkout_session(self, checkout_session_id: str) -> Optional[Subscription]:
        if not checkout_session_id:
            return None
        return (
            self.db.query(Subscription)
            .filter(Subscription.checkout_session_id == checkout_session_id)
            .order_by(Subscription.id.desc())
            .first()
        )

    def get_live_by_user(self, user_id: int) -> Optional[Subscription]:
        """Assinatura active/past_due mais recente do usuário."""
        return (
            self.db.query(Subscription)
            .filter(
                Subscription.user_id == user_id,
                Subscription.status.in_(SubscriptionStatus.LIVE),
            )
            .order_by(Subscription.id.desc())
            .first()
        )

    def create(self, subscription: Subscription) -> Subscription:
        self.db.add(subscription)
        self.db.flush()
        return subscription

    def refresh(self, subscription: Subscription) -> Subscription:
        self.db.refresh(subscription)
        return subscription

    def promote_to_active(self, subscription_id: int, user_id: int, period_end: Optional[datetime] = None) -> int:
        """
        pending/past_due -> active, desde que o usuário não tenha outra assinatura ativa.
        Retorna 1 se esta chamada fez a transição, 0 caso contrário.
        """
        other = aliased(Subscription)
        another_active = exists().where(
            other.user_id == user_id,
            other.status == SubscriptionStatus.ACTIVE,
            other.id != subscription_id,
        )
        values = {"status": SubscriptionStatus.ACTIVE}
        if period_end is not None:
            values["current_period_end"] = period_end
        stmt = (
            update(Subscription)
            .where(
                Subscription.id == subscription_id,
                Subscription.user_id == user_id,
                Subscription.status.in_((SubscriptionStatus.PENDING, SubscriptionStatus.PAST_DUE)),
                ~another_active,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def mark_past_due(self, subscription_id: int) -> int:
        stmt = (
            update(Subscription)
            .where(
                Subscription.id == subscription_id,
                Subscription.status == SubscriptionStatus.ACTIVE,
            )
            .values(status=SubscriptionStatus.PAST_DUE)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def mark_canceled(self, subscription_id: int, canceled_at: datetime) -> int:
        # canceled é terminal: nenhuma outra transição sai dele
        stmt = (
            update(Subscription)
            .where(
                Subscription.id == subscription_id,
                Subscription.status != SubscriptionStatus.CANCELED,
            )
            .values(status=SubscriptionStatus.CANCELED, canceled_at=canceled_at)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def update_period(self, subscription_id: int, period_end: Optional[datetime]) -> int:
        if period_end is None:
            return 0
        stmt = (
            update(Subscription)
            .where(
                Subscription.id == subscription_id,
                Subscription.status != SubscriptionStatus.CANCELED,
            )
            .values(current_period_end=period_end)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def bind_user(self, subscription_id: int, user_id: int) -> int:
        """Atribui dono a uma assinatura ainda sem usuário (nunca troca o dono)."""
        stmt = (
            update(Subscription)
            .where(Subscription.id == subscription_id, Subscription.user_id.is_(None))
            .values(user_id=user_id)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def list_lapsed_pix(self, now: datetime, limit: int = 200) -> List[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(
                Subscription.payment_method == "pix",
                Subscription.status.in_(SubscriptionStatus.LIVE),
                Subscription.current_period_end.isnot(None),
                Subscription.current_period_end < now,
            )
            .order_by(Subscription.current_period_end.asc())
            .limit(limit)
            .all()
        )
