from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from app.models.lifetime_purchase import LifetimePurchase
from app.models.status import LifetimeStatus


class LifetimePurchaseRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_checkout_or_intent(
        self, checkout_session_id: Optional[str], payment_intent_id: Optional[str]
    ) -> Optional[LifetimePurchase]:
        clauses = []
        if checkout_session_id:
            clauses.append(LifetimePurchase.checkout_session_id == checkout_session_id)
        if payment_intent_id:
            clauses.append(LifetimePurchase.payment_intent_id == payment_intent_id)
        if not clauses:
            return None
        return self.db.query(LifetimePurchase).filter(or_(*clauses)).first()

    def list_unlinked_by_email(self, email: str) -> List[LifetimePurchase]:
        if not email:
            return []
        return (
            self.db.query(LifetimePurchase)
            .filter(
                LifetimePurchase.email == email,
                LifetimePurchase.user_id.is_(None),
                LifetimePurchase.status == LifetimeStatus.COMPLETED,
            )
            .order_by(LifetimePurchase.id.asc())
            .all()
        )

    def create(self, purchase: LifetimePurchase) -> LifetimePurchase:
        self.db.add(purchase)
        self.db.flush()
        return purchase

    def claim(self, purchase_id: int, user_id: int, linked_at: datetime) -> int:
        stmt = (
            update(LifetimePurchase)
            .where(LifetimePurchase.id == purchase_id, LifetimePurchase.user_id.is_(None))
            .values(user_id=user_id, linked_at=linked_at)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def mark_completed(self, purchase_id: int, purchased_at: datetime) -> int:
        stmt = (
            update(LifetimePurchase)
            .where(
                LifetimePurchase.id == purchase_id,
                LifetimePurchase.status == LifetimeStatus.PENDING,
            )
            .values(status=LifetimeStatus.COMPLETED, purchased_at=purchased_at)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def refresh(self, purchase: LifetimePurchase) -> LifetimePurchase:
        self.db.refresh(purchase)
        return purchase
