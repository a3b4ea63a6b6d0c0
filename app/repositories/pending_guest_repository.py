from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.pending_guest_subscription import PendingGuestSubscription
from app.models.status import SubscriptionStatus


class PendingGuestSubscriptionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_external_id(self, external_subscription_id: str) -> Optional[PendingGuestSubscription]:
        if not external_subscription_id:
            return None
        return (
            self.db.query(PendingGuestSubscription)
            .filter(PendingGuestSubscription.external_subscription_id == external_subscription_id)
            .first()
        )

    def get_by_checkout_session(self, checkout_session_id: str) -> Optional[PendingGuestSubscription]:
        if not checkout_session_id:
            return None
        return (
            self.db.query(PendingGuestSubscription)
            .filter(PendingGuestSubscription.checkout_session_id == checkout_session_id)
            .first()
        )

    def list_unlinked_by_email(self, email: str) -> List[PendingGuestSubscription]:
        if not email:
            return []
        return (
            self.db.query(PendingGuestSubscription)
            .filter(
                PendingGuestSubscription.email == email,
                PendingGuestSubscription.linked_user_id.is_(None),
            )
            .order_by(PendingGuestSubscription.id.asc())
            .all()
        )

    def create(self, pending: PendingGuestSubscription) -> PendingGuestSubscription:
        self.db.add(pending)
        self.db.flush()
        return pending

    def update_status(self, pending_id: int, status: str) -> int:
        # Linhas já vinculadas são inertes; canceled é terminal
        stmt = (
            update(PendingGuestSubscription)
            .where(
                PendingGuestSubscription.id == pending_id,
                PendingGuestSubscription.linked_user_id.is_(None),
                PendingGuestSubscription.status != SubscriptionStatus.CANCELED,
            )
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def claim(self, pending_id: int, user_id: int, linked_at: datetime) -> int:
        """Vincula a linha ao usuário uma única vez. 0 = outro processo já vinculou."""
        stmt = (
            update(PendingGuestSubscription)
            .where(
                PendingGuestSubscription.id == pending_id,
                PendingGuestSubscription.linked_user_id.is_(None),
            )
            .values(linked_user_id=user_id, linked_at=linked_at)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount
