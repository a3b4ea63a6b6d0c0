from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.pix_payment import PixPayment
from app.models.status import PixStatus


class PixPaymentRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_intent_id(self, payment_intent_id: str) -> Optional[PixPayment]:
        if not payment_intent_id:
            return None
        return (
            self.db.query(PixPayment)
            .filter(PixPayment.payment_intent_id == payment_intent_id)
            .first()
        )

    def list_unlinked_by_email(self, email: str) -> List[PixPayment]:
        """PIX guest ainda sem dono, pagos ou aguardando pagamento."""
        if not email:
            return []
        return (
            self.db.query(PixPayment)
            .filter(
                PixPayment.email == email,
                PixPayment.user_id.is_(None),
                PixPayment.status.in_((PixStatus.PENDING, PixStatus.PAID)),
            )
            .order_by(PixPayment.id.asc())
            .all()
        )

    def create(self, pix: PixPayment) -> PixPayment:
        self.db.add(pix)
        self.db.flush()
        return pix

    def refresh(self, pix: PixPayment) -> PixPayment:
        self.db.refresh(pix)
        return pix

    def mark_paid(self, payment_intent_id: str, paid_at: datetime) -> int:
        stmt = (
            update(PixPayment)
            .where(
                PixPayment.payment_intent_id == payment_intent_id,
                PixPayment.status == PixStatus.PENDING,
            )
            .values(status=PixStatus.PAID, paid_at=paid_at)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def mark_terminal(self, payment_intent_id: str, status: str) -> int:
        """pending -> failed/expired. Estados terminais nunca são revisitados."""
        stmt = (
            update(PixPayment)
            .where(
                PixPayment.payment_intent_id == payment_intent_id,
                PixPayment.status == PixStatus.PENDING,
            )
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def expire_stale(self, now: datetime) -> int:
        stmt = (
            update(PixPayment)
            .where(
                PixPayment.status == PixStatus.PENDING,
                PixPayment.expires_at.isnot(None),
                PixPayment.expires_at < now,
            )
            .values(status=PixStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def bind_user(self, payment_intent_id: str, user_id: int, linked_at: datetime) -> int:
        stmt = (
            update(PixPayment)
            .where(
                PixPayment.payment_intent_id == payment_intent_id,
                PixPayment.user_id.is_(None),
            )
            .values(user_id=user_id, linked_to_user_at=linked_at)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount
