from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.payment_transaction import PaymentTransaction
from app.models.subscription import Subscription


class PaymentTransactionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_invoice_id(self, external_invoice_id: str) -> Optional[PaymentTransaction]:
        if not external_invoice_id:
            return None
        return (
            self.db.query(PaymentTransaction)
            .filter(PaymentTransaction.external_invoice_id == external_invoice_id)
            .first()
        )

    def get_by_payment_id(self, external_payment_id: str) -> Optional[PaymentTransaction]:
        if not external_payment_id:
            return None
        return (
            self.db.query(PaymentTransaction)
            .filter(PaymentTransaction.external_payment_id == external_payment_id)
            .order_by(PaymentTransaction.id.desc())
            .first()
        )

    def list_by_subscription(self, subscription: Subscription) -> List[PaymentTransaction]:
        # Faturas pagas antes do vínculo guest ficam só com o id externo
        return (
            self.db.query(PaymentTransaction)
            .filter(or_(
                PaymentTransaction.subscription_id == subscription.id,
                PaymentTransaction.external_subscription_id == subscription.external_subscription_id,
            ))
            .order_by(PaymentTransaction.id.asc())
            .all()
        )

    def create(self, transaction: PaymentTransaction) -> PaymentTransaction:
        self.db.add(transaction)
        self.db.flush()
        return transaction
