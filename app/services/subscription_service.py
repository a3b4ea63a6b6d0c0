from typing import Optional, Dict, Any, List

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.pix_payment import PixPayment
from app.models.status import SubscriptionStatus
from app.models.subscription import Subscription
from app.repositories.lifetime_purchase_repository import LifetimePurchaseRepository
from app.repositories.pending_guest_repository import PendingGuestSubscriptionRepository
from app.repositories.pix_payment_repository import PixPaymentRepository
from app.repositories.profile_repository import ProfileRepository
from app.repositories.subscription_repository import SubscriptionRepository
from app.repositories.user_repository import UserRepository
from app.services.activation_service import ActivationService
from app.utils.billing_periods import as_utc, calculate_subscription_window, normalize_email
import logging

logger = logging.getLogger(__name__)

SUBSCRIPTION_PLAN_NAME = "Premium"
LIFETIME_PLAN_NAME = "Premium Vitalício"


def pix_subscription_external_id(payment_intent_id: str) -> str:
    return f"pix_{payment_intent_id}"


def build_activation_service(db: Session) -> ActivationService:
    return ActivationService(UserRepository(db), ProfileRepository(db), SubscriptionRepository(db))


def _iso(value) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


class SubscriptionService:
    def __init__(self, repo: SubscriptionRepository):
        self.repo = repo

    def grant_pix_subscription(self, user_id: int, pix: PixPayment) -> Subscription:
        """
        Cria (uma única vez) a assinatura não recorrente de um PIX pago.
        O id externo `pix_<intent>` torna a criação idempotente.
        """
        external_id = pix_subscription_external_id(pix.payment_intent_id)
        existing = self.repo.get_by_external_id(external_id)
        if existing:
            return existing

        _, period_end = calculate_subscription_window(pix.plan_type, as_utc(pix.paid_at))
        subscription = Subscription(
            user_id=user_id,
            external_subscription_id=external_id,
            price_id=pix.plan_type,
            status=SubscriptionStatus.PENDING,
            payment_method="pix",
            current_period_end=period_end,
            amount_cents=pix.amount_cents,
            currency=pix.currency or "BRL",
        )
        self.repo.create(subscription)
        logger.info(f"Assinatura PIX {external_id} criada para user_id={user_id} até {period_end.isoformat()}")
        return subscription

    def plan_name_for(self, subscription: Subscription) -> str:
        if subscription.payment_method == "pix" and subscription.price_id:
            return settings.get_pix_plan_name(subscription.price_id) or SUBSCRIPTION_PLAN_NAME
        return SUBSCRIPTION_PLAN_NAME

    def get_subscription_status(self, user_id: int) -> Dict[str, Any]:
        """Retorna o estado do plano do usuário e a assinatura que o concedeu."""
        profile = ProfileRepository(self.repo.db).get_by_user_id(user_id)
        subscription = None
        if profile and profile.current_subscription_id:
            subscription = self.repo.get_by_id(profile.current_subscription_id)
        if subscription is None:
            subscription = self.repo.get_live_by_user(user_id)

        return {
            "plan_type": profile.plan_type if profile else "free",
            "subscription_status": profile.subscription_status if profile else "none",
            "expires_at": _iso(profile.subscription_expires_at) if profile else None,
            "subscription": {
                "id": subscription.id,
                "external_subscription_id": subscription.external_subscription_id,
                "status": subscription.status,
                "payment_method": subscription.payment_method,
                "current_period_end": _iso(subscription.current_period_end),
            } if subscription else None,
        }

    def list_pending_guest_payments(self, email: str) -> List[Dict[str, Any]]:
        """Compras feitas sem conta com este email e ainda não vinculadas."""
        db = self.repo.db
        normalized = normalize_email(email)
        items: List[Dict[str, Any]] = []

        for pending in PendingGuestSubscriptionRepository(db).list_unlinked_by_email(normalized):
            items.append({
                "kind": "subscription",
                "reference": pending.external_subscription_id,
                "status": pending.status,
                "amount_cents": pending.amount_cents,
                "currency": pending.currency,
                "created_at": _iso(pending.created_at),
            })
        for pix in PixPaymentRepository(db).list_unlinked_by_email(normalized):
            items.append({
                "kind": "pix",
                "reference": pix.payment_intent_id,
                "status": pix.status,
                "amount_cents": pix.amount_cents,
                "currency": pix.currency,
                "created_at": _iso(pix.created_at),
            })
        for purchase in LifetimePurchaseRepository(db).list_unlinked_by_email(normalized):
            items.append({
                "kind": "lifetime",
                "reference": purchase.checkout_session_id,
                "status": purchase.status,
                "amount_cents": purchase.amount_cents,
                "currency": purchase.currency,
                "created_at": _iso(purchase.created_at),
            })
        return items
