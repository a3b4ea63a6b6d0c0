"""
Vínculo de compras feitas sem conta (guest checkout) ao usuário que acabou de
se cadastrar ou entrar com o mesmo email.

Cada linha pendente é reivindicada com um UPDATE ... WHERE <dono> IS NULL; só
quem reivindica cria a assinatura e ativa, tudo na mesma transação. Uma segunda
chamada (novo login, cadastro concorrente) não encontra mais nada para vincular.
"""
import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.pending_guest_subscription import PendingGuestSubscription
from app.models.status import PixStatus, SubscriptionStatus
from app.models.subscription import Subscription
from app.models.user import User
from app.repositories.lifetime_purchase_repository import LifetimePurchaseRepository
from app.repositories.pending_guest_repository import PendingGuestSubscriptionRepository
from app.repositories.pix_payment_repository import PixPaymentRepository
from app.services.activation_service import ActivationOutcome
from app.services.notification_service import PurchaseNotifier
from app.services.subscription_service import (
    LIFETIME_PLAN_NAME,
    SubscriptionService,
    build_activation_service,
)
from app.utils.billing_periods import normalize_email, utcnow

logger = logging.getLogger(__name__)


class GuestLinkService:
    def __init__(
        self,
        db: Session,
        notifier: Optional[PurchaseNotifier] = None,
    ):
        self.db = db
        self.activation = build_activation_service(db)
        self.subscription_repo = self.activation.subscription_repo
        self.subscription_service = SubscriptionService(self.subscription_repo)
        self.pending_repo = PendingGuestSubscriptionRepository(db)
        self.pix_repo = PixPaymentRepository(db)
        self.lifetime_repo = LifetimePurchaseRepository(db)
        self.notifier = notifier or PurchaseNotifier()

    def link_pending_subscription(self, pending: PendingGuestSubscription, user: User) -> Optional[Tuple[str, Subscription]]:
        """Reivindica uma assinatura guest. Retorna None se outro processo já a vinculou."""
        if not self.pending_repo.claim(pending.id, user.id, utcnow()):
            logger.info(f"Assinatura guest {pending.external_subscription_id} já vinculada por outro processo")
            return None

        subscription = self.subscription_repo.get_by_external_id(pending.external_subscription_id)
        if subscription is None:
            initial = SubscriptionStatus.CANCELED if pending.status == SubscriptionStatus.CANCELED else SubscriptionStatus.PENDING
            subscription = self.subscription_repo.create(Subscription(
                user_id=user.id,
                external_subscription_id=pending.external_subscription_id,
                external_customer_id=pending.external_customer_id,
                checkout_session_id=pending.checkout_session_id,
                price_id=pending.price_id,
                status=initial,
                payment_method="card",
                amount_cents=pending.amount_cents,
                currency=pending.currency,
            ))
        elif subscription.user_id is None:
            self.subscription_repo.bind_user(subscription.id, user.id)
            self.subscription_repo.refresh(subscription)

        outcome = ActivationOutcome.UNCHANGED
        if pending.status in SubscriptionStatus.LIVE:
            outcome = self.activation.activate(user.id, subscription.id)
        if pending.status == SubscriptionStatus.PAST_DUE and outcome == ActivationOutcome.ACTIVATED:
            # A Stripe já reportou a fatura em aberto antes do vínculo
            outcome = self.activation.mark_past_due(subscription.id)
        logger.info(
            f"Assinatura guest {pending.external_subscription_id} vinculada ao user_id={user.id} ({outcome})"
        )
        return outcome, subscription

    def link_for_user(self, user: User) -> Dict[str, int]:
        """
        Vincula todas as compras guest pendentes do email do usuário.

        Returns:
            Contagem de linhas vinculadas por tipo de compra.
        """
        email = normalize_email(user.email)
        summary = {"subscriptions": 0, "pix_payments": 0, "lifetime_purchases": 0}
        # (nome do plano, bundle?, telefone) de cada ativação que alterou o perfil
        activated: List[Tuple[str, bool, Optional[str]]] = []

        for pending in self.pending_repo.list_unlinked_by_email(email):
            linked = self.link_pending_subscription(pending, user)
            if linked is None:
                continue
            outcome, subscription = linked
            summary["subscriptions"] += 1
            if outcome == ActivationOutcome.ACTIVATED:
                activated.append((
                    self.subscription_service.plan_name_for(subscription),
                    bool(pending.is_bundle),
                    pending.phone,
                ))

        for pix in self.pix_repo.list_unlinked_by_email(email):
            if not self.pix_repo.bind_user(pix.payment_intent_id, user.id, utcnow()):
                continue
            self.pix_repo.refresh(pix)
            summary["pix_payments"] += 1
            if pix.status != PixStatus.PAID:
                # Ainda aguardando pagamento: o webhook ativa quando chegar
                continue
            subscription = self.subscription_service.grant_pix_subscription(user.id, pix)
            if self.activation.activate(user.id, subscription.id) == ActivationOutcome.ACTIVATED:
                activated.append((
                    settings.get_pix_plan_name(pix.plan_type) or pix.plan_type,
                    bool(pix.is_bundle),
                    pix.phone,
                ))

        for purchase in self.lifetime_repo.list_unlinked_by_email(email):
            if not self.lifetime_repo.claim(purchase.id, user.id, utcnow()):
                continue
            summary["lifetime_purchases"] += 1
            if self.activation.activate_lifetime(user.id) == ActivationOutcome.ACTIVATED:
                activated.append((LIFETIME_PLAN_NAME, False, None))

        self.db.commit()

        if any(summary.values()):
            logger.info(f"Compras guest vinculadas ao user_id={user.id}: {summary}")
        for plan_name, is_bundle, phone in activated:
            self.notifier.activation_completed(user, plan_name, is_bundle, phone)
        return summary

